"""
Business codes carried in the ``code`` field of every response envelope.

Generic codes live here; purchase codes live in ``shared.codes.payment_codes``.
Code ranges: 1xxxx request, 2xxxx lookup, 3xxxx auth, 4xxxx system,
6xxxx purchases.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    PARAM_VALIDATION_ERROR = 10003

    USER_NOT_FOUND = 20001
    NOT_FOUND = 20006

    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    TOKEN_INVALID = 30003
    TOKEN_EXPIRED = 30004

    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
