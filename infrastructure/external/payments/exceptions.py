"""
Provider-side failures as BusinessException variants.

The global handlers map them like any other business error: an upstream
failure becomes 502, a failed authenticity check becomes 400.
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


# Identical for every cause so callers learn nothing about which check failed
SIGNATURE_FAILED_MESSAGE = "Payment signature verification failed"


class PaymentError(BusinessException):
    """Base for errors raised by a provider adapter; always names the provider"""

    code: PaymentCode = PaymentCode.PROVIDER_ERROR

    def __init__(self, message: str, *, provider: str, details: Optional[dict[str, Any]] = None):
        self.provider = provider
        super().__init__(
            code=self.code,
            message=message,
            error_type=type(self).__name__,
            details={"provider": provider, **(details or {})},
        )


class PaymentProviderError(PaymentError):
    """The provider was unreachable or rejected the request"""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.provider_code = provider_code
        super().__init__(message, provider=provider, details={"provider_code": provider_code, **(details or {})})


class PaymentSignatureError(PaymentError):
    code = PaymentCode.SIGNATURE_ERROR

    def __init__(self, message: str = SIGNATURE_FAILED_MESSAGE, *, provider: str):
        super().__init__(message, provider=provider)
