"""Domain-level business exceptions, shared by domain and infrastructure.

The core layer only maps these onto HTTP responses; nothing here imports
from core, so the dependency stays one-way.
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for all business exceptions."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class CourseNotFoundException(BusinessException):
    def __init__(self, course_id: Optional[int] = None):
        details = {"course_id": course_id} if course_id is not None else None
        super().__init__(
            code=PaymentCode.COURSE_NOT_FOUND,
            message="Course not found",
            error_type="CourseNotFound",
            details=details,
        )


class PurchaseNotFoundException(BusinessException):
    def __init__(self, identifier: str):
        super().__init__(
            code=PaymentCode.PURCHASE_NOT_FOUND,
            message="Purchase record not found",
            error_type="PurchaseNotFound",
            details={"reference": identifier},
        )


class InvalidTransitionException(BusinessException):
    def __init__(self, current: str, target: str):
        super().__init__(
            code=PaymentCode.INVALID_TRANSITION,
            message=f"Cannot move purchase from {current} to {target}",
            error_type="InvalidTransition",
            details={"current": current, "target": target},
            field="status",
        )
