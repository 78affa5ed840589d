"""
Request/response DTOs exchanged between the API layer and the application layer.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_serializer

from core.response import utc_isoformat
from domain.purchase.entity import PurchaseRecord


class DTOBase(BaseModel):
    """Base DTO: datetimes serialize as UTC ISO8601 with a trailing Z."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                return utc_isoformat(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class CourseRequestDTO(DTOBase):
    # The web client historically sends camelCase
    course_id: int = Field(..., gt=0, validation_alias=AliasChoices("course_id", "courseId"))


class CheckoutSessionDTO(DTOBase):
    checkout_url: str


class VerifyPaymentDTO(DTOBase):
    razorpay_order_id: str = Field(..., min_length=1, max_length=200)
    razorpay_payment_id: str = Field(..., min_length=1, max_length=200)
    razorpay_signature: str = Field(..., min_length=1, max_length=512)


class VerifyPaymentResultDTO(DTOBase):
    course_id: int


class RefundCreateDTO(DTOBase):
    provider_reference: str = Field(..., min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the full purchase amount")
    reason: Optional[str] = Field(None, max_length=500)


class PurchaseDTO(DTOBase):
    id: int
    course_id: int
    user_id: int
    amount: Decimal
    currency: str
    provider: str
    status: str
    provider_reference: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_reason: Optional[str] = None
    external_refund_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, purchase: PurchaseRecord) -> "PurchaseDTO":
        return cls(
            id=purchase.id,
            course_id=purchase.course_id,
            user_id=purchase.user_id,
            amount=purchase.amount,
            currency=purchase.currency,
            provider=purchase.provider.value,
            status=purchase.status.value,
            provider_reference=purchase.provider_reference,
            refund_amount=purchase.refund.amount if purchase.refund else None,
            refund_reason=purchase.refund.reason if purchase.refund else None,
            external_refund_id=purchase.refund.external_refund_id if purchase.refund else None,
            created_at=purchase.created_at,
            updated_at=purchase.updated_at,
            completed_at=purchase.completed_at,
        )
