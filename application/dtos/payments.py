"""
Payment DTOs (Pydantic v2) exchanged between the application layer and the
provider adapters. Amounts are Decimal major units; adapters convert to the
provider's minor units at the edge.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _upper_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    return u


class CheckoutSessionRequest(BaseModel):
    """Hosted card checkout for one course"""
    purchase_id: int
    course_id: int
    user_id: int
    amount: Decimal = Field(ge=0)
    currency: str
    product_name: str
    product_description: Optional[str] = None
    product_image: Optional[str] = None
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, v: str) -> str:
        return _upper_currency(v)


class CheckoutSession(BaseModel):
    session_id: str
    url: Optional[str] = None
    provider: str = "stripe"


class OrderRequest(BaseModel):
    purchase_id: int
    amount: Decimal = Field(ge=0)
    currency: str
    receipt: str
    notes: dict[str, str] = Field(default_factory=dict)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, v: str) -> str:
        return _upper_currency(v)


class ProviderOrder(BaseModel):
    """Order object as returned by the provider, amount in minor units"""
    id: str
    entity: str = "order"
    amount: int
    currency: str
    receipt: Optional[str] = None
    status: str = "created"
    notes: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class WebhookEvent(BaseModel):
    """Authenticated provider notification reduced to a state machine command"""
    id: str
    type: str
    provider: str
    action: Optional[Literal["complete", "fail"]] = None
    provider_reference: Optional[str] = None
    provider_payment_id: Optional[str] = None
    settled_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_status: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundRequest(BaseModel):
    provider_reference: str
    provider_payment_id: Optional[str] = None
    amount: Decimal = Field(gt=0)
    currency: str
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, v: str) -> str:
        return _upper_currency(v)


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str
    amount: Optional[Decimal] = None


class ProviderPaymentStatus(BaseModel):
    """Provider-side view of a purchase, used by reconciliation"""
    provider: str
    provider_reference: str
    status: Literal["paid", "failed", "open"]
    settled_amount: Optional[Decimal] = None
    provider_payment_id: Optional[str] = None
