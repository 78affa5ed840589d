"""
Purchase aggregate root - one attempt by one user to buy one course.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidTransitionException,
)


class PurchaseStatus(str, Enum):
    """Purchase lifecycle states"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentProvider(str, Enum):
    """Supported payment providers"""
    STRIPE = "stripe"        # hosted card checkout + webhook
    RAZORPAY = "razorpay"    # order + client-relayed signature


# Legal transitions; terminal states map to an empty set
_TRANSITIONS: dict[PurchaseStatus, frozenset[PurchaseStatus]] = {
    PurchaseStatus.PENDING: frozenset({PurchaseStatus.COMPLETED, PurchaseStatus.FAILED}),
    PurchaseStatus.COMPLETED: frozenset({PurchaseStatus.REFUNDED}),
    PurchaseStatus.FAILED: frozenset(),
    PurchaseStatus.REFUNDED: frozenset(),
}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class RefundDetails:
    reason: Optional[str]
    amount: Decimal
    external_refund_id: Optional[str] = None


@dataclass
class PurchaseRecord:
    """
    Purchase aggregate root.

    Business rules:
    1. course_id, user_id, provider are fixed at creation
    2. amount is non-negative and only changes through a provider settlement
    3. provider_reference is attached once and is the idempotency key
    4. status follows the transition table above; terminal states stay terminal
    5. refund details exist only on refunded purchases
    """

    id: Optional[int]
    course_id: int
    user_id: int
    amount: Decimal
    currency: str
    provider: PaymentProvider
    status: PurchaseStatus = PurchaseStatus.PENDING
    provider_reference: Optional[str] = None
    provider_payment_id: Optional[str] = None
    refund: Optional[RefundDetails] = None
    failure_reason: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    enrolled_at: Optional[datetime] = None

    def __post_init__(self):
        if self.course_id is None or self.user_id is None:
            raise DomainValidationException("Course and user references are required", field="course_id")
        self._validate_amount(self.amount, "amount")
        self.currency = (self.currency or "").upper()
        if len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.provider = PaymentProvider(self.provider)
        self.status = PurchaseStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.completed_at = _ensure_utc(self.completed_at)
        self.enrolled_at = _ensure_utc(self.enrolled_at)
        if self.metadata is None:
            self.metadata = {}

    @staticmethod
    def _validate_amount(amount: Decimal, field_name: str) -> None:
        if amount is None or amount < 0:
            raise DomainValidationException(
                f"Amount must be non-negative: {amount}",
                field=field_name,
            )

    def _touch(self) -> datetime:
        now = datetime.now(timezone.utc)
        self.updated_at = now
        return now

    def can_transition_to(self, target: PurchaseStatus) -> bool:
        return target in _TRANSITIONS[self.status]

    def _transition(self, target: PurchaseStatus) -> None:
        if not self.can_transition_to(target):
            raise InvalidTransitionException(self.status.value, target.value)
        self.status = target

    def attach_provider_reference(self, reference: str) -> None:
        """Bind the provider session/order id; allowed once."""
        if not reference:
            raise DomainValidationException("Provider reference must not be empty", field="provider_reference")
        if self.provider_reference and self.provider_reference != reference:
            raise DomainValidationException(
                "Provider reference is already set",
                field="provider_reference",
            )
        self.provider_reference = reference
        self._touch()

    def mark_completed(
        self,
        settled_amount: Optional[Decimal] = None,
        provider_payment_id: Optional[str] = None,
    ) -> bool:
        """
        Move to completed.

        Returns False when already completed, so callers can treat repeated
        notifications as no-ops.
        """
        if self.status == PurchaseStatus.COMPLETED:
            return False
        self._transition(PurchaseStatus.COMPLETED)
        if settled_amount is not None:
            self._validate_amount(settled_amount, "settled_amount")
            self.amount = settled_amount
        if provider_payment_id:
            self.provider_payment_id = provider_payment_id
        self.failure_reason = None
        self.completed_at = self._touch()
        return True

    def mark_failed(self, reason: Optional[str] = None) -> bool:
        """Move to failed; returns False when already failed."""
        if self.status == PurchaseStatus.FAILED:
            return False
        self._transition(PurchaseStatus.FAILED)
        self.failure_reason = reason
        self._touch()
        return True

    def apply_refund(
        self,
        reason: Optional[str] = None,
        amount: Optional[Decimal] = None,
        external_refund_id: Optional[str] = None,
    ) -> None:
        """Refund a completed purchase; amount defaults to the full amount."""
        if not self.can_transition_to(PurchaseStatus.REFUNDED):
            raise InvalidTransitionException(self.status.value, PurchaseStatus.REFUNDED.value)
        refund_amount = self.amount if amount is None else amount
        if refund_amount <= 0 and self.amount > 0:
            raise DomainValidationException(
                f"Refund amount must be greater than 0: {refund_amount}",
                field="refund_amount",
            )
        if refund_amount > self.amount:
            raise DomainValidationException(
                f"Refund amount {refund_amount} exceeds purchase amount {self.amount}",
                field="refund_amount",
            )
        self._transition(PurchaseStatus.REFUNDED)
        self.refund = RefundDetails(
            reason=reason,
            amount=refund_amount,
            external_refund_id=external_refund_id,
        )
        self._touch()

    @property
    def needs_enrollment(self) -> bool:
        return self.status == PurchaseStatus.COMPLETED and self.enrolled_at is None

    def is_refundable(self, window_days: int = 30, now: Optional[datetime] = None) -> bool:
        """Completed purchases stay refundable for a limited window."""
        if self.status != PurchaseStatus.COMPLETED or self.created_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.created_at > now - timedelta(days=window_days)

    def is_final_status(self) -> bool:
        return not _TRANSITIONS[self.status]
