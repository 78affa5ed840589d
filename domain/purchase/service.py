"""
Purchase domain service - the purchase state machine.

Both payment providers reduce to "prove authenticity, then present a
provider reference"; once authenticity is established by an adapter,
every transition goes through this service.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from .entity import PaymentProvider, PurchaseRecord, PurchaseStatus
from .events import PurchaseCompleted, PurchaseFailed, PurchaseRefunded
from .repository import PurchaseRepository
from domain.catalog.entity import Course
from domain.common.exceptions import InvalidTransitionException, PurchaseNotFoundException


@dataclass
class CompletionResult:
    purchase: PurchaseRecord
    newly_completed: bool
    recorded_amount: Optional[Decimal] = None


class PurchaseDomainService:
    """
    Purchase domain service.

    Responsibilities:
    1. Create pending purchases priced from the course, never from the client
    2. Apply complete / fail / refund transitions by provider reference
    3. Make repeated completions no-ops
    4. Collect domain events for the application layer
    """

    def __init__(self, purchase_repository: PurchaseRepository):
        self.purchase_repository = purchase_repository
        self.events: List = []

    async def start_purchase(
        self,
        user_id: int,
        course: Course,
        provider: PaymentProvider,
        currency: str,
    ) -> PurchaseRecord:
        now = datetime.now(timezone.utc)
        purchase = PurchaseRecord(
            id=None,
            course_id=course.id,
            user_id=user_id,
            amount=course.price,
            currency=currency,
            provider=provider,
            status=PurchaseStatus.PENDING,
            metadata={"course_id": str(course.id), "user_id": str(user_id)},
            created_at=now,
            updated_at=now,
        )
        return await self.purchase_repository.create(purchase)

    async def attach_reference(self, purchase_id: int, provider_reference: str) -> PurchaseRecord:
        purchase = await self.purchase_repository.get_by_id(purchase_id, for_update=True)
        if not purchase:
            raise PurchaseNotFoundException(f"id={purchase_id}")
        purchase.attach_provider_reference(provider_reference)
        return await self.purchase_repository.update(purchase)

    async def _load_locked(self, provider_reference: str) -> PurchaseRecord:
        # Never create a record from notification data alone
        purchase = await self.purchase_repository.get_by_provider_reference(
            provider_reference, for_update=True
        )
        if not purchase:
            raise PurchaseNotFoundException(provider_reference)
        return purchase

    async def _superseded(
        self,
        purchase_id: int,
        target: PurchaseStatus,
        *,
        repeat_ok: bool,
    ) -> PurchaseRecord:
        """Another writer moved the record first; judge the request against its state"""
        current = await self.purchase_repository.get_by_id(purchase_id, for_update=True)
        if not current:
            raise PurchaseNotFoundException(f"id={purchase_id}")
        if repeat_ok and current.status == target:
            return current
        raise InvalidTransitionException(current.status.value, target.value)

    async def complete(
        self,
        provider_reference: str,
        settled_amount: Optional[Decimal] = None,
        provider_payment_id: Optional[str] = None,
    ) -> CompletionResult:
        """
        Move a purchase to completed.

        Business rules:
        1. The purchase must exist (NotFound otherwise, nothing is written)
        2. Already completed -> success without side effects
        3. failed / refunded -> InvalidTransition, record untouched
        4. A provider-settled amount replaces the recorded amount
        5. Of two racing completions exactly one reports newly_completed
        """
        purchase = await self._load_locked(provider_reference)
        recorded_amount = purchase.amount
        if not purchase.mark_completed(settled_amount, provider_payment_id):
            return CompletionResult(purchase=purchase, newly_completed=False, recorded_amount=recorded_amount)

        updated = await self.purchase_repository.save_transition(purchase, PurchaseStatus.PENDING)
        if updated is None:
            current = await self._superseded(purchase.id, PurchaseStatus.COMPLETED, repeat_ok=True)
            return CompletionResult(purchase=current, newly_completed=False, recorded_amount=recorded_amount)
        self.events.append(PurchaseCompleted(
            purchase_id=updated.id,
            course_id=updated.course_id,
            user_id=updated.user_id,
            provider=updated.provider.value,
            provider_reference=updated.provider_reference,
            amount=str(updated.amount),
        ))
        return CompletionResult(purchase=updated, newly_completed=True, recorded_amount=recorded_amount)

    async def fail(self, provider_reference: str, reason: Optional[str] = None) -> PurchaseRecord:
        purchase = await self._load_locked(provider_reference)
        return await self.fail_purchase(purchase, reason)

    async def fail_purchase(self, purchase: PurchaseRecord, reason: Optional[str] = None) -> PurchaseRecord:
        if not purchase.mark_failed(reason):
            return purchase
        updated = await self.purchase_repository.save_transition(purchase, PurchaseStatus.PENDING)
        if updated is None:
            return await self._superseded(purchase.id, PurchaseStatus.FAILED, repeat_ok=True)
        self.events.append(PurchaseFailed(
            purchase_id=updated.id,
            course_id=updated.course_id,
            user_id=updated.user_id,
            provider=updated.provider.value,
            provider_reference=updated.provider_reference,
            reason=reason,
        ))
        return updated

    async def refund(
        self,
        provider_reference: str,
        reason: Optional[str] = None,
        amount: Optional[Decimal] = None,
        external_refund_id: Optional[str] = None,
    ) -> PurchaseRecord:
        """
        Refund a completed purchase.

        Enrollment is left in place; access revocation is handled elsewhere.
        """
        purchase = await self._load_locked(provider_reference)
        purchase.apply_refund(reason, amount, external_refund_id)
        updated = await self.purchase_repository.save_transition(purchase, PurchaseStatus.COMPLETED)
        if updated is None:
            await self._superseded(purchase.id, PurchaseStatus.REFUNDED, repeat_ok=False)
        self.events.append(PurchaseRefunded(
            purchase_id=updated.id,
            course_id=updated.course_id,
            user_id=updated.user_id,
            provider=updated.provider.value,
            provider_reference=updated.provider_reference,
            amount=str(updated.refund.amount) if updated.refund else "",
            reason=reason,
        ))
        return updated

    def clear_events(self) -> List:
        """Return and reset collected domain events"""
        events = self.events.copy()
        self.events.clear()
        return events
