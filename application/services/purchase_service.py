"""
Application service orchestrating the purchase use-cases.

Depends only on the unit-of-work port, the gateway ports and DTOs; concrete
gateways are injected from the composition root (API dependencies, Celery
tasks).

Transaction layout for a completion:

1. lock the record by provider reference, apply the transition, commit
2. claim ``enrolled_at`` with a conditional write, run the enrollment fan-out, commit

A failure in step 2 leaves the purchase completed with ``enrolled_at`` unset;
the next delivery of the same notification or the reconciliation job runs
step 2 again.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional

from application.dtos.payments import (
    CheckoutSessionRequest,
    OrderRequest,
    RefundRequest,
)
from application.ports.payment_gateway import CheckoutGateway, OrderGateway
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.catalog.entity import Course
from domain.common.exceptions import (
    BusinessException,
    CourseNotFoundException,
    DomainValidationException,
    InvalidTransitionException,
    PurchaseNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.enrollment.service import EnrollmentFanOut
from domain.purchase.entity import PaymentProvider, PurchaseRecord, PurchaseStatus
from domain.purchase.service import PurchaseDomainService
from infrastructure.external.payments.exceptions import PaymentProviderError


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


@dataclass
class ReconcileReport:
    completed: int = 0
    failed: int = 0
    left_open: int = 0
    enrolled: int = 0
    errors: int = 0


def course_summary(course: Course) -> dict[str, Any]:
    return {
        "name": course.title,
        "description": course.description,
        "image": course.thumbnail,
    }


class PurchaseApplicationService:

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        checkout_gateway: Optional[CheckoutGateway] = None,
        order_gateway: Optional[OrderGateway] = None,
        *,
        currency: Optional[str] = None,
        client_url: Optional[str] = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.checkout_gateway = checkout_gateway
        self.order_gateway = order_gateway
        self.currency = (currency or payment_settings.currency).upper()
        self.client_url = (client_url or payment_settings.client_url).rstrip("/")

    def _gateway_for(self, provider: PaymentProvider):
        gateway = self.checkout_gateway if provider == PaymentProvider.STRIPE else self.order_gateway
        if gateway is None:
            raise PaymentProviderError(f"Payment provider {provider.value} is not configured", provider=provider.value)
        return gateway

    async def _start(self, user_id: int, course_id: int, provider: PaymentProvider) -> tuple[PurchaseRecord, Course]:
        """Create the pending record in its own transaction, before any provider call"""
        async with self.uow_factory() as uow:
            course = await uow.course_repository.get_by_id(course_id)
            if not course:
                raise CourseNotFoundException(course_id)
            domain = PurchaseDomainService(uow.purchase_repository)
            purchase = await domain.start_purchase(user_id, course, provider, self.currency)
        logger.info(
            "purchase_started",
            purchase_id=purchase.id,
            course_id=course_id,
            user_id=user_id,
            provider=provider.value,
            amount=str(purchase.amount),
        )
        return purchase, course

    async def _attach(self, purchase: PurchaseRecord, provider_reference: str) -> PurchaseRecord:
        async with self.uow_factory() as uow:
            domain = PurchaseDomainService(uow.purchase_repository)
            return await domain.attach_reference(purchase.id, provider_reference)

    @staticmethod
    def _provider_metadata(purchase: PurchaseRecord) -> dict[str, str]:
        return {
            "course_id": str(purchase.course_id),
            "user_id": str(purchase.user_id),
            "purchase_id": str(purchase.id),
        }

    async def create_checkout(self, user_id: int, course_id: int) -> str:
        """Open a hosted card checkout for a course and return its URL.

        If the provider call fails the pending record stays without a
        reference; reconciliation fails it later.
        """
        gateway = self._gateway_for(PaymentProvider.STRIPE)
        purchase, course = await self._start(user_id, course_id, PaymentProvider.STRIPE)

        session = await gateway.create_checkout_session(CheckoutSessionRequest(
            purchase_id=purchase.id,
            course_id=course.id,
            user_id=user_id,
            amount=purchase.amount,
            currency=purchase.currency,
            product_name=course.title,
            product_description=course.subtitle or None,
            product_image=course.thumbnail,
            success_url=f"{self.client_url}/course-progress/{course.id}",
            cancel_url=f"{self.client_url}/course-detail/{course.id}",
            metadata=self._provider_metadata(purchase),
            idempotency_key=f"checkout-{purchase.id}",
        ))
        await self._attach(purchase, session.session_id)
        logger.info(
            "checkout_session_created",
            purchase_id=purchase.id,
            provider=PaymentProvider.STRIPE.value,
            provider_reference=session.session_id,
        )
        return session.url

    async def handle_checkout_webhook(self, headers: dict[str, Any], body: bytes) -> dict[str, bool]:
        gateway = self._gateway_for(PaymentProvider.STRIPE)
        # Authentication happens before anything is read from the store
        event = gateway.parse_webhook(headers, body)
        logger.info(
            "checkout_webhook_received",
            provider=event.provider,
            event_id=event.id,
            event_type=event.type,
            action=event.action,
            provider_reference=event.provider_reference,
        )
        if event.action == "complete":
            await self.complete(
                event.provider_reference,
                settled_amount=event.settled_amount,
                provider_payment_id=event.provider_payment_id,
            )
        elif event.action == "fail":
            await self.fail(event.provider_reference, reason=event.type)
        else:
            logger.info("checkout_webhook_ignored", event_id=event.id, event_type=event.type)
        return {"received": True}

    async def create_order(self, user_id: int, course_id: int) -> dict[str, Any]:
        gateway = self._gateway_for(PaymentProvider.RAZORPAY)
        purchase, course = await self._start(user_id, course_id, PaymentProvider.RAZORPAY)

        order = await gateway.create_order(OrderRequest(
            purchase_id=purchase.id,
            amount=purchase.amount,
            currency=purchase.currency,
            receipt=f"course_{course.id}",
            notes=self._provider_metadata(purchase),
        ))
        await self._attach(purchase, order.id)
        logger.info(
            "order_created",
            purchase_id=purchase.id,
            provider=PaymentProvider.RAZORPAY.value,
            provider_reference=order.id,
        )
        return {
            "order": order.model_dump(),
            "course": course_summary(course),
        }

    async def verify_confirmation(self, order_id: str, payment_id: str, signature: str) -> int:
        """Check a client-relayed payment signature and complete the purchase.

        Returns the purchased course id.
        """
        gateway = self._gateway_for(PaymentProvider.RAZORPAY)
        gateway.verify_payment_signature(order_id, payment_id, signature)
        # The order provider reports no settled amount; the recorded price stands
        purchase = await self.complete(order_id, provider_payment_id=payment_id)
        return purchase.course_id

    async def complete(
        self,
        provider_reference: Optional[str],
        settled_amount: Optional[Decimal] = None,
        provider_payment_id: Optional[str] = None,
    ) -> PurchaseRecord:
        if not provider_reference:
            raise PurchaseNotFoundException("")
        async with self.uow_factory() as uow:
            domain = PurchaseDomainService(uow.purchase_repository)
            result = await domain.complete(provider_reference, settled_amount, provider_payment_id)
            events = domain.clear_events()

        purchase = result.purchase
        if result.newly_completed and settled_amount is not None and settled_amount != result.recorded_amount:
            logger.warning(
                "purchase_amount_mismatch",
                purchase_id=purchase.id,
                provider_reference=provider_reference,
                recorded=str(result.recorded_amount),
                settled=str(settled_amount),
            )
        if not result.newly_completed:
            logger.info("purchase_already_completed", purchase_id=purchase.id, provider_reference=provider_reference)
        self._publish(events)

        if purchase.needs_enrollment:
            await self.enroll(purchase.id)
        return purchase

    async def fail(self, provider_reference: Optional[str], reason: Optional[str] = None) -> PurchaseRecord:
        if not provider_reference:
            raise PurchaseNotFoundException("")
        async with self.uow_factory() as uow:
            domain = PurchaseDomainService(uow.purchase_repository)
            purchase = await domain.fail(provider_reference, reason)
            events = domain.clear_events()
        self._publish(events)
        return purchase

    async def enroll(self, purchase_id: int) -> bool:
        """Run the enrollment fan-out for a completed purchase, at most once.

        Returns True when this call performed the fan-out.
        """
        try:
            async with self.uow_factory() as uow:
                # The claim and the fan-out commit or roll back together
                claimed = await uow.purchase_repository.claim_enrollment(purchase_id, datetime.now(timezone.utc))
                if not claimed:
                    return False
                purchase = await uow.purchase_repository.get_by_id(purchase_id)
                course = await uow.course_repository.get_by_id(purchase.course_id)
                if not course:
                    raise CourseNotFoundException(purchase.course_id)
                outcome = await EnrollmentFanOut(uow.enrollment_repository).run(purchase.user_id, course)
        except Exception:
            logger.exception("enrollment_failed", purchase_id=purchase_id)
            raise

        logger.info(
            "enrollment_completed",
            purchase_id=purchase_id,
            lectures_opened=outcome.lectures_opened,
            course_added=outcome.course_added,
            student_added=outcome.student_added,
        )
        return True

    async def refund_purchase(
        self,
        provider_reference: str,
        *,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> PurchaseRecord:
        """Refund at the provider, then record the refund transition.

        Enrollment is left in place.
        """
        async with self.uow_factory(readonly=True) as uow:
            purchase = await uow.purchase_repository.get_by_provider_reference(provider_reference)
        if not purchase:
            raise PurchaseNotFoundException(provider_reference)
        if not purchase.can_transition_to(PurchaseStatus.REFUNDED):
            raise InvalidTransitionException(purchase.status.value, PurchaseStatus.REFUNDED.value)
        refund_amount = purchase.amount if amount is None else amount
        if refund_amount > purchase.amount:
            raise DomainValidationException(
                f"Refund amount {refund_amount} exceeds purchase amount {purchase.amount}",
                field="amount",
            )

        external_refund_id = None
        if refund_amount > 0:
            gateway = self._gateway_for(purchase.provider)
            result = await gateway.refund(RefundRequest(
                provider_reference=provider_reference,
                provider_payment_id=purchase.provider_payment_id,
                amount=refund_amount,
                currency=purchase.currency,
                reason=reason,
                idempotency_key=f"refund-{purchase.id}",
            ))
            external_refund_id = result.refund_id

        async with self.uow_factory() as uow:
            domain = PurchaseDomainService(uow.purchase_repository)
            refunded = await domain.refund(provider_reference, reason, refund_amount, external_refund_id)
            events = domain.clear_events()
        self._publish(events)
        return refunded

    async def reconcile(self, now: Optional[datetime] = None) -> ReconcileReport:
        """Settle stale pending purchases and finish interrupted enrollments"""
        cfg = payment_settings.reconcile
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(minutes=cfg.pending_ttl_minutes)
        report = ReconcileReport()

        async with self.uow_factory(readonly=True) as uow:
            stale = await uow.purchase_repository.list_stale_pending(cutoff, limit=cfg.batch_size)
            unenrolled = await uow.purchase_repository.list_unenrolled_completed(limit=cfg.batch_size)

        for purchase in stale:
            try:
                await self._reconcile_pending(purchase, report)
            except BusinessException as exc:
                report.errors += 1
                logger.warning(
                    "reconcile_purchase_failed",
                    purchase_id=purchase.id,
                    provider_reference=purchase.provider_reference,
                    error_type=exc.error_type,
                    error=exc.message,
                )
            except Exception:
                report.errors += 1
                logger.exception("reconcile_purchase_error", purchase_id=purchase.id)

        for purchase in unenrolled:
            try:
                if await self.enroll(purchase.id):
                    report.enrolled += 1
            except Exception:
                # Already logged by enroll(); keep going with the rest of the batch
                report.errors += 1

        logger.info("reconcile_finished", **report.__dict__)
        return report

    async def _reconcile_pending(self, purchase: PurchaseRecord, report: ReconcileReport) -> None:
        if not purchase.provider_reference:
            # Provider call never returned; nothing can ever confirm this record
            async with self.uow_factory() as uow:
                domain = PurchaseDomainService(uow.purchase_repository)
                locked = await uow.purchase_repository.get_by_id(purchase.id, for_update=True)
                if not locked:
                    raise PurchaseNotFoundException(f"id={purchase.id}")
                await domain.fail_purchase(locked, "checkout_not_created")
                events = domain.clear_events()
            self._publish(events)
            report.failed += 1
            return

        gateway = self._gateway_for(purchase.provider)
        status = await gateway.fetch_status(purchase.provider_reference)
        if status.status == "paid":
            settled = status.settled_amount if purchase.provider == PaymentProvider.STRIPE else None
            await self.complete(
                purchase.provider_reference,
                settled_amount=settled,
                provider_payment_id=status.provider_payment_id,
            )
            report.completed += 1
        elif status.status == "failed":
            await self.fail(purchase.provider_reference, reason="provider_expired")
            report.failed += 1
        else:
            report.left_open += 1

    def _publish(self, events: List) -> None:
        for event in events:
            logger.info(
                "purchase_event",
                event_name=event.name,
                event_id=event.event_id,
                purchase_id=event.purchase_id,
                course_id=event.course_id,
                user_id=event.user_id,
                provider=event.provider,
                provider_reference=event.provider_reference,
            )

    async def aclose(self) -> None:
        for gateway in (self.checkout_gateway, self.order_gateway):
            close = getattr(gateway, "aclose", None)
            if callable(close):
                await close()
