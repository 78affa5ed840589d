from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.purchase.entity import PurchaseStatus
from infrastructure.external.payments.exceptions import PaymentProviderError
from infrastructure.repositories.enrollment_repository import SQLAlchemyEnrollmentRepository
from tests.helpers import enrolled_course_rows, load_purchase


def _later(hours: int = 2) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


async def _pending(service, gateway, seeded) -> int:
    await service.create_checkout(seeded["student_id"], seeded["course_id"])
    return gateway.created[-1].purchase_id


@pytest.mark.asyncio
async def test_pending_without_reference_is_failed(purchase_service, checkout_gateway, uow_factory, seeded):
    checkout_gateway.fail_create = True
    with pytest.raises(PaymentProviderError):
        await purchase_service.create_checkout(seeded["student_id"], seeded["course_id"])
    purchase_id = checkout_gateway.created[0].purchase_id

    report = await purchase_service.reconcile(now=_later())

    assert report.failed == 1
    purchase = await load_purchase(uow_factory, purchase_id)
    assert purchase.status == PurchaseStatus.FAILED
    assert purchase.failure_reason == "checkout_not_created"


@pytest.mark.asyncio
async def test_fresh_pending_is_left_alone(purchase_service, checkout_gateway, uow_factory, seeded):
    checkout_gateway.status = "paid"
    purchase_id = await _pending(purchase_service, checkout_gateway, seeded)

    report = await purchase_service.reconcile()

    assert report.completed == 0
    purchase = await load_purchase(uow_factory, purchase_id)
    assert purchase.status == PurchaseStatus.PENDING


@pytest.mark.asyncio
async def test_paid_at_provider_completes_and_enrolls(
    purchase_service, checkout_gateway, uow_factory, session_factory, seeded
):
    checkout_gateway.status = "paid"
    checkout_gateway.settled = Decimal("499.00")
    purchase_id = await _pending(purchase_service, checkout_gateway, seeded)

    report = await purchase_service.reconcile(now=_later())

    assert report.completed == 1
    purchase = await load_purchase(uow_factory, purchase_id)
    assert purchase.status == PurchaseStatus.COMPLETED
    assert purchase.provider_payment_id == "pi_reconciled"
    assert purchase.enrolled_at is not None
    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == [seeded["course_id"]]


@pytest.mark.asyncio
@pytest.mark.parametrize("provider_status,field", [("failed", "failed"), ("open", "left_open")])
async def test_other_provider_outcomes(
    purchase_service, checkout_gateway, uow_factory, seeded, provider_status, field
):
    checkout_gateway.status = provider_status
    purchase_id = await _pending(purchase_service, checkout_gateway, seeded)

    report = await purchase_service.reconcile(now=_later())

    assert getattr(report, field) == 1
    purchase = await load_purchase(uow_factory, purchase_id)
    expected = PurchaseStatus.FAILED if provider_status == "failed" else PurchaseStatus.PENDING
    assert purchase.status == expected
    if provider_status == "failed":
        assert purchase.failure_reason == "provider_expired"


@pytest.mark.asyncio
async def test_interrupted_enrollment_is_finished(
    purchase_service, checkout_gateway, uow_factory, session_factory, seeded, monkeypatch
):
    purchase_id = await _pending(purchase_service, checkout_gateway, seeded)

    async def boom(self, user_id, course_id):
        raise RuntimeError("lost connection")

    with monkeypatch.context() as m:
        m.setattr(SQLAlchemyEnrollmentRepository, "add_enrolled_course", boom)
        with pytest.raises(RuntimeError):
            await purchase_service.complete(f"cs_test_{purchase_id}")

    report = await purchase_service.reconcile()

    assert report.enrolled == 1
    assert report.errors == 0
    purchase = await load_purchase(uow_factory, purchase_id)
    assert purchase.enrolled_at is not None
    assert await enrolled_course_rows(session_factory, seeded["student_id"]) == [seeded["course_id"]]
