"""Purchase maintenance task: the periodic reconciliation sweep."""
from __future__ import annotations

from dataclasses import asdict

from celery import shared_task

from ..utils.base_task import BaseTask, run_async
from application.services.purchase_service import PurchaseApplicationService
from infrastructure.external.payments import get_checkout_gateway, get_order_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def build_purchase_service() -> PurchaseApplicationService:
    return PurchaseApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        checkout_gateway=get_checkout_gateway(),
        order_gateway=get_order_gateway(),
    )


@shared_task(name="purchases.reconcile", bind=True, base=BaseTask)
def reconcile_purchases(self) -> dict:
    """Settle stale pending purchases and finish interrupted enrollments.

    Not retried on failure; the next beat tick runs the sweep again.
    """
    async def _run():
        service = build_purchase_service()
        try:
            return await service.reconcile()
        finally:
            await service.aclose()

    report = run_async(_run)
    return asdict(report)
