"""
Purchase repository - SQLAlchemy implementation.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.purchase.entity import PurchaseRecord, PurchaseStatus, RefundDetails
from domain.purchase.repository import PurchaseRepository
from infrastructure.models.purchase import PurchaseModel


logger = get_logger(__name__)


class SQLAlchemyPurchaseRepository(PurchaseRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PurchaseModel) -> PurchaseRecord:
        refund = None
        if model.refund_amount is not None:
            refund = RefundDetails(
                reason=model.refund_reason,
                amount=Decimal(str(model.refund_amount)),
                external_refund_id=model.refund_external_id,
            )
        return PurchaseRecord(
            id=model.id,
            course_id=model.course_id,
            user_id=model.user_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            provider=model.provider,
            status=PurchaseStatus(model.status),
            provider_reference=model.provider_reference,
            provider_payment_id=model.provider_payment_id,
            refund=refund,
            failure_reason=model.failure_reason,
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
            enrolled_at=model.enrolled_at,
        )

    @staticmethod
    def _values(entity: PurchaseRecord) -> dict:
        """Mutable entity state keyed by model attribute"""
        values = {
            "provider_reference": entity.provider_reference,
            "provider_payment_id": entity.provider_payment_id,
            "amount": entity.amount,
            "status": entity.status.value,
            "failure_reason": entity.failure_reason,
            "refund_reason": entity.refund.reason if entity.refund else None,
            "refund_amount": entity.refund.amount if entity.refund else None,
            "refund_external_id": entity.refund.external_refund_id if entity.refund else None,
            "completed_at": entity.completed_at,
            "enrolled_at": entity.enrolled_at,
            "extra_metadata": entity.metadata,
        }
        if entity.updated_at is not None:
            values["updated_at"] = entity.updated_at
        return values

    def _apply(self, model: PurchaseModel, entity: PurchaseRecord) -> None:
        for key, value in self._values(entity).items():
            setattr(model, key, value)

    async def _flush(self, model: PurchaseModel, reference: Optional[str]) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            if "provider_reference" in str(e).lower() or "unique" in str(e).lower():
                logger.warning("purchase_reference_conflict", provider_reference=reference)
                raise DomainValidationException(
                    "Provider reference already belongs to another purchase",
                    field="provider_reference",
                ) from e
            raise
        await self.session.refresh(model)

    async def create(self, purchase: PurchaseRecord) -> PurchaseRecord:
        db_purchase = PurchaseModel(
            course_id=purchase.course_id,
            user_id=purchase.user_id,
            provider=purchase.provider.value,
            currency=purchase.currency,
            created_at=purchase.created_at,
        )
        self._apply(db_purchase, purchase)
        self.session.add(db_purchase)
        await self._flush(db_purchase, purchase.provider_reference)
        logger.info(
            "purchase_created",
            purchase_id=db_purchase.id,
            course_id=db_purchase.course_id,
            user_id=db_purchase.user_id,
            provider=db_purchase.provider,
        )
        return self._to_entity(db_purchase)

    async def _get_model(self, purchase_id: int, for_update: bool = False) -> Optional[PurchaseModel]:
        # populate_existing: a guarded UPDATE may have changed the row behind the identity map
        stmt = (
            select(PurchaseModel)
            .where(PurchaseModel.id == purchase_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, purchase_id: int, *, for_update: bool = False) -> Optional[PurchaseRecord]:
        db_purchase = await self._get_model(purchase_id, for_update)
        return self._to_entity(db_purchase) if db_purchase else None

    async def get_by_provider_reference(
        self,
        provider_reference: str,
        *,
        for_update: bool = False,
    ) -> Optional[PurchaseRecord]:
        stmt = (
            select(PurchaseModel)
            .where(PurchaseModel.provider_reference == provider_reference)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        db_purchase = result.scalar_one_or_none()
        return self._to_entity(db_purchase) if db_purchase else None

    async def update(self, purchase: PurchaseRecord) -> PurchaseRecord:
        db_purchase = await self._get_model(purchase.id)
        if not db_purchase:
            raise ValueError(f"Purchase with id {purchase.id} not found")

        self._apply(db_purchase, purchase)
        await self._flush(db_purchase, purchase.provider_reference)

        logger.info(
            "purchase_updated",
            purchase_id=db_purchase.id,
            provider_reference=db_purchase.provider_reference,
            status=db_purchase.status,
        )
        return self._to_entity(db_purchase)

    async def save_transition(
        self,
        purchase: PurchaseRecord,
        from_status: PurchaseStatus,
    ) -> Optional[PurchaseRecord]:
        """Conditional write: applies only while the stored status is still ``from_status``.

        A single ``UPDATE ... WHERE status = :from_status`` is atomic on every
        backend, including SQLite where ``FOR UPDATE`` is a no-op.
        """
        values = {getattr(PurchaseModel, key): value for key, value in self._values(purchase).items()}
        result = await self.session.execute(
            update(PurchaseModel)
            .where(
                PurchaseModel.id == purchase.id,
                PurchaseModel.status == from_status.value,
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(
                "purchase_transition_superseded",
                purchase_id=purchase.id,
                expected_status=from_status.value,
                target_status=purchase.status.value,
            )
            return None

        db_purchase = await self._get_model(purchase.id)
        logger.info(
            "purchase_updated",
            purchase_id=db_purchase.id,
            provider_reference=db_purchase.provider_reference,
            status=db_purchase.status,
        )
        return self._to_entity(db_purchase)

    async def claim_enrollment(self, purchase_id: int, at: datetime) -> bool:
        result = await self.session.execute(
            update(PurchaseModel)
            .where(
                PurchaseModel.id == purchase_id,
                PurchaseModel.status == PurchaseStatus.COMPLETED.value,
                PurchaseModel.enrolled_at.is_(None),
            )
            .values({PurchaseModel.enrolled_at: at, PurchaseModel.updated_at: at})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def has_completed(self, user_id: int, course_id: int) -> bool:
        result = await self.session.execute(
            select(PurchaseModel.id)
            .where(
                PurchaseModel.user_id == user_id,
                PurchaseModel.course_id == course_id,
                PurchaseModel.status == PurchaseStatus.COMPLETED.value,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_completed_course_ids(self, user_id: int) -> List[int]:
        result = await self.session.execute(
            select(PurchaseModel.course_id)
            .where(
                PurchaseModel.user_id == user_id,
                PurchaseModel.status == PurchaseStatus.COMPLETED.value,
            )
            .distinct()
        )
        return list(result.scalars().all())

    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PurchaseRecord]:
        result = await self.session.execute(
            select(PurchaseModel)
            .where(
                PurchaseModel.status == PurchaseStatus.PENDING.value,
                PurchaseModel.created_at < older_than,
            )
            .order_by(PurchaseModel.created_at.asc())
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def list_unenrolled_completed(self, limit: int = 100) -> List[PurchaseRecord]:
        result = await self.session.execute(
            select(PurchaseModel)
            .where(
                PurchaseModel.status == PurchaseStatus.COMPLETED.value,
                PurchaseModel.enrolled_at.is_(None),
            )
            .order_by(PurchaseModel.completed_at.asc())
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]
