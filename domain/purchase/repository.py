"""
Purchase repository port - what the domain needs from storage, not how.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import PurchaseRecord, PurchaseStatus


class PurchaseRepository(ABC):
    """Purchase record store.

    Implementations must enforce uniqueness of ``provider_reference``.
    ``for_update`` is a best-effort row lock; status changes go through
    ``save_transition``, whose conditional write is what makes concurrent
    notifications for one purchase apply once.
    """

    @abstractmethod
    async def create(self, purchase: PurchaseRecord) -> PurchaseRecord:
        """Persist a new purchase record"""
        pass

    @abstractmethod
    async def get_by_id(self, purchase_id: int, *, for_update: bool = False) -> Optional[PurchaseRecord]:
        pass

    @abstractmethod
    async def get_by_provider_reference(
        self,
        provider_reference: str,
        *,
        for_update: bool = False,
    ) -> Optional[PurchaseRecord]:
        """Look up by the provider session/order id (the idempotency key)"""
        pass

    @abstractmethod
    async def update(self, purchase: PurchaseRecord) -> PurchaseRecord:
        pass

    @abstractmethod
    async def save_transition(
        self,
        purchase: PurchaseRecord,
        from_status: PurchaseStatus,
    ) -> Optional[PurchaseRecord]:
        """Persist a status change only if the stored status is still ``from_status``.

        Returns None when another writer changed the record first.
        """
        pass

    @abstractmethod
    async def claim_enrollment(self, purchase_id: int, at: datetime) -> bool:
        """Stamp ``enrolled_at`` on a completed, unenrolled purchase; False if already claimed"""
        pass

    @abstractmethod
    async def has_completed(self, user_id: int, course_id: int) -> bool:
        """True iff a completed purchase exists for (user, course)"""
        pass

    @abstractmethod
    async def list_completed_course_ids(self, user_id: int) -> List[int]:
        pass

    @abstractmethod
    async def list_stale_pending(self, older_than: datetime, limit: int = 100) -> List[PurchaseRecord]:
        """Pending purchases created before ``older_than``"""
        pass

    @abstractmethod
    async def list_unenrolled_completed(self, limit: int = 100) -> List[PurchaseRecord]:
        """Completed purchases whose enrollment fan-out has not finished"""
        pass
