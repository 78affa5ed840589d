"""Unit of Work port - the transaction boundary used by application services."""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.catalog.repository import CourseRepository, UserRepository
from domain.enrollment.repository import EnrollmentRepository
from domain.purchase.repository import PurchaseRepository


class AbstractUnitOfWork(ABC):
    """One database transaction; commits on clean exit, rolls back on error"""

    purchase_repository: PurchaseRepository
    course_repository: CourseRepository
    user_repository: UserRepository
    enrollment_repository: EnrollmentRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.purchase_repository = None  # type: ignore[assignment]
        self.course_repository = None  # type: ignore[assignment]
        self.user_repository = None  # type: ignore[assignment]
        self.enrollment_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
