"""SQLAlchemy Unit of Work implementation"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.catalog_repository import (
    SQLAlchemyCourseRepository,
    SQLAlchemyUserRepository,
)
from infrastructure.repositories.enrollment_repository import SQLAlchemyEnrollmentRepository
from infrastructure.repositories.purchase_repository import SQLAlchemyPurchaseRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.purchase_repository = SQLAlchemyPurchaseRepository(self.session)
        self.course_repository = SQLAlchemyCourseRepository(self.session)
        self.user_repository = SQLAlchemyUserRepository(self.session)
        self.enrollment_repository = SQLAlchemyEnrollmentRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.purchase_repository = None
            self.course_repository = None
            self.user_repository = None
            self.enrollment_repository = None

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
