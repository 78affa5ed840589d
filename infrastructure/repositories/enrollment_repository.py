"""
Enrollment repository - idempotent set-adds on the association tables.
"""
from typing import List

from sqlalchemy import Table, and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.enrollment.repository import EnrollmentRepository
from infrastructure.models.catalog import LectureModel
from infrastructure.models.enrollment import course_enrolled_students, user_enrolled_courses


logger = get_logger(__name__)


class SQLAlchemyEnrollmentRepository(EnrollmentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def _dialect(self) -> str:
        return self.session.get_bind().dialect.name

    async def _set_add(self, table: Table, values: dict) -> bool:
        """INSERT that ignores an existing (pk) row; True when a row was added"""
        dialect = self._dialect
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as pg_insert
            stmt = pg_insert(table).values(**values).on_conflict_do_nothing()
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as sqlite_insert
            stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing()
        elif dialect in ("mysql", "mariadb"):
            stmt = insert(table).values(**values).prefix_with("IGNORE")
        else:
            exists = await self.session.execute(
                select(*table.primary_key.columns).where(
                    and_(*(table.c[k] == v for k, v in values.items()))
                )
            )
            if exists.first() is not None:
                return False
            stmt = insert(table).values(**values)
        result = await self.session.execute(stmt)
        return (result.rowcount or 0) > 0

    async def open_lectures(self, lecture_ids: List[int]) -> int:
        if not lecture_ids:
            return 0
        result = await self.session.execute(
            update(LectureModel)
            .where(LectureModel.id.in_(lecture_ids), LectureModel.is_preview_free.is_(False))
            .values(is_preview_free=True)
        )
        return result.rowcount or 0

    async def add_enrolled_course(self, user_id: int, course_id: int) -> bool:
        added = await self._set_add(user_enrolled_courses, {"user_id": user_id, "course_id": course_id})
        if added:
            logger.info("enrolled_course_added", user_id=user_id, course_id=course_id)
        return added

    async def add_enrolled_student(self, course_id: int, user_id: int) -> bool:
        added = await self._set_add(course_enrolled_students, {"course_id": course_id, "user_id": user_id})
        if added:
            logger.info("enrolled_student_added", user_id=user_id, course_id=course_id)
        return added

    async def list_enrolled_courses(self, user_id: int) -> List[int]:
        result = await self.session.execute(
            select(user_enrolled_courses.c.course_id)
            .where(user_enrolled_courses.c.user_id == user_id)
            .order_by(user_enrolled_courses.c.course_id)
        )
        return list(result.scalars().all())

    async def list_enrolled_students(self, course_id: int) -> List[int]:
        result = await self.session.execute(
            select(course_enrolled_students.c.user_id)
            .where(course_enrolled_students.c.course_id == course_id)
            .order_by(course_enrolled_students.c.user_id)
        )
        return list(result.scalars().all())
