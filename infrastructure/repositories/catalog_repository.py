"""
Catalog repositories - read-only SQLAlchemy lookups for courses and users.
"""
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import noload, selectinload

from domain.catalog.entity import Course, Lecture, User
from domain.catalog.repository import CourseRepository, UserRepository
from infrastructure.models.catalog import CourseModel, LectureModel, UserModel


def _lecture_to_entity(model: LectureModel) -> Lecture:
    return Lecture(
        id=model.id,
        course_id=model.course_id,
        title=model.title,
        order=model.order,
        duration=model.duration or 0,
        is_preview_free=bool(model.is_preview_free),
    )


def _course_to_entity(model: CourseModel, with_lectures: bool = True) -> Course:
    return Course(
        id=model.id,
        title=model.title,
        price=Decimal(str(model.price or 0)),
        subtitle=model.subtitle,
        description=model.description,
        category=model.category,
        thumbnail=model.thumbnail,
        instructor_id=model.instructor_id,
        is_published=bool(model.is_published),
        lectures=[_lecture_to_entity(lec) for lec in model.lectures] if with_lectures else [],
    )


class SQLAlchemyCourseRepository(CourseRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, course_id: int) -> Optional[Course]:
        result = await self.session.execute(
            select(CourseModel)
            .options(selectinload(CourseModel.lectures))
            .where(CourseModel.id == course_id)
        )
        db_course = result.scalar_one_or_none()
        return _course_to_entity(db_course) if db_course else None

    async def list_by_ids(self, course_ids: List[int]) -> List[Course]:
        if not course_ids:
            return []
        result = await self.session.execute(
            select(CourseModel)
            .options(noload(CourseModel.lectures))
            .where(CourseModel.id.in_(course_ids))
            .order_by(CourseModel.id)
        )
        return [_course_to_entity(c, with_lectures=False) for c in result.scalars().all()]


class SQLAlchemyUserRepository(UserRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[User]:
        result = await self.session.execute(select(UserModel).where(UserModel.id == user_id))
        db_user = result.scalar_one_or_none()
        if not db_user:
            return None
        return User(id=db_user.id, name=db_user.name, email=db_user.email, role=db_user.role)
