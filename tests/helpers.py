"""Shared assertions over the enrollment tables and purchase rows"""
from sqlalchemy import func, select

from infrastructure.models import LectureModel, PurchaseModel
from infrastructure.models.enrollment import course_enrolled_students, user_enrolled_courses


STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
RAZORPAY_KEY_SECRET = "rzp_test_secret"


async def enrolled_course_rows(session_factory, user_id: int) -> list:
    async with session_factory() as session:
        result = await session.execute(
            select(user_enrolled_courses.c.course_id).where(user_enrolled_courses.c.user_id == user_id)
        )
        return list(result.scalars().all())


async def enrolled_student_rows(session_factory, course_id: int) -> list:
    async with session_factory() as session:
        result = await session.execute(
            select(course_enrolled_students.c.user_id).where(course_enrolled_students.c.course_id == course_id)
        )
        return list(result.scalars().all())


async def lecture_flags(session_factory, course_id: int) -> dict:
    async with session_factory() as session:
        result = await session.execute(
            select(LectureModel.id, LectureModel.is_preview_free).where(LectureModel.course_id == course_id)
        )
        return {row.id: row.is_preview_free for row in result}


async def purchase_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(PurchaseModel.id)))).scalar_one()


async def load_purchase(uow_factory, purchase_id: int):
    async with uow_factory(readonly=True) as uow:
        return await uow.purchase_repository.get_by_id(purchase_id)
