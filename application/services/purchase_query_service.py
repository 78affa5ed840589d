"""
Read paths over purchases: status per course and the purchased-course list.
"""
from __future__ import annotations

from typing import Any, List

from core.logging_config import get_logger
from domain.catalog.entity import Course
from domain.common.exceptions import CourseNotFoundException
from application.services.purchase_service import UnitOfWorkFactory


logger = get_logger(__name__)


def course_detail(course: Course) -> dict[str, Any]:
    return {
        "id": course.id,
        "title": course.title,
        "subtitle": course.subtitle,
        "description": course.description,
        "category": course.category,
        "thumbnail": course.thumbnail,
        "price": str(course.price),
        "instructor_id": course.instructor_id,
        "lectures": [
            {
                "id": lecture.id,
                "title": lecture.title,
                "order": lecture.order,
                "duration": lecture.duration,
                "is_preview_free": lecture.is_preview_free,
            }
            for lecture in course.lectures
        ],
    }


def course_list_item(course: Course) -> dict[str, Any]:
    return {
        "id": course.id,
        "title": course.title,
        "subtitle": course.subtitle,
        "description": course.description,
        "category": course.category,
        "thumbnail": course.thumbnail,
        "price": str(course.price),
    }


class PurchaseQueryService:

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self.uow_factory = uow_factory

    async def get_status(self, user_id: int, course_id: int) -> dict[str, Any]:
        """Course detail plus whether the user holds a completed purchase for it"""
        async with self.uow_factory(readonly=True) as uow:
            course = await uow.course_repository.get_by_id(course_id)
            if not course:
                raise CourseNotFoundException(course_id)
            purchased = await uow.purchase_repository.has_completed(user_id, course_id)
        return {"course": course_detail(course), "is_purchased": purchased}

    async def list_purchased(self, user_id: int) -> List[dict[str, Any]]:
        async with self.uow_factory(readonly=True) as uow:
            course_ids = await uow.purchase_repository.list_completed_course_ids(user_id)
            courses = await uow.course_repository.list_by_ids(course_ids)
        return [course_list_item(c) for c in courses]
