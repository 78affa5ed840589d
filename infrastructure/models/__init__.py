"""Infrastructure models package exports."""
from .base import Base, metadata
from .catalog import UserModel, CourseModel, LectureModel
from .enrollment import user_enrolled_courses, course_enrolled_students
from .purchase import PurchaseModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "CourseModel",
    "LectureModel",
    "user_enrolled_courses",
    "course_enrolled_students",
    "PurchaseModel",
]
