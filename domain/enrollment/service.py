"""
Enrollment fan-out - grants course access once a purchase is completed.
"""
from dataclasses import dataclass

from .repository import EnrollmentRepository
from domain.catalog.entity import Course


@dataclass
class EnrollmentOutcome:
    lectures_opened: int
    course_added: bool
    student_added: bool


class EnrollmentFanOut:
    """
    Runs the access-granting steps in a fixed order:

    1. open every lecture of the course
    2. add the course to the user's enrolled courses
    3. add the user to the course's enrolled students

    Each step is individually idempotent, so re-running the whole sequence
    after a crash converges on the same state.
    """

    def __init__(self, enrollment_repository: EnrollmentRepository):
        self.enrollment_repository = enrollment_repository

    async def run(self, user_id: int, course: Course) -> EnrollmentOutcome:
        opened = 0
        if course.lecture_ids:
            opened = await self.enrollment_repository.open_lectures(course.lecture_ids)
        course_added = await self.enrollment_repository.add_enrolled_course(user_id, course.id)
        student_added = await self.enrollment_repository.add_enrolled_student(course.id, user_id)
        return EnrollmentOutcome(
            lectures_opened=opened,
            course_added=course_added,
            student_added=student_added,
        )
