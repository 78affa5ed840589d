"""
Enrollment storage port.

Every write is idempotent: set-adds ignore existing members and lecture
opening is a flag flip, so a half-finished fan-out can simply run again.
"""
from abc import ABC, abstractmethod
from typing import List


class EnrollmentRepository(ABC):

    @abstractmethod
    async def open_lectures(self, lecture_ids: List[int]) -> int:
        """Flip lectures from preview-gated to open; returns rows changed"""
        pass

    @abstractmethod
    async def add_enrolled_course(self, user_id: int, course_id: int) -> bool:
        """Add course to the user's enrolled set; False if already present"""
        pass

    @abstractmethod
    async def add_enrolled_student(self, course_id: int, user_id: int) -> bool:
        """Add user to the course's student set; False if already present"""
        pass

    @abstractmethod
    async def list_enrolled_courses(self, user_id: int) -> List[int]:
        pass

    @abstractmethod
    async def list_enrolled_students(self, course_id: int) -> List[int]:
        pass
