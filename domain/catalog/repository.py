"""
Catalog lookup ports (courses and users).
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Course, User


class CourseRepository(ABC):

    @abstractmethod
    async def get_by_id(self, course_id: int) -> Optional[Course]:
        """Course with its lectures, or None"""
        pass

    @abstractmethod
    async def list_by_ids(self, course_ids: List[int]) -> List[Course]:
        """Courses for the given ids, lectures not loaded"""
        pass


class UserRepository(ABC):

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        pass
