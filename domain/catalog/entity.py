"""
Read models for the aggregates this service consumes but does not own.

Courses, lectures and users are managed by the CRUD side of the platform;
purchases only look them up and, through enrollment, add set members.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional


@dataclass
class Lecture:
    id: int
    course_id: int
    title: str
    order: int = 0
    duration: float = 0
    is_preview_free: bool = False


@dataclass
class Course:
    id: int
    title: str
    price: Decimal
    subtitle: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    thumbnail: Optional[str] = None
    instructor_id: Optional[int] = None
    is_published: bool = False
    lectures: List[Lecture] = field(default_factory=list)

    @property
    def lecture_ids(self) -> List[int]:
        return [lecture.id for lecture in self.lectures]


@dataclass
class User:
    id: int
    name: str
    email: str
    role: str = "student"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
