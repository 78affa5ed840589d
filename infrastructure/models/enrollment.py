"""
Enrollment association tables.

Both directions are stored so "my courses" and "course roster" reads stay
single-table; the composite primary keys make every add a set-add.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Table
from datetime import datetime, timezone

from .base import Base


user_enrolled_courses = Table(
    "user_enrolled_courses",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("course_id", Integer, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "enrolled_at",
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    ),
)


course_enrolled_students = Table(
    "course_enrolled_students",
    Base.metadata,
    Column("course_id", Integer, ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "enrolled_at",
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    ),
)
