"""
Catalog tables (users, courses, lectures).

Owned by the course CRUD side; the purchase flow only reads them, apart from
the lecture preview flag flipped during enrollment.
"""
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="Display name")
    email = Column(String(255), unique=True, index=True, nullable=False, comment="Login email")
    role = Column(String(20), nullable=False, default="student", comment="student/instructor/admin")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<UserModel(id={self.id}, email='{self.email}', role='{self.role}')>"


class CourseModel(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, comment="Course title")
    subtitle = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True, index=True)
    thumbnail = Column(String(500), nullable=True, comment="Course image URL")
    price = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="Price in major units")
    instructor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    is_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    lectures = relationship(
        "LectureModel",
        back_populates="course",
        order_by="LectureModel.order",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<CourseModel(id={self.id}, title='{self.title}', price={self.price})>"


class LectureModel(Base):
    __tablename__ = "lectures"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(
        Integer,
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = Column(String(255), nullable=False)
    video_url = Column(String(500), nullable=True)
    duration = Column(Float, nullable=False, default=0, comment="Length in seconds")
    order = Column("position", Integer, nullable=False, default=0, comment="Position within the course")
    # True means the lecture is playable without owning the course
    is_preview_free = Column(Boolean, nullable=False, default=False)

    course = relationship("CourseModel", back_populates="lectures")

    def __repr__(self):
        return f"<LectureModel(id={self.id}, course_id={self.course_id}, free={self.is_preview_free})>"
