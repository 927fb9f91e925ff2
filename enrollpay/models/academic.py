"""Courses, class sections and class rosters"""

from sqlalchemy import Column, String, Text, Integer, Numeric, Table, ForeignKey, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from enrollpay.models.base import BaseModel, StatusMixin


class Course(BaseModel, StatusMixin):
    """
    A course offered by the center. ``price`` excludes the registration fee.
    """
    __tablename__ = "courses"

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)

    classes = relationship("CourseClass", back_populates="course", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Course {self.title} ({self.price})>"


class CourseClass(BaseModel, StatusMixin):
    """
    A class section of a course, optionally bound to a level and capped by capacity.
    """
    __tablename__ = "course_classes"

    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    level = Column(String(50), nullable=True, index=True)
    capacity = Column(Integer, nullable=True)  # NULL = unlimited

    course = relationship("Course", back_populates="classes")
    students = relationship("User", secondary="class_students")

    def __repr__(self) -> str:
        return f"<CourseClass {self.name}>"


# Class roster (Pivot Table)
class_students = Table(
    "class_students",
    BaseModel.metadata,
    Column("class_id", UUID(as_uuid=True), ForeignKey("course_classes.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_by", UUID(as_uuid=True), nullable=True),
    Column("joined_at", DateTime, nullable=False),
)
