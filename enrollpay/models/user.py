"""Users and their enrolled-courses record"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID, ENUM
from sqlalchemy.orm import relationship

from enrollpay.models.base import BaseModel, StatusMixin
from enrollpay.models.enums import UserRole, EnrollmentStatus, enum_values


class User(BaseModel, StatusMixin):
    """
    Minimal view of the user directory: identity, contact and role.
    Accounts are managed elsewhere; the enrollment core only reads them and
    appends to ``enrolled_courses``.
    """
    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(
        ENUM(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        index=True,
    )

    enrolled_courses = relationship(
        "EnrolledCourse",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class EnrolledCourse(BaseModel):
    """One approved course on a student's record"""
    __tablename__ = "enrolled_courses"

    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False, index=True)
    class_id = Column(UUID(as_uuid=True), ForeignKey("course_classes.id", ondelete="SET NULL"), nullable=True)
    status = Column(
        ENUM(EnrollmentStatus, name="enrollment_status", values_callable=enum_values),
        nullable=False,
    )
    enrollment_date = Column(DateTime, nullable=False)
    approval_date = Column(DateTime, nullable=True)
    registration_fee_paid = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="enrolled_courses")

    def __repr__(self) -> str:
        return f"<EnrolledCourse user={self.user_id} course={self.course_id}>"
