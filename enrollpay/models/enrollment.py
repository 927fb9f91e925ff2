"""Enrollment request aggregate"""

from datetime import datetime
from typing import Dict, Optional, Union
from uuid import UUID as PyUUID

from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID, ENUM

from enrollpay.core.exceptions import InvalidTransitionError
from enrollpay.models.base import BaseModel
from enrollpay.models.enums import EnrollmentStatus, enum_values
from enrollpay.utils.time import get_utc_now


class EnrollmentRequest(BaseModel):
    """
    A student's request to join a course.

    ``approval_date`` and ``assigned_class_id`` are set if and only if the
    request is approved. ``registration_fee_paid`` is only ever flipped through
    the consistency service when the payment's initial-fee installment is paid.
    """
    __tablename__ = "enrollment_requests"

    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False, index=True)
    preferred_level = Column(String(50), nullable=True)
    status = Column(
        ENUM(EnrollmentStatus, name="enrollment_status", values_callable=enum_values),
        default=EnrollmentStatus.PENDING,
        nullable=False,
        index=True,
    )
    request_date = Column(DateTime, default=get_utc_now, nullable=False, index=True)
    approval_date = Column(DateTime, nullable=True)
    assigned_class_id = Column(
        UUID(as_uuid=True), ForeignKey("course_classes.id", ondelete="SET NULL"), nullable=True
    )
    admin_notes = Column(String(1000), nullable=True)
    registration_fee_paid = Column(Boolean, default=False, nullable=False, index=True)
    payment_date = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True, index=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        # At most one pending/approved request per (student, course)
        Index(
            "uq_enrollment_active_student_course",
            "student_id",
            "course_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved')"),
        ),
        Index("ix_enrollment_status_fee", "status", "registration_fee_paid"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def is_pending(self) -> bool:
        return self.status == EnrollmentStatus.PENDING

    @property
    def is_approved(self) -> bool:
        return self.status == EnrollmentStatus.APPROVED

    def has_expired(self, now: Optional[datetime] = None) -> bool:
        """Pending requests past ``expires_at`` are expired; nothing else is"""
        if self.status != EnrollmentStatus.PENDING or not self.expires_at:
            return False
        return (now or get_utc_now()) > self.expires_at

    def remaining_time(self, now: Optional[datetime] = None) -> Dict[str, Union[int, bool]]:
        """Hours and minutes left before a pending request expires"""
        if self.status != EnrollmentStatus.PENDING or not self.expires_at:
            return {"hours": 0, "minutes": 0, "expired": True}
        remaining = (self.expires_at - (now or get_utc_now())).total_seconds()
        if remaining <= 0:
            return {"hours": 0, "minutes": 0, "expired": True}
        return {
            "hours": int(remaining // 3600),
            "minutes": int((remaining % 3600) // 60),
            "expired": False,
        }

    def require_pending(self, verb: str) -> None:
        if self.status != EnrollmentStatus.PENDING:
            raise InvalidTransitionError(
                f"Cannot {verb} a request with status: {self.status.value}",
                details={"enrollment_id": str(self.id), "status": self.status.value},
            )

    def mark_approved(self, class_id: PyUUID, admin_notes: str, now: Optional[datetime] = None) -> None:
        self.require_pending("approve")
        self.status = EnrollmentStatus.APPROVED
        self.approval_date = now or get_utc_now()
        self.assigned_class_id = class_id
        self.admin_notes = admin_notes

    def mark_rejected(self, admin_notes: str) -> None:
        self.require_pending("reject")
        self.status = EnrollmentStatus.REJECTED
        self.approval_date = None
        self.assigned_class_id = None
        self.admin_notes = admin_notes

    def record_registration_fee(self, now: Optional[datetime] = None) -> bool:
        """Set the fee-paid flag once. Returns False when it was already recorded."""
        if self.registration_fee_paid:
            return False
        self.registration_fee_paid = True
        self.payment_date = now or get_utc_now()
        return True

    def __repr__(self) -> str:
        return f"<EnrollmentRequest {self.id} {self.status}>"
