from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from enrollpay.models.enums import EnrollmentStatus


class EnrollmentCreate(BaseModel):
    student_id: UUID
    course_id: UUID
    preferred_level: Optional[str] = Field(None, max_length=50)


class _AdminDecision(BaseModel):
    admin_notes: str = Field(..., max_length=1000)

    @field_validator("admin_notes")
    @classmethod
    def strip_notes(cls, v: str) -> str:
        return v.strip()


class EnrollmentApprove(_AdminDecision):
    class_id: UUID


class EnrollmentReject(_AdminDecision):
    pass


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class EnrollmentResponse(BaseModel):
    id: UUID
    student_id: UUID
    course_id: UUID
    preferred_level: Optional[str] = None
    status: EnrollmentStatus
    request_date: datetime
    approval_date: Optional[datetime] = None
    assigned_class_id: Optional[UUID] = None
    admin_notes: Optional[str] = None
    registration_fee_paid: bool
    payment_date: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RemainingTime(BaseModel):
    hours: int
    minutes: int
    expired: bool


class EnrollmentDetail(EnrollmentResponse):
    time_remaining: Optional[RemainingTime] = None


class ApprovalCheck(BaseModel):
    """Every approval condition evaluated at once, for the admin screen"""
    enrollment_id: UUID
    can_approve: bool
    failures: List[str] = []


class DeleteEnrollmentResult(BaseModel):
    enrollment_id: UUID
    payment_action: str
    refund_amount: Optional[Decimal] = None


class CourseStatus(BaseModel):
    status: str  # an EnrollmentStatus value or "not_enrolled"
    registration_fee_paid: Optional[bool] = None
    request_date: Optional[datetime] = None
    approval_date: Optional[datetime] = None
    assigned_class_id: Optional[UUID] = None


class EnrollmentStatistics(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class ExpirationSweepResult(BaseModel):
    expired: List[UUID] = []
    failed: List[UUID] = []
    validity_hours: int
