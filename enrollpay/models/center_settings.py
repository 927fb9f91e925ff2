"""Center-wide settings singleton"""

from sqlalchemy import Column, String, Text, Integer, Numeric
from sqlalchemy.dialects.postgresql import JSONB

from enrollpay.models.base import BaseModel


DEFAULT_EMAIL_TEMPLATES = {
    "enrollment_request": (
        "<h1>Enrollment Request Received</h1><p>Dear {student_name},</p>"
        "<p>Your enrollment request for {course_name} has been received successfully.</p>"
        "<p>Please visit our center within {validity_hours} hours to pay the registration fee "
        "of {registration_fee} and secure your spot.</p>"
        "<p>Center Address: {center_address}</p><p>Contact: {admin_contact}</p>"
    ),
    "enrollment_approval": (
        "<h1>Enrollment Approved</h1><p>Dear {student_name},</p>"
        "<p>Your enrollment in {course_name} has been approved!</p>"
        "<p>You have been assigned to: {class_name}</p>"
        "<p>You now have full access to course materials and resources.</p>"
    ),
    "enrollment_rejection": (
        "<h1>Enrollment Rejected</h1><p>Dear {student_name},</p>"
        "<p>We regret to inform you that your enrollment request for {course_name} has been rejected.</p>"
        "<p>Reason: {reason}</p><p>{refund_info}</p>"
    ),
}


class CenterSettings(BaseModel):
    """
    Singleton row holding the registration fee, request validity window and
    the notification templates. Created with defaults on first read.
    """
    __tablename__ = "center_settings"

    center_name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    contact_phone = Column(String(50), nullable=True)
    contact_email = Column(String(255), nullable=True)
    registration_fee = Column(Numeric(12, 2), nullable=False, default=0)
    enrollment_validity_hours = Column(Integer, nullable=False, default=48)
    payment_instructions = Column(Text, nullable=True)
    email_templates = Column(JSONB, nullable=False, default=dict)

    def template_for(self, key: str) -> str:
        templates = self.email_templates or {}
        return templates.get(key) or DEFAULT_EMAIL_TEMPLATES.get(key, "")

    def __repr__(self) -> str:
        return f"<CenterSettings {self.center_name} fee={self.registration_fee}>"
