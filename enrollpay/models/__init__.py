"""Models Package - Export all models for easy imports"""

from enrollpay.models.base import BaseModel, StatusMixin
from enrollpay.models.enums import *
from enrollpay.models.user import User, EnrolledCourse
from enrollpay.models.academic import Course, CourseClass, class_students
from enrollpay.models.enrollment import EnrollmentRequest
from enrollpay.models.payment import Payment, PaymentInstallment
from enrollpay.models.installment_template import InstallmentTemplate, InstallmentTemplateEntry
from enrollpay.models.center_settings import CenterSettings
from enrollpay.models.audit import AuditLog


__all__ = [
    # Base classes
    "BaseModel",
    "StatusMixin",

    # Users & catalog
    "User",
    "EnrolledCourse",
    "Course",
    "CourseClass",
    "class_students",

    # Enrollment
    "EnrollmentRequest",

    # Payments
    "Payment",
    "PaymentInstallment",
    "InstallmentTemplate",
    "InstallmentTemplateEntry",

    # Settings & audit
    "CenterSettings",
    "AuditLog",
]
