"""Centralized Enum Definitions"""

import enum


def enum_values(enum_cls):
    """values_callable for ENUM columns so the DB stores the lowercase values"""
    return [member.value for member in enum_cls]


# Users & catalog
class UserRole(str, enum.Enum):
    """Roles known to the center"""
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


# Enrollment
class EnrollmentStatus(str, enum.Enum):
    """Enrollment request lifecycle"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def active(cls):
        """States that block a second request for the same student and course"""
        return (cls.PENDING, cls.APPROVED)


# Payments
class PaymentStatus(str, enum.Enum):
    """Overall payment record status"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @classmethod
    def sticky(cls):
        """Statuses set by explicit operations and never recomputed from installments"""
        return (cls.CANCELLED, cls.REFUNDED)


class InstallmentStatus(str, enum.Enum):
    """Single installment status"""
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class AmountType(str, enum.Enum):
    """How an installment amount was authored"""
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class SettlementStatus(str, enum.Enum):
    """Read-time classification of a payment by money received"""
    PAID = "paid"
    PARTIAL = "partial"
    UNPAID = "unpaid"


# Audit
class AuditTargetType(str, enum.Enum):
    """Aggregates recorded in the audit log"""
    ENROLLMENT = "Enrollment"
    PAYMENT = "Payment"
    INSTALLMENT_TEMPLATE = "InstallmentTemplate"
    CENTER_SETTINGS = "CenterSettings"
