from typing import Optional, List
from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from enrollpay.models.enums import AmountType, InstallmentStatus, PaymentStatus


class InstallmentResponse(BaseModel):
    name: str
    amount_type: AmountType
    amount: Decimal
    status: InstallmentStatus
    due_date: datetime
    payment_date: Optional[datetime] = None
    refund_date: Optional[datetime] = None
    is_initial_fee: bool

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: UUID
    enrollment_id: Optional[UUID] = None
    student_id: UUID
    course_id: UUID
    registration_fee: Decimal
    total_due: Decimal
    total_paid: Decimal
    payment_status: PaymentStatus
    refund_reason: Optional[str] = None
    refund_date: Optional[datetime] = None
    refunded_by: Optional[UUID] = None
    installments: List[InstallmentResponse] = []

    model_config = ConfigDict(from_attributes=True)


class InstallmentUpdate(BaseModel):
    status: InstallmentStatus
    payment_date: Optional[datetime] = None


class InstallmentPay(BaseModel):
    payment_date: Optional[datetime] = None


class RefundResult(BaseModel):
    payment_id: UUID
    payment_status: PaymentStatus
    refund_amount: Decimal
    message: str


class PaymentStatistics(BaseModel):
    total_payments: int = 0
    paid_count: int = 0
    partial_count: int = 0
    unpaid_count: int = 0
    refunded_count: int = 0
    total_revenue: Decimal = Decimal("0.00")
    average_payment: Decimal = Decimal("0")


class PaymentsRequiringAttention(BaseModel):
    pending_registrations: List[PaymentResponse] = []
    overdue_payments: List[PaymentResponse] = []
    partial_payments: List[PaymentResponse] = []
