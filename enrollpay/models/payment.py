"""Payment ledger aggregate: one payment record per (student, course)"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID as PyUUID

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, Integer, Numeric, ForeignKey, UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, ENUM
from sqlalchemy.orm import relationship

from enrollpay.core.exceptions import InvalidTransitionError, NotFoundError
from enrollpay.models.base import BaseModel
from enrollpay.models.enums import (
    AmountType, InstallmentStatus, PaymentStatus, SettlementStatus, enum_values,
)
from enrollpay.utils.money import money_sum
from enrollpay.utils.time import get_utc_now


class Payment(BaseModel):
    """
    Tuition ledger for a student on a course.

    ``total_paid`` is derived from the installments and is never written
    directly; call ``recompute_totals`` after touching installment status.
    Once refunded, the refunded installments still count towards
    ``total_paid`` so the record keeps the amount historically received.
    """
    __tablename__ = "payments"

    enrollment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("enrollment_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False, index=True)
    registration_fee = Column(Numeric(12, 2), nullable=False)
    total_due = Column(Numeric(12, 2), nullable=False)
    total_paid = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_status = Column(
        ENUM(PaymentStatus, name="payment_status", values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    refund_reason = Column(Text, nullable=True)
    refund_date = Column(DateTime, nullable=True)
    refunded_by = Column(UUID(as_uuid=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    installments = relationship(
        "PaymentInstallment",
        back_populates="payment",
        order_by="PaymentInstallment.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_payment_student_course"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def initial_fee_installment(self) -> Optional["PaymentInstallment"]:
        return next((inst for inst in self.installments if inst.is_initial_fee), None)

    @property
    def has_financial_transactions(self) -> bool:
        return (self.total_paid or Decimal("0")) > 0

    @property
    def unrefunded_installments(self) -> List["PaymentInstallment"]:
        return [inst for inst in self.installments if inst.status == InstallmentStatus.PAID]

    @property
    def settlement_status(self) -> SettlementStatus:
        paid = self.total_paid or Decimal("0")
        if paid <= 0:
            return SettlementStatus.UNPAID
        if paid >= self.total_due:
            return SettlementStatus.PAID
        return SettlementStatus.PARTIAL

    def get_installment(self, name: str) -> "PaymentInstallment":
        for inst in self.installments:
            if inst.name == name:
                return inst
        raise NotFoundError(
            f"Installment '{name}' not found",
            details={"payment_id": str(self.id), "installment_name": name},
        )

    def recompute_totals(self) -> Decimal:
        self.total_paid = money_sum(inst.amount for inst in self.installments if inst.is_credited)
        return self.total_paid

    def refresh_status(self) -> PaymentStatus:
        """Recompute pending/completed; cancelled and refunded are left alone"""
        if self.payment_status in PaymentStatus.sticky():
            return self.payment_status
        if self.installments and all(inst.status == InstallmentStatus.PAID for inst in self.installments):
            self.payment_status = PaymentStatus.COMPLETED
        else:
            self.payment_status = PaymentStatus.PENDING
        return self.payment_status

    def apply_installment_status(
        self,
        name: str,
        new_status: InstallmentStatus,
        payment_date: Optional[datetime] = None,
    ) -> Tuple["PaymentInstallment", InstallmentStatus]:
        """
        Move one installment to ``new_status`` and refresh totals.

        Only unpaid -> paid is a real transition. A committed paid installment
        can only be reversed through ``refund``.
        """
        if self.payment_status in PaymentStatus.sticky():
            raise InvalidTransitionError(
                f"Payment is {self.payment_status.value} and its installments cannot be modified",
                details={"payment_id": str(self.id), "payment_status": self.payment_status.value},
            )
        installment = self.get_installment(name)
        old_status = installment.status

        if new_status == InstallmentStatus.REFUNDED:
            raise InvalidTransitionError(
                "Installments can only be refunded by refunding the payment",
                details={"installment_name": name},
            )
        if old_status == InstallmentStatus.REFUNDED:
            raise InvalidTransitionError(
                f"Installment '{name}' has been refunded and cannot be modified",
                details={"installment_name": name},
            )
        if old_status == InstallmentStatus.PAID:
            if new_status == InstallmentStatus.PAID:
                raise InvalidTransitionError(
                    f"Installment '{name}' is already paid",
                    details={"installment_name": name},
                )
            raise InvalidTransitionError(
                f"Installment '{name}' is already paid, cannot be modified",
                details={"installment_name": name},
            )
        if new_status == InstallmentStatus.UNPAID:
            raise InvalidTransitionError(
                f"Installment '{name}' is already unpaid",
                details={"installment_name": name},
            )

        installment.status = InstallmentStatus.PAID
        installment.payment_date = payment_date or get_utc_now()
        self.recompute_totals()
        self.refresh_status()
        return installment, old_status

    def refund(self, reason: str, refunded_by: Optional[PyUUID], now: Optional[datetime] = None) -> Decimal:
        """
        Refund every paid installment. Returns the amount handed back.

        A payment with nothing received is cancelled instead and returns 0.
        A refunded payment is refused unless some installment is still paid.
        """
        outstanding = self.unrefunded_installments
        if self.payment_status == PaymentStatus.REFUNDED and not outstanding:
            raise InvalidTransitionError(
                "Payment has already been refunded",
                details={"payment_id": str(self.id)},
            )
        self.recompute_totals()
        if not self.has_financial_transactions:
            self.payment_status = PaymentStatus.CANCELLED
            return Decimal("0.00")

        now = now or get_utc_now()
        for inst in outstanding:
            inst.status = InstallmentStatus.REFUNDED
            inst.refund_date = now
        self.payment_status = PaymentStatus.REFUNDED
        self.refund_reason = reason
        self.refund_date = now
        self.refunded_by = refunded_by
        self.recompute_totals()
        return money_sum(inst.amount for inst in outstanding)

    def cancel(self, reason: Optional[str] = None) -> None:
        if self.payment_status == PaymentStatus.REFUNDED:
            raise InvalidTransitionError(
                "A refunded payment cannot be cancelled",
                details={"payment_id": str(self.id)},
            )
        self.payment_status = PaymentStatus.CANCELLED
        if reason:
            self.refund_reason = reason

    def overdue_installments(self, now: Optional[datetime] = None) -> List["PaymentInstallment"]:
        now = now or get_utc_now()
        return [inst for inst in self.installments if inst.is_overdue(now)]

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.total_paid}/{self.total_due} {self.payment_status}>"


class PaymentInstallment(BaseModel):
    """
    One scheduled installment. ``amount`` is always an absolute currency value;
    percentages are resolved when the payment is created.
    """
    __tablename__ = "payment_installments"

    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    amount_type = Column(
        ENUM(AmountType, name="amount_type", values_callable=enum_values),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(
        ENUM(InstallmentStatus, name="installment_status", values_callable=enum_values),
        default=InstallmentStatus.UNPAID,
        nullable=False,
        index=True,
    )
    due_date = Column(DateTime, nullable=False)
    payment_date = Column(DateTime, nullable=True)
    refund_date = Column(DateTime, nullable=True)
    is_initial_fee = Column(Boolean, default=False, nullable=False)

    payment = relationship("Payment", back_populates="installments")

    __table_args__ = (
        UniqueConstraint("payment_id", "name", name="uq_installment_payment_name"),
    )

    @property
    def is_credited(self) -> bool:
        """Money was received for this installment (even if later refunded)"""
        return self.status in (InstallmentStatus.PAID, InstallmentStatus.REFUNDED)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        return self.status == InstallmentStatus.UNPAID and self.due_date < (now or get_utc_now())

    def __repr__(self) -> str:
        return f"<PaymentInstallment {self.name} {self.amount} {self.status}>"
