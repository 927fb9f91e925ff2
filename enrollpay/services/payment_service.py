"""Payment Service - the tuition ledger

Owns one ``Payment`` per (student, course). Every mutation locks the payment
row (and the linked enrollment first, when there is one) so that the
"already paid" and "already refunded" guards are checked and applied
atomically.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from enrollpay.config import settings
from enrollpay.core.exceptions import ConflictError, ForbiddenError, NotFoundError
from enrollpay.models.enrollment import EnrollmentRequest
from enrollpay.models.enums import (
    AuditTargetType, EnrollmentStatus, InstallmentStatus, PaymentStatus, SettlementStatus,
)
from enrollpay.models.payment import Payment, PaymentInstallment
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.payment import PaymentStatistics, RefundResult
from enrollpay.services.audit_service import AuditService, SYSTEM_ACTOR
from enrollpay.services.catalog_service import CatalogService
from enrollpay.services.consistency_service import ConsistencyService
from enrollpay.services.installment_template_service import InstallmentTemplateService
from enrollpay.services.settings_service import CenterSettingsService
from enrollpay.utils.money import money_sum, to_money
from enrollpay.utils.time import get_utc_now

logger = logging.getLogger(__name__)


def require_admin(actor: Actor, action: str) -> None:
    if not actor.is_admin:
        raise ForbiddenError(
            f"Only administrators can {action}",
            details={"actor_id": str(actor.id), "actor_role": actor.role.value},
        )


async def commit_or_conflict(db: AsyncSession, what: str) -> None:
    """Commit, turning lost races into ConflictError"""
    try:
        await db.commit()
    except (StaleDataError, IntegrityError) as exc:
        await db.rollback()
        logger.warning("Concurrent update rejected", extra={"what": what, "error": str(exc)})
        raise ConflictError(f"{what} was modified concurrently or already exists") from exc


class PaymentService:
    # ------------------------------------------------------------------ reads

    @staticmethod
    async def get_payment(
        db: AsyncSession,
        payment_id: UUID,
        for_update: bool = False,
    ) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_payment_by_enrollment(
        db: AsyncSession,
        enrollment_id: UUID,
        for_update: bool = False,
    ) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.enrollment_id == enrollment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_payment_for_student_course(
        db: AsyncSession,
        student_id: UUID,
        course_id: UUID,
    ) -> Optional[Payment]:
        result = await db.execute(
            select(Payment).where(Payment.student_id == student_id, Payment.course_id == course_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_payment_details(db: AsyncSession, student_id: UUID, course_id: UUID) -> Payment:
        payment = await PaymentService.get_payment_for_student_course(db, student_id, course_id)
        if not payment:
            raise NotFoundError(
                "Payment record not found",
                details={"student_id": str(student_id), "course_id": str(course_id)},
            )
        return payment

    @staticmethod
    async def get_student_payments(db: AsyncSession, student_id: UUID) -> List[Payment]:
        result = await db.execute(
            select(Payment)
            .where(Payment.student_id == student_id)
            .order_by(Payment.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_all_payments(
        db: AsyncSession,
        course_id: Optional[UUID] = None,
        student_id: Optional[UUID] = None,
        settlement: Optional[SettlementStatus] = None,
        enrollment_status: Optional[EnrollmentStatus] = None,
    ) -> List[Payment]:
        """Admin listing. ``settlement`` is derived from amounts, so it is filtered in memory."""
        stmt = select(Payment)
        if course_id:
            stmt = stmt.where(Payment.course_id == course_id)
        if student_id:
            stmt = stmt.where(Payment.student_id == student_id)
        if enrollment_status:
            stmt = stmt.join(EnrollmentRequest, EnrollmentRequest.id == Payment.enrollment_id).where(
                EnrollmentRequest.status == enrollment_status
            )
        stmt = stmt.order_by(Payment.updated_at.desc())
        result = await db.execute(stmt)
        payments = list(result.scalars().all())
        if settlement:
            payments = [p for p in payments if p.settlement_status == settlement]
        return payments

    @staticmethod
    async def get_payments_requiring_attention(
        db: AsyncSession,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Payment], List[Payment], List[Payment]]:
        """Unpaid registration fees, overdue installments and recent partial payments"""
        now = now or get_utc_now()
        limit = limit or settings.ATTENTION_LIST_LIMIT
        open_payment = Payment.payment_status.notin_(PaymentStatus.sticky())

        pending_registrations = await db.execute(
            select(Payment)
            .where(
                open_payment,
                Payment.enrollment_id.isnot(None),
                Payment.installments.any(
                    and_(
                        PaymentInstallment.is_initial_fee.is_(True),
                        PaymentInstallment.status == InstallmentStatus.UNPAID,
                    )
                ),
            )
            .order_by(Payment.created_at)
            .limit(limit)
        )
        overdue = await db.execute(
            select(Payment)
            .where(
                open_payment,
                Payment.installments.any(
                    and_(
                        PaymentInstallment.status == InstallmentStatus.UNPAID,
                        PaymentInstallment.due_date < now,
                    )
                ),
            )
            .order_by(Payment.updated_at.desc())
            .limit(limit)
        )
        partial = await db.execute(
            select(Payment)
            .where(
                open_payment,
                Payment.total_paid > 0,
                Payment.total_paid < Payment.total_due,
                Payment.updated_at >= now - timedelta(days=settings.RECENT_ACTIVITY_DAYS),
            )
            .order_by(Payment.updated_at.desc())
            .limit(limit)
        )
        return (
            list(pending_registrations.scalars().all()),
            list(overdue.scalars().all()),
            list(partial.scalars().all()),
        )

    @staticmethod
    async def can_refund_payment(db: AsyncSession, enrollment_id: UUID) -> bool:
        payment = await PaymentService.get_payment_by_enrollment(db, enrollment_id)
        if not payment:
            return False
        return (
            payment.has_financial_transactions
            and payment.payment_status not in PaymentStatus.sticky()
            and payment.enrollment_id is not None
        )

    # -------------------------------------------------------------- creation

    @staticmethod
    async def create_initial_payment(
        db: AsyncSession,
        enrollment_id: UUID,
        student_id: UUID,
        course_id: UUID,
        auto_commit: bool = True,
        now: Optional[datetime] = None,
    ) -> Payment:
        """
        Open the ledger for a new enrollment request. The schedule is resolved
        once, here, and frozen on the payment.
        """
        existing = await PaymentService.get_payment_for_student_course(db, student_id, course_id)
        if existing:
            raise ConflictError(
                "A payment record already exists for this student and course",
                details={"student_id": str(student_id), "course_id": str(course_id), "payment_id": str(existing.id)},
            )

        course = await CatalogService.get_course(db, course_id)
        if not course:
            raise NotFoundError("Course not found", details={"course_id": str(course_id)})
        center = await CenterSettingsService.get_settings(db)
        template = await InstallmentTemplateService.get_by_course(db, course_id)

        registration_fee = to_money(center.registration_fee or 0)
        schedule = InstallmentTemplateService.resolve_schedule(
            course.price,
            registration_fee,
            template.entries if template else None,
            now=now,
        )

        payment = Payment(
            enrollment_id=enrollment_id,
            student_id=student_id,
            course_id=course_id,
            registration_fee=registration_fee,
            total_due=to_money(course.price) + registration_fee,
            total_paid=Decimal("0.00"),
            payment_status=PaymentStatus.PENDING,
            installments=[
                PaymentInstallment(
                    position=position,
                    name=line.name,
                    amount_type=line.amount_type,
                    amount=line.amount,
                    status=InstallmentStatus.UNPAID,
                    due_date=line.due_date,
                    is_initial_fee=line.is_initial_fee,
                )
                for position, line in enumerate(schedule)
            ],
        )
        db.add(payment)
        if auto_commit:
            await commit_or_conflict(db, "Payment record")
        else:
            try:
                await db.flush()
            except IntegrityError as exc:
                raise ConflictError("A payment record already exists for this student and course") from exc
        logger.info(
            "Created payment record",
            extra={"payment_id": str(payment.id), "enrollment_id": str(enrollment_id), "total_due": str(payment.total_due)},
        )
        return payment

    # ------------------------------------------------------------- mutations

    @staticmethod
    async def update_installment(
        db: AsyncSession,
        payment_id: UUID,
        installment_name: str,
        new_status: InstallmentStatus,
        actor: Actor,
        payment_date: Optional[datetime] = None,
    ) -> Payment:
        """
        Apply an installment status change. Every call is final: a paid
        installment can never be paid again or reverted here.
        """
        require_admin(actor, "update installments")

        payment = await PaymentService.get_payment(db, payment_id)
        if not payment:
            raise NotFoundError("Payment not found", details={"payment_id": str(payment_id)})

        action = "update the payment"
        if payment.enrollment_id is None:
            # The enrollment was deleted; its ledger is closed
            validation = ConsistencyService.evaluate(None, action)
            raise ForbiddenError(validation.message, details={"payment_id": str(payment_id)})

        # Lock order: enrollment, then payment
        enrollment = await ConsistencyService.require_payment_action(db, payment.enrollment_id, action)
        payment = await PaymentService.get_payment(db, payment_id, for_update=True)
        if not payment:
            raise NotFoundError("Payment not found", details={"payment_id": str(payment_id)})

        installment, old_status = payment.apply_installment_status(installment_name, new_status, payment_date)

        fee_recorded = False
        if installment.is_initial_fee and installment.status == InstallmentStatus.PAID:
            fee_recorded = await ConsistencyService.on_initial_fee_paid(
                db, enrollment.id, enrollment=enrollment
            )

        await commit_or_conflict(db, "Payment")

        await AuditService.log_action(
            "update_installment",
            actor.audit_id(),
            payment.id,
            AuditTargetType.PAYMENT,
            {
                "installment_name": installment_name,
                "old_status": old_status.value,
                "new_status": installment.status.value,
                "amount": installment.amount,
            },
        )
        if fee_recorded:
            await AuditService.log_action(
                "record_registration_payment",
                SYSTEM_ACTOR,
                enrollment.id,
                AuditTargetType.ENROLLMENT,
                {"student_id": enrollment.student_id, "amount": installment.amount},
            )
        return payment

    @staticmethod
    async def pay_installment(
        db: AsyncSession,
        payment_id: UUID,
        installment_name: str,
        actor: Actor,
        payment_date: Optional[datetime] = None,
    ) -> Payment:
        return await PaymentService.update_installment(
            db, payment_id, installment_name, InstallmentStatus.PAID, actor, payment_date
        )

    @staticmethod
    def apply_refund(payment: Payment, reason: str, actor: Actor) -> RefundResult:
        """Refund (or cancel, when nothing was paid) a payment already locked by the caller."""
        amount = payment.refund(reason, actor.id)
        if amount > 0:
            message = f"Refund of {amount} {settings.CURRENCY_CODE} processed"
        else:
            message = "Payment cancelled (no refund needed)"
        return RefundResult(
            payment_id=payment.id,
            payment_status=payment.payment_status,
            refund_amount=amount,
            message=message,
        )

    @staticmethod
    async def refund_payment(
        db: AsyncSession,
        enrollment_id: UUID,
        reason: str,
        actor: Actor,
    ) -> RefundResult:
        require_admin(actor, "refund payments")
        # Lock order: enrollment, then payment. Serializes against approval.
        await ConsistencyService.load_enrollment(db, enrollment_id, for_update=True)
        payment = await PaymentService.get_payment_by_enrollment(db, enrollment_id, for_update=True)
        if not payment:
            raise NotFoundError("Payment record not found", details={"enrollment_id": str(enrollment_id)})

        result = PaymentService.apply_refund(payment, reason, actor)
        await commit_or_conflict(db, "Payment")

        await AuditService.log_action(
            "refund_payment" if result.refund_amount > 0 else "cancel_payment",
            actor.audit_id(),
            payment.id,
            AuditTargetType.PAYMENT,
            {"enrollment_id": enrollment_id, "reason": reason, "amount_refunded": result.refund_amount},
        )
        return result

    @staticmethod
    async def cancel_payment(
        db: AsyncSession,
        enrollment_id: UUID,
        reason: str,
        auto_commit: bool = True,
    ) -> Payment:
        """Close a payment without moving money (expired or abandoned requests)"""
        payment = await PaymentService.get_payment_by_enrollment(db, enrollment_id, for_update=True)
        if not payment:
            raise NotFoundError("Payment record not found", details={"enrollment_id": str(enrollment_id)})
        payment.cancel(reason)
        if auto_commit:
            await commit_or_conflict(db, "Payment")
        return payment

    @staticmethod
    async def delete_payment(
        db: AsyncSession,
        enrollment_id: UUID,
        auto_commit: bool = True,
        enrollment: Optional[EnrollmentRequest] = None,
    ) -> str:
        """Remove a payment record that never received money. Returns a status message."""
        payment = await PaymentService.get_payment_by_enrollment(db, enrollment_id, for_update=True)
        if not payment:
            return "Payment record not found or already deleted"

        if payment.has_financial_transactions:
            raise ForbiddenError(
                "Cannot delete a payment record with financial transactions",
                details={"payment_id": str(payment.id), "total_paid": str(payment.total_paid)},
            )

        if enrollment is None:
            enrollment = await ConsistencyService.load_enrollment(db, enrollment_id)
        if enrollment is not None and enrollment.status == EnrollmentStatus.APPROVED:
            raise ForbiddenError(
                "Cannot delete the payment of an approved enrollment",
                details={"payment_id": str(payment.id), "enrollment_id": str(enrollment_id)},
            )

        await db.delete(payment)
        if auto_commit:
            await commit_or_conflict(db, "Payment")
        return "Payment record deleted"

    # ------------------------------------------------------------ statistics

    @staticmethod
    def summarize_payments(rows: Iterable[Tuple[Decimal, Decimal, PaymentStatus]]) -> PaymentStatistics:
        """Roll up (total_paid, total_due, payment_status) rows. Refunded payments
        are counted apart and excluded from revenue."""
        stats = PaymentStatistics()
        revenue: List[Decimal] = []
        for total_paid, total_due, status in rows:
            stats.total_payments += 1
            if status == PaymentStatus.REFUNDED:
                stats.refunded_count += 1
                continue
            paid = to_money(total_paid or 0)
            revenue.append(paid)
            if paid <= 0:
                stats.unpaid_count += 1
            elif paid >= to_money(total_due):
                stats.paid_count += 1
            else:
                stats.partial_count += 1
        stats.total_revenue = money_sum(revenue)
        if stats.total_payments:
            stats.average_payment = to_money(stats.total_revenue / stats.total_payments)
        return stats

    @staticmethod
    async def get_statistics(db: AsyncSession) -> PaymentStatistics:
        result = await db.execute(
            select(Payment.total_paid, Payment.total_due, Payment.payment_status)
        )
        return PaymentService.summarize_payments(result.all())
