"""Enrollment Service - the enrollment request state machine

pending -> approved | rejected. Approved requests are kept forever for
accounting; pending and rejected requests may be deleted, refunding any money
received first.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from enrollpay.core.exceptions import (
    ConflictError, DomainError, ForbiddenError, NotFoundError,
    PreconditionFailedError,
)
from enrollpay.models.enrollment import EnrollmentRequest
from enrollpay.models.enums import AuditTargetType, EnrollmentStatus, InstallmentStatus, PaymentStatus
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.enrollment import (
    ApprovalCheck, CourseStatus, DeleteEnrollmentResult, EnrollmentApprove, EnrollmentCreate,
    EnrollmentReject, EnrollmentStatistics, ExpirationSweepResult,
)
from enrollpay.services.audit_service import AuditService, SYSTEM_ACTOR
from enrollpay.services.catalog_service import CatalogService
from enrollpay.services.consistency_service import ConsistencyService
from enrollpay.services.payment_service import PaymentService, commit_or_conflict, require_admin
from enrollpay.services.settings_service import CenterSettingsService
from enrollpay.utils.time import get_utc_now, hours_from

logger = logging.getLogger(__name__)

NOT_ENROLLED = "not_enrolled"
DELETION_REFUND_REASON = "Enrollment request deleted"
EXPIRY_NOTE = "Automatically rejected: registration fee not paid within {hours} hours"

# Payment outcomes reported by delete_request
PAYMENT_NONE = "none"
PAYMENT_DELETED = "deleted"
PAYMENT_REFUNDED = "refunded"
PAYMENT_ALREADY_REFUNDED = "already_refunded"


class EnrollmentService:
    # ------------------------------------------------------------------ reads

    @staticmethod
    async def get_request_by_id(db: AsyncSession, request_id: UUID) -> Optional[EnrollmentRequest]:
        return await ConsistencyService.load_enrollment(db, request_id)

    @staticmethod
    async def get_request_or_404(
        db: AsyncSession,
        request_id: UUID,
        for_update: bool = False,
    ) -> EnrollmentRequest:
        enrollment = await ConsistencyService.load_enrollment(db, request_id, for_update=for_update)
        if not enrollment:
            raise NotFoundError("Enrollment request not found", details={"enrollment_id": str(request_id)})
        return enrollment

    @staticmethod
    async def get_active_request(
        db: AsyncSession,
        student_id: UUID,
        course_id: UUID,
    ) -> Optional[EnrollmentRequest]:
        result = await db.execute(
            select(EnrollmentRequest).where(
                EnrollmentRequest.student_id == student_id,
                EnrollmentRequest.course_id == course_id,
                EnrollmentRequest.status.in_(EnrollmentStatus.active()),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def get_student_requests(db: AsyncSession, student_id: UUID) -> List[EnrollmentRequest]:
        result = await db.execute(
            select(EnrollmentRequest)
            .where(EnrollmentRequest.student_id == student_id)
            .order_by(EnrollmentRequest.request_date.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_all_requests(
        db: AsyncSession,
        status: Optional[EnrollmentStatus] = None,
        course_id: Optional[UUID] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[EnrollmentRequest]:
        stmt = select(EnrollmentRequest)
        if status:
            stmt = stmt.where(EnrollmentRequest.status == status)
        if course_id:
            stmt = stmt.where(EnrollmentRequest.course_id == course_id)
        if date_from:
            stmt = stmt.where(EnrollmentRequest.request_date >= date_from)
        if date_to:
            stmt = stmt.where(EnrollmentRequest.request_date <= date_to)
        result = await db.execute(stmt.order_by(EnrollmentRequest.request_date.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def get_course_status(db: AsyncSession, student_id: UUID, course_id: UUID) -> CourseStatus:
        result = await db.execute(
            select(EnrollmentRequest)
            .where(EnrollmentRequest.student_id == student_id, EnrollmentRequest.course_id == course_id)
            .order_by(EnrollmentRequest.request_date.desc())
            .limit(1)
        )
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            return CourseStatus(status=NOT_ENROLLED)
        return CourseStatus(
            status=enrollment.status.value,
            registration_fee_paid=enrollment.registration_fee_paid,
            request_date=enrollment.request_date,
            approval_date=enrollment.approval_date,
            assigned_class_id=enrollment.assigned_class_id,
        )

    @staticmethod
    async def get_statistics(db: AsyncSession) -> EnrollmentStatistics:
        result = await db.execute(
            select(EnrollmentRequest.status, func.count()).group_by(EnrollmentRequest.status)
        )
        counts = {status.value: count for status, count in result.all()}
        return EnrollmentStatistics(**counts)

    # -------------------------------------------------------------- creation

    @staticmethod
    async def create_request(
        db: AsyncSession,
        data: EnrollmentCreate,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> EnrollmentRequest:
        """
        Open a pending request and its payment record in one transaction.
        """
        if not actor.is_admin and actor.id != data.student_id:
            raise ForbiddenError(
                "Students can only request enrollment for themselves",
                details={"actor_id": str(actor.id), "student_id": str(data.student_id)},
            )

        student = await CatalogService.get_user(db, data.student_id)
        if not student:
            raise NotFoundError("Student not found", details={"student_id": str(data.student_id)})
        course = await CatalogService.get_course(db, data.course_id)
        if not course:
            raise NotFoundError("Course not found", details={"course_id": str(data.course_id)})

        existing = await EnrollmentService.get_active_request(db, data.student_id, data.course_id)
        if existing:
            if existing.status == EnrollmentStatus.PENDING:
                message = "You already have a pending enrollment request for this course"
            else:
                message = "You are already enrolled in this course"
            raise ConflictError(
                message,
                details={"enrollment_id": str(existing.id), "status": existing.status.value},
            )

        now = now or get_utc_now()
        center = await CenterSettingsService.get_settings(db)
        enrollment = EnrollmentRequest(
            id=uuid4(),
            student_id=data.student_id,
            course_id=data.course_id,
            preferred_level=data.preferred_level,
            status=EnrollmentStatus.PENDING,
            request_date=now,
            registration_fee_paid=False,
            expires_at=hours_from(now, center.enrollment_validity_hours),
        )
        db.add(enrollment)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            raise ConflictError("An active enrollment request already exists for this course") from exc

        payment = await PaymentService.create_initial_payment(
            db,
            enrollment.id,
            data.student_id,
            data.course_id,
            auto_commit=False,
            now=now,
        )
        await commit_or_conflict(db, "Enrollment request")

        logger.info(
            "Enrollment request created",
            extra={"enrollment_id": str(enrollment.id), "student_id": str(data.student_id)},
        )
        await AuditService.log_action(
            "create_enrollment_request",
            actor.audit_id(),
            enrollment.id,
            AuditTargetType.ENROLLMENT,
            {"student_id": data.student_id, "course_id": data.course_id, "payment_id": payment.id},
        )
        return enrollment

    # -------------------------------------------------------------- approval

    @staticmethod
    async def check_approval_preconditions(
        db: AsyncSession,
        enrollment: EnrollmentRequest,
        class_id: Optional[UUID],
        admin_notes: Optional[str],
        lock: bool = False,
    ) -> List[str]:
        """
        Every unmet approval condition, in a stable order. Empty when approvable.

        With ``lock`` the payment row is read ``FOR UPDATE``; the caller must
        already hold the enrollment lock.
        """
        failures = []
        if not enrollment.is_pending:
            failures.append(f"Request is not pending (status: {enrollment.status.value})")

        if not enrollment.registration_fee_paid:
            failures.append("Registration fee must be paid before approval")
        else:
            payment = await PaymentService.get_payment_by_enrollment(db, enrollment.id, for_update=lock)
            initial = payment.initial_fee_installment if payment else None
            if initial is None or initial.status != InstallmentStatus.PAID:
                failures.append("Payment record does not show the registration fee as paid")

        if not class_id:
            failures.append("A class must be selected")
        elif not await CatalogService.is_class_available(
            db, class_id, enrollment.course_id, enrollment.preferred_level
        ):
            failures.append("Selected class is not available for this course and level")

        if not (admin_notes or "").strip():
            failures.append("Admin notes are required")
        return failures

    @staticmethod
    async def get_approval_check(
        db: AsyncSession,
        request_id: UUID,
        class_id: Optional[UUID],
        admin_notes: Optional[str],
        actor: Actor,
    ) -> ApprovalCheck:
        require_admin(actor, "review enrollment requests")
        enrollment = await EnrollmentService.get_request_or_404(db, request_id)
        failures = await EnrollmentService.check_approval_preconditions(db, enrollment, class_id, admin_notes)
        return ApprovalCheck(enrollment_id=enrollment.id, can_approve=not failures, failures=failures)

    @staticmethod
    async def approve_request(
        db: AsyncSession,
        request_id: UUID,
        data: EnrollmentApprove,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> EnrollmentRequest:
        require_admin(actor, "approve enrollment requests")
        enrollment = await EnrollmentService.get_request_or_404(db, request_id, for_update=True)
        enrollment.require_pending("approve")

        # Lock order: enrollment, then payment. Serializes against refunds.
        failures = await EnrollmentService.check_approval_preconditions(
            db, enrollment, data.class_id, data.admin_notes, lock=True
        )
        if failures:
            raise PreconditionFailedError(failures)

        now = now or get_utc_now()
        enrollment.mark_approved(data.class_id, data.admin_notes, now)
        await CatalogService.add_student_to_class(db, data.class_id, enrollment.student_id, assigned_by=actor.id)
        await CatalogService.append_enrolled_course(
            db,
            enrollment.student_id,
            enrollment.course_id,
            data.class_id,
            enrollment_date=enrollment.request_date,
            approval_date=now,
        )
        await commit_or_conflict(db, "Enrollment request")

        logger.info("Enrollment request approved", extra={"enrollment_id": str(enrollment.id)})
        await AuditService.log_action(
            "approve_enrollment",
            actor.audit_id(),
            enrollment.id,
            AuditTargetType.ENROLLMENT,
            {"student_id": enrollment.student_id, "class_id": data.class_id, "admin_notes": data.admin_notes},
        )
        return enrollment

    @staticmethod
    async def reject_request(
        db: AsyncSession,
        request_id: UUID,
        data: EnrollmentReject,
        actor: Actor,
    ) -> EnrollmentRequest:
        """Reject a pending request. Money already received is refunded on deletion, not here."""
        require_admin(actor, "reject enrollment requests")
        enrollment = await EnrollmentService.get_request_or_404(db, request_id, for_update=True)
        enrollment.require_pending("reject")
        if not data.admin_notes:
            raise PreconditionFailedError(["Admin notes are required"])

        enrollment.mark_rejected(data.admin_notes)
        await commit_or_conflict(db, "Enrollment request")

        logger.info("Enrollment request rejected", extra={"enrollment_id": str(enrollment.id)})
        await AuditService.log_action(
            "reject_enrollment",
            actor.audit_id(),
            enrollment.id,
            AuditTargetType.ENROLLMENT,
            {"student_id": enrollment.student_id, "admin_notes": data.admin_notes},
        )
        return enrollment

    # -------------------------------------------------------------- deletion

    @staticmethod
    async def delete_request(db: AsyncSession, request_id: UUID, actor: Actor) -> DeleteEnrollmentResult:
        """
        Delete a pending or rejected request. Money received is refunded first,
        in the same transaction, so a failed refund leaves the request in place.
        """
        require_admin(actor, "delete enrollment requests")
        enrollment = await EnrollmentService.get_request_or_404(db, request_id, for_update=True)
        if enrollment.is_approved:
            raise ForbiddenError(
                "Approved enrollment requests cannot be deleted",
                details={"enrollment_id": str(request_id)},
            )

        refund = None
        payment = await PaymentService.get_payment_by_enrollment(db, request_id, for_update=True)
        if payment is None:
            payment_action = PAYMENT_NONE
        elif payment.payment_status == PaymentStatus.REFUNDED and not payment.unrefunded_installments:
            payment_action = PAYMENT_ALREADY_REFUNDED
        elif payment.has_financial_transactions:
            refund = PaymentService.apply_refund(payment, DELETION_REFUND_REASON, actor)
            payment_action = PAYMENT_REFUNDED
        else:
            await PaymentService.delete_payment(db, request_id, auto_commit=False, enrollment=enrollment)
            payment_action = PAYMENT_DELETED

        await db.delete(enrollment)
        await commit_or_conflict(db, "Enrollment request")

        refund_amount = refund.refund_amount if refund is not None else None

        logger.info(
            "Enrollment request deleted",
            extra={"enrollment_id": str(request_id), "payment_action": payment_action},
        )
        if refund is not None:
            await AuditService.log_action(
                "refund_payment",
                actor.audit_id(),
                payment.id,
                AuditTargetType.PAYMENT,
                {"enrollment_id": request_id, "reason": DELETION_REFUND_REASON, "amount_refunded": refund.refund_amount},
            )
        await AuditService.log_action(
            "delete_enrollment_request",
            actor.audit_id(),
            request_id,
            AuditTargetType.ENROLLMENT,
            {
                "student_id": enrollment.student_id,
                "course_id": enrollment.course_id,
                "previous_status": enrollment.status.value,
                "payment_action": payment_action,
                "refund_amount": refund_amount,
            },
        )
        return DeleteEnrollmentResult(
            enrollment_id=request_id,
            payment_action=payment_action,
            refund_amount=refund_amount,
        )

    # ------------------------------------------------------------ expiration

    @staticmethod
    async def expire_stale_requests(db: AsyncSession, now: Optional[datetime] = None) -> ExpirationSweepResult:
        """
        Reject pending requests whose registration fee was not paid before
        ``expires_at`` and cancel their payments. One failing request does not
        stop the sweep.
        """
        now = now or get_utc_now()
        center = await CenterSettingsService.get_settings(db)
        hours = center.enrollment_validity_hours
        await db.commit()

        result = await db.execute(
            select(EnrollmentRequest.id).where(
                EnrollmentRequest.status == EnrollmentStatus.PENDING,
                EnrollmentRequest.registration_fee_paid.is_(False),
                EnrollmentRequest.expires_at.isnot(None),
                EnrollmentRequest.expires_at < now,
            )
        )
        candidates = list(result.scalars().all())
        sweep = ExpirationSweepResult(validity_hours=hours)

        for request_id in candidates:
            try:
                enrollment = await EnrollmentService.get_request_or_404(db, request_id, for_update=True)
                if enrollment.registration_fee_paid or not enrollment.has_expired(now):
                    # Paid or handled since the candidate query ran
                    await db.rollback()
                    continue
                if await PaymentService.get_payment_by_enrollment(db, request_id):
                    await PaymentService.cancel_payment(
                        db, request_id, "Enrollment request expired", auto_commit=False
                    )
                enrollment.mark_rejected(EXPIRY_NOTE.format(hours=hours))
                await commit_or_conflict(db, "Enrollment request")
            except (DomainError, SQLAlchemyError):
                await db.rollback()
                logger.exception("Failed to expire enrollment request", extra={"enrollment_id": str(request_id)})
                sweep.failed.append(request_id)
                continue

            sweep.expired.append(request_id)
            await AuditService.log_action(
                "expire_enrollment_request",
                SYSTEM_ACTOR,
                request_id,
                AuditTargetType.ENROLLMENT,
                {"expires_at": enrollment.expires_at, "validity_hours": hours},
            )

        logger.info(
            "Expiration sweep finished",
            extra={"expired": len(sweep.expired), "failed": len(sweep.failed)},
        )
        return sweep
