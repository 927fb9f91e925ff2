"""Consistency Service - the only channel between payment state and enrollment state.

The payment ledger calls in here before every mutation and after the initial
fee is paid. Nothing in this module imports the payment or enrollment services,
so the dependency only runs one way.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from enrollpay.core.exceptions import ForbiddenError, NotFoundError
from enrollpay.models.enrollment import EnrollmentRequest
from enrollpay.models.enums import EnrollmentStatus

logger = logging.getLogger(__name__)

DELETED = "deleted"


class PaymentActionValidation(BaseModel):
    allowed: bool
    message: Optional[str] = None
    enrollment_status: Optional[str] = None


class ConsistencyService:
    @staticmethod
    async def load_enrollment(
        db: AsyncSession,
        enrollment_id: UUID,
        for_update: bool = False,
    ) -> Optional[EnrollmentRequest]:
        stmt = select(EnrollmentRequest).where(EnrollmentRequest.id == enrollment_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def evaluate(enrollment: Optional[EnrollmentRequest], action: str) -> PaymentActionValidation:
        if enrollment is None:
            return PaymentActionValidation(
                allowed=False,
                message=f"Cannot {action}: the enrollment request has been deleted",
                enrollment_status=DELETED,
            )
        if enrollment.status == EnrollmentStatus.REJECTED:
            return PaymentActionValidation(
                allowed=False,
                message=f"Cannot {action}: the enrollment request is rejected",
                enrollment_status=enrollment.status.value,
            )
        return PaymentActionValidation(allowed=True, enrollment_status=enrollment.status.value)

    @staticmethod
    async def validate_payment_action(
        db: AsyncSession,
        enrollment_id: UUID,
        action: str,
        lock: bool = False,
    ) -> PaymentActionValidation:
        """Payment mutations are refused once the enrollment is rejected or deleted."""
        enrollment = await ConsistencyService.load_enrollment(db, enrollment_id, for_update=lock)
        return ConsistencyService.evaluate(enrollment, action)

    @staticmethod
    async def require_payment_action(
        db: AsyncSession,
        enrollment_id: UUID,
        action: str,
    ) -> EnrollmentRequest:
        """Lock the enrollment and raise ForbiddenError unless the action is allowed."""
        enrollment = await ConsistencyService.load_enrollment(db, enrollment_id, for_update=True)
        validation = ConsistencyService.evaluate(enrollment, action)
        if not validation.allowed:
            raise ForbiddenError(
                validation.message,
                details={"enrollment_id": str(enrollment_id), "enrollment_status": validation.enrollment_status},
            )
        return enrollment

    @staticmethod
    async def on_initial_fee_paid(
        db: AsyncSession,
        enrollment_id: UUID,
        now: Optional[datetime] = None,
        enrollment: Optional[EnrollmentRequest] = None,
    ) -> bool:
        """
        Flag the enrollment's registration fee as paid. Idempotent: returns
        False without touching anything when it is already recorded.
        The caller owns the transaction.
        """
        if enrollment is None:
            enrollment = await ConsistencyService.load_enrollment(db, enrollment_id, for_update=True)
        if enrollment is None:
            raise NotFoundError(
                "Enrollment request not found",
                details={"enrollment_id": str(enrollment_id)},
            )
        changed = enrollment.record_registration_fee(now)
        if changed:
            logger.info("Registration fee recorded", extra={"enrollment_id": str(enrollment_id)})
        return changed
