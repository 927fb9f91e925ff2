from typing import Any, List, Optional
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from enrollpay.api import deps
from enrollpay.models.enums import EnrollmentStatus, SettlementStatus
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.payment import (
    InstallmentPay, InstallmentUpdate, PaymentResponse, PaymentStatistics, PaymentsRequiringAttention,
)
from enrollpay.schemas.responses import SuccessResponse
from enrollpay.services.payment_service import PaymentService

router = APIRouter()


@router.get("", response_model=SuccessResponse[List[PaymentResponse]])
async def list_payments(
    course_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    settlement: Optional[SettlementStatus] = None,
    enrollment_status: Optional[EnrollmentStatus] = None,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Admins list every payment record (filterable by course, student,
    settlement paid/partial/unpaid and enrollment status); students get their own.
    """
    if actor.is_admin:
        payments = await PaymentService.get_all_payments(
            db,
            course_id=course_id,
            student_id=student_id,
            settlement=settlement,
            enrollment_status=enrollment_status,
        )
    else:
        payments = await PaymentService.get_student_payments(db, actor.id)
    return SuccessResponse(data=[PaymentResponse.model_validate(p) for p in payments])


@router.get("/statistics", response_model=SuccessResponse[PaymentStatistics])
async def payment_statistics(
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    stats = await PaymentService.get_statistics(db)
    return SuccessResponse(data=stats)


@router.get("/attention", response_model=SuccessResponse[PaymentsRequiringAttention])
async def payments_requiring_attention(
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Unpaid registration fees, overdue installments and recent partial payments"""
    pending, overdue, partial = await PaymentService.get_payments_requiring_attention(db)
    return SuccessResponse(
        data=PaymentsRequiringAttention(
            pending_registrations=[PaymentResponse.model_validate(p) for p in pending],
            overdue_payments=[PaymentResponse.model_validate(p) for p in overdue],
            partial_payments=[PaymentResponse.model_validate(p) for p in partial],
        )
    )


@router.get("/lookup", response_model=SuccessResponse[PaymentResponse])
async def payment_for_course(
    course_id: UUID,
    student_id: Optional[UUID] = None,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """The payment record of a student on a course"""
    student_id = student_id or actor.id
    deps.ensure_self_or_admin(actor, student_id)
    payment = await PaymentService.get_payment_details(db, student_id, course_id)
    return SuccessResponse(data=PaymentResponse.model_validate(payment))


@router.get("/{payment_id}", response_model=SuccessResponse[PaymentResponse])
async def get_payment(
    payment_id: UUID,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    payment = await PaymentService.get_payment(db, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    deps.ensure_self_or_admin(actor, payment.student_id)
    return SuccessResponse(data=PaymentResponse.model_validate(payment))


@router.patch("/{payment_id}/installments/{installment_name}", response_model=SuccessResponse[PaymentResponse])
async def update_installment(
    payment_id: UUID,
    installment_name: str,
    update_in: InstallmentUpdate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Change an installment's status. Every call is final; a paid installment
    can only be reversed by refunding the payment.
    """
    payment = await PaymentService.update_installment(
        db, payment_id, installment_name, update_in.status, actor, update_in.payment_date
    )
    return SuccessResponse(
        data=PaymentResponse.model_validate(payment),
        message=f"Installment '{installment_name}' updated",
    )


@router.post("/{payment_id}/installments/{installment_name}/pay", response_model=SuccessResponse[PaymentResponse])
async def pay_installment(
    payment_id: UUID,
    installment_name: str,
    pay_in: Optional[InstallmentPay] = Body(None),
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    payment = await PaymentService.pay_installment(
        db, payment_id, installment_name, actor, pay_in.payment_date if pay_in else None
    )
    return SuccessResponse(
        data=PaymentResponse.model_validate(payment),
        message=f"Installment '{installment_name}' paid",
    )
