from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from enrollpay.api import deps
from enrollpay.config import settings
from enrollpay.models.center_settings import CenterSettings
from enrollpay.models.enrollment import EnrollmentRequest
from enrollpay.models.enums import EnrollmentStatus
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.enrollment import (
    ApprovalCheck, CourseStatus, DeleteEnrollmentResult, EnrollmentApprove, EnrollmentCreate,
    EnrollmentDetail, EnrollmentReject, EnrollmentResponse, EnrollmentStatistics,
    ExpirationSweepResult, RefundRequest, RemainingTime,
)
from enrollpay.schemas.payment import RefundResult
from enrollpay.schemas.responses import SuccessResponse
from enrollpay.services import email_service
from enrollpay.services.catalog_service import CatalogService
from enrollpay.services.enrollment_service import EnrollmentService, PAYMENT_ALREADY_REFUNDED, PAYMENT_REFUNDED
from enrollpay.services.payment_service import PaymentService
from enrollpay.services.settings_service import CenterSettingsService

router = APIRouter()


Notification = Tuple[str, CenterSettings, Dict[str, Any]]


async def _notification_context(db: AsyncSession, enrollment: EnrollmentRequest) -> Optional[Notification]:
    """Recipient, center settings and template placeholders; None when the student is gone"""
    student = await CatalogService.get_user(db, enrollment.student_id)
    course = await CatalogService.get_course(db, enrollment.course_id)
    if not student or not course:
        return None
    center = await CenterSettingsService.get_settings(db)
    return student.email, center, {
        "student_name": student.name,
        "course_name": course.title,
        "center_name": center.center_name,
        "center_address": center.address or "",
        "admin_contact": center.contact_phone or center.contact_email or "",
        "registration_fee": f"{center.registration_fee} {settings.CURRENCY_CODE}",
        "validity_hours": center.enrollment_validity_hours,
        "payment_instructions": center.payment_instructions or "",
    }


@router.post("", response_model=SuccessResponse[EnrollmentResponse])
async def create_enrollment(
    enrollment_in: EnrollmentCreate,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Submit an enrollment request. A payment record with the resolved
    installment schedule is opened alongside it.
    """
    enrollment = await EnrollmentService.create_request(db, enrollment_in, actor)

    notification = await _notification_context(db, enrollment)
    if notification:
        to_email, center, context = notification
        background_tasks.add_task(
            email_service.send_enrollment_request_confirmation,
            to_email,
            center.template_for("enrollment_request"),
            context,
        )

    return SuccessResponse(
        data=EnrollmentResponse.model_validate(enrollment),
        message="Enrollment request submitted",
    )


@router.get("", response_model=SuccessResponse[List[EnrollmentResponse]])
async def list_enrollments(
    status: Optional[EnrollmentStatus] = None,
    course_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Admins see every request (filterable); students see their own.
    """
    if not actor.is_admin:
        requests = await EnrollmentService.get_student_requests(db, actor.id)
    elif student_id:
        requests = await EnrollmentService.get_student_requests(db, student_id)
    else:
        requests = await EnrollmentService.get_all_requests(
            db, status=status, course_id=course_id, date_from=date_from, date_to=date_to
        )
    return SuccessResponse(data=[EnrollmentResponse.model_validate(r) for r in requests])


@router.get("/statistics", response_model=SuccessResponse[EnrollmentStatistics])
async def enrollment_statistics(
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    stats = await EnrollmentService.get_statistics(db)
    return SuccessResponse(data=stats)


@router.get("/course-status", response_model=SuccessResponse[CourseStatus])
async def course_status(
    course_id: UUID,
    student_id: Optional[UUID] = None,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Where a student stands on a course (``not_enrolled`` when no request exists)"""
    student_id = student_id or actor.id
    deps.ensure_self_or_admin(actor, student_id)
    result = await EnrollmentService.get_course_status(db, student_id, course_id)
    return SuccessResponse(data=result)


@router.post("/expire", response_model=SuccessResponse[ExpirationSweepResult])
async def expire_enrollments(
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Reject pending requests whose registration fee was not paid in time"""
    sweep = await EnrollmentService.expire_stale_requests(db)

    for request_id in sweep.expired:
        enrollment = await EnrollmentService.get_request_by_id(db, request_id)
        notification = await _notification_context(db, enrollment) if enrollment else None
        if notification:
            to_email, _, context = notification
            background_tasks.add_task(
                email_service.send_enrollment_expiration,
                to_email,
                context["student_name"],
                context["course_name"],
                sweep.validity_hours,
            )

    return SuccessResponse(
        data=sweep,
        message=f"{len(sweep.expired)} request(s) expired, {len(sweep.failed)} failed",
    )


@router.get("/{enrollment_id}", response_model=SuccessResponse[EnrollmentDetail])
async def get_enrollment(
    enrollment_id: UUID,
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    enrollment = await EnrollmentService.get_request_by_id(db, enrollment_id)
    if not enrollment:
        raise HTTPException(status_code=404, detail="Enrollment request not found")
    deps.ensure_self_or_admin(actor, enrollment.student_id)

    detail = EnrollmentDetail.model_validate(enrollment)
    if enrollment.is_pending:
        detail.time_remaining = RemainingTime(**enrollment.remaining_time())
    return SuccessResponse(data=detail)


@router.get("/{enrollment_id}/approval-check", response_model=SuccessResponse[ApprovalCheck])
async def approval_check(
    enrollment_id: UUID,
    class_id: Optional[UUID] = None,
    admin_notes: Optional[str] = None,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Every unmet approval condition at once"""
    check = await EnrollmentService.get_approval_check(db, enrollment_id, class_id, admin_notes, actor)
    return SuccessResponse(data=check)


@router.post("/{enrollment_id}/approve", response_model=SuccessResponse[EnrollmentResponse])
async def approve_enrollment(
    enrollment_id: UUID,
    decision: EnrollmentApprove,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    enrollment = await EnrollmentService.approve_request(db, enrollment_id, decision, actor)

    notification = await _notification_context(db, enrollment)
    if notification:
        to_email, center, context = notification
        course_class = await CatalogService.get_class(db, decision.class_id)
        context["class_name"] = course_class.name if course_class else ""
        background_tasks.add_task(
            email_service.send_enrollment_approval,
            to_email,
            center.template_for("enrollment_approval"),
            context,
        )

    return SuccessResponse(
        data=EnrollmentResponse.model_validate(enrollment),
        message="Enrollment request approved",
    )


@router.post("/{enrollment_id}/reject", response_model=SuccessResponse[EnrollmentResponse])
async def reject_enrollment(
    enrollment_id: UUID,
    decision: EnrollmentReject,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    enrollment = await EnrollmentService.reject_request(db, enrollment_id, decision, actor)

    notification = await _notification_context(db, enrollment)
    if notification:
        to_email, center, context = notification
        payment = await PaymentService.get_payment_by_enrollment(db, enrollment.id)
        if payment and payment.has_financial_transactions:
            refund_info = (
                f"The {payment.total_paid} {settings.CURRENCY_CODE} you paid will be refunded "
                "when your request is closed."
            )
        else:
            refund_info = ""
        context.update(reason=decision.admin_notes, refund_info=refund_info)
        background_tasks.add_task(
            email_service.send_enrollment_rejection,
            to_email,
            center.template_for("enrollment_rejection"),
            context,
        )

    return SuccessResponse(
        data=EnrollmentResponse.model_validate(enrollment),
        message="Enrollment request rejected",
    )


@router.delete("/{enrollment_id}", response_model=SuccessResponse[DeleteEnrollmentResult])
async def delete_enrollment(
    enrollment_id: UUID,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Delete a pending or rejected request. Any money received is refunded first.
    """
    enrollment = await EnrollmentService.get_request_by_id(db, enrollment_id)
    notification = await _notification_context(db, enrollment) if enrollment else None

    result = await EnrollmentService.delete_request(db, enrollment_id, actor)

    if notification and result.payment_action == PAYMENT_REFUNDED:
        to_email, _, context = notification
        background_tasks.add_task(
            email_service.send_refund_notification,
            to_email,
            context["student_name"],
            context["course_name"],
            str(result.refund_amount),
        )

    if result.refund_amount:
        message = f"Enrollment request deleted. Refund amount: {result.refund_amount} {settings.CURRENCY_CODE}"
    elif result.payment_action == PAYMENT_ALREADY_REFUNDED:
        message = "Enrollment request deleted. The payment had already been refunded"
    else:
        message = "Enrollment request deleted"
    return SuccessResponse(data=result, message=message)


@router.post("/{enrollment_id}/refund", response_model=SuccessResponse[RefundResult])
async def refund_enrollment_payment(
    enrollment_id: UUID,
    refund_in: RefundRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Refund everything received for an enrollment (cancels the payment when nothing was paid)"""
    result = await PaymentService.refund_payment(db, enrollment_id, refund_in.reason, actor)

    if result.refund_amount > 0:
        enrollment = await EnrollmentService.get_request_by_id(db, enrollment_id)
        notification = await _notification_context(db, enrollment) if enrollment else None
        if notification:
            to_email, _, context = notification
            background_tasks.add_task(
                email_service.send_refund_notification,
                to_email,
                context["student_name"],
                context["course_name"],
                str(result.refund_amount),
            )

    return SuccessResponse(data=result, message=result.message)
