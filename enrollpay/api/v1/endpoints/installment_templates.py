from typing import Any, List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from enrollpay.api import deps
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.installment_template import (
    InstallmentTemplateResponse, InstallmentTemplateUpdate, ResolvedInstallment,
)
from enrollpay.schemas.responses import SuccessResponse
from enrollpay.services.installment_template_service import InstallmentTemplateService

router = APIRouter()


@router.get("/{course_id}", response_model=SuccessResponse[InstallmentTemplateResponse])
async def get_installment_template(
    course_id: UUID,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    The course's template. Courses without one use the built-in plan
    (registration fee plus four quarterly tranches), reported as no entries.
    """
    template = await InstallmentTemplateService.get_by_course(db, course_id)
    if not template:
        return SuccessResponse(
            data=InstallmentTemplateResponse(course_id=course_id, entries=[]),
            message="No template defined; the default schedule applies",
        )
    return SuccessResponse(data=InstallmentTemplateResponse.model_validate(template))


@router.put("/{course_id}", response_model=SuccessResponse[InstallmentTemplateResponse])
async def update_installment_template(
    course_id: UUID,
    template_in: InstallmentTemplateUpdate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """Replace the template. Payments already created keep their schedule."""
    template = await InstallmentTemplateService.update_for_course(db, course_id, template_in, actor)
    return SuccessResponse(
        data=InstallmentTemplateResponse.model_validate(template),
        message="Installment template updated",
    )


@router.get("/{course_id}/preview", response_model=SuccessResponse[List[ResolvedInstallment]])
async def preview_installment_schedule(
    course_id: UUID,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """The installments a request for this course would be given right now"""
    schedule = await InstallmentTemplateService.resolve_for_course(db, course_id)
    return SuccessResponse(data=schedule)
