from typing import Any
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from enrollpay.api import deps
from enrollpay.models.enums import AuditTargetType
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.center_settings import CenterSettingsResponse, CenterSettingsUpdate
from enrollpay.schemas.responses import SuccessResponse
from enrollpay.services.audit_service import AuditService
from enrollpay.services.settings_service import CenterSettingsService

router = APIRouter()


@router.get("", response_model=SuccessResponse[CenterSettingsResponse])
async def get_center_settings(
    actor: Actor = Depends(deps.get_actor),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    center = await CenterSettingsService.get_settings(db)
    return SuccessResponse(data=CenterSettingsResponse.model_validate(center))


@router.put("", response_model=SuccessResponse[CenterSettingsResponse])
async def update_center_settings(
    settings_in: CenterSettingsUpdate,
    actor: Actor = Depends(deps.require_admin),
    db: AsyncSession = Depends(deps.get_db),
) -> Any:
    """
    Update registration fee, validity window, contact details or email
    templates. Only affects requests and payments created afterwards.
    """
    center = await CenterSettingsService.update_settings(db, settings_in)
    await AuditService.log_action(
        "update_center_settings",
        actor.audit_id(),
        center.id,
        AuditTargetType.CENTER_SETTINGS,
        settings_in.model_dump(exclude_unset=True),
    )
    return SuccessResponse(
        data=CenterSettingsResponse.model_validate(center),
        message="Settings updated",
    )
