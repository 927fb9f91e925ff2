"""Center settings singleton"""

import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from enrollpay.config import settings as app_settings
from enrollpay.models.center_settings import CenterSettings, DEFAULT_EMAIL_TEMPLATES
from enrollpay.schemas.center_settings import CenterSettingsUpdate

logger = logging.getLogger(__name__)


class CenterSettingsService:
    @staticmethod
    async def get_settings(db: AsyncSession) -> CenterSettings:
        """Return the settings row, creating it from environment defaults on first read."""
        result = await db.execute(select(CenterSettings).order_by(CenterSettings.created_at).limit(1))
        center = result.scalar_one_or_none()
        if center is not None:
            return center

        center = CenterSettings(
            center_name=app_settings.DEFAULT_CENTER_NAME,
            registration_fee=app_settings.DEFAULT_REGISTRATION_FEE,
            enrollment_validity_hours=app_settings.DEFAULT_ENROLLMENT_VALIDITY_HOURS,
            payment_instructions="Please visit the center to pay.",
            email_templates=dict(DEFAULT_EMAIL_TEMPLATES),
        )
        db.add(center)
        await db.flush()
        logger.info("Created default center settings")
        return center

    @staticmethod
    async def update_settings(db: AsyncSession, data: CenterSettingsUpdate) -> CenterSettings:
        center = await CenterSettingsService.get_settings(db)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "email_templates" in changes:
            changes["email_templates"] = {**(center.email_templates or {}), **changes["email_templates"]}
        for field, value in changes.items():
            setattr(center, field, value)
        await db.commit()
        await db.refresh(center)
        return center
