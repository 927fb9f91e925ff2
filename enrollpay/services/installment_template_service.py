"""Installment templates: authoring and schedule resolution"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from enrollpay.core.exceptions import NotFoundError
from enrollpay.models.enums import AmountType, AuditTargetType
from enrollpay.models.installment_template import InstallmentTemplate, InstallmentTemplateEntry
from enrollpay.schemas.actor import Actor
from enrollpay.schemas.installment_template import InstallmentTemplateUpdate, ResolvedInstallment
from enrollpay.services.audit_service import AuditService
from enrollpay.services.catalog_service import CatalogService
from enrollpay.services.settings_service import CenterSettingsService
from enrollpay.utils.money import HUNDRED, money_sum, percentage_of, to_money
from enrollpay.utils.time import days_from, get_utc_now

logger = logging.getLogger(__name__)

REGISTRATION_FEE_NAME = "Registration Fee"
REGISTRATION_FEE_DUE_DAYS = 2
DEFAULT_TRANCHES = (
    ("First Installment", 30),
    ("Second Installment", 60),
    ("Third Installment", 90),
    ("Fourth Installment", 120),
)
DEFAULT_TRANCHE_PERCENT = Decimal("25")


class InstallmentTemplateService:
    @staticmethod
    async def get_by_course(db: AsyncSession, course_id: UUID) -> Optional[InstallmentTemplate]:
        result = await db.execute(
            select(InstallmentTemplate).where(InstallmentTemplate.course_id == course_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def update_for_course(
        db: AsyncSession,
        course_id: UUID,
        data: InstallmentTemplateUpdate,
        actor: Actor,
    ) -> InstallmentTemplate:
        """Create or replace the course's template. Existing payments keep their schedule."""
        course = await CatalogService.get_course(db, course_id)
        if not course:
            raise NotFoundError("Course not found", details={"course_id": str(course_id)})

        template = await InstallmentTemplateService.get_by_course(db, course_id)
        if template is None:
            template = InstallmentTemplate(course_id=course_id, entries=[])
            db.add(template)
        else:
            template.entries.clear()
            # Old rows must be gone before new ones reuse their names
            await db.flush()

        for position, entry in enumerate(data.entries):
            template.entries.append(
                InstallmentTemplateEntry(
                    position=position,
                    name=entry.name,
                    amount_type=entry.amount_type,
                    amount=to_money(entry.amount),
                    due_offset_days=entry.due_offset_days,
                )
            )
        await db.commit()

        await AuditService.log_action(
            "update_installment_template",
            actor.audit_id(),
            template.id,
            AuditTargetType.INSTALLMENT_TEMPLATE,
            {"course_id": course_id, "entries": [e.model_dump() for e in data.entries]},
        )
        return template

    @staticmethod
    def resolve_schedule(
        course_price: Decimal,
        registration_fee: Decimal,
        entries: Optional[Sequence[InstallmentTemplateEntry]] = None,
        now: Optional[datetime] = None,
    ) -> List[ResolvedInstallment]:
        """
        Turn a template (or the built-in five-step plan) into absolute installments.

        The first line is always the initial fee. When the percentage lines add
        up to exactly 100, the last one absorbs rounding drift so the
        percentage installments sum to the course price.
        """
        now = now or get_utc_now()
        price = to_money(course_price)

        if entries:
            resolved = [
                ResolvedInstallment(
                    name=entry.name,
                    amount_type=entry.amount_type,
                    amount=(
                        percentage_of(price, entry.amount)
                        if entry.amount_type == AmountType.PERCENTAGE
                        else to_money(entry.amount)
                    ),
                    due_date=days_from(now, entry.due_offset_days),
                    is_initial_fee=(index == 0),
                )
                for index, entry in enumerate(entries)
            ]
            percent_total = sum(
                (Decimal(str(e.amount)) for e in entries if e.amount_type == AmountType.PERCENTAGE),
                Decimal("0"),
            )
        else:
            resolved = [
                ResolvedInstallment(
                    name=REGISTRATION_FEE_NAME,
                    amount_type=AmountType.FIXED,
                    amount=to_money(registration_fee),
                    due_date=days_from(now, REGISTRATION_FEE_DUE_DAYS),
                    is_initial_fee=True,
                )
            ]
            resolved.extend(
                ResolvedInstallment(
                    name=name,
                    amount_type=AmountType.PERCENTAGE,
                    amount=percentage_of(price, DEFAULT_TRANCHE_PERCENT),
                    due_date=days_from(now, offset),
                )
                for name, offset in DEFAULT_TRANCHES
            )
            percent_total = DEFAULT_TRANCHE_PERCENT * len(DEFAULT_TRANCHES)

        if percent_total == HUNDRED:
            _absorb_rounding(resolved, price)
        return resolved

    @staticmethod
    async def resolve_for_course(
        db: AsyncSession,
        course_id: UUID,
        now: Optional[datetime] = None,
    ) -> List[ResolvedInstallment]:
        course = await CatalogService.get_course(db, course_id)
        if not course:
            raise NotFoundError("Course not found", details={"course_id": str(course_id)})
        center = await CenterSettingsService.get_settings(db)
        template = await InstallmentTemplateService.get_by_course(db, course_id)
        return InstallmentTemplateService.resolve_schedule(
            course.price,
            center.registration_fee or Decimal("0"),
            template.entries if template else None,
            now=now,
        )


def _absorb_rounding(resolved: List[ResolvedInstallment], price: Decimal) -> None:
    percentage_lines = [r for r in resolved if r.amount_type == AmountType.PERCENTAGE]
    if not percentage_lines:
        return
    drift = price - money_sum(r.amount for r in percentage_lines)
    if drift:
        last = percentage_lines[-1]
        last.amount = to_money(last.amount + drift)
        logger.debug("Adjusted %s by %s to match course price", last.name, drift)
