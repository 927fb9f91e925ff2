"""Audit sink: fire-and-forget, never fails the caller"""

import logging
from typing import Any, Dict, Optional, Union
from uuid import UUID

from fastapi.encoders import jsonable_encoder

from enrollpay.database import AsyncSessionLocal
from enrollpay.models.audit import AuditLog
from enrollpay.models.enums import AuditTargetType

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class AuditService:
    """Writes audit records in their own session so a failure here never rolls
    back the business transaction that triggered it."""

    @staticmethod
    async def log_action(
        action: str,
        performed_by: Union[str, UUID],
        target_id: UUID,
        target_type: AuditTargetType,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        record = AuditLog(
            action=action,
            performed_by=str(performed_by),
            target_id=target_id,
            target_type=target_type.value,
            details=jsonable_encoder(details or {}),
        )
        try:
            async with AsyncSessionLocal() as session:
                session.add(record)
                await session.commit()
        except Exception:
            logger.exception(
                "Failed to write audit record",
                extra={"action": action, "target_id": str(target_id), "target_type": target_type.value},
            )
            return False
        return True
