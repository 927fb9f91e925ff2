"""Caller identity passed explicitly into every state-machine operation"""

from uuid import UUID
from pydantic import BaseModel, ConfigDict

from enrollpay.models.enums import UserRole


class Actor(BaseModel):
    """Who is performing an operation and in which role"""
    id: UUID
    role: UserRole

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def audit_id(self) -> str:
        return str(self.id)
