"""Audit trail of state-machine actions"""

from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID, JSONB

from enrollpay.models.base import BaseModel


class AuditLog(BaseModel):
    """
    Append-only record of who did what to which aggregate.
    ``performed_by`` is a user id, or ``system`` for scheduled jobs.
    """
    __tablename__ = "audit_logs"

    action = Column(String(100), nullable=False, index=True)
    performed_by = Column(String(64), nullable=False, index=True)
    target_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    target_type = Column(String(50), nullable=False, index=True)
    details = Column(JSONB, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.target_type}:{self.target_id}>"
