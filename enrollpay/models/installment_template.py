"""Per-course installment templates"""

from sqlalchemy import Column, String, Integer, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, ENUM
from sqlalchemy.orm import relationship

from enrollpay.models.base import BaseModel
from enrollpay.models.enums import AmountType, enum_values


class InstallmentTemplate(BaseModel):
    """
    Ordered installment plan for a course. Read only when a payment is
    created; editing it never touches payments that already exist.
    """
    __tablename__ = "installment_templates"

    course_id = Column(
        UUID(as_uuid=True),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    entries = relationship(
        "InstallmentTemplateEntry",
        back_populates="template",
        order_by="InstallmentTemplateEntry.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<InstallmentTemplate course={self.course_id} entries={len(self.entries)}>"


class InstallmentTemplateEntry(BaseModel):
    """
    One template line. ``amount`` is a currency value for fixed entries and a
    percentage of the course price for percentage entries.
    """
    __tablename__ = "installment_template_entries"

    template_id = Column(
        UUID(as_uuid=True),
        ForeignKey("installment_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    amount_type = Column(
        ENUM(AmountType, name="amount_type", values_callable=enum_values),
        nullable=False,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    due_offset_days = Column(Integer, nullable=False, default=0)

    template = relationship("InstallmentTemplate", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("template_id", "name", name="uq_template_entry_name"),
    )

    def __repr__(self) -> str:
        return f"<InstallmentTemplateEntry {self.name} {self.amount_type} {self.amount}>"
