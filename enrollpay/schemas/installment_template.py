from typing import List
from pydantic import BaseModel, Field, ConfigDict, model_validator
from uuid import UUID
from decimal import Decimal
from datetime import datetime

from enrollpay.models.enums import AmountType


class TemplateEntry(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    amount_type: AmountType
    amount: Decimal = Field(..., ge=0)
    due_offset_days: int = Field(..., ge=0)

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def check_percentage(self) -> "TemplateEntry":
        if self.amount_type == AmountType.PERCENTAGE and self.amount > 100:
            raise ValueError(f"Percentage entry '{self.name}' cannot exceed 100")
        return self


class InstallmentTemplateUpdate(BaseModel):
    entries: List[TemplateEntry] = []

    @model_validator(mode="after")
    def check_entries(self) -> "InstallmentTemplateUpdate":
        names = [entry.name for entry in self.entries]
        if len(names) != len(set(names)):
            raise ValueError("Installment names must be unique within a template")
        percent_total = sum(
            (e.amount for e in self.entries if e.amount_type == AmountType.PERCENTAGE),
            Decimal("0"),
        )
        if percent_total > 100:
            raise ValueError(f"Percentage installments sum to {percent_total}, more than 100")
        return self


class InstallmentTemplateResponse(BaseModel):
    course_id: UUID
    entries: List[TemplateEntry] = []

    model_config = ConfigDict(from_attributes=True)


class ResolvedInstallment(BaseModel):
    """A template line turned into an absolute amount and a concrete due date"""
    name: str
    amount_type: AmountType
    amount: Decimal
    due_date: datetime
    is_initial_fee: bool = False
