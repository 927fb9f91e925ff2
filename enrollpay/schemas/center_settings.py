from typing import Dict, Optional
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from decimal import Decimal


class CenterSettingsUpdate(BaseModel):
    center_name: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)
    contact_phone: Optional[str] = Field(None, max_length=50)
    contact_email: Optional[EmailStr] = None
    registration_fee: Optional[Decimal] = Field(None, ge=0)
    enrollment_validity_hours: Optional[int] = Field(None, ge=1)
    payment_instructions: Optional[str] = None
    email_templates: Optional[Dict[str, str]] = None


class CenterSettingsResponse(BaseModel):
    center_name: str
    address: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    registration_fee: Decimal
    enrollment_validity_hours: int
    payment_instructions: Optional[str] = None
    email_templates: Dict[str, str] = {}

    model_config = ConfigDict(from_attributes=True)
