# models/contact.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ContactType(str, Enum):
    MOBILE = "mobile"
    POCHI = "pochi"
    TILL = "till"
    PAYBILL = "paybill"

    def is_phone(self) -> bool:
        return self in {ContactType.MOBILE, ContactType.POCHI}


class VoiceContact(BaseModel):
    name: str = Field(..., min_length=1, description="Unique (case-insensitive) spoken name")
    type: Optional[ContactType] = Field(
        None, description="Contact kind; legacy records have none and count as mobile"
    )
    phone: str = Field(
        ..., min_length=1,
        description="Phone number (mobile/pochi), till number (till) or business number (paybill)",
    )
    accountNumber: Optional[str] = Field(None, description="Account number, paybill only")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Contact name must not be blank")
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        # Formatting alone ("()", "-", " ") normalizes to nothing
        if not any(ch.isalnum() for ch in v):
            raise ValueError("Contact number must contain digits")
        return v

    @property
    def effective_type(self) -> ContactType:
        return self.type or ContactType.MOBILE

    def is_phone_target(self) -> bool:
        """Mobile, pochi and legacy untyped contacts can satisfy a phone lookup."""
        return self.effective_type.is_phone()
