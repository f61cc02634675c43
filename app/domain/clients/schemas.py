"""Client domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    name: str = Field(min_length=1)
    client_code: Optional[str] = None
    org_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    payment_terms: int = Field(default=30, ge=0)
    reference_person: Optional[str] = None
    notes: Optional[str] = None
    invoice_language: Optional[str] = None
    country_code: Optional[str] = None
    vat_number: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class ClientUpdate(BaseModel):
    """Schema for updating an existing client"""

    name: Optional[str] = Field(default=None, min_length=1)
    client_code: Optional[str] = None
    org_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    payment_terms: Optional[int] = Field(default=None, ge=0)
    reference_person: Optional[str] = None
    notes: Optional[str] = None
    invoice_language: Optional[str] = None
    country_code: Optional[str] = None
    vat_number: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: int
    public_id: Optional[str] = None
    name: str
    client_code: Optional[str] = None
    org_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    payment_terms: int
    reference_person: Optional[str] = None
    notes: Optional[str] = None
    invoice_language: Optional[str] = None
    country_code: Optional[str] = None
    vat_number: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientSummary(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True
