"""Contract domain schemas - Pydantic models for validation"""

from datetime import date as date_type
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email

ContractStatus = Literal[
    "draft", "sent_to_reviewer", "reviewed", "sent", "viewed", "signed", "expired", "cancelled"
]


class ContractCreate(BaseModel):
    """Schema for creating a new subscription agreement"""

    tier: str = Field(min_length=1)
    annual_price: float = Field(gt=0)
    currency: str = "SEK"
    billing_interval: Literal["monthly", "quarterly", "annual"] = "annual"
    vat_rate_pct: float = Field(default=25, ge=0, le=100)
    contract_start_date: Optional[date_type] = None
    duration_months: int = Field(default=12, gt=0)
    custom_terms: Optional[dict[str, str]] = None
    signer_name: str = Field(min_length=1)
    signer_email: str
    signer_title: Optional[str] = None
    reviewer_name: Optional[str] = None
    reviewer_email: Optional[str] = None

    @field_validator("signer_email")
    @classmethod
    def check_signer_email(cls, v):
        email = validate_email(v)
        if not email:
            raise ValueError("Signer email is required")
        return email

    @field_validator("reviewer_email")
    @classmethod
    def check_reviewer_email(cls, v):
        return validate_email(v)


class SignContractRequest(BaseModel):
    signer_name: str = Field(min_length=1)
    signer_title: Optional[str] = None
    # Base64 PNG, optionally as a data URL
    signature_image: str = Field(min_length=100)


class ContractAuditResponse(BaseModel):
    id: int
    event_type: str
    actor_email: Optional[str] = None
    ip_address: Optional[str] = None
    document_hash_sha256: Optional[str] = None
    event_metadata: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContractResponse(BaseModel):
    """Schema for contract response"""

    id: int
    public_id: str
    contract_number: str
    status: str
    tier: str
    annual_price: float
    currency: str
    billing_interval: str
    vat_rate_pct: float
    contract_start_date: Optional[date_type] = None
    duration_months: int
    custom_terms: Optional[dict[str, Any]] = None
    signer_name: str
    signer_email: str
    signer_title: Optional[str] = None
    reviewer_name: Optional[str] = None
    reviewer_email: Optional[str] = None
    document_hash_sha256: Optional[str] = None
    signed_document_hash_sha256: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContractDetailResponse(ContractResponse):
    audit_events: list[ContractAuditResponse] = []
