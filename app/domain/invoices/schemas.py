"""Invoice domain schemas"""

from datetime import date as date_type
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_email
from ..clients.schemas import ClientSummary

InvoiceStatus = Literal["draft", "sent", "overdue", "paid"]


class InvoiceLineCreate(BaseModel):
    description: str = Field(min_length=1)
    quantity: float = Field(default=1, ge=0.01)
    unit_price: float = Field(ge=0)
    vat_rate: Optional[float] = Field(default=None, ge=0, le=100)


class InvoiceCreate(BaseModel):
    client_id: int
    vat_rate: float = Field(default=25, ge=0, le=100)
    payment_terms: Optional[int] = Field(default=None, ge=1)
    currency: str = Field(default="SEK", min_length=3, max_length=3)
    lines: list[InvoiceLineCreate] = Field(min_length=1)


class InvoiceLineResponse(BaseModel):
    id: int
    description: str
    amount: float
    vat_rate: float
    sort_order: int

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    invoice_number: int
    client_id: int
    invoice_date: date_type
    due_date: date_type
    subtotal: float
    vat_rate: float
    vat_amount: float
    total: float
    currency: str
    status: str
    paid_date: Optional[date_type] = None
    imported_from_pdf: bool = False
    created_at: Optional[datetime] = None
    client: Optional[ClientSummary] = None

    class Config:
        from_attributes = True


class InvoiceDetailResponse(InvoiceResponse):
    invoice_lines: list[InvoiceLineResponse] = []


class InvoiceEmailRequest(BaseModel):
    """Recipient defaults to the client's email, subject to "Faktura <number>" """

    to: Optional[str] = None
    subject: Optional[str] = Field(default=None, max_length=255)
    message: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("to")
    @classmethod
    def check_recipient(cls, value: Optional[str]) -> Optional[str]:
        return validate_email(value)
