"""Gig domain schemas"""

from datetime import date as date_type
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..clients.schemas import ClientSummary

GigStatus = Literal[
    "tentative", "pending", "accepted", "declined", "completed", "invoiced", "paid", "cancelled"
]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class GigSession(BaseModel):
    """A timed part of a gig day, e.g. a rehearsal or the concert itself"""

    start: str = Field(pattern=TIME_PATTERN)
    end: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    label: Optional[str] = None


class GigCreate(BaseModel):
    client_id: Optional[int] = None
    gig_type_id: int
    fee: Optional[float] = Field(default=None, ge=0)
    travel_expense: Optional[float] = Field(default=None, ge=0)
    currency: str = Field(default="SEK", min_length=1)
    venue: Optional[str] = None
    project_name: Optional[str] = None
    notes: Optional[str] = None
    invoice_notes: Optional[str] = None
    status: GigStatus = "tentative"
    response_deadline: Optional[date_type] = None
    dates: list[date_type] = Field(min_length=1)
    # Timed sessions keyed by gig date
    sessions: Optional[dict[date_type, list[GigSession]]] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class GigUpdate(BaseModel):
    client_id: Optional[int] = None
    gig_type_id: Optional[int] = None
    fee: Optional[float] = Field(default=None, ge=0)
    travel_expense: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=1)
    venue: Optional[str] = None
    project_name: Optional[str] = None
    notes: Optional[str] = None
    invoice_notes: Optional[str] = None
    status: Optional[GigStatus] = None
    response_deadline: Optional[date_type] = None
    dates: Optional[list[date_type]] = Field(default=None, min_length=1)
    sessions: Optional[dict[date_type, list[GigSession]]] = None


class GigTypeCreate(BaseModel):
    name: str = Field(min_length=1)
    vat_rate: float = Field(default=6.0, ge=0, le=100)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class GigTypeResponse(BaseModel):
    id: int
    name: str
    vat_rate: float
    color: Optional[str] = None

    class Config:
        from_attributes = True


class GigTypeSummary(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class GigDateResponse(BaseModel):
    date: date_type
    sessions: Optional[list[GigSession]] = None

    class Config:
        from_attributes = True


class GigResponse(BaseModel):
    id: int
    client_id: Optional[int] = None
    gig_type_id: int
    date: date_type
    start_date: date_type
    end_date: date_type
    total_days: int
    fee: Optional[float] = None
    travel_expense: Optional[float] = None
    currency: str
    venue: Optional[str] = None
    project_name: Optional[str] = None
    notes: Optional[str] = None
    invoice_notes: Optional[str] = None
    status: str
    response_deadline: Optional[date_type] = None
    created_at: Optional[datetime] = None
    client: Optional[ClientSummary] = None
    gig_type: Optional[GigTypeSummary] = None
    gig_dates: list[GigDateResponse] = []

    class Config:
        from_attributes = True
