"""Expense domain schemas"""

from datetime import date as date_type
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ExpenseCreate(BaseModel):
    date: date_type
    supplier: str = Field(min_length=1)
    amount: float = Field(ge=0)
    currency: str = Field(default="SEK", min_length=3, max_length=3)
    category: str = "Övrigt"
    notes: Optional[str] = None
    gig_id: Optional[int] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v):
        return v.upper()


class ExpenseUpdate(BaseModel):
    date: Optional[date_type] = None
    supplier: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    amount_base: Optional[float] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    gig_id: Optional[int] = None


class ExpenseResponse(BaseModel):
    id: int
    date: date_type
    supplier: str
    amount: float
    currency: str
    amount_base: Optional[float] = None
    category: str
    notes: Optional[str] = None
    gig_id: Optional[int] = None
    attachment_key: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExpenseSummary(BaseModel):
    id: int
    date: date_type
    supplier: str
    amount: float
    category: str

    class Config:
        from_attributes = True


class DuplicateCheckItem(BaseModel):
    date: date_type
    supplier: str = Field(min_length=1)
    amount: float


class BatchDuplicateCheck(BaseModel):
    expenses: list[DuplicateCheckItem] = Field(min_length=1)
