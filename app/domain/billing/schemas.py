"""Billing domain schemas"""

from typing import Optional

from pydantic import BaseModel


class UsageCounter(BaseModel):
    current: int
    # None means unlimited
    limit: Optional[int] = None


class UsageStatsResponse(BaseModel):
    plan: str
    period: str
    invoices: UsageCounter
    receiptScans: UsageCounter


class WebhookAck(BaseModel):
    received: bool = True
