"""Billing router - Stripe webhook and plan usage"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...config import STRIPE_WEBHOOK_SECRET
from ...database import get_db
from ...models import User
from ...plan_limits import get_usage_stats
from ...webhook_security import WebhookSignatureError, verify_stripe_signature
from .schemas import UsageStatsResponse, WebhookAck
from .service import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Billing"])


def get_billing_service(db: Session = Depends(get_db)) -> BillingService:
    """Dependency injection for BillingService"""
    return BillingService(db)


@router.get("/billing/usage", response_model=UsageStatsResponse)
async def get_usage(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Usage for the current month against the plan limits"""
    return get_usage_stats(user, db)


@router.post("/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    service: BillingService = Depends(get_billing_service),
):
    """Stripe subscription events, verified against the stripe-signature header"""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="No signature")

    try:
        verify_stripe_signature(payload, signature, STRIPE_WEBHOOK_SECRET)
    except WebhookSignatureError as e:
        logger.error(f"❌ Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature") from e

    try:
        event = json.loads(payload)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Invalid payload") from e

    return service.handle_event(event)


__all__ = ["router"]
