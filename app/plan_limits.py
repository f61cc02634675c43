"""
Plan limits and monthly usage tracking for invoices and receipt scans.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .models import UsageTracking, User

# Monthly limits per plan (0 means unlimited)
TIER_DEFAULTS = {
    "free": {"invoice_limit": 5, "receipt_scan_limit": 3},
    "pro": {"invoice_limit": 0, "receipt_scan_limit": 0},
    "team": {"invoice_limit": 0, "receipt_scan_limit": 0},
}

USAGE_FIELDS = {
    "invoice": "invoices_created",
    "receipt_scan": "receipt_scans",
}

ACTIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


def current_period(now: Optional[datetime] = None) -> str:
    return (now or datetime.utcnow()).strftime("%Y-%m")


def resolve_plan(user: User) -> str:
    """Plan in effect for the user. Unknown plans and lapsed subscriptions count as free."""
    plan = (user.plan or "free").lower()
    if plan not in TIER_DEFAULTS:
        return "free"
    if plan != "free" and user.subscription_status and (
        user.subscription_status not in ACTIVE_SUBSCRIPTION_STATUSES
    ):
        return "free"
    return plan


def get_or_create_usage(user: User, db: Session, period: Optional[str] = None) -> UsageTracking:
    period = period or current_period()
    usage = (
        db.query(UsageTracking)
        .filter(UsageTracking.user_id == user.id, UsageTracking.period == period)
        .first()
    )
    if usage is None:
        usage = UsageTracking(user_id=user.id, period=period, invoices_created=0, receipt_scans=0)
        db.add(usage)
        db.flush()
    return usage


def _check_limit(user: User, db: Session, kind: str, limit_key: str, label: str) -> tuple:
    limit = TIER_DEFAULTS[resolve_plan(user)][limit_key]
    if limit == 0:
        return (True, None)

    usage = get_or_create_usage(user, db)
    current = getattr(usage, USAGE_FIELDS[kind]) or 0
    if current < limit:
        return (True, None)

    return (
        False,
        f"You've reached the free plan limit of {limit} {label} per month. Upgrade to Pro for unlimited {label}.",
    )


def can_create_invoice(user: User, db: Session) -> tuple:
    """
    Check if user can create another invoice this month.
    Returns (allowed, error_message).
    """
    return _check_limit(user, db, "invoice", "invoice_limit", "invoices")


def can_scan_receipt(user: User, db: Session) -> tuple:
    """
    Check if user can scan another receipt this month.
    Returns (allowed, error_message).
    """
    return _check_limit(user, db, "receipt_scan", "receipt_scan_limit", "receipt scans")


def can_send_email(user: User) -> tuple:
    """Sending invoices and reminders by email is a paid-plan feature"""
    if resolve_plan(user) == "free":
        return (False, "Pro plan required to send emails")
    return (True, None)


def increment_usage(user: User, db: Session, kind: str) -> UsageTracking:
    """Count one invoice or receipt scan against the current month"""
    if kind not in USAGE_FIELDS:
        raise ValueError(f"Unknown usage type: {kind}")

    usage = get_or_create_usage(user, db)
    field = USAGE_FIELDS[kind]
    setattr(usage, field, (getattr(usage, field) or 0) + 1)
    db.commit()
    return usage


def get_usage_stats(user: User, db: Session) -> dict:
    """Current month's usage and limits (None means unlimited)"""
    plan = resolve_plan(user)
    limits = TIER_DEFAULTS[plan]
    usage = get_or_create_usage(user, db)
    return {
        "plan": plan,
        "period": usage.period,
        "invoices": {
            "current": usage.invoices_created,
            "limit": limits["invoice_limit"] or None,
        },
        "receiptScans": {
            "current": usage.receipt_scans,
            "limit": limits["receipt_scan_limit"] or None,
        },
    }
