"""Billing service - Stripe subscription webhooks"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...activity import log_activity
from ...config import STRIPE_PRICE_TEAM_MONTHLY, STRIPE_PRICE_TEAM_YEARLY
from ...models import User
from ...plan_limits import ACTIVE_SUBSCRIPTION_STATUSES
from .repository import BillingRepository

logger = logging.getLogger(__name__)


def plan_for_price_id(price_id: Optional[str]) -> str:
    """Team prices map to team; every other paid price is pro"""
    team_prices = {p for p in (STRIPE_PRICE_TEAM_MONTHLY, STRIPE_PRICE_TEAM_YEARLY) if p}
    if price_id and price_id in team_prices:
        return "team"
    return "pro"


def first_price_id(subscription: dict) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


class BillingService:
    """Applies Stripe subscription events to users"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BillingRepository()

    def handle_event(self, event: dict) -> dict:
        event_type = event.get("type")
        data_object = (event.get("data") or {}).get("object") or {}
        logger.info(f"💳 Stripe webhook: {event_type} ({event.get('id')})")

        if event_type == "checkout.session.completed":
            self.handle_checkout_completed(data_object)
        elif event_type == "customer.subscription.updated":
            self.handle_subscription_updated(data_object)
        elif event_type == "customer.subscription.deleted":
            self.handle_subscription_deleted(data_object)
        else:
            logger.info(f"ℹ️ Ignoring Stripe event type {event_type}")

        return {"received": True}

    def _record_tier_change(self, user: User, previous_plan: Optional[str]):
        if previous_plan != user.plan:
            log_activity(
                self.db,
                user.id,
                "tier_changed",
                "user",
                user.id,
                {"from": previous_plan, "to": user.plan},
            )

    def handle_checkout_completed(self, session: dict) -> Optional[User]:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        if not user_id:
            logger.warning("⚠️ Checkout session without user_id metadata")
            return None

        try:
            user = self.repo.get_user_by_id(self.db, int(user_id))
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Checkout session with invalid user_id {user_id!r}")
            return None
        if not user:
            logger.warning(f"⚠️ Checkout session for unknown user {user_id}")
            return None

        previous_plan = user.plan
        plan = metadata.get("plan") if metadata.get("plan") in ("pro", "team") else "pro"
        user = self.repo.update_user_plan(
            self.db,
            user,
            plan=plan,
            subscription_status="active",
            stripe_customer_id=session.get("customer") or user.stripe_customer_id,
            stripe_subscription_id=session.get("subscription") or user.stripe_subscription_id,
        )
        logger.info(f"✅ User {user.id} upgraded to {plan}")
        self._record_tier_change(user, previous_plan)
        return user

    def handle_subscription_updated(self, subscription: dict) -> Optional[User]:
        user = self.repo.get_user_by_stripe_customer_id(self.db, subscription.get("customer"))
        if not user:
            logger.warning(f"⚠️ Subscription update for unknown customer {subscription.get('customer')}")
            return None

        status = subscription.get("status")
        plan = (
            plan_for_price_id(first_price_id(subscription))
            if status in ACTIVE_SUBSCRIPTION_STATUSES
            else "free"
        )
        previous_plan = user.plan
        pending_plan = None if user.pending_plan == plan else user.pending_plan

        user = self.repo.update_user_plan(
            self.db,
            user,
            plan=plan,
            subscription_status=status,
            pending_plan=pending_plan,
            stripe_subscription_id=subscription.get("id") or user.stripe_subscription_id,
        )
        self._record_tier_change(user, previous_plan)
        return user

    def handle_subscription_deleted(self, subscription: dict) -> Optional[User]:
        user = self.repo.get_user_by_stripe_customer_id(self.db, subscription.get("customer"))
        if not user:
            return None

        previous_plan = user.plan
        user = self.repo.update_user_plan(
            self.db,
            user,
            plan="free",
            subscription_status="canceled",
            stripe_subscription_id=None,
            pending_plan=None,
        )
        logger.info(f"🔻 User {user.id} downgraded to free (subscription deleted)")
        self._record_tier_change(user, previous_plan)
        return user
