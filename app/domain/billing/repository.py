"""Billing repository - Database operations for subscriptions"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import User


class BillingRepository:
    """Repository for billing database operations"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_stripe_customer_id(db: Session, customer_id: str) -> Optional[User]:
        if not customer_id:
            return None
        return db.query(User).filter(User.stripe_customer_id == customer_id).first()

    @staticmethod
    def update_user_plan(db: Session, user: User, **updates) -> User:
        """Update user billing information"""
        for key, value in updates.items():
            setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user
