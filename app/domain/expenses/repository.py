"""Expense repository - Database operations for expenses"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Expense


class ExpenseRepository:
    """Repository for expense database operations"""

    @staticmethod
    def list_expenses(
        db: Session,
        user_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[Expense], int]:
        query = db.query(Expense).filter(Expense.user_id == user_id)
        if date_from:
            query = query.filter(Expense.date >= date_from)
        if date_to:
            query = query.filter(Expense.date <= date_to)
        if category:
            query = query.filter(Expense.category == category)
        if search:
            query = query.filter(Expense.supplier.ilike(f"%{search}%"))

        total = query.count()
        query = query.order_by(Expense.date.desc(), Expense.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total

    @staticmethod
    def get_expenses_between(db: Session, user_id: int, start: date, end: date) -> list[Expense]:
        """Expenses in a date range, oldest first, with their gig"""
        return (
            db.query(Expense)
            .options(joinedload(Expense.gig))
            .filter(Expense.user_id == user_id, Expense.date >= start, Expense.date <= end)
            .order_by(Expense.date.asc(), Expense.id.asc())
            .all()
        )

    @staticmethod
    def get_expenses_on_dates(db: Session, user_id: int, dates: list[date]) -> list[Expense]:
        """Duplicate-check candidates: the user's expenses on any of the given dates"""
        if not dates:
            return []
        return (
            db.query(Expense)
            .filter(Expense.user_id == user_id, Expense.date.in_(dates))
            .all()
        )

    @staticmethod
    def get_expense_by_id(db: Session, expense_id: int, user_id: int) -> Optional[Expense]:
        return (
            db.query(Expense)
            .filter(Expense.id == expense_id, Expense.user_id == user_id)
            .first()
        )

    @staticmethod
    def create_expense(db: Session, user_id: int, **expense_data) -> Expense:
        expense = Expense(user_id=user_id, **expense_data)
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    @staticmethod
    def update_expense(db: Session, expense: Expense, **updates) -> Expense:
        for key, value in updates.items():
            if hasattr(expense, key):
                setattr(expense, key, value)
        db.commit()
        db.refresh(expense)
        return expense

    @staticmethod
    def delete_expense(db: Session, expense: Expense) -> None:
        db.delete(expense)
        db.commit()
