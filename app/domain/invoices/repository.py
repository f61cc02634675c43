"""Invoice repository - Database operations for invoices"""

from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import Invoice, InvoiceLine, InvoiceReminder


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def list_invoices(
        db: Session,
        user_id: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[Invoice], int]:
        query = db.query(Invoice).filter(Invoice.user_id == user_id)
        if status:
            query = query.filter(Invoice.status == status)
        if client_id:
            query = query.filter(Invoice.client_id == client_id)

        total = query.count()
        query = (
            query.options(joinedload(Invoice.client))
            .order_by(Invoice.invoice_number.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all(), total

    @staticmethod
    def get_invoice_by_id(db: Session, invoice_id: int, user_id: int) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .options(joinedload(Invoice.client), selectinload(Invoice.invoice_lines))
            .filter(Invoice.id == invoice_id, Invoice.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_invoice_numbers(db: Session, user_id: int) -> set[int]:
        rows = db.query(Invoice.invoice_number).filter(Invoice.user_id == user_id).all()
        return {row[0] for row in rows}

    @staticmethod
    def get_last_invoice_number(db: Session, user_id: int) -> int:
        last = db.query(func.max(Invoice.invoice_number)).filter(Invoice.user_id == user_id).scalar()
        return last or 0

    @staticmethod
    def get_unpaid_invoices(db: Session, user_id: int) -> list[Invoice]:
        """Sent and overdue invoices, oldest due date first"""
        return (
            db.query(Invoice)
            .options(joinedload(Invoice.client))
            .filter(Invoice.user_id == user_id, Invoice.status.in_(["sent", "overdue"]))
            .order_by(Invoice.due_date.asc())
            .all()
        )

    @staticmethod
    def get_invoices_between(db: Session, user_id: int, start: date, end: date) -> list[Invoice]:
        return (
            db.query(Invoice)
            .filter(
                Invoice.user_id == user_id,
                Invoice.invoice_date >= start,
                Invoice.invoice_date <= end,
            )
            .all()
        )

    @staticmethod
    def create_invoice(db: Session, user_id: int, lines: list[dict], **invoice_data) -> Invoice:
        invoice = Invoice(user_id=user_id, **invoice_data)
        invoice.invoice_lines = [InvoiceLine(**line) for line in lines]
        db.add(invoice)
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def save(db: Session, invoice: Invoice) -> Invoice:
        db.commit()
        db.refresh(invoice)
        return invoice

    @staticmethod
    def get_last_reminder_number(db: Session, invoice_id: int) -> int:
        last = (
            db.query(func.max(InvoiceReminder.reminder_number))
            .filter(InvoiceReminder.invoice_id == invoice_id)
            .scalar()
        )
        return last or 0

    @staticmethod
    def create_reminder(db: Session, **reminder_data) -> InvoiceReminder:
        reminder = InvoiceReminder(**reminder_data)
        db.add(reminder)
        db.commit()
        db.refresh(reminder)
        return reminder
