"""Invoice service - Numbering, totals, usage limits, PDFs and email delivery for invoices"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...activity import log_activity
from ...email_service import EmailNotConfiguredError, send_invoice_email, send_invoice_reminder
from ...models import Invoice, User
from ...plan_limits import can_create_invoice, can_send_email, increment_usage
from ..clients.repository import ClientRepository
from ..contracts.pdf_service import format_amount
from .pdf_service import InvoicePDFService, invoice_filename
from .repository import InvoiceRepository
from .schemas import InvoiceCreate, InvoiceEmailRequest, InvoiceLineCreate

logger = logging.getLogger(__name__)


def calculate_totals(lines: list[InvoiceLineCreate], vat_rate: float) -> dict:
    """subtotal = sum(qty * unit_price), vat rounded to 2 dp, total = subtotal + vat"""
    subtotal = sum(line.quantity * line.unit_price for line in lines)
    vat_amount = round(subtotal * vat_rate / 100, 2)
    return {
        "subtotal": subtotal,
        "vat_amount": vat_amount,
        "total": subtotal + vat_amount,
    }


def build_lines(lines: list[InvoiceLineCreate], default_vat_rate: float) -> list[dict]:
    return [
        {
            "description": line.description,
            "amount": line.quantity * line.unit_price,
            "vat_rate": line.vat_rate if line.vat_rate is not None else default_vat_rate,
            "sort_order": index + 1,
        }
        for index, line in enumerate(lines)
    ]


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()
        self.client_repo = ClientRepository()

    def list_invoices(self, user: User, **filters) -> tuple[list[Invoice], int]:
        return self.repo.list_invoices(self.db, user.id, **filters)

    def get_invoice(self, invoice_id: int, user: User) -> Invoice:
        invoice = self.repo.get_invoice_by_id(self.db, invoice_id, user.id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def create_invoice(self, data: InvoiceCreate, user: User, today: Optional[date] = None) -> Invoice:
        allowed, error_message = can_create_invoice(user, self.db)
        if not allowed:
            logger.warning(f"⚠️ User {user.id} reached invoice limit")
            raise HTTPException(status_code=403, detail=error_message)

        client = self.client_repo.get_client_by_id(self.db, data.client_id, user.id)
        if not client:
            raise HTTPException(status_code=400, detail="Client not found")

        invoice_date = today or date.today()
        payment_terms = data.payment_terms or client.payment_terms or 30
        invoice_number = self.repo.get_last_invoice_number(self.db, user.id) + 1

        invoice = self.repo.create_invoice(
            self.db,
            user.id,
            lines=build_lines(data.lines, data.vat_rate),
            client_id=client.id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            due_date=invoice_date + timedelta(days=payment_terms),
            vat_rate=data.vat_rate,
            currency=data.currency.upper(),
            status="draft",
            **calculate_totals(data.lines, data.vat_rate),
        )
        logger.info(f"✅ Created invoice #{invoice_number} for user {user.id}")

        increment_usage(user, self.db, "invoice")
        log_activity(
            self.db,
            user.id,
            "invoice_created",
            "invoice",
            invoice.id,
            {"invoice_number": invoice_number, "total": invoice.total},
        )
        return self.get_invoice(invoice.id, user)

    # ============================================================================
    # PDF AND EMAIL
    # ============================================================================

    def render_pdf(self, invoice_id: int, user: User) -> tuple[str, bytes]:
        """(filename, pdf bytes) for the invoice"""
        invoice = self.get_invoice(invoice_id, user)
        return invoice_filename(invoice), self._render(invoice, user)

    def _render(self, invoice: Invoice, user: User) -> bytes:
        return InvoicePDFService(invoice, user.company, user.locale).render()

    def _email_envelope(self, invoice: Invoice, data: InvoiceEmailRequest, user: User, default_subject: str):
        allowed, error_message = can_send_email(user)
        if not allowed:
            raise HTTPException(status_code=403, detail=error_message)

        to = data.to or (invoice.client.email if invoice.client else None)
        if not to:
            raise HTTPException(status_code=400, detail="Recipient email is required")

        sender_name = user.company.name if user.company else user.full_name
        return to, data.subject or default_subject, sender_name

    async def _deliver(self, invoice: Invoice, send, **kwargs) -> None:
        try:
            await send(**kwargs)
        except EmailNotConfiguredError as e:
            raise HTTPException(status_code=503, detail="Email service not configured") from e
        except Exception as e:
            logger.error(f"❌ Failed to email invoice #{invoice.invoice_number}: {e}")
            raise HTTPException(status_code=502, detail="Could not send email") from e

    async def send_invoice(self, invoice_id: int, data: InvoiceEmailRequest, user: User) -> dict:
        """Email the invoice PDF to the client; a draft becomes sent"""
        invoice = self.get_invoice(invoice_id, user)
        to, subject, sender_name = self._email_envelope(
            invoice, data, user, f"Faktura {invoice.invoice_number}"
        )
        pdf_bytes = self._render(invoice, user)

        await self._deliver(
            invoice,
            send_invoice_email,
            to=to,
            subject=subject,
            message=data.message,
            sender_name=sender_name,
            invoice_number=invoice.invoice_number,
            amount_due=format_amount(invoice.total, invoice.currency),
            due_date=invoice.due_date.isoformat(),
            pdf_bytes=pdf_bytes,
        )

        if invoice.status == "draft":
            invoice.status = "sent"
            self.repo.save(self.db, invoice)
        logger.info(f"📧 Invoice #{invoice.invoice_number} sent to {to}")

        log_activity(
            self.db,
            user.id,
            "invoice_sent",
            "invoice",
            invoice.id,
            {"to": to, "invoice_number": invoice.invoice_number},
        )
        return {"success": True, "status": invoice.status}

    async def send_reminder(self, invoice_id: int, data: InvoiceEmailRequest, user: User) -> dict:
        """Payment reminder for a sent or overdue invoice; reminders are numbered per invoice"""
        invoice = self.get_invoice(invoice_id, user)
        if invoice.status == "paid":
            raise HTTPException(status_code=400, detail="Invoice is already paid")
        if invoice.status == "draft":
            raise HTTPException(status_code=400, detail="Invoice has not been sent yet")

        to, subject, sender_name = self._email_envelope(
            invoice, data, user, f"Påminnelse: faktura {invoice.invoice_number}"
        )
        reminder_number = self.repo.get_last_reminder_number(self.db, invoice.id) + 1
        pdf_bytes = self._render(invoice, user)

        await self._deliver(
            invoice,
            send_invoice_reminder,
            to=to,
            subject=subject,
            message=data.message,
            sender_name=sender_name,
            invoice_number=invoice.invoice_number,
            amount_due=format_amount(invoice.total, invoice.currency),
            due_date=invoice.due_date.isoformat(),
            reminder_number=reminder_number,
            pdf_bytes=pdf_bytes,
        )

        self.repo.create_reminder(
            self.db,
            invoice_id=invoice.id,
            user_id=user.id,
            sent_to=to,
            subject=subject,
            message=data.message,
            reminder_number=reminder_number,
        )
        logger.info(f"🔔 Reminder {reminder_number} for invoice #{invoice.invoice_number} sent to {to}")

        log_activity(
            self.db,
            user.id,
            "invoice_reminder_sent",
            "invoice",
            invoice.id,
            {"to": to, "invoice_number": invoice.invoice_number, "reminder_number": reminder_number},
        )
        return {"success": True, "reminderNumber": reminder_number}
