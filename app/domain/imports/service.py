"""Import service - AI analysis of uploaded documents, previously issued invoices and batch import"""

import json
import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...activity import log_activity
from ...models import Client, User
from ...services.anthropic_client import (
    DOCUMENT_ERRORS,
    PDF_MIME_TYPE,
    document_http_error,
    extract_pdf_text,
)
from ...services.client_matcher import match_client
from ...services.document_classifier import ExpenseData, classify_document
from ...services.duplicate_checker import find_duplicate_expense
from ...services.invoice_parser import parse_invoice_text
from ...storage import upload_file
from ...utils.sanitization import sanitize_storage_filename
from ..clients.repository import ClientRepository
from ..expenses.repository import ExpenseRepository
from ..expenses.schemas import ExpenseSummary
from ..expenses.service import ExpenseService
from ..invoices.repository import InvoiceRepository
from .schemas import BatchImportItem, ImportedInvoice

logger = logging.getLogger(__name__)

MIN_INVOICE_TEXT_LENGTH = 100
RAW_TEXT_PREVIEW_LENGTH = 500
IMPORTED_INVOICE_PAYMENT_TERMS = 30


class ImportItemError(Exception):
    pass


def iso_date_or_none(value) -> Optional[date]:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_batch_metadata(raw: Optional[str]) -> list[BatchImportItem]:
    if not raw:
        raise HTTPException(status_code=400, detail="Metadata required")
    try:
        items = [BatchImportItem.model_validate(item) for item in json.loads(raw)]
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=400, detail="Invalid metadata") from e
    if not items:
        raise HTTPException(status_code=400, detail="No files to import")
    return items


class ImportService:
    """Service layer for document imports"""

    def __init__(self, db: Session):
        self.db = db
        self.client_repo = ClientRepository()
        self.expense_repo = ExpenseRepository()
        self.invoice_repo = InvoiceRepository()

    def match_client_name(self, client_name: Optional[str], user: User) -> Optional[dict]:
        """Best-effort client match; failures are logged and yield None"""
        if not client_name:
            return None
        try:
            clients = self.client_repo.get_all_clients(self.db, user.id)
            return match_client(client_name, clients)
        except Exception as e:
            logger.error(f"❌ Client match failed for '{client_name}': {e}")
            return None

    async def analyze_document(
        self, content: bytes, mime_type: str, filename: str, user: User
    ) -> dict:
        try:
            result = await classify_document(
                content, mime_type, filename, db=self.db, user_id=user.id
            )
        except DOCUMENT_ERRORS as e:
            logger.error(f"❌ Could not analyze {filename}: {e}")
            raise document_http_error(e) from e

        client_match = None
        if result.type == "invoice":
            client_match = self.match_client_name(result.data.clientName, user)

        log_activity(
            self.db,
            user.id,
            "document_imported",
            "document",
            metadata={"filename": filename, "type": result.type},
        )
        return {
            "success": True,
            "filename": filename,
            **result.model_dump(),
            "clientMatch": client_match,
        }

    async def parse_invoice_pdf(
        self,
        content: bytes,
        mime_type: str,
        filename: str,
        user: User,
        invoice_number: Optional[int] = None,
    ) -> dict:
        if mime_type != PDF_MIME_TYPE:
            raise HTTPException(status_code=400, detail="Only PDF invoices can be parsed")

        try:
            text = extract_pdf_text(content)
        except Exception as e:
            logger.warning(f"⚠️ Text extraction failed for {filename}: {e}")
            text = ""

        if len(text) < MIN_INVOICE_TEXT_LENGTH:
            raise HTTPException(
                status_code=422,
                detail="PDF text extraction failed or document too short. May need OCR.",
            )

        try:
            parsed = await parse_invoice_text(text, db=self.db, user_id=user.id, filename=filename)
        except DOCUMENT_ERRORS as e:
            raise document_http_error(e) from e

        data = parsed.model_dump()
        if invoice_number:
            data["invoiceNumber"] = invoice_number

        return {
            "success": True,
            "data": {
                **data,
                "clientMatch": self.match_client_name(parsed.clientName, user),
                "rawText": text[:RAW_TEXT_PREVIEW_LENGTH],
            },
        }

    # ============================================================================
    # BATCH IMPORT
    # ============================================================================

    def _store_original(self, user: User, folder: str, year: str, item: BatchImportItem, upload) -> Optional[str]:
        """Upload the source document; a failed upload leaves the record without an attachment"""
        filename = upload["filename"] or ""
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "pdf"
        key = f"{user.id}/{folder}/{year}/{sanitize_storage_filename(item.suggestedFilename)}.{extension}"
        try:
            return upload_file(key, upload["content"], upload["content_type"] or "application/octet-stream")
        except Exception as e:
            logger.warning(f"⚠️ Could not store {filename} for user {user.id}: {e}")
            return None

    async def _import_expense(
        self, item: BatchImportItem, upload: dict, user: User, existing: list, skip_duplicates: bool
    ) -> dict:
        data = ExpenseData.model_validate(item.data)
        expense_date = date.fromisoformat(data.date) if data.date else date.today()

        duplicate = find_duplicate_expense(
            {"date": expense_date, "supplier": data.supplier, "amount": data.total}, existing
        )
        existing_summary = (
            ExpenseSummary.model_validate(duplicate["existing_expense"]).model_dump(mode="json")
            if duplicate["is_duplicate"]
            else None
        )
        if existing_summary and skip_duplicates:
            return {"success": False, "skippedAsDuplicate": True, "existingExpense": existing_summary}

        attachment_key = self._store_original(user, "receipts", str(expense_date.year), item, upload)
        expense = self.expense_repo.create_expense(
            self.db,
            user.id,
            date=expense_date,
            supplier=data.supplier,
            amount=data.total,
            currency=data.currency,
            amount_base=await ExpenseService(self.db).amount_in_base(data.total, data.currency, expense_date),
            category=data.category,
            notes=data.notes,
            attachment_key=attachment_key,
        )
        existing.append(expense)
        result = {"success": True, "id": expense.id}
        if existing_summary:
            # Imported anyway; the client shows a warning
            result["existingExpense"] = existing_summary
        return result

    def _resolve_client(self, data: ImportedInvoice, user: User, clients: list) -> tuple[Client, bool]:
        """(client, created) following the reviewer's choice, else the best name match"""
        if "selectedClientId" in data.model_fields_set and data.selectedClientId is not None:
            client = self.client_repo.get_client_by_id(self.db, data.selectedClientId, user.id)
            if client is None:
                raise ImportItemError("Client not found")
            return client, False

        if "selectedClientId" not in data.model_fields_set:
            match = match_client(data.clientName, clients) if clients else None
            if match and match["method"] != "manual":
                return next(c for c in clients if c.id == match["client_id"]), False

        if not data.clientName.strip():
            raise ImportItemError("Invoice has no client name")
        client = self.client_repo.create_client(self.db, user.id, name=data.clientName)
        clients.append(client)
        logger.info(f"👤 Created client '{client.name}' during import for user {user.id}")
        return client, True

    def _import_invoice(
        self, item: BatchImportItem, upload: dict, user: User, clients: list, invoice_numbers: set
    ) -> dict:
        data = ImportedInvoice.model_validate(item.data)
        if data.invoiceNumber < 1:
            raise ImportItemError("Invoice number is missing")
        if data.invoiceNumber in invoice_numbers:
            raise ImportItemError(f"Invoice number {data.invoiceNumber} already exists")

        client, created = self._resolve_client(data, user, clients)
        invoice_date = date.fromisoformat(data.invoiceDate) if data.invoiceDate else date.today()
        due_date = (
            date.fromisoformat(data.dueDate)
            if data.dueDate
            else invoice_date + timedelta(days=IMPORTED_INVOICE_PAYMENT_TERMS)
        )

        original_key = self._store_original(user, "invoices", str(invoice_date.year), item, upload)
        invoice = self.invoice_repo.create_invoice(
            self.db,
            user.id,
            lines=[],
            client_id=client.id,
            invoice_number=data.invoiceNumber,
            invoice_date=invoice_date,
            due_date=due_date,
            subtotal=data.subtotal,
            vat_rate=data.vatRate,
            vat_amount=data.vatAmount,
            total=data.total,
            status="paid",
            imported_from_pdf=True,
            original_pdf_key=original_key,
        )
        invoice_numbers.add(invoice.invoice_number)
        result = {"success": True, "id": invoice.id}
        if created:
            result["createdClient"] = client.name
        return result

    async def batch_import(
        self, items: list[BatchImportItem], uploads: dict[str, dict], skip_duplicates: bool, user: User
    ) -> dict:
        """
        Import reviewed documents as expenses or historical (paid) invoices.

        uploads maps item id to {filename, content_type, content}. Each item succeeds or
        fails on its own; expense duplicates are skipped when skip_duplicates is set.
        """
        expense_dates = {iso_date_or_none(item.data.get("date")) for item in items if item.type == "expense"}
        existing_expenses = self.expense_repo.get_expenses_on_dates(
            self.db, user.id, sorted(d for d in expense_dates if d)
        )
        clients = self.client_repo.get_all_clients(self.db, user.id)
        invoice_numbers = self.invoice_repo.get_invoice_numbers(self.db, user.id)

        results = []
        for item in items:
            base = {"fileId": item.id, "type": item.type, "filename": item.suggestedFilename}
            upload = uploads.get(item.id)
            if upload is None:
                results.append({**base, "success": False, "error": "File missing"})
                continue

            try:
                if item.type == "expense":
                    outcome = await self._import_expense(
                        item, upload, user, existing_expenses, skip_duplicates
                    )
                else:
                    outcome = self._import_invoice(item, upload, user, clients, invoice_numbers)
            except ValidationError as e:
                outcome = {"success": False, "error": f"Invalid {item.type} data: {e.error_count()} errors"}
            except (ImportItemError, ValueError) as e:
                outcome = {"success": False, "error": str(e)}
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"❌ Failed to import {item.suggestedFilename}: {e}")
                outcome = {"success": False, "error": "Could not save the document"}
            results.append({**base, **outcome})

        summary = {
            "total": len(items),
            "succeeded": sum(1 for r in results if r["success"]),
            "failed": sum(1 for r in results if not r["success"] and not r.get("skippedAsDuplicate")),
            "skipped": sum(1 for r in results if r.get("skippedAsDuplicate")),
            "expenses": sum(1 for r in results if r["success"] and r["type"] == "expense"),
            "invoices": sum(1 for r in results if r["success"] and r["type"] == "invoice"),
            "createdClients": [r["createdClient"] for r in results if r.get("createdClient")],
        }
        logger.info(
            f"📥 Batch import for user {user.id}: {summary['succeeded']}/{summary['total']} imported, "
            f"{summary['skipped']} skipped"
        )
        log_activity(self.db, user.id, "documents_imported", "import", metadata=summary)
        return {"results": results, "summary": summary}
