"""Dropbox import service - find old invoice PDFs and preview them for import"""

import logging
from typing import Optional

from fastapi import HTTPException
from pypdf.errors import PyPdfError
from sqlalchemy.orm import Session

from ....activity import log_activity
from ....models import User
from ....services import dropbox_service
from ....services.anthropic_client import DOCUMENT_ERRORS, extract_pdf_text, has_usable_text
from ....services.client_matcher import find_closest_client_name, match_client
from ....services.invoice_parser import parse_invoice_text
from ...clients.repository import ClientRepository
from ...invoices.repository import InvoiceRepository

logger = logging.getLogger(__name__)

DEFAULT_FOLDER = ""
MAX_SCAN_FILES = 25


class DropboxImportService:
    """Service layer for the Dropbox invoice import"""

    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository()
        self.client_repo = ClientRepository()

    def complete_connection(self, user_id: int, tokens: dict):
        connection = dropbox_service.store_tokens(user_id, tokens, self.db)
        log_activity(self.db, user_id, "dropbox_connected", "dropbox", connection.id)
        return connection

    async def _access_token(self, user: User) -> str:
        try:
            return await dropbox_service.get_valid_access_token(user.id, self.db)
        except dropbox_service.DropboxNotConnectedError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e

    async def list_invoices(self, user: User, path: str = DEFAULT_FOLDER) -> dict:
        """Invoice PDFs in the folder, flagged by whether their number is already booked"""
        access_token = await self._access_token(user)
        try:
            entries = await dropbox_service.list_folder(access_token, path)
        except dropbox_service.DropboxError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e

        existing_numbers = self.invoice_repo.get_invoice_numbers(self.db, user.id)
        invoices = [
            {**inv, "existsInDb": inv["invoiceNumber"] in existing_numbers}
            for inv in dropbox_service.invoice_files(entries)
        ]
        summary = {
            "total": len(invoices),
            "existing": sum(1 for inv in invoices if inv["existsInDb"]),
            "missing": sum(1 for inv in invoices if not inv["existsInDb"]),
            "firstInvoice": invoices[0]["invoiceNumber"] if invoices else None,
            "lastInvoice": invoices[-1]["invoiceNumber"] if invoices else None,
        }
        return {"invoices": invoices, "summary": summary}

    async def _preview(self, access_token: str, invoice: dict, user: User, clients: list) -> dict:
        preview = {"path": invoice["path"], "name": invoice["name"], "invoiceNumber": invoice["invoiceNumber"]}
        try:
            content = await dropbox_service.download_file(access_token, invoice["path"])
            text = extract_pdf_text(content)
            if not has_usable_text(text):
                return {**preview, "success": False, "error": "No text layer in PDF"}

            parsed = await parse_invoice_text(
                text, db=self.db, user_id=user.id, filename=invoice["name"]
            )
        except (dropbox_service.DropboxError, PyPdfError, *DOCUMENT_ERRORS) as e:
            logger.warning(f"⚠️ Could not parse {invoice['name']}: {e}")
            return {**preview, "success": False, "error": str(e)}

        data = parsed.model_dump()
        data["invoiceNumber"] = invoice["invoiceNumber"]
        client_names = [client.name for client in clients]
        return {
            **preview,
            "success": True,
            "data": data,
            "clientMatch": match_client(parsed.clientName, clients) if parsed.clientName else None,
            "closestClientName": find_closest_client_name(parsed.clientName, client_names),
        }

    async def scan_all(self, user: User, path: str = DEFAULT_FOLDER, limit: Optional[int] = None) -> dict:
        """Download and parse invoices missing from the books (at most `limit` files)"""
        listing = await self.list_invoices(user, path)
        missing = [inv for inv in listing["invoices"] if not inv["existsInDb"]]
        limit = min(limit or MAX_SCAN_FILES, MAX_SCAN_FILES)

        access_token = await self._access_token(user)
        clients = self.client_repo.get_all_clients(self.db, user.id)
        previews = []
        for invoice in missing[:limit]:
            previews.append(await self._preview(access_token, invoice, user, clients))

        parsed_count = sum(1 for p in previews if p["success"])
        logger.info(f"📂 Dropbox scan for user {user.id}: {parsed_count}/{len(previews)} parsed")
        return {
            "previews": previews,
            "summary": {
                **listing["summary"],
                "scanned": len(previews),
                "parsed": parsed_count,
                "remaining": max(0, len(missing) - len(previews)),
            },
        }
