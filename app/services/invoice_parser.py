"""Parsing of previously issued invoices (PDF imports, Dropbox scans)"""

import logging
import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from .anthropic_client import (
    MAX_PROMPT_TEXT_LENGTH,
    DocumentParseError,
    complete,
    parse_json_response,
)
from .document_classifier import ISO_DATE

logger = logging.getLogger(__name__)

FILENAME_NUMBER_PATTERN = re.compile(r"faktura[_-]?(\d+)\.pdf", re.IGNORECASE)


class ParsedInvoice(BaseModel):
    invoiceNumber: int = Field(ge=1)
    clientName: str
    invoiceDate: str = Field(pattern=ISO_DATE)
    dueDate: str = Field(pattern=ISO_DATE)
    subtotal: float = Field(ge=0)
    vatRate: Literal[0, 6, 25]
    vatAmount: float = Field(ge=0)
    total: float = Field(gt=0)
    confidence: float = Field(ge=0, le=1)


INVOICE_PROMPT = """You extract invoice data for a Swedish musician's accounting system from OCR text.

Extract the ACTUAL client name, usually after "Kund:", "Faktureras till:" or at the top of the
billing address. Never use placeholders such as "Företag AB". If no client name is present,
use an empty string.

Rules:
- Amounts in SEK
- Dates in ISO format (YYYY-MM-DD)
- vatRate is exactly 0, 6 or 25
- invoiceNumber is an integer

Fields: invoiceNumber, clientName, invoiceDate, dueDate, subtotal, vatRate, vatAmount, total,
confidence (0-1).

Reply with a JSON object only, no markdown or explanation."""


def extract_invoice_number_from_filename(filename: str) -> Optional[int]:
    """Invoice number from names like "Faktura-123.pdf" or "faktura_45.pdf" """
    match = FILENAME_NUMBER_PATTERN.search(filename or "")
    return int(match.group(1)) if match else None


async def parse_invoice_text(
    text: str,
    db: Optional[Session] = None,
    user_id: Optional[int] = None,
    filename: Optional[str] = None,
) -> ParsedInvoice:
    """Parse extracted invoice text; a number in the filename fills a missing invoice number"""
    reply = await complete(
        INVOICE_PROMPT,
        f"Extract the invoice data from this text:\n\n{text[:MAX_PROMPT_TEXT_LENGTH]}",
        "invoice_parse",
        db=db,
        user_id=user_id,
        metadata={"filename": filename} if filename else None,
    )
    parsed = parse_json_response(reply)

    if isinstance(parsed.get("invoiceNumber"), str):
        digits = re.search(r"\d+", parsed["invoiceNumber"])
        parsed["invoiceNumber"] = int(digits.group(0)) if digits else None
    if not parsed.get("invoiceNumber") and filename:
        parsed["invoiceNumber"] = extract_invoice_number_from_filename(filename)

    try:
        return ParsedInvoice.model_validate(parsed)
    except ValidationError as e:
        logger.warning(f"⚠️ Invoice parse validation failed for {filename or 'text'}: {e}")
        raise DocumentParseError(f"Invoice data failed validation: {e.error_count()} errors") from e
