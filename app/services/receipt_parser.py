"""Receipt scanning: extract date, supplier, amount and category from a receipt"""

import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from .anthropic_client import (
    IMAGE_MIME_TYPES,
    MAX_PROMPT_TEXT_LENGTH,
    PDF_MIME_TYPE,
    DocumentParseError,
    UnsupportedDocumentError,
    complete,
    document_block,
    extract_pdf_text,
    has_usable_text,
    parse_json_response,
)
from .document_classifier import ISO_DATE, Currency, ExpenseCategory

logger = logging.getLogger(__name__)


class ReceiptData(BaseModel):
    date: Optional[str] = Field(None, pattern=ISO_DATE)
    supplier: str = Field(min_length=1)
    amount: float = Field(gt=0)
    currency: Currency = "SEK"
    category: ExpenseCategory = "Övrigt"
    notes: Optional[str] = None
    confidence: float = Field(ge=0, le=1)


RECEIPT_PROMPT = """You read receipts for the bookkeeping of a Swedish freelance musician.

Rules:
- Dates in ISO format (YYYY-MM-DD)
- amount is the TOTAL including VAT
- Guess the currency from symbols (kr/SEK, €/EUR, $/USD, £/GBP)

Categories:
- Resa: train, flights, taxi, fuel, parking
- Mat: restaurants, coffee, groceries
- Hotell: accommodation
- Instrument: purchase, repair, accessories
- Noter: sheet music, copies
- Utrustning: microphones, cables, stands
- Kontorsmaterial: paper, pens and similar
- Telefon: phone bills and plans
- Prenumeration: Spotify, software and other subscriptions
- Övrigt: everything else

Reply with JSON only, with these fields:
date (YYYY-MM-DD or null), supplier, amount (number), currency (SEK/EUR/USD/GBP/DKK/NOK),
category (from the list above), notes (short description, optional), confidence (0-1)"""


def parse_receipt_reply(text: str) -> ReceiptData:
    parsed = parse_json_response(text)
    if not parsed.get("currency"):
        parsed.pop("currency", None)
    if not parsed.get("category"):
        parsed.pop("category", None)
    try:
        return ReceiptData.model_validate(parsed)
    except ValidationError as e:
        raise DocumentParseError(f"Receipt data failed validation: {e.error_count()} errors") from e


async def parse_receipt(
    content: bytes,
    mime_type: str,
    db: Optional[Session] = None,
    user_id: Optional[int] = None,
) -> ReceiptData:
    """
    Parse a receipt upload.
    PDFs with a text layer go through the text model; scans and photos go as documents/images.
    """
    if mime_type == PDF_MIME_TYPE:
        text = ""
        try:
            text = extract_pdf_text(content)
        except Exception as e:
            logger.warning(f"⚠️ Receipt text extraction failed, using document mode: {e}")
        if has_usable_text(text):
            reply = await complete(
                RECEIPT_PROMPT,
                f"Extract the receipt data from this text:\n\n{text[:MAX_PROMPT_TEXT_LENGTH]}",
                "receipt_scan_text",
                db=db,
                user_id=user_id,
            )
            return parse_receipt_reply(reply)
    elif mime_type not in IMAGE_MIME_TYPES:
        raise UnsupportedDocumentError(f"File type {mime_type} is not supported. Use PDF or image.")

    reply = await complete(
        RECEIPT_PROMPT,
        [
            document_block(content, mime_type),
            {"type": "text", "text": "Extract the receipt data from this receipt."},
        ],
        "receipt_scan_vision",
        db=db,
        user_id=user_id,
    )
    return parse_receipt_reply(reply)
