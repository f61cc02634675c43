"""
Document classification for imports

Decides whether an uploaded PDF or image is an expense (receipt, paid bill) or an
invoice the musician has sent, and extracts the matching fields. PDFs are sent as
extracted text when possible and as the original document otherwise.
"""

import logging
import re
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from ..utils.sanitization import sanitize_filename
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

logger = logging.getLogger(__name__)

ISO_DATE = r"^\d{4}-\d{2}-\d{2}$"

CURRENCIES = ("SEK", "EUR", "USD", "GBP", "DKK", "NOK")
EXPENSE_CATEGORIES = (
    "Resa",
    "Mat",
    "Hotell",
    "Instrument",
    "Noter",
    "Utrustning",
    "Kontorsmaterial",
    "Telefon",
    "Prenumeration",
    "Övrigt",
)

Currency = Literal["SEK", "EUR", "USD", "GBP", "DKK", "NOK"]
ExpenseCategory = Literal[
    "Resa",
    "Mat",
    "Hotell",
    "Instrument",
    "Noter",
    "Utrustning",
    "Kontorsmaterial",
    "Telefon",
    "Prenumeration",
    "Övrigt",
]
VatRate = Literal[0, 6, 12, 25]


class ExpenseData(BaseModel):
    date: Optional[str] = Field(None, pattern=ISO_DATE)
    supplier: str
    subtotal: float = Field(ge=0)
    vatRate: VatRate
    vatAmount: float = Field(ge=0)
    total: float = Field(ge=0)
    currency: Currency
    category: ExpenseCategory
    notes: Optional[str] = None


class InvoiceData(BaseModel):
    invoiceNumber: int
    clientName: str
    invoiceDate: Optional[str] = Field(None, pattern=ISO_DATE)
    dueDate: Optional[str] = Field(None, pattern=ISO_DATE)
    subtotal: float = Field(ge=0)
    vatRate: VatRate
    vatAmount: float = Field(ge=0)
    total: float = Field(ge=0)


class ClassifiedDocument(BaseModel):
    type: Literal["expense", "invoice"]
    confidence: float = Field(ge=0, le=1)
    data: Union[ExpenseData, InvoiceData]
    suggestedFilename: str


CLASSIFIER_PROMPT = f"""You classify documents for the bookkeeping of a Swedish freelance musician.

Decide whether the document is an EXPENSE or an INVOICE and extract its data.

EXPENSE: receipts and bills the user has already PAID.
- Titles like "Receipt", "Kvitto", "Order confirmation", "Betalningsbekräftelse"
- "Amount paid", "Paid", "Betald" rather than "Amount due"
- The user is the buyer ("Bill to", "Faktureras till")
A document titled "Receipt" or "Kvitto" is ALWAYS an expense, even if it shows an invoice number.

INVOICE: invoices the user has SENT to a client.
- The user's business is the sender
- "Att betala", "Amount due", a future due date, payment details for the user's account

For an expense extract:
- date (YYYY-MM-DD or null), supplier, subtotal, vatRate (0, 6, 12 or 25; default 25),
  vatAmount, total, currency ({", ".join(CURRENCIES)}; default SEK),
  category (one of: {", ".join(EXPENSE_CATEGORIES)}), notes (short description)
- If only the total is visible, leave subtotal and vatAmount null.

For an invoice extract:
- invoiceNumber (integer), clientName (the recipient), invoiceDate and dueDate (YYYY-MM-DD or null),
  subtotal, vatRate (0, 6 or 25; default 25), vatAmount, total

Use null for any value that cannot be read from the document.

Suggest a filename:
- expense: {{date}}_{{supplier}}_{{description}}, e.g. "2024-03-15_SJ_Train-Stockholm"
- invoice: {{date}}_{{client}}_Faktura{{number}}, e.g. "2024-03-20_Konserthuset_Faktura127"

Reply with JSON only, no markdown:
{{"type": "expense" | "invoice", "confidence": 0-1, "data": {{...}}, "suggestedFilename": "..."}}"""


def apply_expense_defaults(data: dict) -> dict:
    """Fill missing expense fields and derive subtotal/VAT from the total when needed"""
    data["supplier"] = data.get("supplier") or "Unknown supplier"
    data["currency"] = data.get("currency") or "SEK"
    data["category"] = data.get("category") or "Övrigt"

    total = data.get("total")
    if total is None:
        total = data.get("amount")
    total = total or 0
    vat_rate = data.get("vatRate")
    if vat_rate is None:
        vat_rate = 25

    if data.get("subtotal") and data.get("vatAmount"):
        data["total"] = total
    elif total > 0:
        subtotal = round(total / (1 + vat_rate / 100), 2)
        data["subtotal"] = subtotal
        data["vatAmount"] = round(total - subtotal, 2)
        data["total"] = total
    else:
        data["subtotal"] = 0
        data["vatAmount"] = 0
        data["total"] = 0

    data["vatRate"] = vat_rate
    data.pop("amount", None)
    return data


def apply_invoice_defaults(data: dict) -> dict:
    """Coerce the invoice number to an integer and fill missing amounts"""
    invoice_number = data.get("invoiceNumber")
    if isinstance(invoice_number, str):
        digits = re.search(r"\d+", invoice_number)
        invoice_number = int(digits.group(0)) if digits else 0
    data["invoiceNumber"] = invoice_number or 0
    data["clientName"] = data.get("clientName") or "Unknown client"
    for key in ("subtotal", "vatAmount", "total"):
        if data.get(key) is None:
            data[key] = 0
    if data.get("vatRate") is None:
        data["vatRate"] = 25
    return data


def parse_classification(text: str) -> ClassifiedDocument:
    """Turn a raw model reply into a validated ClassifiedDocument"""
    parsed = parse_json_response(text)
    parsed.setdefault("suggestedFilename", "")

    try:
        data = parsed.get("data")
        if isinstance(data, dict):
            if parsed.get("type") == "expense":
                parsed["data"] = ExpenseData.model_validate(apply_expense_defaults(data))
            elif parsed.get("type") == "invoice":
                parsed["data"] = InvoiceData.model_validate(apply_invoice_defaults(data))
        document = ClassifiedDocument.model_validate(parsed)
    except ValidationError as e:
        raise DocumentParseError(f"Classification failed validation: {e.error_count()} errors") from e

    document.suggestedFilename = sanitize_filename(document.suggestedFilename)
    return document


async def classify_text(
    text: str, filename: str, db: Optional[Session] = None, user_id: Optional[int] = None
) -> ClassifiedDocument:
    prompt = (
        f"Classify this document.\n\nFilename: {filename}\n\n"
        f"Content:\n{text[:MAX_PROMPT_TEXT_LENGTH]}"
    )
    reply = await complete(
        CLASSIFIER_PROMPT,
        prompt,
        "document_classify_text",
        db=db,
        user_id=user_id,
        metadata={"filename": filename},
    )
    return parse_classification(reply)


async def classify_visual(
    content: bytes,
    mime_type: str,
    filename: str,
    db: Optional[Session] = None,
    user_id: Optional[int] = None,
) -> ClassifiedDocument:
    blocks = [
        document_block(content, mime_type),
        {"type": "text", "text": f"Classify this document.\n\nFilename: {filename}"},
    ]
    reply = await complete(
        CLASSIFIER_PROMPT,
        blocks,
        "document_classify_vision",
        db=db,
        user_id=user_id,
        metadata={"filename": filename},
    )
    return parse_classification(reply)


async def classify_document(
    content: bytes,
    mime_type: str,
    filename: str,
    db: Optional[Session] = None,
    user_id: Optional[int] = None,
) -> ClassifiedDocument:
    """
    Classify an uploaded file.

    PDFs: text extraction first; when that fails or yields under 10 characters the
    PDF itself is sent to the model. Images are always sent as images.
    """
    if mime_type == PDF_MIME_TYPE:
        text = ""
        try:
            text = extract_pdf_text(content)
        except Exception as e:
            logger.warning(f"⚠️ PDF text extraction failed for {filename}, using document mode: {e}")
        if has_usable_text(text):
            return await classify_text(text, filename, db, user_id)
        return await classify_visual(content, PDF_MIME_TYPE, filename, db, user_id)

    if mime_type in IMAGE_MIME_TYPES:
        return await classify_visual(content, mime_type, filename, db, user_id)

    raise UnsupportedDocumentError(f"File type {mime_type} is not supported. Use PDF or image.")
