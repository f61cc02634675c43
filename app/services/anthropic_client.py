"""
Anthropic Messages API helpers
Shared by the document classifier, receipt parser and invoice parser
"""

import base64
import io
import json
import logging
from typing import Any, Optional

import anthropic
from fastapi import HTTPException
from pypdf import PdfReader
from sqlalchemy.orm import Session

from ..ai_usage import log_ai_usage
from ..config import AI_MODEL, ANTHROPIC_API_KEY

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024
MIN_PDF_TEXT_LENGTH = 10
MAX_PROMPT_TEXT_LENGTH = 4000

IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
PDF_MIME_TYPE = "application/pdf"


class DocumentParseError(Exception):
    """Raised when the model reply cannot be turned into valid structured data"""

    pass


class UnsupportedDocumentError(Exception):
    """Raised for files that are neither PDF nor a supported image type"""

    pass


DOCUMENT_ERRORS = (UnsupportedDocumentError, DocumentParseError, anthropic.APIError)


def document_http_error(error: Exception) -> HTTPException:
    """HTTP error for a failed document pipeline call"""
    if isinstance(error, UnsupportedDocumentError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, DocumentParseError):
        return HTTPException(status_code=422, detail="Could not read the document. Try a clearer file.")
    if isinstance(error, anthropic.APIError):
        logger.error(f"❌ Anthropic API error: {error}")
        return HTTPException(status_code=502, detail="Document analysis is temporarily unavailable")
    return HTTPException(status_code=500, detail="Document analysis failed")


_client: Optional[anthropic.AsyncAnthropic] = None


def get_anthropic_client() -> anthropic.AsyncAnthropic:
    global _client
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=ANTHROPIC_API_KEY)
    return _client


def extract_pdf_text(content: bytes) -> str:
    """Extract text from all pages of a PDF. Returns an empty string when none is found."""
    reader = PdfReader(io.BytesIO(content))
    return "\n".join((page.extract_text() or "") for page in reader.pages)


def has_usable_text(text: Optional[str]) -> bool:
    return bool(text) and len(text.strip()) >= MIN_PDF_TEXT_LENGTH


def document_block(content: bytes, mime_type: str) -> dict:
    """Base64 content block: PDFs as documents, everything else as images"""
    data = base64.standard_b64encode(content).decode("utf-8")
    if mime_type == PDF_MIME_TYPE:
        return {"type": "document", "source": {"type": "base64", "media_type": PDF_MIME_TYPE, "data": data}}
    if mime_type not in IMAGE_MIME_TYPES:
        raise UnsupportedDocumentError(f"File type {mime_type} is not supported. Use PDF or image.")
    return {"type": "image", "source": {"type": "base64", "media_type": mime_type, "data": data}}


def parse_json_response(text: Optional[str]) -> dict:
    """Parse a model reply as JSON, tolerating a surrounding markdown code fence"""
    if not text:
        raise DocumentParseError("Empty response from model")

    cleaned = text.strip()
    if cleaned.startswith("```"):
        first_newline = cleaned.find("\n")
        cleaned = cleaned[first_newline + 1 :] if first_newline != -1 else cleaned[3:]
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3]
        cleaned = cleaned.strip()

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise DocumentParseError(f"Model returned invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise DocumentParseError("Model returned JSON that is not an object")
    return parsed


async def complete(
    system_prompt: str,
    content: Any,
    usage_type: str,
    db: Optional[Session] = None,
    user_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    model: Optional[str] = None,
) -> str:
    """
    Run one deterministic completion and record its token usage.
    content is either a prompt string or a list of content blocks.
    """
    model = model or AI_MODEL
    client = get_anthropic_client()

    message = await client.messages.create(
        model=model,
        max_tokens=MAX_TOKENS,
        temperature=0,
        system=system_prompt,
        messages=[{"role": "user", "content": content}],
    )

    log_ai_usage(
        db,
        usage_type,
        model,
        message.usage.input_tokens,
        message.usage.output_tokens,
        user_id=user_id,
        metadata=metadata,
    )

    text_blocks = [block.text for block in message.content if getattr(block, "type", None) == "text"]
    logger.info(
        f"🤖 {usage_type}: {message.usage.input_tokens} in / {message.usage.output_tokens} out tokens"
    )
    return text_blocks[0] if text_blocks else ""
