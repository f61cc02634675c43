"""Shared validation utilities"""

import re
from typing import Optional

from fastapi import HTTPException, UploadFile

ALLOWED_DOCUMENT_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
}
MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address, or None for empty input

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return None

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_upload_metadata(content_type: Optional[str], size: int) -> None:
    """Reject files that are too large or of an unsupported type (HTTP 400)"""
    if size > MAX_UPLOAD_SIZE:
        raise HTTPException(status_code=400, detail="File is too large. Max 10MB.")
    if content_type not in ALLOWED_DOCUMENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"File type {content_type} not supported. Use PDF or image.",
        )


async def read_validated_upload(file: Optional[UploadFile]) -> bytes:
    """Read an uploaded document after checking presence, size and type"""
    if file is None:
        raise HTTPException(status_code=400, detail="No file attached")

    content = await file.read()
    validate_upload_metadata(file.content_type, len(content))
    return content
