import html
import re
from typing import Optional

FORBIDDEN_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
STORAGE_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
MAX_SUGGESTED_FILENAME_LENGTH = 50


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Escape HTML special characters.
    Used for free text that ends up in reportlab paragraphs and HTML emails.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    return html.escape(str(value), quote=True)


def _fold_swedish(value: str) -> str:
    value = re.sub(r"[åä]", "a", value)
    value = re.sub(r"[ÅÄ]", "A", value)
    return value.replace("ö", "o").replace("Ö", "O")


def sanitize_filename(name: str) -> str:
    """
    Suggested filename for an imported document:
    no path/reserved characters, dashes for spaces, å/ä/ö folded, at most 50 chars.
    """
    cleaned = FORBIDDEN_FILENAME_CHARS.sub("", name or "")
    cleaned = re.sub(r"\s+", "-", cleaned)
    cleaned = _fold_swedish(cleaned)
    return cleaned[:MAX_SUGGESTED_FILENAME_LENGTH]


def sanitize_storage_filename(name: str) -> str:
    """Object-storage safe filename: ASCII letters, digits, dot, dash and underscore only"""
    cleaned = _fold_swedish(name or "")
    cleaned = STORAGE_UNSAFE_CHARS.sub("_", cleaned)
    cleaned = re.sub(r"_+", "_", cleaned)
    return cleaned.strip("_")
