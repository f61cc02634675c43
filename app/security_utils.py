"""
Security Utilities
API keys, signed state tokens, secret encryption and text cleaning
"""

import base64
import hashlib
import logging
import secrets
from typing import Any, Optional

import bleach
from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import SECRET_KEY, TOKEN_ENCRYPTION_KEY

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "ak_"
API_KEY_LENGTH = 67  # "ak_" + 64 hex chars


# ============================================================================
# API KEYS
# ============================================================================


def generate_api_key() -> str:
    """New API key: ak_ followed by 32 random bytes as hex"""
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(api_key: str) -> str:
    """API keys are stored as sha256 hex digests only"""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def is_valid_api_key_format(api_key: Optional[str]) -> bool:
    return bool(api_key) and api_key.startswith(API_KEY_PREFIX) and len(api_key) == API_KEY_LENGTH


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def generate_secure_token(nbytes: int = 32) -> str:
    """Random hex token (64 chars for the default 32 bytes)"""
    return secrets.token_hex(nbytes)


def generate_timed_token(data: dict[str, Any], salt: str = "security-token") -> str:
    """
    Generate a time-limited signed token using itsdangerous.
    The age is checked when the token is verified.
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(data, salt=salt)


def verify_timed_token(
    token: str, max_age: int = 3600, salt: str = "security-token"
) -> Optional[dict[str, Any]]:
    """
    Verify and decode a timed token

    Returns:
        Decoded data if valid, None if invalid or expired
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        return serializer.loads(token, salt=salt, max_age=max_age)
    except SignatureExpired:
        logger.warning("Token expired")
        return None
    except BadSignature:
        logger.warning("Invalid token signature")
        return None


# ============================================================================
# ENCRYPTION AT REST
# ============================================================================


def get_fernet_key() -> bytes:
    if TOKEN_ENCRYPTION_KEY:
        return TOKEN_ENCRYPTION_KEY.encode()
    key = hashlib.sha256(SECRET_KEY.encode()).digest()
    return base64.urlsafe_b64encode(key)


def encrypt_secret(value: str) -> str:
    return Fernet(get_fernet_key()).encrypt(value.encode()).decode()


def decrypt_secret(value: str) -> str:
    try:
        return Fernet(get_fernet_key()).decrypt(value.encode()).decode()
    except InvalidToken:
        logger.error("❌ Failed to decrypt stored secret - encryption key changed?")
        raise


# ============================================================================
# TEXT CLEANING
# ============================================================================


def strip_html(text: Optional[str]) -> Optional[str]:
    """Remove all markup from user-provided text"""
    if text is None:
        return None
    return bleach.clean(text, tags=[], attributes={}, strip=True)
