"""
Webhook Security Module

Signature verification for incoming payment webhooks:
- Constant-time signature comparison
- Timestamp validation against replays
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""

    pass


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Uses hmac.compare_digest which is designed for this purpose.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(
    timestamp: Optional[str],
    max_age: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[int] = None,
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
        now: Current unix time (defaults to time.time())

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
        current_time = int(now if now is not None else time.time())
        age = abs(current_time - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


def parse_stripe_signature_header(header: str) -> tuple[Optional[str], list[str]]:
    """Split `t=...,v1=...,v1=...` into (timestamp, [v1 signatures])"""
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: Optional[str],
    tolerance: int = MAX_WEBHOOK_AGE_SECONDS,
    now: Optional[int] = None,
) -> None:
    """
    Verify a Stripe webhook signature.

    The signed message is "{timestamp}.{raw body}", HMAC-SHA256 with the endpoint secret.

    Raises:
        WebhookSignatureError: If the header is missing or malformed, the timestamp is outside
        the tolerance, or no v1 signature matches
    """
    if not secret:
        logger.error("❌ STRIPE_WEBHOOK_SECRET not configured")
        raise WebhookSignatureError("Webhook secret not configured")

    if not signature_header:
        raise WebhookSignatureError("Missing signature header")

    timestamp, signatures = parse_stripe_signature_header(signature_header)
    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed signature header")

    if not verify_timestamp(timestamp, tolerance, now=now):
        raise WebhookSignatureError("Timestamp outside the tolerance zone")

    signed_payload = timestamp.encode("utf-8") + b"." + payload
    expected = compute_hmac_sha256(secret, signed_payload)

    if not any(constant_time_compare(expected, sig) for sig in signatures):
        logger.warning("🚫 Stripe webhook signature mismatch")
        raise WebhookSignatureError("No signatures found matching the expected signature")

    logger.info("✅ Stripe webhook signature verified")
