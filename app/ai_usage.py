"""
AI usage tracking
Records token usage and estimated cost of every Anthropic call
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .models import AiUsageLog

logger = logging.getLogger(__name__)

# USD per 1M tokens
MODEL_PRICING = {
    "claude-haiku-4-5-latest": {"input": 0.80, "output": 4.00},
    "claude-haiku-4-5-20251001": {"input": 0.80, "output": 4.00},
    "claude-sonnet-4-5": {"input": 3.00, "output": 15.00},
}
FALLBACK_PRICING = {"input": 0.80, "output": 4.00}

USAGE_TYPES = {
    "receipt_scan_text",
    "receipt_scan_vision",
    "document_classify_text",
    "document_classify_vision",
    "invoice_parse",
}


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Estimated cost in USD"""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        logger.warning(f"Unknown model pricing: {model}, using haiku pricing")
        pricing = FALLBACK_PRICING
    return (input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000


def log_ai_usage(
    db: Optional[Session],
    usage_type: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    user_id: Optional[int] = None,
    metadata: Optional[dict] = None,
) -> None:
    """Persist one usage row. Logging must never break the calling flow."""
    if db is None:
        return

    try:
        db.add(
            AiUsageLog(
                user_id=user_id,
                usage_type=usage_type,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                estimated_cost_usd=calculate_cost(model, input_tokens, output_tokens),
                event_metadata=metadata,
            )
        )
        db.commit()
    except Exception as e:
        logger.error(f"Failed to log AI usage ({usage_type}): {e}")
        db.rollback()
