"""
Activity log
Best-effort record of user actions shown in the dashboard feed and admin views
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from .models import ActivityEvent

logger = logging.getLogger(__name__)

ACTIVITY_EVENT_TYPES = {
    "invoice_created",
    "invoice_sent",
    "invoice_paid",
    "invoice_deleted",
    "gig_created",
    "gig_updated",
    "gig_deleted",
    "client_created",
    "client_updated",
    "client_deleted",
    "expense_created",
    "expense_updated",
    "expense_deleted",
    "receipt_scanned",
    "document_imported",
    "contract_created",
    "contract_sent",
    "contract_signed",
    "tier_changed",
    "dropbox_connected",
}


def log_activity(
    db: Session,
    user_id: int,
    event_type: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    metadata: Optional[dict] = None,
) -> None:
    """Insert an activity event. Never raises: failures are logged and rolled back."""
    if event_type not in ACTIVITY_EVENT_TYPES:
        logger.warning(f"⚠️ Unknown activity event type: {event_type}")

    try:
        db.add(
            ActivityEvent(
                user_id=user_id,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                event_metadata=metadata or {},
            )
        )
        db.commit()
    except Exception as e:
        logger.error(f"Failed to log activity {event_type} for user {user_id}: {e}")
        db.rollback()
