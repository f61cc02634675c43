"""Calendar router - subscribable ICS feed of the user's gigs"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...security_utils import generate_secure_token
from ...services.ics_feed import build_calendar
from ...webhook_security import constant_time_compare
from ..gigs.repository import GigRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["Calendar"])


@router.get("/feed")
async def calendar_feed(
    user: Optional[int] = Query(None),
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """ICS feed for calendar apps; authenticated by the per-user feed token"""
    if not user or not token:
        raise HTTPException(status_code=400, detail="Missing user or token")

    owner = db.query(User).filter(User.id == user).first()
    if not owner or not constant_time_compare(owner.calendar_token or "", token):
        logger.warning(f"🚫 Invalid calendar token for user {user}")
        raise HTTPException(status_code=403, detail="Invalid token")

    gigs = GigRepository.get_calendar_gigs(db, owner.id)
    body = build_calendar(gigs, locale=owner.locale or "sv")
    return Response(
        content=body,
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": 'inline; filename="gigbook.ics"',
            "Cache-Control": "no-cache, no-store, must-revalidate",
        },
    )


@router.post("/feed/token")
async def rotate_calendar_token(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Issue a new feed token; the previous feed URL stops working"""
    current_user.calendar_token = generate_secure_token()
    db.commit()
    db.refresh(current_user)
    logger.info(f"🔑 Rotated calendar token for user {current_user.id}")

    return {
        "token": current_user.calendar_token,
        "feedPath": f"/calendar/feed?user={current_user.id}&token={current_user.calendar_token}",
    }


__all__ = ["router"]
