"""Dropbox router - OAuth connection and invoice import"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ....auth import get_current_user
from ....config import FRONTEND_URL
from ....database import get_db
from ....models import User
from ....security_utils import generate_timed_token, verify_timed_token
from ....services import dropbox_service
from .service import MAX_SCAN_FILES, DropboxImportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dropbox", tags=["Dropbox"])

OAUTH_STATE_SALT = "dropbox-oauth"
OAUTH_STATE_MAX_AGE = 600


class ScanAllRequest(BaseModel):
    path: str = ""
    limit: Optional[int] = Field(default=None, ge=1, le=MAX_SCAN_FILES)


def get_dropbox_service(db: Session = Depends(get_db)) -> DropboxImportService:
    """Dependency injection for DropboxImportService"""
    return DropboxImportService(db)


def frontend_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(f"{FRONTEND_URL.rstrip('/')}/import?{query}", status_code=302)


# ============================================================================
# OAUTH
# ============================================================================


@router.get("/auth")
async def dropbox_auth(current_user: User = Depends(get_current_user)):
    """Authorize URL; the state carries the signed user id"""
    state = generate_timed_token({"user_id": current_user.id}, salt=OAUTH_STATE_SALT)
    return {"url": dropbox_service.build_authorize_url(state)}


@router.get("/callback")
async def dropbox_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    service: DropboxImportService = Depends(get_dropbox_service),
):
    if error:
        logger.warning(f"⚠️ Dropbox authorization denied: {error}")
        return frontend_redirect("error=dropbox_denied")
    if not code or not state:
        return frontend_redirect("error=dropbox_missing_code")

    payload = verify_timed_token(state, max_age=OAUTH_STATE_MAX_AGE, salt=OAUTH_STATE_SALT)
    if not payload or not payload.get("user_id"):
        logger.warning("🚫 Invalid Dropbox OAuth state")
        return frontend_redirect("error=dropbox_invalid_state")

    try:
        tokens = await dropbox_service.exchange_code_for_tokens(code)
    except dropbox_service.DropboxError as e:
        logger.error(f"❌ Dropbox connection failed: {e}")
        return frontend_redirect("error=dropbox_token_exchange")

    service.complete_connection(payload["user_id"], tokens)
    return frontend_redirect("connected=true")


@router.delete("/connection")
async def dropbox_disconnect(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"disconnected": dropbox_service.disconnect(current_user.id, db)}


# ============================================================================
# INVOICE IMPORT
# ============================================================================


@router.get("/list-invoices")
async def list_invoices(
    path: str = Query(""),
    current_user: User = Depends(get_current_user),
    service: DropboxImportService = Depends(get_dropbox_service),
):
    return await service.list_invoices(current_user, path)


@router.post("/scan-all")
async def scan_all(
    body: ScanAllRequest,
    current_user: User = Depends(get_current_user),
    service: DropboxImportService = Depends(get_dropbox_service),
):
    """Parse invoices that are not yet booked and return import previews"""
    return await service.scan_all(current_user, body.path, body.limit)


__all__ = ["router"]
