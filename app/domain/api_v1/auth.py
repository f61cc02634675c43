"""
API key authentication for the public API

Keys look like ak_<64 hex chars> and are stored as sha256 digests. Every request is
rate limited per key prefix before the key is looked up.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import ApiKey, User
from ...rate_limiter import api_key_identifier, enforce_rate_limit
from ...security_utils import hash_api_key, is_valid_api_key_format

logger = logging.getLogger(__name__)

API_RATE_LIMIT = 60
API_RATE_WINDOW_SECONDS = 60

API_SCOPES = {
    "read:gigs",
    "write:gigs",
    "read:clients",
    "write:clients",
    "read:expenses",
    "write:expenses",
    "read:invoices",
    "write:invoices",
}


@dataclass
class ApiKeyContext:
    user: User
    api_key: ApiKey
    scopes: list[str] = field(default_factory=list)


async def validate_api_key(request: Request, db: Session = Depends(get_db)) -> ApiKeyContext:
    enforce_rate_limit(
        f"apiv1:{api_key_identifier(request)}", API_RATE_LIMIT, API_RATE_WINDOW_SECONDS
    )

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Missing or invalid Authorization header. Expected: Bearer <api_key>",
        )

    api_key = auth_header[7:].strip()
    if not is_valid_api_key_format(api_key):
        raise HTTPException(status_code=401, detail="Invalid API key format")

    key = (
        db.query(ApiKey)
        .filter(ApiKey.key_hash == hash_api_key(api_key), ApiKey.is_active.is_(True))
        .first()
    )
    if not key:
        logger.warning(f"🚫 Unknown or inactive API key {api_key[:11]}...")
        raise HTTPException(status_code=401, detail="Invalid or inactive API key")

    key.last_used_at = datetime.utcnow()
    db.commit()

    user = db.query(User).filter(User.id == key.user_id).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or inactive API key")

    return ApiKeyContext(user=user, api_key=key, scopes=list(key.scopes or []))


def require_scope(scope: str):
    """
    Dependency factory: validates the API key and checks it carries `scope`

    Example usage:
        @router.get("/gigs")
        async def list_gigs(ctx: ApiKeyContext = Depends(require_scope("read:gigs"))):
            ...
    """

    async def scope_checker(ctx: ApiKeyContext = Depends(validate_api_key)) -> ApiKeyContext:
        if scope not in ctx.scopes:
            raise HTTPException(
                status_code=403, detail=f"Insufficient permissions. Required scope: {scope}"
            )
        return ctx

    return scope_checker
