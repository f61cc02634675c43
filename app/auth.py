import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import SESSION_JWT_AUDIENCE, SESSION_JWT_SECRET
from .database import get_db
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def decode_session_token(token: str) -> dict:
    """
    Verify a session JWT issued by the auth provider.
    Signature, expiry and audience are all checked.
    """
    try:
        return jwt.decode(
            token,
            SESSION_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SESSION_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        logger.warning("⚠️ Expired session token")
        raise HTTPException(status_code=401, detail="Session expired") from e
    except JWTError as e:
        logger.warning(f"⚠️ Invalid session token: {e}")
        raise HTTPException(status_code=401, detail="Invalid token") from e


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the signed-in user from the session bearer token, creating the row on first sight"""

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = decode_session_token(credentials.credentials)
    auth_uid = claims.get("sub")
    email = claims.get("email")

    if not auth_uid:
        logger.error(f"❌ Token missing subject claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.auth_uid == auth_uid).first()
    if user:
        return user

    if not email:
        raise HTTPException(status_code=401, detail="Invalid token claims")

    logger.info(f"🆕 Creating new user: {email}")
    user = User(
        auth_uid=auth_uid,
        email=email,
        full_name=(claims.get("user_metadata") or {}).get("full_name"),
        plan="free",
    )
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
    except Exception as e:
        db.rollback()
        if "unique" in str(e).lower() or "duplicate key" in str(e).lower():
            raise HTTPException(
                status_code=409,
                detail="This email is already registered. Please sign in with your existing account.",
            ) from e
        raise
    return user
