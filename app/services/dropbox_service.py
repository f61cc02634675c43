"""
Dropbox Service
OAuth (offline access with refresh tokens), folder listing and file download over the HTTP API
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ..config import DROPBOX_APP_KEY, DROPBOX_APP_SECRET, DROPBOX_REDIRECT_URI
from ..models import DropboxConnection
from ..security_utils import decrypt_secret, encrypt_secret
from .invoice_parser import extract_invoice_number_from_filename

logger = logging.getLogger(__name__)

DROPBOX_AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
DROPBOX_TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
DROPBOX_API = "https://api.dropboxapi.com/2"
DROPBOX_CONTENT_API = "https://content.dropboxapi.com/2"

DEFAULT_EXPIRES_IN = 14400  # 4 hours
REFRESH_MARGIN = timedelta(minutes=5)


class DropboxError(Exception):
    pass


class DropboxNotConnectedError(DropboxError):
    pass


def build_authorize_url(state: str) -> str:
    params = {
        "client_id": DROPBOX_APP_KEY,
        "redirect_uri": DROPBOX_REDIRECT_URI,
        "response_type": "code",
        "token_access_type": "offline",
        "state": state,
    }
    return f"{DROPBOX_AUTHORIZE_URL}?{urlencode(params)}"


async def exchange_code_for_tokens(code: str) -> dict:
    """Exchange an authorization code for access and refresh tokens"""
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(
            DROPBOX_TOKEN_URL,
            data={
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": DROPBOX_REDIRECT_URI,
                "client_id": DROPBOX_APP_KEY,
                "client_secret": DROPBOX_APP_SECRET,
            },
        )

    if response.status_code != 200:
        logger.error(f"❌ Dropbox token exchange failed: {response.text}")
        raise DropboxError("Token exchange failed")

    tokens = response.json()
    if not tokens.get("access_token"):
        raise DropboxError("No access token in token response")
    return tokens


def store_tokens(user_id: int, tokens: dict, db: Session) -> DropboxConnection:
    """Encrypt and upsert the user's Dropbox tokens"""
    expires_in = tokens.get("expires_in") or DEFAULT_EXPIRES_IN
    connection = db.query(DropboxConnection).filter(DropboxConnection.user_id == user_id).first()
    if connection is None:
        connection = DropboxConnection(user_id=user_id)
        db.add(connection)

    connection.access_token_encrypted = encrypt_secret(tokens["access_token"])
    if tokens.get("refresh_token"):
        connection.refresh_token_encrypted = encrypt_secret(tokens["refresh_token"])
    connection.account_id = tokens.get("account_id") or connection.account_id
    connection.token_expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
    db.commit()
    db.refresh(connection)
    logger.info(f"✅ Dropbox connected for user {user_id}")
    return connection


async def refresh_access_token(connection: DropboxConnection, db: Session) -> str:
    if not connection.refresh_token_encrypted:
        raise DropboxNotConnectedError("Dropbox session expired - reconnect required")

    logger.info("🔄 Dropbox token expired, refreshing...")
    refresh_token = decrypt_secret(connection.refresh_token_encrypted)
    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(
            DROPBOX_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": DROPBOX_APP_KEY,
                "client_secret": DROPBOX_APP_SECRET,
            },
        )

    if response.status_code != 200:
        logger.error(f"❌ Dropbox token refresh failed: {response.text}")
        raise DropboxNotConnectedError("Dropbox token refresh failed - reconnect required")

    tokens = response.json()
    new_access_token = tokens.get("access_token")
    if not new_access_token:
        raise DropboxNotConnectedError("No access token in refresh response")

    connection.access_token_encrypted = encrypt_secret(new_access_token)
    connection.token_expires_at = datetime.utcnow() + timedelta(
        seconds=tokens.get("expires_in") or DEFAULT_EXPIRES_IN
    )
    db.commit()
    logger.info("✅ Dropbox token refreshed successfully")
    return new_access_token


async def get_valid_access_token(user_id: int, db: Session) -> str:
    """Decrypted access token for the user, refreshed first if it is about to expire"""
    connection = db.query(DropboxConnection).filter(DropboxConnection.user_id == user_id).first()
    if connection is None:
        raise DropboxNotConnectedError("Dropbox not connected")

    if connection.token_expires_at and connection.token_expires_at <= datetime.utcnow() + REFRESH_MARGIN:
        return await refresh_access_token(connection, db)
    return decrypt_secret(connection.access_token_encrypted)


async def list_folder(access_token: str, path: str) -> list[dict[str, Any]]:
    """All entries of a folder, following the pagination cursor"""
    headers = {"Authorization": f"Bearer {access_token}"}
    entries: list[dict[str, Any]] = []

    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.post(
            f"{DROPBOX_API}/files/list_folder", headers=headers, json={"path": path}
        )
        while True:
            if response.status_code == 409 and "not_found" in response.text:
                return []
            if response.status_code != 200:
                logger.error(f"❌ Dropbox list_folder failed for {path}: {response.text}")
                raise DropboxError("Failed to list folder")

            result = response.json()
            entries.extend(result.get("entries", []))
            if not result.get("has_more"):
                break
            response = await client.post(
                f"{DROPBOX_API}/files/list_folder/continue",
                headers=headers,
                json={"cursor": result["cursor"]},
            )

    return entries


def invoice_files(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """PDF files whose name carries an invoice number, sorted by that number"""
    invoices = []
    for entry in entries:
        name = entry.get("name", "")
        if entry.get(".tag") != "file" or not name.lower().endswith(".pdf"):
            continue
        invoice_number = extract_invoice_number_from_filename(name)
        if not invoice_number:
            continue
        invoices.append(
            {
                "path": entry.get("path_display") or entry.get("path_lower") or "",
                "name": name,
                "size": entry.get("size", 0),
                "modified": entry.get("client_modified", ""),
                "invoiceNumber": invoice_number,
            }
        )
    return sorted(invoices, key=lambda inv: inv["invoiceNumber"])


async def download_file(access_token: str, path: str) -> bytes:
    async with httpx.AsyncClient(timeout=60.0) as client:
        response = await client.post(
            f"{DROPBOX_CONTENT_API}/files/download",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Dropbox-API-Arg": json.dumps({"path": path}),
            },
        )

    if response.status_code != 200:
        logger.error(f"❌ Dropbox download failed for {path}: {response.text}")
        raise DropboxError(f"Failed to download {path}")

    logger.info(f"📥 Downloaded {len(response.content)} bytes from Dropbox: {path}")
    return response.content


def disconnect(user_id: int, db: Session) -> bool:
    connection = db.query(DropboxConnection).filter(DropboxConnection.user_id == user_id).first()
    if connection is None:
        return False
    db.delete(connection)
    db.commit()
    return True
