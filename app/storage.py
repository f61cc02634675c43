"""
Object storage (Cloudflare R2 through the S3 API)
Contracts, signatures and receipt attachments are private objects served by presigned URLs
"""

import logging
from typing import Optional

import boto3
from botocore.config import Config

from .config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_SECRET_ACCESS_KEY
from .utils.sanitization import sanitize_storage_filename

logger = logging.getLogger(__name__)

__all__ = [
    "get_r2_client",
    "upload_file",
    "generate_presigned_url",
    "contract_storage_path",
    "R2_BUCKET_NAME",
]

# Presigned URL expiration time (1 hour)
PRESIGNED_URL_EXPIRATION = 3600


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
    )


def contract_storage_path(company_id: Optional[int], contract_id: int, filename: str) -> str:
    """Key layout for contract documents: {company}/{contract}/{file}"""
    return f"{company_id or 'no-company'}/{contract_id}/{sanitize_storage_filename(filename)}"


def upload_file(key: str, content: bytes, content_type: str) -> str:
    """Upload bytes to the bucket and return the key."""
    r2 = get_r2_client()
    try:
        r2.put_object(Bucket=R2_BUCKET_NAME, Key=key, Body=content, ContentType=content_type)
        logger.info(f"📤 Uploaded {len(content)} bytes to {key}")
        return key
    except Exception as e:
        logger.error(f"❌ Failed to upload {key}: {e}")
        raise


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION) -> str:
    """Generate a presigned URL for accessing a private object in R2."""
    r2 = get_r2_client()
    params = {"Bucket": R2_BUCKET_NAME, "Key": key}
    if key.lower().endswith(".pdf"):
        params["ResponseContentType"] = "application/pdf"
        params["ResponseContentDisposition"] = "inline"

    try:
        url = r2.generate_presigned_url("get_object", Params=params, ExpiresIn=expiration)
        logger.info(f"✅ Generated presigned URL for key: {key}")
        return url
    except Exception as e:
        logger.error(f"❌ Failed to generate presigned URL for key {key}: {e}")
        raise
