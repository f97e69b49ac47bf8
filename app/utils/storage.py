"""
Image storage utilities for workspace logos.
Handles upload to R2, public URL building and validation.
"""

import logging
import time
from typing import Optional, Tuple

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .. import config

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE_BYTES = 5 * 1024 * 1024  # 5MB
ALLOWED_IMAGE_MIME_TYPES = [
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
]


class StorageError(Exception):
    pass


def get_r2_client():
    """Get configured boto3 client for Cloudflare R2"""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{config.R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=config.R2_ACCESS_KEY_ID,
        aws_secret_access_key=config.R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def validate_image_file(size_bytes: int, mime_type: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Validate an image before upload.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if mime_type not in ALLOWED_IMAGE_MIME_TYPES:
        return False, "Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed."
    if size_bytes > MAX_IMAGE_SIZE_BYTES:
        return False, "File size exceeds 5MB limit."
    return True, None


def build_logo_key(filename: Optional[str], workspace_id: Optional[int] = None) -> str:
    """workspace-{id}-{ms}.{ext}, or workspace-{ms}.{ext} before the workspace exists"""
    ext = filename.rsplit(".", 1)[-1].lower() if filename and "." in filename else "png"
    millis = int(time.time() * 1000)
    if workspace_id:
        return f"workspace-{workspace_id}-{millis}.{ext}"
    return f"workspace-{millis}.{ext}"


def get_public_url(key: str) -> str:
    if config.R2_PUBLIC_URL:
        return f"{config.R2_PUBLIC_URL}/{key}"
    return f"https://{config.R2_BUCKET_NAME}.{config.R2_ACCOUNT_ID}.r2.dev/{key}"


def upload_public_file(key: str, content: bytes, content_type: str) -> str:
    """Upload and return the public URL"""
    try:
        get_r2_client().put_object(
            Bucket=config.R2_BUCKET_NAME,
            Key=key,
            Body=content,
            ContentType=content_type,
            CacheControl="public, max-age=31536000",
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(f"❌ Failed to upload {key} to R2: {e}")
        raise StorageError(f"Failed to upload file: {str(e)}") from e

    logger.info(f"✅ Uploaded {key} to R2 ({len(content)} bytes)")
    return get_public_url(key)


def delete_file(key: str) -> None:
    try:
        get_r2_client().delete_object(Bucket=config.R2_BUCKET_NAME, Key=key)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"❌ Failed to delete {key} from R2: {e}")
        raise StorageError(f"Failed to delete file: {str(e)}") from e
    logger.info(f"🗑️ Deleted {key} from R2")
