"""
Stored OAuth credentials per workspace (Google Calendar, Zoom)
"""

import logging
from typing import Literal, Optional, TypedDict

from sqlalchemy.orm import Session

from ..models import Integration
from ..security_utils import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

IntegrationType = Literal["google_calendar", "zoom"]
INTEGRATION_TYPES: tuple[str, ...] = ("google_calendar", "zoom")


class OAuthTokens(TypedDict, total=False):
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]  # unix seconds


class IntegrationRecord(TypedDict):
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[int]
    metadata: dict
    provider_user_id: Optional[str]


def _get_row(db: Session, workspace_id: int, integration_type: str) -> Optional[Integration]:
    return (
        db.query(Integration)
        .filter(Integration.workspace_id == workspace_id, Integration.provider == integration_type)
        .first()
    )


def get_integration(
    db: Session, workspace_id: int, integration_type: IntegrationType
) -> Optional[IntegrationRecord]:
    """Decrypted credentials, or None when not connected"""
    row = _get_row(db, workspace_id, integration_type)
    if not row:
        return None

    credentials = row.credentials or {}
    access_token = decrypt_token(credentials.get("access_token"))
    if not access_token:
        return None

    return {
        "access_token": access_token,
        "refresh_token": decrypt_token(credentials.get("refresh_token")),
        "expires_at": credentials.get("expires_at"),
        "metadata": row.config or {},
        "provider_user_id": row.provider_user_id,
    }


def save_integration(
    db: Session,
    workspace_id: int,
    integration_type: IntegrationType,
    tokens: OAuthTokens,
    metadata: Optional[dict] = None,
    provider_user_id: Optional[str] = None,
) -> Integration:
    """Insert or update the workspace's credentials for a provider.

    refresh_token and expires_at are only written when provided, so a refresh
    response without a new refresh token keeps the old one.
    """
    row = _get_row(db, workspace_id, integration_type)
    credentials = dict(row.credentials or {}) if row else {}

    credentials["access_token"] = encrypt_token(tokens["access_token"])
    if tokens.get("refresh_token") is not None:
        credentials["refresh_token"] = encrypt_token(tokens["refresh_token"])
    if tokens.get("expires_at") is not None:
        credentials["expires_at"] = tokens["expires_at"]

    if row:
        row.credentials = credentials
        if metadata is not None:
            row.config = metadata
        if provider_user_id is not None:
            row.provider_user_id = provider_user_id
    else:
        row = Integration(
            workspace_id=workspace_id,
            provider=integration_type,
            credentials=credentials,
            config=metadata or {},
            provider_user_id=provider_user_id,
        )
        db.add(row)

    db.commit()
    db.refresh(row)
    logger.info(f"✅ Saved {integration_type} integration for workspace {workspace_id}")
    return row


def delete_integration(db: Session, workspace_id: int, integration_type: IntegrationType) -> bool:
    row = _get_row(db, workspace_id, integration_type)
    if not row:
        return False
    db.delete(row)
    db.commit()
    logger.info(f"🗑️ Deleted {integration_type} integration for workspace {workspace_id}")
    return True


def get_workspace_integrations(db: Session, workspace_id: int) -> dict:
    """Connection flags for the integrations page"""
    google = get_integration(db, workspace_id, "google_calendar")
    zoom = get_integration(db, workspace_id, "zoom")
    return {
        "google_calendar": google is not None,
        "zoom": zoom is not None,
        "google_calendar_email": (google["metadata"].get("email") if google else None),
    }
