"""
Workspace bootstrap
Every workspace admin owns exactly one workspace, created on first sign-in.
"""

import logging
import re
import time
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Configuration, EventType, Workspace
from .identity import IdentityClient, IdentityUser

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TYPE_SLUG = "30mins-chat"


def get_default_configuration_settings(account_name: str) -> dict[str, Any]:
    """Settings document for a freshly created workspace"""
    return {
        "general": {
            "logoUrl": None,
            "accentColor": "#1de4a9",
            "accountName": account_name,
            "primaryColor": "#4b39f4",
        },
        "intake_form": {
            "name": True,
            "email": True,
            "phone": True,
            "services": {"enabled": False, "allowed_service_ids": []},
            "custom_fields": [],
            "additional_description": True,
        },
        "availability": {},
        "notifications": {
            "sms-reminder": True,
            "email-reminder": True,
            "auto-confirm-booking": True,
            "post-meeting-follow-up": True,
        },
    }


def build_workspace_slug(email: Optional[str]) -> str:
    local_part = (email or "").split("@")[0] or "workspace"
    slug = f"{local_part}-{int(time.time() * 1000)}".lower()
    return re.sub(r"[^a-z0-9-]", "", slug)


def get_user_workspace(db: Session, user_id: str) -> Optional[Workspace]:
    return db.query(Workspace).filter(Workspace.owner_id == user_id).order_by(Workspace.id).first()


def get_or_create_workspace(
    db: Session, user_id: str, user_name: Optional[str], user_email: Optional[str]
) -> tuple[int, bool]:
    """Return (workspace_id, is_new) for the user's workspace"""
    existing = get_user_workspace(db, user_id)
    if existing:
        return existing.id, False

    display_name = (user_name or "").strip() or (user_email or "").split("@")[0] or "User"
    workspace = Workspace(
        name=f"{display_name}'s Workspace",
        slug=build_workspace_slug(user_email),
        owner_id=user_id,
    )
    db.add(workspace)
    db.commit()
    db.refresh(workspace)
    logger.info(f"✅ Created workspace {workspace.id} for user {user_id}")

    try:
        db.add(
            Configuration(
                workspace_id=workspace.id,
                settings=get_default_configuration_settings(workspace.name),
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Failed to create configuration for workspace {workspace.id}: {e}")
        db.delete(workspace)
        db.commit()
        raise

    # Default event type is a convenience; the workspace is usable without it
    try:
        db.add(
            EventType(
                workspace_id=workspace.id,
                owner_id=user_id,
                title=DEFAULT_EVENT_TYPE_SLUG,
                slug=DEFAULT_EVENT_TYPE_SLUG,
                duration_minutes=30,
                is_public=False,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"⚠️ Failed to create default event type for workspace {workspace.id}: {e}")

    return workspace.id, True


async def update_user_workspace_metadata(
    identity: IdentityClient,
    user_id: str,
    workspace_id: int,
    existing_metadata: Optional[dict] = None,
    additional_metadata: Optional[dict] = None,
) -> IdentityUser:
    """Link the user to the workspace as its admin"""
    metadata = {
        **(existing_metadata or {}),
        **(additional_metadata or {}),
        "workspace_id": workspace_id,
        "role": "workspace_admin",
    }
    return await identity.admin_update_user(user_id, {"user_metadata": metadata})
