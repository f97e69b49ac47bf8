"""
Session helpers for the Google sign-in flow
"""

import logging
import secrets
import time
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .identity import IdentityClient, IdentityError, IdentityUser
from .integrations import save_integration

logger = logging.getLogger(__name__)


def generate_temporary_password() -> str:
    return f"temp_{int(time.time() * 1000)}_{secrets.token_hex(16)}"


async def create_user_session(identity: IdentityClient, user_id: str, email: str) -> Optional[dict]:
    """
    Sign a user in without knowing their password.

    The identity provider has no admin "create session" call, so a random
    temporary password is set and immediately used for a password sign-in.
    Returns {access_token, refresh_token} or None.
    """
    password = generate_temporary_password()
    try:
        await identity.admin_update_user(user_id, {"password": password})
        session = await identity.sign_in_with_password(email, password)
    except IdentityError as e:
        logger.error(f"❌ Failed to create session for {user_id}: {e.message}")
        return None

    if not session.get("access_token"):
        logger.error(f"❌ Sign-in for {user_id} returned no access token")
        return None
    return {"access_token": session["access_token"], "refresh_token": session.get("refresh_token") or ""}


async def update_user_google_metadata(
    identity: IdentityClient,
    user_id: str,
    google_calendar_sync: bool,
    google_id: Optional[str] = None,
    google_email: Optional[str] = None,
) -> IdentityUser:
    """Record calendar sync state on the user; turning sync off forgets the Google account"""
    existing = await identity.admin_get_user(user_id)
    metadata = {**existing.user_metadata, "google_calendar_sync": google_calendar_sync}

    if google_calendar_sync:
        if google_id is not None:
            metadata["google_id"] = google_id
        if google_email is not None:
            metadata["google_email"] = google_email
    else:
        metadata.pop("google_id", None)
        metadata.pop("google_email", None)

    return await identity.admin_update_user(user_id, {"user_metadata": metadata})


def save_google_calendar_integration(
    db: Session,
    workspace_id: int,
    access_token: str,
    refresh_token: Optional[str],
    expires_at: Optional[int],
    scope: Optional[str],
    email: Optional[str],
    google_id: Optional[str] = None,
) -> bool:
    """Store calendar credentials obtained during sign-in; failure is not fatal"""
    try:
        save_integration(
            db,
            workspace_id,
            "google_calendar",
            {"access_token": access_token, "refresh_token": refresh_token, "expires_at": expires_at},
            metadata={"scope": scope, "email": email},
            provider_user_id=google_id,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"⚠️ Failed to save Google Calendar integration for workspace {workspace_id}: {e}")
        return False
    return True
