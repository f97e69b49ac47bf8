"""
Sign in / sign up with Google

POST /auth/google            -> Google consent URL
GET  /auth/google/callback   -> code exchange, then hand the profile to /signup
GET  /auth/google/signup     -> find or create the user, open a session and
                                redirect to the frontend with a one-time id
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import API_URL, CALLBACK_SESSION_TTL_SECONDS, ENVIRONMENT, FRONTEND_URL, GOOGLE_SIGNIN_REDIRECT_URI
from ..database import get_db
from ..models import Configuration, Workspace
from ..security_utils import SIGNUP_PAYLOAD_SALT, decode_state, encode_state
from ..services import google_calendar_service as google
from ..services.auth_service import (
    create_user_session,
    save_google_calendar_integration,
    update_user_google_metadata,
)
from ..services.callback_store import store_callback_token
from ..services.identity import IdentityClient, IdentityError, get_identity
from ..services.workspace_service import get_or_create_workspace, update_user_workspace_metadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["Google Sign-In"])

BASE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
CALLBACK_COOKIE = "sb_callback_t"


class GoogleAuthRequest(BaseModel):
    enableCalendarSync: bool = False
    isSignup: bool = False
    returnTo: Optional[str] = None


def _frontend_redirect(path: str, error: str) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}{path}?error={quote(error, safe='')}")


def _session_redirect(callback_id: str, next_path: str) -> RedirectResponse:
    """Send the browser to the frontend callback page with the one-time id"""
    url = f"{FRONTEND_URL}/auth/callback?next={quote(next_path, safe='')}&t={callback_id}"
    response = RedirectResponse(url=url)
    response.set_cookie(
        CALLBACK_COOKIE,
        callback_id,
        max_age=CALLBACK_SESSION_TTL_SECONDS,
        httponly=True,
        secure=ENVIRONMENT == "production",
        samesite="lax",
        path="/",
    )
    return response


@router.post("")
async def start_google_auth(data: GoogleAuthRequest):
    """Build the Google consent URL"""
    if not google.is_configured():
        raise HTTPException(
            status_code=500,
            detail="Google OAuth not configured. Please set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET environment variables.",
        )

    scopes = BASE_SCOPES + (CALENDAR_SCOPES if data.enableCalendarSync else [])
    state_payload = {"enableCalendarSync": data.enableCalendarSync, "isSignup": data.isSignup}
    if data.returnTo:
        state_payload["returnTo"] = data.returnTo

    auth_url = google.build_authorization_url(
        scopes,
        encode_state(state_payload),
        GOOGLE_SIGNIN_REDIRECT_URI,
        prompt="consent" if data.isSignup else "select_account",
    )
    return {"authUrl": auth_url}


@router.get("/callback")
async def google_auth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
):
    try:
        state_data = decode_state(state)
    except ValueError:
        state_data = None
    error_path = "/register" if state_data and state_data.get("isSignup") is True else "/login"

    if error:
        logger.warning(f"⚠️ Google sign-in returned error: {error} {error_description or ''}")
        return _frontend_redirect(error_path, error_description or error)
    if not code:
        return _frontend_redirect("/login", "missing_code")
    if state_data is None:
        return _frontend_redirect("/login", "invalid_state")
    if not google.is_configured():
        return _frontend_redirect("/login", "config_missing")

    try:
        tokens = await google.exchange_code(code, GOOGLE_SIGNIN_REDIRECT_URI)
        profile = await google.get_user_info(tokens["access_token"])
    except (google.GoogleOAuthError, httpx.HTTPError) as e:
        logger.error(f"❌ Google sign-in token exchange failed: {e}")
        return _frontend_redirect(error_path, str(e) or "oauth_failed")

    granted = tokens.get("scope") or ""
    payload = {
        "access_token": tokens["access_token"],
        "refresh_token": tokens.get("refresh_token"),
        "expires_at": tokens.get("expires_at"),
        "scope": granted,
        "email": profile.get("email"),
        "name": profile.get("name"),
        "picture": profile.get("picture"),
        "google_id": profile.get("id"),
        "enableCalendarSync": state_data.get("enableCalendarSync") is True
        and "https://www.googleapis.com/auth/calendar" in granted,
        "isSignup": state_data.get("isSignup") is True,
        "returnTo": state_data.get("returnTo"),
    }
    signed = quote(encode_state(payload, SIGNUP_PAYLOAD_SALT), safe="")
    return RedirectResponse(url=f"{API_URL}/auth/google/signup?payload={signed}")


async def _open_session(
    db: Session,
    identity: IdentityClient,
    user_id: str,
    workspace_id: int,
    data: dict,
) -> Optional[str]:
    """Save calendar credentials and create a session; returns the one-time id"""
    if data.get("enableCalendarSync") and data.get("refresh_token"):
        save_google_calendar_integration(
            db,
            workspace_id,
            data["access_token"],
            data["refresh_token"],
            data.get("expires_at"),
            data.get("scope"),
            data["email"],
            data.get("google_id"),
        )

    session = await create_user_session(identity, user_id, data["email"])
    if session is None:
        return None
    return store_callback_token(session["access_token"], session["refresh_token"])


def _remove_workspace(db: Session, workspace_id: int) -> None:
    db.query(Configuration).filter(Configuration.workspace_id == workspace_id).delete()
    db.query(Workspace).filter(Workspace.id == workspace_id).delete()
    db.commit()


@router.get("/signup")
async def google_signup(
    payload: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    """Finish Google sign-in for existing users, or create the account on sign-up"""
    if not payload:
        return _frontend_redirect("/login", "missing_data")
    try:
        data = decode_state(payload, SIGNUP_PAYLOAD_SALT)
    except ValueError:
        return _frontend_redirect("/login", "invalid_state")

    email, name, google_id = data.get("email"), data.get("name"), data.get("google_id")
    if not email or not name or not google_id:
        return _frontend_redirect("/login", "missing_user_data")

    enable_sync = data.get("enableCalendarSync") is True
    google_metadata = {"google_calendar_sync": enable_sync, "google_id": google_id, "picture": data.get("picture")}

    try:
        existing = await identity.admin_find_user_by_email(email)
    except IdentityError as e:
        logger.error(f"❌ Google sign-in user lookup failed: {e.message}")
        return _frontend_redirect("/login", "server_config")

    if existing:
        try:
            workspace_id, _ = get_or_create_workspace(db, existing.id, name, email)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to get/create workspace for {existing.id}: {e}")
            return _frontend_redirect("/login", "workspace_error")

        try:
            await update_user_workspace_metadata(
                identity, existing.id, workspace_id, existing.user_metadata, google_metadata
            )
            await update_user_google_metadata(identity, existing.id, enable_sync, google_id, email)
        except IdentityError as e:
            logger.warning(f"⚠️ Failed to update metadata for {existing.id}: {e.message}")

        callback_id = await _open_session(db, identity, existing.id, workspace_id, data)
        if not callback_id:
            return _frontend_redirect("/login", "signin_failed")

        return_to = data.get("returnTo")
        next_path = return_to if isinstance(return_to, str) and return_to.startswith("/") else "/"
        logger.info(f"✅ Google sign-in for existing user {existing.id}")
        return _session_redirect(callback_id, next_path)

    if not data.get("isSignup"):
        return _frontend_redirect("/register", "user_not_found")

    signup_metadata = {"name": name, "signup_method": "google", **google_metadata}
    try:
        user = await identity.admin_create_user(email, email_confirm=True, user_metadata=signup_metadata)
    except IdentityError as e:
        logger.error(f"❌ Google sign-up user creation failed for {email}: {e.message}")
        if "already" in e.message or "exists" in e.message:
            return _frontend_redirect("/login", "user_already_exists")
        return _frontend_redirect("/register", "user_creation_failed")

    try:
        workspace_id, _ = get_or_create_workspace(db, user.id, name, email)
    except SQLAlchemyError as e:
        logger.error(f"❌ Workspace creation failed for new user {user.id}: {e}")
        await identity.admin_delete_user(user.id)
        return _frontend_redirect("/register", "workspace_creation_failed")

    try:
        await update_user_workspace_metadata(identity, user.id, workspace_id, user.user_metadata, signup_metadata)
        await update_user_google_metadata(identity, user.id, enable_sync, google_id, email)
    except IdentityError as e:
        logger.error(f"❌ Failed to link new user {user.id} to workspace {workspace_id}: {e.message}")
        _remove_workspace(db, workspace_id)
        await identity.admin_delete_user(user.id)
        return _frontend_redirect("/register", "user_update_failed")

    callback_id = await _open_session(db, identity, user.id, workspace_id, data)
    if not callback_id:
        return RedirectResponse(url=f"{FRONTEND_URL}/login?message=account_created_please_signin")

    logger.info(f"✅ Google sign-up created user {user.id} with workspace {workspace_id}")
    return _session_redirect(callback_id, "/register?onboarding=1")
