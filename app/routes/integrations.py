"""
Workspace integrations: Google Calendar and Zoom OAuth connections
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import FRONTEND_URL, GOOGLE_REDIRECT_URI, ZOOM_CLIENT_ID, ZOOM_REDIRECT_URI
from ..database import get_db
from ..security_utils import decode_state, encode_state
from ..services import google_calendar_service as google
from ..services import zoom_service
from ..services.auth_service import update_user_google_metadata
from ..services.identity import IdentityClient, IdentityError, IdentityUser, get_identity
from ..services.integrations import INTEGRATION_TYPES, delete_integration, get_workspace_integrations, save_integration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["Integrations"])

GOOGLE_CONNECT_SCOPES = [
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]
NO_WORKSPACE = "Workspace not found. Please complete onboarding first."


class DisconnectRequest(BaseModel):
    type: Optional[str] = None


class ZoomMeetingRequest(BaseModel):
    topic: Optional[str] = None
    start_time: Optional[str] = None
    duration: Optional[int] = None
    timezone: Optional[str] = None
    agenda: Optional[str] = None
    settings: Optional[dict] = None


def _integrations_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(url=f"{FRONTEND_URL}/integrations?{query}")


async def _resolve_state(state: str, identity: IdentityClient) -> tuple[Optional[str], Optional[int]]:
    """
    (user_id, workspace_id) from a signed connect state

    The user must still exist and still belong to the workspace named in the
    state; otherwise user_id is None. Raises ValueError for a bad signature.
    """
    decoded = decode_state(state)
    user_id = decoded.get("userId")
    if not user_id:
        raise ValueError("Invalid state")

    try:
        user = await identity.admin_get_user(user_id)
    except IdentityError as e:
        logger.warning(f"⚠️ Could not load user {user_id} from connect state: {e.message}")
        return None, None
    if user.deactivated:
        return None, None

    claimed = decoded.get("workspaceId")
    if user.workspace_id is None:
        return user_id, None
    if claimed is not None and str(claimed) != str(user.workspace_id):
        logger.warning(
            f"⚠️ Connect state for {user_id} names workspace {claimed}, user is in {user.workspace_id}"
        )
        return None, None
    return user_id, user.workspace_id


@router.get("/status")
async def get_integration_status(
    current_user: IdentityUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    workspace_id = current_user.workspace_id
    if workspace_id is None:
        return {"integrations": {"google_calendar": False, "zoom": False, "google_calendar_email": None}}

    status = get_workspace_integrations(db, workspace_id)
    if status["google_calendar"] and not status["google_calendar_email"]:
        status["google_calendar_email"] = current_user.user_metadata.get("google_email")
    return {"integrations": status}


@router.post("/disconnect")
async def disconnect_integration(
    data: DisconnectRequest,
    current_user: IdentityUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    if current_user.workspace_id is None:
        raise HTTPException(status_code=400, detail="No workspace found")
    if data.type not in INTEGRATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid integration type")

    try:
        delete_integration(db, current_user.workspace_id, data.type)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Failed to disconnect {data.type} for workspace {current_user.workspace_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to disconnect") from e

    if data.type == "google_calendar":
        try:
            await update_user_google_metadata(identity, current_user.id, False)
        except IdentityError as e:
            logger.warning(f"⚠️ Failed to clear Google metadata for {current_user.id}: {e.message}")

    return {"success": True}


# ============================================================================
# GOOGLE CALENDAR
# ============================================================================


@router.get("/google/connect")
async def connect_google_calendar(current_user: IdentityUser = Depends(get_current_user)):
    """Consent URL for connecting the workspace calendar"""
    if current_user.workspace_id is None:
        raise HTTPException(status_code=400, detail=NO_WORKSPACE)
    if not google.is_configured():
        raise HTTPException(
            status_code=500,
            detail="Google OAuth not configured. Please set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET environment variables.",
        )

    state = encode_state({"userId": current_user.id, "workspaceId": current_user.workspace_id})
    auth_url = google.build_authorization_url(GOOGLE_CONNECT_SCOPES, state, GOOGLE_REDIRECT_URI)
    return {"authUrl": auth_url}


@router.get("/google/callback")
async def google_calendar_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    if error:
        logger.warning(f"⚠️ Google Calendar OAuth error: {error} {error_description or ''}")
        return _integrations_redirect(f"error=oauth_error&message={quote(error_description or error, safe='')}")
    if not code or not state:
        return _integrations_redirect("error=missing_params")

    try:
        user_id, workspace_id = await _resolve_state(state, identity)
    except ValueError:
        return _integrations_redirect("error=invalid_state")
    if not user_id:
        return _integrations_redirect("error=unauthorized")
    if not workspace_id:
        return _integrations_redirect("error=no_workspace")
    if not google.is_configured():
        return _integrations_redirect("error=config_missing")

    try:
        tokens = await google.exchange_code(code, GOOGLE_REDIRECT_URI)
    except google.GoogleOAuthError as e:
        logger.error(f"❌ Google Calendar callback error: {e}")
        return _integrations_redirect(f"error=callback_failed&message={quote(str(e), safe='')}")

    google_email: Optional[str] = None
    google_id: Optional[str] = None
    try:
        profile = await google.get_user_info(tokens["access_token"])
        google_email, google_id = profile.get("email"), profile.get("id")
    except google.GoogleOAuthError as e:
        logger.warning(f"⚠️ Google user info unavailable, saving integration without it: {e}")

    try:
        save_integration(
            db,
            workspace_id,
            "google_calendar",
            tokens,
            metadata={"scope": tokens.get("scope"), "email": google_email},
            provider_user_id=google_id,
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Failed to save Google Calendar integration for workspace {workspace_id}: {e}")
        return _integrations_redirect("error=save_failed")

    try:
        await update_user_google_metadata(identity, user_id, True, google_id, google_email)
    except IdentityError as e:
        logger.warning(f"⚠️ Failed to sync Google metadata for {user_id}: {e.message}")

    logger.info(f"✅ Google Calendar connected for workspace {workspace_id}")
    return _integrations_redirect("success=google_connected")


# ============================================================================
# ZOOM
# ============================================================================


@router.get("/zoom/connect")
async def connect_zoom(current_user: IdentityUser = Depends(get_current_user)):
    if current_user.workspace_id is None:
        raise HTTPException(status_code=400, detail=NO_WORKSPACE)
    if not ZOOM_CLIENT_ID:
        raise HTTPException(status_code=500, detail="Zoom client ID not configured")

    state = encode_state({"userId": current_user.id, "workspaceId": current_user.workspace_id})
    return {"authUrl": zoom_service.build_authorization_url(state, ZOOM_REDIRECT_URI)}


@router.get("/zoom/callback")
async def zoom_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    if not code or not state:
        return _integrations_redirect("error=missing_params")

    try:
        user_id, workspace_id = await _resolve_state(state, identity)
    except ValueError:
        return _integrations_redirect("error=invalid_state")
    if not user_id:
        return _integrations_redirect("error=unauthorized")
    if not workspace_id:
        return _integrations_redirect("error=no_workspace")

    try:
        tokens = await zoom_service.exchange_code(code, ZOOM_REDIRECT_URI)
        if not tokens.get("access_token"):
            return _integrations_redirect("error=no_token")
        zoom_user = await zoom_service.get_current_user(tokens["access_token"])
    except zoom_service.ZoomError as e:
        logger.error(f"❌ Zoom callback error: {e.message}")
        return _integrations_redirect("error=callback_failed")

    try:
        save_integration(
            db,
            workspace_id,
            "zoom",
            tokens,
            metadata={"zoom_user_id": zoom_user.get("id"), "zoom_email": zoom_user.get("email")},
            provider_user_id=zoom_user.get("id"),
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Failed to save Zoom integration for workspace {workspace_id}: {e}")
        return _integrations_redirect("error=save_failed")

    logger.info(f"✅ Zoom connected for workspace {workspace_id}")
    return _integrations_redirect("success=zoom_connected")


@router.post("/zoom/meetings")
async def create_zoom_meeting(
    data: ZoomMeetingRequest,
    current_user: IdentityUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Schedule a meeting on the workspace's connected Zoom account"""
    if current_user.workspace_id is None:
        raise HTTPException(status_code=400, detail="No workspace found")

    try:
        meeting = await zoom_service.create_meeting(
            db,
            current_user.workspace_id,
            topic=data.topic,
            start_time=data.start_time,
            duration=data.duration,
            timezone=data.timezone,
            agenda=data.agenda,
            settings=data.settings,
        )
    except zoom_service.ZoomError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    return {"success": True, **meeting}
