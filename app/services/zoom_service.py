"""
Zoom Service
OAuth token exchange/refresh and meeting creation
"""

import logging
import time
from typing import Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ..config import ZOOM_CLIENT_ID, ZOOM_CLIENT_SECRET, ZOOM_REDIRECT_URI
from .integrations import get_integration, save_integration

logger = logging.getLogger(__name__)

ZOOM_AUTH_URL = "https://zoom.us/oauth/authorize"
ZOOM_TOKEN_URL = "https://zoom.us/oauth/token"  # noqa: S105 - OAuth endpoint URL
ZOOM_API_URL = "https://api.zoom.us/v2"


class ZoomError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    return body.get("message") or body.get("reason") or default


async def _zoom_request(method: str, url: str, **kwargs) -> httpx.Response:
    """Send a request to Zoom; transport failures surface as ZoomError"""
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.error(f"❌ Zoom request to {url} failed: {e}")
        raise ZoomError("Could not reach Zoom", status_code=502) from e


def build_authorization_url(state: str, redirect_uri: str = ZOOM_REDIRECT_URI) -> str:
    params = {
        "response_type": "code",
        "client_id": ZOOM_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "state": state,
    }
    return f"{ZOOM_AUTH_URL}?{urlencode(params)}"


async def _token_request(params: dict) -> dict:
    response = await _zoom_request(
        "POST", ZOOM_TOKEN_URL, params=params, auth=(ZOOM_CLIENT_ID or "", ZOOM_CLIENT_SECRET or "")
    )

    if response.status_code != 200:
        logger.error(f"❌ Zoom token request failed: {response.text}")
        raise ZoomError(_error_message(response, "Zoom token request failed"), response.status_code)

    payload = response.json()
    expires_in = payload.get("expires_in")
    return {
        "access_token": payload.get("access_token"),
        "refresh_token": payload.get("refresh_token"),
        "expires_at": int(time.time()) + int(expires_in) if expires_in else None,
    }


async def exchange_code(code: str, redirect_uri: str = ZOOM_REDIRECT_URI) -> dict:
    return await _token_request(
        {"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri}
    )


async def refresh_access_token(refresh_token: str) -> dict:
    return await _token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})


async def get_current_user(access_token: str) -> dict:
    """Zoom profile of the token owner"""
    response = await _zoom_request(
        "GET", f"{ZOOM_API_URL}/users/me", headers={"Authorization": f"Bearer {access_token}"}
    )
    if response.status_code != 200:
        raise ZoomError(_error_message(response, "Failed to fetch Zoom user"), response.status_code)
    return response.json()


async def get_valid_access_token(db: Session, workspace_id: int) -> str:
    integration = get_integration(db, workspace_id, "zoom")
    if not integration:
        raise ZoomError("Zoom not connected", status_code=400)

    expires_at = integration.get("expires_at")
    if not expires_at or expires_at > time.time() + 60 or not integration.get("refresh_token"):
        return integration["access_token"]

    logger.info(f"🔄 Zoom token expired for workspace {workspace_id}, refreshing...")
    tokens = await refresh_access_token(integration["refresh_token"])
    save_integration(
        db,
        workspace_id,
        "zoom",
        tokens,
        metadata=integration["metadata"],
        provider_user_id=integration.get("provider_user_id"),
    )
    return tokens["access_token"]


async def create_meeting(
    db: Session,
    workspace_id: int,
    topic: Optional[str],
    start_time: Optional[str],
    duration: Optional[int],
    timezone: Optional[str] = None,
    agenda: Optional[str] = None,
    settings: Optional[dict] = None,
) -> dict:
    """Create a scheduled meeting for the connected Zoom account"""
    access_token = await get_valid_access_token(db, workspace_id)

    payload = {
        "topic": topic or "Meeting",
        "type": 2,  # scheduled
        "start_time": start_time,
        "duration": duration,
        "timezone": timezone,
        "settings": {"join_before_host": True, "waiting_room": False, **(settings or {})},
    }
    if agenda:
        payload["agenda"] = agenda

    response = await _zoom_request(
        "POST",
        f"{ZOOM_API_URL}/users/me/meetings",
        headers={"Authorization": f"Bearer {access_token}"},
        json=payload,
    )

    if response.status_code not in (200, 201):
        logger.error(f"❌ Zoom meeting creation failed: {response.text}")
        raise ZoomError(_error_message(response, "Failed to create meeting"), response.status_code)

    meeting = response.json()
    logger.info(f"✅ Created Zoom meeting {meeting.get('id')} for workspace {workspace_id}")
    return {
        "meeting_id": meeting.get("id"),
        "join_url": meeting.get("join_url"),
        "start_url": meeting.get("start_url"),
    }
