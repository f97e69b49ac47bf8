"""
Google Calendar Service
OAuth helpers, token refresh, event creation and free/busy lookups
"""

import logging
import time
from datetime import datetime
from typing import Optional, TypedDict
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
from ..utils.date_timezone import parse_datetime, to_iso
from .integrations import get_integration, save_integration

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

# Refresh tokens this long before they expire
TOKEN_REFRESH_MARGIN_SECONDS = 300


class GoogleOAuthError(Exception):
    pass


class BusySlot(TypedDict):
    start_at: str
    end_at: str


def is_configured() -> bool:
    return bool(GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET)


def build_authorization_url(
    scopes: list[str], state: str, redirect_uri: str, prompt: str = "consent"
) -> str:
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes),
        "access_type": "offline",
        "prompt": prompt,
        "include_granted_scopes": "true",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def _google_request(method: str, url: str, **kwargs) -> httpx.Response:
    """Send a request to Google; transport failures surface as GoogleOAuthError"""
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.error(f"❌ Google request to {url} failed: {e}")
        raise GoogleOAuthError("Could not reach Google") from e


def _tokens_from_response(payload: dict) -> dict:
    expires_in = payload.get("expires_in")
    return {
        "access_token": payload.get("access_token"),
        "refresh_token": payload.get("refresh_token"),
        "expires_at": int(time.time()) + int(expires_in) if expires_in else None,
        "scope": payload.get("scope"),
        "id_token": payload.get("id_token"),
    }


async def exchange_code(code: str, redirect_uri: str) -> dict:
    """Exchange an authorization code for tokens"""
    response = await _google_request(
        "POST",
        GOOGLE_TOKEN_URL,
        data={
            "code": code,
            "client_id": GOOGLE_CLIENT_ID,
            "client_secret": GOOGLE_CLIENT_SECRET,
            "redirect_uri": redirect_uri,
            "grant_type": "authorization_code",
        },
    )

    if response.status_code != 200:
        logger.error(f"❌ Google token exchange failed: {response.text}")
        raise GoogleOAuthError("Failed to exchange authorization code")

    tokens = _tokens_from_response(response.json())
    if not tokens["access_token"]:
        raise GoogleOAuthError("Invalid token response")
    return tokens


async def refresh_access_token(refresh_token: str) -> dict:
    response = await _google_request(
        "POST",
        GOOGLE_TOKEN_URL,
        data={
            "client_id": GOOGLE_CLIENT_ID,
            "client_secret": GOOGLE_CLIENT_SECRET,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        },
    )

    if response.status_code != 200:
        logger.error(f"❌ Google token refresh failed: {response.text}")
        raise GoogleOAuthError("Failed to refresh access token")

    tokens = _tokens_from_response(response.json())
    if not tokens["access_token"]:
        raise GoogleOAuthError("No access token in refresh response")
    return tokens


async def get_user_info(access_token: str) -> dict:
    """Google profile (id, email, name, picture)"""
    response = await _google_request(
        "GET", GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
    )

    if response.status_code != 200:
        logger.error(f"❌ Failed to get Google user info: {response.text}")
        raise GoogleOAuthError("Failed to get user info")
    return response.json()


async def get_valid_access_token(db: Session, workspace_id: int) -> Optional[str]:
    """Access token for the workspace's calendar, refreshed if about to expire.

    Returns None when the workspace has no calendar connected.
    """
    integration = get_integration(db, workspace_id, "google_calendar")
    if not integration:
        return None

    expires_at = integration.get("expires_at")
    if expires_at and expires_at > time.time() + TOKEN_REFRESH_MARGIN_SECONDS:
        return integration["access_token"]
    if not expires_at or not integration.get("refresh_token"):
        # Unknown expiry or nothing to refresh with; try the stored token as is
        return integration["access_token"]

    logger.info(f"🔄 Google Calendar token expired for workspace {workspace_id}, refreshing...")
    tokens = await refresh_access_token(integration["refresh_token"])
    save_integration(
        db,
        workspace_id,
        "google_calendar",
        {
            "access_token": tokens["access_token"],
            "refresh_token": tokens.get("refresh_token"),
            "expires_at": tokens.get("expires_at"),
        },
        metadata=integration["metadata"],
        provider_user_id=integration.get("provider_user_id"),
    )
    logger.info("✅ Google Calendar token refreshed successfully")
    return tokens["access_token"]


async def create_calendar_event(
    db: Session,
    workspace_id: int,
    summary: str,
    start_at: str,
    end_at: str,
    description: Optional[str] = None,
    location: Optional[str] = None,
    attendee_email: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> tuple[Optional[str], Optional[str]]:
    """
    Create an event on the workspace's primary calendar.
    Returns (event_id, error); (None, None) when no calendar is connected.
    """
    try:
        access_token = await get_valid_access_token(db, workspace_id)
        if not access_token:
            return None, None

        event: dict = {
            "summary": summary,
            "start": {"dateTime": start_at},
            "end": {"dateTime": end_at},
        }
        if description:
            event["description"] = description
        if location:
            event["location"] = location
        if attendee_email:
            event["attendees"] = [{"email": attendee_email}]
        if metadata and metadata.get("bookingId"):
            shared = {"bookingId": str(metadata["bookingId"])}
            if metadata.get("eventTypeName"):
                shared["eventTypeName"] = metadata["eventTypeName"]
            event["extendedProperties"] = {"shared": shared}

        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/calendars/primary/events",
                params={"sendUpdates": "none"},
                headers={"Authorization": f"Bearer {access_token}"},
                json=event,
            )

        if response.status_code not in (200, 201):
            logger.error(f"❌ Failed to create calendar event: {response.text}")
            return None, f"Google Calendar API error: HTTP {response.status_code}"

        event_id = response.json().get("id")
        logger.info(f"✅ Created Google Calendar event {event_id} for workspace {workspace_id}")
        return event_id, None

    except (GoogleOAuthError, httpx.HTTPError) as e:
        logger.error(f"❌ Error creating calendar event: {str(e)}")
        return None, str(e)


async def get_busy_slots(
    db: Session, workspace_id: int, time_min: str, time_max: str
) -> list[BusySlot]:
    """Busy intervals on the primary calendar; empty on any failure"""
    try:
        access_token = await get_valid_access_token(db, workspace_id)
        if not access_token:
            return []

        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/freeBusy",
                headers={"Authorization": f"Bearer {access_token}"},
                json={
                    "timeMin": time_min,
                    "timeMax": time_max,
                    "items": [{"id": "primary"}],
                },
            )

        if response.status_code != 200:
            logger.warning(f"⚠️ Free/busy query failed: HTTP {response.status_code}")
            return []

        busy = response.json().get("calendars", {}).get("primary", {}).get("busy") or []
        return [{"start_at": b["start"], "end_at": b["end"]} for b in busy if b.get("start") and b.get("end")]

    except (GoogleOAuthError, httpx.HTTPError, ValueError) as e:
        logger.warning(f"⚠️ Error fetching busy slots: {str(e)}")
        return []


async def is_slot_busy_in_calendar(
    db: Session, workspace_id: int, start_at: datetime, end_at: datetime
) -> bool:
    """True when [start_at, end_at) overlaps a busy interval"""
    slots = await get_busy_slots(db, workspace_id, to_iso(start_at), to_iso(end_at))
    for slot in slots:
        slot_start = parse_datetime(slot["start_at"])
        slot_end = parse_datetime(slot["end_at"])
        if start_at < slot_end and end_at > slot_start:
            return True
    return False
