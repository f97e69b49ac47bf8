"""
Public booking page API
No authentication: the workspace is addressed by id or slug and invitees may
verify their phone or email with a one-time code.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..config import ENVIRONMENT
from ..database import get_db
from ..domain.bookings.router import get_booking_service
from ..domain.bookings.schemas import EmbedBookingCreate, booking_to_dict
from ..domain.bookings.service import BookingService, parse_request_time
from ..models import EventType, Workspace
from ..services import otp_service
from ..services.contact_linking import normalize_email, normalize_phone
from ..services.identity import IdentityClient, IdentityError, get_identity
from ..services.settings_service import get_settings
from ..services.team_service import list_workspace_members
from ..utils.date_timezone import to_iso, utcnow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/embed", tags=["embed"])


class OtpSendRequest(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    phone: Optional[str] = None
    email: Optional[str] = None
    identifier: Optional[str] = None
    code: Optional[str] = None


def normalize_identifier(value: str) -> str:
    """Email addresses are lowercased, phone numbers reduced to digits"""
    return normalize_email(value) if "@" in value else normalize_phone(value)


def resolve_workspace_id(db: Session, workspace_slug: Optional[str], workspace_id: Optional[str]) -> int:
    if not workspace_slug and not workspace_id:
        raise HTTPException(status_code=400, detail="Workspace slug or ID is required")

    if workspace_id:
        try:
            return int(workspace_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail="Workspace not found") from e

    workspace = db.query(Workspace).filter(Workspace.slug == workspace_slug).first()
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return workspace.id


@router.get("/bookings")
async def list_public_bookings(
    workspace_id: Optional[int] = Query(None),
    date: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    service_provider_id: Optional[str] = Query(None),
    service: BookingService = Depends(get_booking_service),
):
    """Taken slots for the booking calendar (no invitee details)"""
    if not workspace_id:
        raise HTTPException(status_code=400, detail="Workspace ID is required")

    result = await service.list_public_bookings(
        workspace_id,
        date=date,
        start_date=start_date,
        end_date=end_date,
        service_provider_id=service_provider_id,
    )
    return {
        "data": [
            {
                "id": b.id,
                "start_at": to_iso(b.start_at),
                "end_at": to_iso(b.end_at),
                "status": b.status,
                "service_provider_id": b.service_provider_id,
            }
            for b in result["bookings"]
        ],
        "calendar_busy": result["calendar_busy"],
    }


@router.post("/bookings")
async def create_public_booking(
    data: EmbedBookingCreate,
    db: Session = Depends(get_db),
    service: BookingService = Depends(get_booking_service),
):
    if not data.invitee_name or not data.invitee_name.strip():
        raise HTTPException(status_code=400, detail="Invitee name is required")
    if not data.start_at:
        raise HTTPException(status_code=400, detail="Start time is required")
    if not data.workspace_id:
        raise HTTPException(status_code=400, detail="Workspace ID is required")

    if parse_request_time(data.start_at, "start time") < utcnow():
        raise HTTPException(
            status_code=400, detail="Cannot book a time slot in the past. Please select a future time."
        )

    if data.otp_code and data.verified_identifier:
        identifier = normalize_identifier(data.verified_identifier)
        if not otp_service.verify_otp(db, identifier, data.otp_code, delete_after_verify=True):
            raise HTTPException(status_code=400, detail="Invalid or expired OTP code")

    if not db.query(Workspace).filter(Workspace.id == data.workspace_id).first():
        raise HTTPException(status_code=404, detail="Workspace not found")

    notifications = get_settings(db, data.workspace_id).get("notifications") or {}
    auto_confirm = notifications.get("auto-confirm-booking") is True

    booking = await service.create_embed_booking(data, auto_confirm)
    return {"data": booking_to_dict(booking)}


@router.post("/otp/send")
async def send_otp(data: OtpSendRequest, db: Session = Depends(get_db)):
    """Send a 6 digit code to the invitee's phone (SMS) or email"""
    if not data.phone and not data.email:
        raise HTTPException(status_code=400, detail="Phone or email is required")

    otp_type = "phone" if data.phone else "email"
    identifier = normalize_phone(data.phone) if data.phone else normalize_email(data.email)

    if not otp_service.check_rate_limit(identifier):
        logger.warning(f"⚠️ OTP rate limit hit for {identifier}")
        raise HTTPException(status_code=429, detail="Too many OTP requests. Please try again later.")

    code = otp_service.generate_otp()
    try:
        otp_service.store_otp(db, identifier, code, otp_type)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to store OTP for {identifier}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate OTP. Please try again.") from e

    is_dev = ENVIRONMENT == "development"
    sent = await otp_service.send_otp(data.phone or data.email, code, otp_type)
    if not sent and not is_dev:
        raise HTTPException(status_code=500, detail="Failed to send OTP. Please try again.")

    response = {"success": True, "message": f"OTP sent to your {otp_type}"}
    if is_dev:
        response["otp"] = code
    return response


@router.post("/otp/verify")
async def verify_otp(data: OtpVerifyRequest, db: Session = Depends(get_db)):
    """Check a code without consuming it; the booking request consumes it"""
    if data.phone:
        identifier = normalize_phone(data.phone)
    elif data.email:
        identifier = normalize_email(data.email)
    elif data.identifier:
        identifier = normalize_identifier(data.identifier)
    else:
        identifier = ""

    if not data.code or not identifier:
        raise HTTPException(status_code=400, detail="Code and phone or email are required")

    if not otp_service.verify_otp(db, identifier, data.code, delete_after_verify=False):
        raise HTTPException(status_code=400, detail="Invalid or expired OTP code")
    return {"success": True, "verified": True}


@router.get("/event-types")
async def list_public_event_types(
    workspace_slug: Optional[str] = Query(None),
    workspace_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    resolved_id = resolve_workspace_id(db, workspace_slug, workspace_id)
    event_types = (
        db.query(EventType)
        .filter(EventType.workspace_id == resolved_id)
        .order_by(EventType.created_at.desc(), EventType.id.desc())
        .all()
    )
    return {
        "data": [
            {"id": e.id, "title": e.title, "slug": e.slug, "duration_minutes": e.duration_minutes}
            for e in event_types
        ]
    }


@router.get("/team-members")
async def list_public_team_members(
    workspace_slug: Optional[str] = Query(None),
    workspace_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    """Active members an invitee can pick as their service provider"""
    resolved_id = resolve_workspace_id(db, workspace_slug, workspace_id)
    try:
        members = await list_workspace_members(identity, resolved_id, include_deactivated=False)
    except IdentityError as e:
        logger.error(f"❌ Error listing users for workspace {resolved_id}: {e.message}")
        raise HTTPException(status_code=500, detail=e.message) from e
    return {"teamMembers": members}
