"""
Team Invites
Admins and managers invite people by email; the invitee accepts with a
password and gets an account already linked to the workspace.
"""

import logging
import re
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import config
from ..auth import require_team_manager
from ..database import get_db
from ..email_service import EmailError, send_invite_email
from ..models import Invite
from ..security_utils import generate_hex_token
from ..services.identity import IdentityClient, IdentityError, IdentityUser, get_identity
from ..services.team_service import TEAM_ROLES, belongs_to_workspace
from ..utils.date_timezone import to_iso, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invites", tags=["Invites"])

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INVITE_TTL_HOURS = 72


class InviteCreate(BaseModel):
    email: Optional[str] = None
    role: Optional[str] = None
    departments: Optional[list] = None


class InviteAccept(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None


def _usable_invite(db: Session, token: str) -> Invite:
    """Unexpired, unused invite for the token"""
    invite = db.query(Invite).filter(Invite.token == token).first()
    if not invite:
        raise HTTPException(status_code=404, detail="Invalid invite token")
    if invite.expires_at < utcnow():
        raise HTTPException(status_code=400, detail="Invite has expired")
    if invite.used:
        raise HTTPException(status_code=400, detail="Invite has already been used")
    return invite


@router.post("", status_code=201)
async def create_invite(
    data: InviteCreate,
    current_user: IdentityUser = Depends(require_team_manager),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    workspace_id = current_user.workspace_id
    if workspace_id is None:
        raise HTTPException(status_code=400, detail="Workspace ID not found")
    if not data.email or not data.role:
        raise HTTPException(status_code=400, detail="Email and role are required")

    email = data.email.strip()
    if not EMAIL_REGEX.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if data.role not in TEAM_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    try:
        existing = await identity.admin_find_user_by_email(email)
    except IdentityError as e:
        logger.error(f"❌ Could not list users while inviting {email}: {e.message}")
        raise HTTPException(status_code=500, detail="Server configuration error") from e
    if existing and belongs_to_workspace(existing, workspace_id):
        raise HTTPException(status_code=409, detail="User with this email already exists in this workspace")

    invite = Invite(
        workspace_id=workspace_id,
        email=email,
        role=data.role,
        departments=data.departments or [],
        token=generate_hex_token(32),
        invited_by=current_user.id,
        expires_at=utcnow() + timedelta(hours=INVITE_TTL_HOURS),
        used=False,
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)

    invite_url = f"{config.FRONTEND_URL}/invite-accept?token={invite.token}"

    # The admin can still share the link by hand when the email fails
    try:
        await send_invite_email(email, data.role, invite_url)
    except EmailError as e:
        logger.error(f"❌ Invite email to {email} failed: {e}")

    logger.info(f"✅ Invite {invite.id} created for {email} in workspace {workspace_id}")
    return {
        "success": True,
        "inviteUrl": invite_url,
        "message": "Invite sent successfully. An email has been sent to the user with the invitation link.",
        "invite": {"email": email, "role": data.role, "expiresAt": to_iso(invite.expires_at)},
    }


@router.get("/validate")
async def validate_invite(token: Optional[str] = Query(None), db: Session = Depends(get_db)):
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")

    invite = _usable_invite(db, token)
    return {
        "valid": True,
        "email": invite.email,
        "role": invite.role,
        "departments": invite.departments or [],
        "workspace_id": invite.workspace_id,
    }


@router.post("/accept")
async def accept_invite(
    data: InviteAccept,
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    if not data.token or not data.password or not data.name:
        raise HTTPException(status_code=400, detail="Token, password, and name are required")
    if len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    invite = _usable_invite(db, data.token)

    try:
        if await identity.admin_find_user_by_email(invite.email):
            raise HTTPException(status_code=409, detail="User with this email already exists")

        user = await identity.admin_create_user(
            invite.email,
            password=data.password,
            email_confirm=True,
            user_metadata={
                "name": data.name,
                "role": invite.role,
                "workspace_id": invite.workspace_id,
                "departments": invite.departments or [],
                "invited_at": to_iso(invite.created_at),
            },
        )
    except IdentityError as e:
        logger.error(f"❌ Could not create invited user {invite.email}: {e.message}")
        raise HTTPException(status_code=500, detail=e.message) from e

    invite.used = True
    invite.used_at = utcnow()
    db.commit()

    logger.info(f"✅ Invite {invite.id} accepted by {user.id}")
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Account created successfully",
            "user": {"id": user.id, "email": user.email, "name": data.name, "role": invite.role},
        },
    )
