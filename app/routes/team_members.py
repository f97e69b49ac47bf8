import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..auth import require_team_manager
from ..services.identity import IdentityClient, IdentityError, IdentityUser, get_identity
from ..services.team_service import TEAM_ROLES, belongs_to_workspace, list_workspace_members

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team-members", tags=["Team Members"])

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
INVALID_ROLE = "Invalid role. Must be workspace_admin, manager, service_provider, or customer"


class TeamMemberCreate(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    departments: Optional[list] = None


class TeamMemberUpdate(BaseModel):
    id: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    departments: Optional[list] = None


class TeamMemberActivate(BaseModel):
    id: Optional[str] = None
    deactivated: Optional[bool] = False


def _caller_workspace(current_user: IdentityUser) -> int:
    if current_user.workspace_id is None:
        raise HTTPException(status_code=400, detail="Workspace ID not found")
    return current_user.workspace_id


def _team_member_dict(user: IdentityUser) -> dict:
    meta = user.user_metadata
    return {
        "id": user.id,
        "email": user.email,
        "name": meta.get("name"),
        "role": meta.get("role"),
        "departments": meta.get("departments") or [],
    }


async def _get_member(identity: IdentityClient, user_id: Optional[str], workspace_id: int) -> IdentityUser:
    """Target user, who must belong to the caller's workspace"""
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    try:
        user = await identity.admin_get_user(user_id)
    except IdentityError as e:
        raise HTTPException(status_code=404, detail="User not found") from e
    if not belongs_to_workspace(user, workspace_id):
        logger.warning(f"🚫 Team member {user_id} is not in workspace {workspace_id}")
        raise HTTPException(status_code=403, detail="Forbidden: User does not belong to your workspace")
    return user


async def _set_deactivated(identity: IdentityClient, user: IdentityUser, deactivated: bool) -> None:
    try:
        await identity.admin_update_user(
            user.id, {"user_metadata": {**user.user_metadata, "deactivated": deactivated}}
        )
    except IdentityError as e:
        logger.error(f"❌ Could not update deactivated flag for {user.id}: {e.message}")
        raise HTTPException(status_code=500, detail=e.message) from e


@router.get("")
async def get_team_members(
    current_user: IdentityUser = Depends(require_team_manager),
    identity: IdentityClient = Depends(get_identity),
):
    workspace_id = _caller_workspace(current_user)
    try:
        members = await list_workspace_members(identity, workspace_id)
    except IdentityError as e:
        raise HTTPException(status_code=500, detail=e.message) from e
    return {"teamMembers": members}


@router.post("")
async def create_team_member(
    data: TeamMemberCreate,
    current_user: IdentityUser = Depends(require_team_manager),
    identity: IdentityClient = Depends(get_identity),
):
    workspace_id = _caller_workspace(current_user)
    if not data.email or not data.password or not data.name:
        raise HTTPException(status_code=400, detail="Email, password, and name are required")
    email = data.email.strip()
    if not EMAIL_REGEX.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
    if data.role and data.role not in TEAM_ROLES:
        raise HTTPException(status_code=400, detail=INVALID_ROLE)

    try:
        if await identity.admin_find_user_by_email(email):
            raise HTTPException(status_code=409, detail="User with this email already exists")
        user = await identity.admin_create_user(
            email,
            password=data.password,
            email_confirm=True,
            user_metadata={
                "name": data.name,
                "role": data.role or "service_provider",
                "workspace_id": workspace_id,
                "departments": data.departments or [],
            },
        )
    except IdentityError as e:
        logger.error(f"❌ Error creating team member {email}: {e.message}")
        raise HTTPException(status_code=500, detail=e.message) from e

    logger.info(f"✅ Team member {user.id} added to workspace {workspace_id}")
    return JSONResponse(status_code=201, content={"teamMember": _team_member_dict(user)})


@router.put("")
async def update_team_member(
    data: TeamMemberUpdate,
    current_user: IdentityUser = Depends(require_team_manager),
    identity: IdentityClient = Depends(get_identity),
):
    workspace_id = _caller_workspace(current_user)
    if not data.id:
        raise HTTPException(status_code=400, detail="User ID is required")
    if data.role and data.role not in TEAM_ROLES:
        raise HTTPException(status_code=400, detail=INVALID_ROLE)
    if data.email and not EMAIL_REGEX.match(data.email.strip()):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if data.password and len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    user = await _get_member(identity, data.id, workspace_id)

    metadata = dict(user.user_metadata)
    if data.name:
        metadata["name"] = data.name
    if data.role:
        metadata["role"] = data.role
    if "departments" in data.model_fields_set:
        metadata["departments"] = data.departments or []

    attributes: dict = {"user_metadata": metadata}
    if data.email and data.email.strip() != user.email:
        attributes["email"] = data.email.strip()
    if data.password:
        attributes["password"] = data.password

    try:
        updated = await identity.admin_update_user(user.id, attributes)
    except IdentityError as e:
        logger.error(f"❌ Error updating team member {user.id}: {e.message}")
        raise HTTPException(status_code=500, detail=e.message) from e
    return {"teamMember": _team_member_dict(updated)}


@router.patch("")
async def reactivate_team_member(
    data: TeamMemberActivate,
    current_user: IdentityUser = Depends(require_team_manager),
    identity: IdentityClient = Depends(get_identity),
):
    workspace_id = _caller_workspace(current_user)
    user = await _get_member(identity, data.id, workspace_id)
    await _set_deactivated(identity, user, False)
    logger.info(f"🔄 Team member {user.id} reactivated")
    return {"success": True}


@router.delete("")
async def deactivate_team_member(
    id: Optional[str] = Query(None),
    current_user: IdentityUser = Depends(require_team_manager),
    identity: IdentityClient = Depends(get_identity),
):
    workspace_id = _caller_workspace(current_user)
    user = await _get_member(identity, id, workspace_id)
    await _set_deactivated(identity, user, True)
    logger.info(f"🚫 Team member {user.id} deactivated in workspace {workspace_id}")
    return {"success": True}
