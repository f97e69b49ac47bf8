"""
Superadmin API
Cross-workspace management of bookings, users and workspaces.
Everything except the session hand-off requires the superadmin role.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_superadmin, verify_access_token
from ..database import get_db
from ..domain.bookings.repository import BookingRepository
from ..domain.bookings.schemas import booking_to_dict
from ..domain.bookings.service import parse_request_time
from ..models import Booking, Configuration, Department, Workspace
from ..services.identity import IdentityClient, IdentityError, IdentityUser, get_identity
from ..services.settings_service import upsert_configuration
from ..utils.date_timezone import day_bounds, to_iso
from ..utils.storage import StorageError, build_logo_key, delete_file, upload_public_file, validate_image_file
from .auth import AccessTokenRequest, require_access_token, set_session_cookies
from .workspace import SLUG_REGEX, slug_taken

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/superadmin", tags=["Superadmin"])

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
COLOR_REGEX = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
SUPERADMIN_ROLES = ("superadmin", "workspace_admin", "customer")
SORT_COLUMNS = {
    "date": Booking.start_at,
    "name": Booking.invitee_name,
    "workspace": Booking.workspace_id,
    "created_at": Booking.created_at,
}


class UserCreate(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    workspace_id: Optional[int] = None


class WorkspaceCreate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    primary_color: Optional[str] = None
    accent_color: Optional[str] = None
    logo_url: Optional[str] = None
    billing_customer_id: Optional[str] = None
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_name: Optional[str] = None


def is_duplicate_email_error(message: str) -> bool:
    text = (message or "").lower()
    return "already registered" in text or "already exists" in text


def superadmin_workspace_dict(workspace: Workspace, settings: Optional[dict] = None) -> dict:
    """Workspace row with colours taken from settings.general when present"""
    general = (settings or {}).get("general") or {}
    return {
        "id": workspace.id,
        "name": workspace.name,
        "slug": workspace.slug,
        "type": workspace.type,
        "logo_url": workspace.logo_url,
        "billing_customer_id": workspace.billing_customer_id,
        "owner_id": workspace.owner_id,
        "primary_color": general.get("primaryColor") or workspace.primary_color,
        "accent_color": general.get("accentColor") or workspace.accent_color,
        "created_at": to_iso(workspace.created_at),
        "updated_at": to_iso(workspace.updated_at),
    }


async def _session_metadata(identity: IdentityClient, user: IdentityUser) -> dict:
    """Metadata from the admin API, else what the token returned"""
    try:
        return (await identity.admin_get_user(user.id)).user_metadata
    except IdentityError as e:
        logger.warning(f"⚠️ Admin lookup failed for {user.id}, using token metadata: {e.message}")
        return user.user_metadata


def _validate_user_fields(role: Optional[str], email: str, password: Optional[str], workspace_id, db: Session):
    if not EMAIL_REGEX.match(email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if password is not None and len(password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
    if role not in SUPERADMIN_ROLES:
        raise HTTPException(status_code=400, detail=f"Role must be one of: {', '.join(SUPERADMIN_ROLES)}")
    if role != "superadmin":
        if not workspace_id:
            raise HTTPException(
                status_code=400, detail="Workspace ID is required for customer and workspace_admin roles"
            )
        if not db.query(Workspace.id).filter(Workspace.id == workspace_id).first():
            raise HTTPException(status_code=400, detail="Invalid workspace ID")


def _validate_workspace_fields(data: WorkspaceCreate) -> tuple[str, str]:
    if not data.name or not data.slug:
        raise HTTPException(status_code=400, detail="Name and slug are required")
    if not SLUG_REGEX.match(data.slug):
        raise HTTPException(
            status_code=400,
            detail="Slug must contain only lowercase letters, numbers, hyphens, and underscores",
        )
    if data.primary_color and not COLOR_REGEX.match(data.primary_color):
        raise HTTPException(status_code=400, detail="Primary color must be a valid hex color")
    if data.accent_color and not COLOR_REGEX.match(data.accent_color):
        raise HTTPException(status_code=400, detail="Accent color must be a valid hex color")
    return data.name, data.slug


def _save_general_settings(db: Session, workspace: Workspace, data: WorkspaceCreate) -> dict:
    return upsert_configuration(
        db,
        workspace.id,
        {
            "general": {
                "accountName": data.name,
                "primaryColor": data.primary_color or None,
                "accentColor": data.accent_color or None,
                "logoUrl": data.logo_url or None,
            }
        },
        nested_keys=("general",),
    )


# ----------------------------------------------------------------------
# Session hand-off
# ----------------------------------------------------------------------


@router.post("/auth/session-set")
async def superadmin_session_set(data: AccessTokenRequest, identity: IdentityClient = Depends(get_identity)):
    token = require_access_token(data)
    user = await verify_access_token(token, identity)
    meta = await _session_metadata(identity, user)

    response = JSONResponse(content={"ok": True})
    set_session_cookies(response, meta.get("role") or "", meta.get("workspace_id") or "")
    return response


@router.post("/auth/verify")
async def superadmin_verify(data: AccessTokenRequest, identity: IdentityClient = Depends(get_identity)):
    token = require_access_token(data)
    user = await verify_access_token(token, identity)
    meta = await _session_metadata(identity, user)
    return {"user_id": user.id, "role": meta.get("role"), "workspace_id": meta.get("workspace_id")}


# ----------------------------------------------------------------------
# Bookings and departments
# ----------------------------------------------------------------------


@router.get("/bookings", dependencies=[Depends(require_superadmin)])
async def list_all_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sortBy: str = Query("date"),
    sortOrder: str = Query("desc"),
    filter: Optional[str] = Query(None),
    date: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    event_type_id: Optional[str] = Query(None),
    workspace_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    range_start = range_end = None
    if date:
        range_start, range_end = day_bounds(parse_request_time(date, "date"))

    bookings, total = BookingRepository.list_all_bookings(
        db,
        search=(filter or "").strip() or None,
        range_start=range_start,
        range_end=range_end,
        status=(status or "").strip() or None,
        event_type_id=(event_type_id or "").strip() or None,
        workspace_id=(workspace_id or "").strip() or None,
        sort_column=SORT_COLUMNS.get(sortBy, Booking.start_at),
        ascending=sortOrder == "asc",
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "bookings": [booking_to_dict(b, include_relations=True) for b in bookings],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
        },
    }


@router.get("/departments", dependencies=[Depends(require_superadmin)])
async def list_department_names(db: Session = Depends(get_db)):
    rows = db.query(Department.name).distinct().order_by(Department.name.asc()).all()
    return {"departments": [name for (name,) in rows]}


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------


@router.get("/users", dependencies=[Depends(require_superadmin)])
async def list_users(identity: IdentityClient = Depends(get_identity)):
    try:
        users = await identity.admin_list_users()
    except IdentityError as e:
        raise HTTPException(status_code=500, detail=e.message) from e
    return {"users": [u.summary() for u in users]}


@router.post("/users", dependencies=[Depends(require_superadmin)])
async def create_user(
    data: UserCreate,
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    if not data.email or not data.password or not data.name or not data.role:
        raise HTTPException(status_code=400, detail="Email, password, name, and role are required")
    _validate_user_fields(data.role, data.email, data.password, data.workspace_id, db)

    metadata: dict = {"name": data.name, "role": data.role}
    if data.workspace_id:
        metadata["workspace_id"] = data.workspace_id

    try:
        user = await identity.admin_create_user(
            data.email, password=data.password, email_confirm=True, user_metadata=metadata
        )
    except IdentityError as e:
        if is_duplicate_email_error(e.message):
            raise HTTPException(status_code=409, detail="This email is already registered") from e
        raise HTTPException(status_code=400, detail=e.message or "Failed to create user") from e

    logger.info(f"✅ Superadmin created user {user.id} with role {data.role}")
    return JSONResponse(
        status_code=201, content={"user": user.summary(), "message": "User created successfully"}
    )


@router.put("/users/{user_id}", dependencies=[Depends(require_superadmin)])
async def update_user(
    user_id: str,
    data: UserCreate,
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    if not data.email or not data.name or not data.role:
        raise HTTPException(status_code=400, detail="Email, name, and role are required")
    _validate_user_fields(data.role, data.email, data.password or None, data.workspace_id, db)

    try:
        current = await identity.admin_get_user(user_id)
    except IdentityError as e:
        raise HTTPException(status_code=404, detail="User not found") from e

    metadata = {**current.user_metadata, "name": data.name, "role": data.role}
    if data.role == "superadmin":
        metadata.pop("workspace_id", None)
    else:
        metadata["workspace_id"] = data.workspace_id

    attributes: dict = {"email": data.email, "user_metadata": metadata}
    if data.password:
        attributes["password"] = data.password

    try:
        user = await identity.admin_update_user(user_id, attributes)
    except IdentityError as e:
        if is_duplicate_email_error(e.message):
            raise HTTPException(status_code=409, detail="This email is already registered by another user") from e
        raise HTTPException(status_code=400, detail=e.message or "Failed to update user") from e

    return {"user": user.summary(), "message": "User updated successfully"}


@router.delete("/users/{user_id}", dependencies=[Depends(require_superadmin)])
async def delete_user(user_id: str, identity: IdentityClient = Depends(get_identity)):
    try:
        await identity.admin_delete_user(user_id)
    except IdentityError as e:
        if e.status_code == 404 or "not found" in e.message.lower():
            raise HTTPException(status_code=404, detail="User not found") from e
        raise HTTPException(status_code=500, detail=e.message) from e

    logger.info(f"🗑️ Superadmin deleted user {user_id}")
    return {"message": "User deleted successfully"}


# ----------------------------------------------------------------------
# Workspaces
# ----------------------------------------------------------------------


@router.get("/workspaces", dependencies=[Depends(require_superadmin)])
async def list_workspaces(db: Session = Depends(get_db)):
    workspaces = db.query(Workspace).order_by(Workspace.created_at.desc(), Workspace.id.desc()).all()
    settings_by_workspace = {
        c.workspace_id: c.settings
        for c in db.query(Configuration).filter(Configuration.workspace_id.in_([w.id for w in workspaces]))
    }
    return {"workspaces": [superadmin_workspace_dict(w, settings_by_workspace.get(w.id)) for w in workspaces]}


@router.post("/workspaces/upload", dependencies=[Depends(require_superadmin)])
async def upload_workspace_logo(
    file: Optional[UploadFile] = File(None),
    workspaceId: Optional[str] = Form(None),
):
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    is_valid, error = validate_image_file(len(content), file.content_type)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error)

    key = build_logo_key(file.filename, workspaceId or None)
    try:
        url = upload_public_file(key, content, file.content_type)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"url": url, "path": key}


@router.delete("/workspaces/upload", dependencies=[Depends(require_superadmin)])
async def delete_workspace_logo(path: Optional[str] = Query(None)):
    if not path:
        raise HTTPException(status_code=400, detail="File path is required")
    try:
        delete_file(path)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"message": "Image deleted successfully"}


@router.post("/workspaces", dependencies=[Depends(require_superadmin)])
async def create_workspace(
    data: WorkspaceCreate,
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    wants_admin = bool(data.admin_email or data.admin_password or data.admin_name)
    if wants_admin:
        if not data.admin_email or not data.admin_password or not data.admin_name:
            raise HTTPException(
                status_code=400,
                detail="Admin email, password, and name are all required when creating a workspace admin user",
            )
        if not EMAIL_REGEX.match(data.admin_email):
            raise HTTPException(status_code=400, detail="Invalid admin email format")
        if len(data.admin_password) < 6:
            raise HTTPException(status_code=400, detail="Admin password must be at least 6 characters")

    name, slug = _validate_workspace_fields(data)
    if slug_taken(db, slug):
        raise HTTPException(status_code=409, detail="Slug already exists")

    workspace = Workspace(
        name=name,
        slug=slug,
        logo_url=data.logo_url or None,
        billing_customer_id=data.billing_customer_id or None,
        primary_color=data.primary_color or None,
        accent_color=data.accent_color or None,
    )
    db.add(workspace)
    db.commit()
    db.refresh(workspace)
    settings = _save_general_settings(db, workspace, data)
    logger.info(f"✅ Superadmin created workspace {workspace.id} ({slug})")

    created_user = None
    if wants_admin:
        try:
            user = await identity.admin_create_user(
                data.admin_email,
                password=data.admin_password,
                email_confirm=True,
                user_metadata={"name": data.admin_name, "role": "workspace_admin", "workspace_id": workspace.id},
            )
        except IdentityError as e:
            logger.error(f"❌ Workspace {workspace.id} created but admin user failed: {e.message}")
            return JSONResponse(
                status_code=201,
                content={
                    "error": f"Workspace created but failed to create admin user: {e.message}",
                    "workspace": superadmin_workspace_dict(workspace, settings),
                },
            )
        created_user = {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "role": user.role,
            "workspace_id": user.user_metadata.get("workspace_id"),
        }

    return JSONResponse(
        status_code=201,
        content={
            "workspace": superadmin_workspace_dict(workspace, settings),
            "user": created_user,
            "message": "Workspace and admin user created successfully"
            if created_user
            else "Workspace created successfully",
        },
    )


@router.put("/workspaces/{workspace_id}", dependencies=[Depends(require_superadmin)])
async def update_workspace(workspace_id: int, data: WorkspaceCreate, db: Session = Depends(get_db)):
    name, slug = _validate_workspace_fields(data)
    if slug_taken(db, slug, exclude_id=workspace_id):
        raise HTTPException(status_code=409, detail="Slug already exists")

    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    workspace.name = name
    workspace.slug = slug
    workspace.logo_url = data.logo_url or None
    workspace.billing_customer_id = data.billing_customer_id or None
    workspace.primary_color = data.primary_color or None
    workspace.accent_color = data.accent_color or None
    db.commit()
    db.refresh(workspace)

    settings = _save_general_settings(db, workspace, data)
    return {"workspace": superadmin_workspace_dict(workspace, settings)}


@router.delete("/workspaces/{workspace_id}", dependencies=[Depends(require_superadmin)])
async def delete_workspace(workspace_id: int, db: Session = Depends(get_db)):
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    db.delete(workspace)
    db.commit()
    logger.info(f"🗑️ Superadmin deleted workspace {workspace_id}")
    return {"message": "Workspace deleted successfully"}
