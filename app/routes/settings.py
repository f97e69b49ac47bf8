import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_workspace_id
from ..database import get_db
from ..models import Workspace
from ..services.settings_service import (
    WORKSPACE_NESTED_SECTIONS,
    get_configuration,
    get_settings,
    upsert_configuration,
)
from ..services.workspace_service import get_default_configuration_settings
from ..utils.date_timezone import to_iso, utcnow
from ..utils.storage import StorageError, build_logo_key, upload_public_file, validate_image_file

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Settings"])

DEFAULT_PLAN = {"name": "Pro", "seats": 5, "limits": "Unlimited meetings", "price": 1999}


class SettingsUpdate(BaseModel):
    settings: Optional[Any] = None


class PlanUpdate(BaseModel):
    plan: Optional[Any] = None


@router.get("/settings")
async def get_workspace_settings(
    workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)
):
    """Stored settings, or the defaults for a workspace that has none yet"""
    if get_configuration(db, workspace_id) is None:
        workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
        return {"settings": get_default_configuration_settings(workspace.name if workspace else "")}
    return {"settings": get_settings(db, workspace_id)}


@router.post("/settings")
async def save_workspace_settings(
    data: SettingsUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not isinstance(data.settings, dict):
        raise HTTPException(status_code=400, detail="Invalid settings data")

    settings = upsert_configuration(db, workspace_id, data.settings, WORKSPACE_NESTED_SECTIONS)
    return {"settings": settings}


@router.post("/settings/logo")
async def upload_workspace_logo(
    file: Optional[UploadFile] = File(None),
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    """Upload the workspace logo and point the workspace branding at it"""
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")

    content = await file.read()
    is_valid, error = validate_image_file(len(content), file.content_type)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error)

    key = build_logo_key(file.filename, workspace_id)
    try:
        url = upload_public_file(key, content, file.content_type)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if workspace:
        workspace.logo_url = url
        db.commit()
    upsert_configuration(db, workspace_id, {"general": {"logoUrl": url}}, WORKSPACE_NESTED_SECTIONS)

    logger.info(f"✅ Logo uploaded for workspace {workspace_id}: {key}")
    return {"url": url, "path": key}


@router.get("/billing/plan")
async def get_billing_plan(
    workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)
):
    billing = get_settings(db, workspace_id).get("billing") or {}
    return {"plan": billing.get("plan") or DEFAULT_PLAN}


@router.post("/billing/plan")
async def update_billing_plan(
    data: PlanUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not isinstance(data.plan, dict):
        raise HTTPException(status_code=400, detail="Invalid plan data")

    plan = {key: data.plan.get(key) for key in ("name", "seats", "limits", "price")}
    settings = upsert_configuration(
        db,
        workspace_id,
        {"billing": {"plan": plan, "updatedAt": to_iso(utcnow())}},
        nested_keys=("billing",),
    )
    return {"plan": settings["billing"]["plan"], "message": "Plan updated successfully"}
