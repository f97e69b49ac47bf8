import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_current_workspace_id
from ..database import get_db
from ..models import Workspace
from ..services.identity import IdentityUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspace", tags=["Workspace"])

SLUG_REGEX = re.compile(r"^[a-z0-9_-]+$")
WORKSPACE_TYPES = ("Doctor", "Salon", "Artist")


class WorkspaceUpdate(BaseModel):
    """Only fields present in the request body are applied"""

    name: Optional[str] = None
    slug: Optional[str] = None
    logo_url: Optional[str] = None
    type: Optional[str] = None


def workspace_to_dict(workspace: Workspace) -> dict:
    return {
        "id": workspace.id,
        "name": workspace.name,
        "slug": workspace.slug,
        "logo_url": workspace.logo_url,
        "type": workspace.type,
    }


def slug_taken(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Workspace.id).filter(Workspace.slug == slug)
    if exclude_id is not None:
        query = query.filter(Workspace.id != exclude_id)
    return query.first() is not None


def _get_workspace(db: Session, workspace_id: int) -> Workspace:
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return workspace


@router.get("")
async def get_workspace(workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)):
    return {"workspace": workspace_to_dict(_get_workspace(db, workspace_id))}


@router.put("")
async def update_workspace(
    data: WorkspaceUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    provided = data.model_fields_set
    updates: dict = {}

    if "name" in provided and data.name is not None:
        updates["name"] = data.name
    if "slug" in provided:
        slug = (data.slug or "").strip().lower()
        if slug:
            if not SLUG_REGEX.match(slug):
                raise HTTPException(
                    status_code=400,
                    detail="Slug must contain only lowercase letters, numbers, hyphens, and underscores",
                )
            if slug_taken(db, slug, exclude_id=workspace_id):
                raise HTTPException(status_code=409, detail="Slug already exists")
            updates["slug"] = slug
    if "logo_url" in provided:
        updates["logo_url"] = data.logo_url or None
    if "type" in provided:
        updates["type"] = data.type if data.type in WORKSPACE_TYPES else None

    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    workspace = _get_workspace(db, workspace_id)
    for key, value in updates.items():
        setattr(workspace, key, value)
    db.commit()
    db.refresh(workspace)
    logger.info(f"✅ Updated workspace {workspace_id}: {', '.join(updates)}")
    return {"workspace": workspace_to_dict(workspace)}


@router.get("/slug")
async def get_workspace_slug(
    current_user: IdentityUser = Depends(get_current_user), db: Session = Depends(get_db)
):
    if current_user.workspace_id is None:
        raise HTTPException(status_code=404, detail="No workspace_id in user metadata")
    return {"slug": _get_workspace(db, current_user.workspace_id).slug}
