import logging
import re
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_current_workspace_id
from ..database import get_db
from ..models import EventType
from ..services.identity import IdentityUser
from ..utils.date_timezone import to_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/event-types", tags=["Event Types"])


class EventTypeCreate(BaseModel):
    title: Optional[str] = None
    duration_minutes: Optional[Union[int, str]] = None


class EventTypeUpdate(EventTypeCreate):
    id: Optional[Union[int, str]] = None


def slugify_title(title: str) -> str:
    return re.sub(r"\s+", "-", title.lower())


def parse_duration(value) -> Optional[int]:
    """Leading integer of the value, None when blank or not numeric"""
    if value is None:
        return None
    match = re.match(r"\s*(-?\d+)", str(value))
    return int(match.group(1)) if match else None


def event_type_to_dict(event_type: EventType) -> dict:
    return {
        "id": event_type.id,
        "workspace_id": event_type.workspace_id,
        "owner_id": event_type.owner_id,
        "title": event_type.title,
        "slug": event_type.slug,
        "description": event_type.description,
        "duration_minutes": event_type.duration_minutes,
        "buffer_before": event_type.buffer_before,
        "buffer_after": event_type.buffer_after,
        "location_type": event_type.location_type,
        "location_value": event_type.location_value,
        "is_public": event_type.is_public,
        "settings": event_type.settings,
        "created_at": to_iso(event_type.created_at),
    }


def _get_event_type(db: Session, workspace_id: int, event_type_id) -> EventType:
    try:
        event_type_id = int(event_type_id)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid event type ID") from e
    event_type = (
        db.query(EventType)
        .filter(EventType.id == event_type_id, EventType.workspace_id == workspace_id)
        .first()
    )
    if not event_type:
        raise HTTPException(status_code=404, detail="Event type not found or access denied")
    return event_type


@router.get("")
async def get_event_types(workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)):
    event_types = (
        db.query(EventType)
        .filter(EventType.workspace_id == workspace_id)
        .order_by(EventType.created_at.desc(), EventType.id.desc())
        .all()
    )
    return {"data": [event_type_to_dict(e) for e in event_types]}


@router.post("")
async def create_event_type(
    data: EventTypeCreate,
    current_user: IdentityUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not data.title or not data.title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    if current_user.workspace_id is None:
        raise HTTPException(status_code=400, detail="Workspace ID not found")

    event_type = EventType(
        workspace_id=current_user.workspace_id,
        owner_id=current_user.id,
        title=data.title.strip(),
        slug=slugify_title(data.title),
        duration_minutes=parse_duration(data.duration_minutes),
        is_public=False,
    )
    db.add(event_type)
    db.commit()
    db.refresh(event_type)
    logger.info(f"✅ Created event type {event_type.id} in workspace {current_user.workspace_id}")
    return {"data": event_type_to_dict(event_type)}


@router.patch("")
async def update_event_type(
    data: EventTypeUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not data.id:
        raise HTTPException(status_code=400, detail="Event type ID is required")
    if not data.title or not data.title.strip():
        raise HTTPException(status_code=400, detail="Title is required")

    event_type = _get_event_type(db, workspace_id, data.id)
    event_type.title = data.title.strip()
    event_type.slug = slugify_title(data.title)
    event_type.duration_minutes = parse_duration(data.duration_minutes)
    db.commit()
    db.refresh(event_type)
    return {"data": event_type_to_dict(event_type)}


@router.delete("")
async def delete_event_type(
    id: Optional[str] = Query(None),
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=400, detail="Event type ID is required")
    event_type = _get_event_type(db, workspace_id, id)
    db.delete(event_type)
    db.commit()
    return {"success": True}
