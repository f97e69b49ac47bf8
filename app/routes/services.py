import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_workspace_id
from ..database import get_db
from ..models import Service
from ..utils.date_timezone import to_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])


class ServiceCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Union[float, str]] = None


class ServiceUpdate(ServiceCreate):
    id: Optional[Union[int, str]] = None


def parse_price(value) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid price") from e


def service_to_dict(service: Service) -> dict:
    return {
        "id": service.id,
        "workspace_id": service.workspace_id,
        "name": service.name,
        "description": service.description,
        "price": service.price,
        "created_at": to_iso(service.created_at),
    }


def _get_service(db: Session, workspace_id: int, service_id) -> Service:
    try:
        service_id = int(service_id)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid service ID") from e
    service = db.query(Service).filter(Service.id == service_id, Service.workspace_id == workspace_id).first()
    if not service:
        raise HTTPException(status_code=404, detail="Service not found or unauthorized")
    return service


@router.get("")
async def get_services(workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)):
    services = (
        db.query(Service)
        .filter(Service.workspace_id == workspace_id)
        .order_by(Service.created_at.desc(), Service.id.desc())
        .all()
    )
    return {"services": [service_to_dict(s) for s in services]}


@router.post("")
async def create_service(
    data: ServiceCreate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not data.name or not data.name.strip():
        raise HTTPException(status_code=400, detail="Service name is required")

    service = Service(
        workspace_id=workspace_id,
        name=data.name.strip(),
        description=(data.description or "").strip() or None,
        price=parse_price(data.price),
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    logger.info(f"✅ Created service {service.id} in workspace {workspace_id}")
    return {"service": service_to_dict(service)}


@router.put("")
async def update_service(
    data: ServiceUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not data.id:
        raise HTTPException(status_code=400, detail="Service ID is required")
    if not data.name or not data.name.strip():
        raise HTTPException(status_code=400, detail="Service name is required")

    service = _get_service(db, workspace_id, data.id)
    service.name = data.name.strip()
    service.description = (data.description or "").strip() or None
    service.price = parse_price(data.price)
    db.commit()
    db.refresh(service)
    return {"service": service_to_dict(service)}


@router.delete("")
async def delete_service(
    id: Optional[str] = Query(None),
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=400, detail="Service ID is required")
    service = _get_service(db, workspace_id, id)
    db.delete(service)
    db.commit()
    return {"success": True}
