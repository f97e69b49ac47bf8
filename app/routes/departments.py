import json
import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_workspace_id
from ..database import get_db
from ..models import Department
from ..utils.date_timezone import to_iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/departments", tags=["Departments"])


class DepartmentCreate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    # Object, or the same object serialized as a JSON string
    meta_data: Optional[Any] = None


class DepartmentUpdate(DepartmentCreate):
    id: Optional[Union[int, str]] = None


def parse_meta_data(value) -> Optional[dict]:
    """meta_data as a dict; None when absent or unusable"""
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def department_to_dict(department: Department) -> dict:
    return {
        "id": department.id,
        "workspace_id": department.workspace_id,
        "name": department.name,
        "description": department.description,
        "meta_data": department.meta_data,
        "created_at": to_iso(department.created_at),
    }


def _require_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise HTTPException(status_code=400, detail="Department name is required")
    return name.strip()


def _get_department(db: Session, workspace_id: int, department_id) -> Department:
    try:
        department_id = int(department_id)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid department ID") from e
    department = (
        db.query(Department)
        .filter(Department.id == department_id, Department.workspace_id == workspace_id)
        .first()
    )
    if not department:
        raise HTTPException(status_code=404, detail="Department not found or unauthorized")
    return department


@router.get("")
async def get_departments(workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)):
    departments = (
        db.query(Department)
        .filter(Department.workspace_id == workspace_id)
        .order_by(Department.created_at.desc(), Department.id.desc())
        .all()
    )
    return {"departments": [department_to_dict(d) for d in departments]}


@router.post("")
async def create_department(
    data: DepartmentCreate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    name = _require_name(data.name)
    department = Department(
        workspace_id=workspace_id,
        name=name,
        description=(data.description or "").strip() or None,
        meta_data=parse_meta_data(data.meta_data) or {"services": []},
    )
    db.add(department)
    db.commit()
    db.refresh(department)
    logger.info(f"✅ Created department {department.id} in workspace {workspace_id}")
    return {"department": department_to_dict(department)}


@router.put("")
async def update_department(
    data: DepartmentUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    """Existing meta_data keys are kept; a provided services list replaces the old one"""
    if not data.id:
        raise HTTPException(status_code=400, detail="Department ID is required")
    name = _require_name(data.name)
    department = _get_department(db, workspace_id, data.id)

    meta_data = dict(department.meta_data or {})
    incoming = parse_meta_data(data.meta_data)
    if incoming and "services" in incoming:
        services = incoming["services"]
        meta_data["services"] = services if isinstance(services, list) else []

    department.name = name
    department.description = (data.description or "").strip() or None
    department.meta_data = meta_data
    db.commit()
    db.refresh(department)
    return {"department": department_to_dict(department)}


@router.delete("")
async def delete_department(
    id: Optional[str] = Query(None),
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=400, detail="Department ID is required")
    department = _get_department(db, workspace_id, id)
    db.delete(department)
    db.commit()
    return {"success": True}
