import logging
from datetime import datetime
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from ..auth import get_current_workspace_id
from ..database import get_db
from ..models import Contact

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["Contacts"])


class ContactFields(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class ContactUpdate(ContactFields):
    id: Optional[Union[int, str]] = None


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    workspace_id: int
    name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    city: Optional[str]
    state: Optional[str]
    country: Optional[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def _validated_fields(data: ContactFields) -> dict:
    if not data.name or not data.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if not data.email or not data.email.strip():
        raise HTTPException(status_code=400, detail="Email is required")
    return {
        "name": data.name.strip(),
        "email": data.email.strip(),
        "phone": (data.phone or "").strip() or None,
        "city": (data.city or "").strip() or None,
        "state": (data.state or "").strip() or None,
        "country": (data.country or "").strip() or None,
    }


def _get_contact(db: Session, workspace_id: int, contact_id) -> Contact:
    try:
        contact_id = int(contact_id)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail="Invalid contact ID") from e
    contact = (
        db.query(Contact).filter(Contact.id == contact_id, Contact.workspace_id == workspace_id).first()
    )
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found or unauthorized")
    return contact


@router.get("")
async def get_contacts(workspace_id: int = Depends(get_current_workspace_id), db: Session = Depends(get_db)):
    contacts = (
        db.query(Contact)
        .filter(Contact.workspace_id == workspace_id)
        .order_by(Contact.created_at.desc(), Contact.id.desc())
        .all()
    )
    return {"contacts": [ContactResponse.model_validate(c) for c in contacts]}


@router.post("")
async def create_contact(
    data: ContactFields,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    contact = Contact(workspace_id=workspace_id, **_validated_fields(data))
    db.add(contact)
    db.commit()
    db.refresh(contact)
    logger.info(f"✅ Created contact {contact.id} in workspace {workspace_id}")
    return {"contact": ContactResponse.model_validate(contact)}


@router.put("")
async def update_contact(
    data: ContactUpdate,
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not data.id:
        raise HTTPException(status_code=400, detail="Contact ID is required")
    fields = _validated_fields(data)
    contact = _get_contact(db, workspace_id, data.id)

    for key, value in fields.items():
        setattr(contact, key, value)
    db.commit()
    db.refresh(contact)
    return {"contact": ContactResponse.model_validate(contact)}


@router.delete("")
async def delete_contact(
    id: Optional[str] = Query(None),
    workspace_id: int = Depends(get_current_workspace_id),
    db: Session = Depends(get_db),
):
    if not id:
        raise HTTPException(status_code=400, detail="Contact ID is required")
    contact = _get_contact(db, workspace_id, id)
    db.delete(contact)
    db.commit()
    logger.info(f"🗑️ Deleted contact {id} from workspace {workspace_id}")
    return {"success": True}
