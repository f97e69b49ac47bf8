"""
Contact linking
Bookings are attached to a deduplicated contact keyed by email or phone.
"""

import logging
import re
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Contact

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def find_contact(
    db: Session, workspace_id: int, email: Optional[str], phone: Optional[str]
) -> Optional[Contact]:
    email_norm = normalize_email(email)
    if email_norm:
        contact = (
            db.query(Contact)
            .filter(Contact.workspace_id == workspace_id, func.lower(Contact.email) == email_norm)
            .first()
        )
        if contact:
            return contact

    phone_norm = normalize_phone(phone)
    if phone_norm:
        candidates = {phone_norm, (phone or "").strip()}
        return (
            db.query(Contact)
            .filter(Contact.workspace_id == workspace_id, or_(*[Contact.phone == p for p in candidates]))
            .first()
        )
    return None


def find_or_create_contact(
    db: Session,
    workspace_id: int,
    name: Optional[str],
    email: Optional[str],
    phone: Optional[str],
) -> Optional[int]:
    """Return the id of the matching contact, creating one when needed.

    Returns None when neither email nor phone is given, or on a database error.
    """
    email_norm = normalize_email(email)
    phone_norm = normalize_phone(phone)
    if not email_norm and not phone_norm:
        return None

    try:
        existing = find_contact(db, workspace_id, email, phone)
        if existing:
            return existing.id

        contact = Contact(
            workspace_id=workspace_id,
            name=(name or "").strip() or None,
            email=(email or "").strip() or None,
            phone=phone_norm or (phone or "").strip() or None,
        )
        db.add(contact)
        db.commit()
        db.refresh(contact)
        logger.info(f"✅ Created contact {contact.id} in workspace {workspace_id}")
        return contact.id
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Contact linking failed for workspace {workspace_id}: {e}")
        return None
