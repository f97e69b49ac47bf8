"""Booking domain schemas - Pydantic models for validation"""

from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator

from ...models import Booking
from ...utils.date_timezone import to_iso


def _blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class BookingReferences(BaseModel):
    """Foreign keys as sent by the dashboard and embed forms ("" means unset)"""

    event_type_id: Optional[int] = None
    service_provider_id: Optional[str] = None
    department_id: Optional[int] = None

    @field_validator("event_type_id", "department_id", mode="before")
    @classmethod
    def numeric_ids(cls, v):
        return _blank_to_none(v)

    @field_validator("service_provider_id", mode="before")
    @classmethod
    def provider_id(cls, v):
        v = _blank_to_none(v)
        return str(v) if v is not None else None


class BookingCreate(BookingReferences):
    """Schema for creating a booking from the dashboard"""

    invitee_name: Optional[str] = None
    invitee_email: Optional[str] = None
    invitee_phone: Optional[str] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    payment_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    timezone: Optional[str] = None


class EmbedBookingCreate(BookingCreate):
    """Public booking; workspace is addressed explicitly"""

    workspace_id: Optional[int] = None
    otp_code: Optional[str] = None
    verified_identifier: Optional[str] = None
    intake_form: Optional[dict[str, Any]] = None


class BookingUpdate(BookingReferences):
    """Partial update; only fields present in the request are written"""

    id: Optional[Union[int, str]] = None
    invitee_name: Optional[str] = None
    invitee_email: Optional[str] = None
    invitee_phone: Optional[str] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    payment_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class EmergencyBookingCreate(BookingReferences):
    invitee_name: Optional[str] = None
    invitee_email: Optional[str] = None
    invitee_phone: Optional[str] = None
    additional_description: Optional[str] = None


def booking_to_dict(booking: Booking, include_relations: bool = False) -> dict[str, Any]:
    """JSON shape of a booking row"""
    data = {
        "id": booking.id,
        "workspace_id": booking.workspace_id,
        "event_type_id": booking.event_type_id,
        "service_provider_id": booking.service_provider_id,
        "department_id": booking.department_id,
        "host_user_id": booking.host_user_id,
        "invitee_name": booking.invitee_name,
        "invitee_email": booking.invitee_email,
        "invitee_phone": booking.invitee_phone,
        "contact_id": booking.contact_id,
        "start_at": to_iso(booking.start_at),
        "end_at": to_iso(booking.end_at),
        "status": booking.status,
        "location": booking.location,
        "payment_id": booking.payment_id,
        "metadata": booking.meta_data,
        "created_at": to_iso(booking.created_at),
        "updated_at": to_iso(booking.updated_at),
    }
    if include_relations:
        data["event_types"] = {"title": booking.event_type.title} if booking.event_type else None
        data["contacts"] = (
            {
                "name": booking.contact.name,
                "phone": booking.contact.phone,
                "email": booking.contact.email,
            }
            if booking.contact
            else None
        )
    return data
