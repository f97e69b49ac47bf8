"""Booking service - Business logic for booking operations"""

import logging
import math
from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import Booking
from ...services.availability import AvailabilityError, validate_booking_slot
from ...services.contact_linking import find_or_create_contact, normalize_email, normalize_phone
from ...services.google_calendar_service import get_busy_slots
from ...services.identity import IdentityClient
from ...services.notification_service import notify_booking_created
from ...utils.date_timezone import day_bounds, parse_datetime, to_iso, utcnow
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate, EmbedBookingCreate, EmergencyBookingCreate

logger = logging.getLogger(__name__)


def parse_request_time(value: Optional[str], label: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_datetime(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid {label}") from e


def resolve_date_range(
    date: Optional[str], start_date: Optional[str], end_date: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime], bool]:
    """(range_start, range_end, is_range_query) covering whole UTC days"""
    if start_date and end_date:
        start = parse_request_time(start_date, "start_date")
        end = parse_request_time(end_date, "end_date")
        return day_bounds(start)[0], day_bounds(end)[1], True
    if date:
        day_start, day_end = day_bounds(parse_request_time(date, "date"))
        return day_start, day_end, False
    return None, None, False


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Session, identity: IdentityClient):
        self.db = db
        self.identity = identity
        self.repo = BookingRepository()

    async def _calendar_busy(
        self, workspace_id: int, range_start: datetime, range_end: datetime
    ) -> list[dict]:
        return await get_busy_slots(self.db, workspace_id, to_iso(range_start), to_iso(range_end))

    async def list_bookings(
        self,
        workspace_id: int,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        date: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        status: Optional[str] = None,
        event_type_id: Optional[str] = None,
        service_provider_id: Optional[str] = None,
        department_id: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> dict[str, Any]:
        """Dashboard listing; range queries skip pagination and include calendar busy time"""
        page = max(page, 1)
        limit = max(limit, 1)
        range_start, range_end, is_range = resolve_date_range(date, start_date, end_date)

        bookings, total = self.repo.list_bookings(
            self.db,
            workspace_id,
            search=(search or "").strip() or None,
            range_start=range_start,
            range_end=range_end,
            status=(status or "").strip() or None,
            event_type_id=(event_type_id or "").strip() or None,
            service_provider_id=(service_provider_id or "").strip() or None,
            department_id=(department_id or "").strip() or None,
            order_by_created=sort == "latest",
            offset=None if is_range else (page - 1) * limit,
            limit=None if is_range else limit,
        )

        calendar_busy: list[dict] = []
        if is_range:
            calendar_busy = await self._calendar_busy(workspace_id, range_start, range_end)

        return {
            "bookings": bookings,
            "calendar_busy": calendar_busy,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": math.ceil(total / limit),
            },
        }

    async def list_public_bookings(
        self,
        workspace_id: int,
        date: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        service_provider_id: Optional[str] = None,
    ) -> dict[str, Any]:
        """Embed listing: active bookings plus calendar busy time for the requested days"""
        if start_date and not end_date:
            range_start, range_end, _ = resolve_date_range(start_date, None, None)
        else:
            range_start, range_end, _ = resolve_date_range(date, start_date, end_date)

        bookings = self.repo.list_active_bookings(
            self.db, workspace_id, range_start, range_end, (service_provider_id or "").strip() or None
        )

        calendar_busy: list[dict] = []
        if range_start is not None:
            calendar_busy = await self._calendar_busy(workspace_id, range_start, range_end)
        return {"bookings": bookings, "calendar_busy": calendar_busy}

    async def _validate_and_link(
        self, workspace_id: int, data: BookingCreate
    ) -> tuple[datetime, Optional[datetime], Optional[int]]:
        start_at = parse_request_time(data.start_at, "start time")
        end_at = parse_request_time(data.end_at, "end time")

        try:
            await validate_booking_slot(
                self.db, workspace_id, start_at, end_at, data.service_provider_id, data.timezone
            )
        except AvailabilityError as e:
            logger.info(f"ℹ️ Booking rejected for workspace {workspace_id}: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message) from e

        contact_id = find_or_create_contact(
            self.db,
            workspace_id,
            (data.invitee_name or "").strip(),
            (data.invitee_email or "").strip() or None,
            (data.invitee_phone or "").strip() or None,
        )
        return start_at, end_at, contact_id

    def _insert(
        self,
        workspace_id: int,
        data: BookingCreate,
        start_at: datetime,
        end_at: Optional[datetime],
        contact_id: Optional[int],
        host_user_id: Optional[str],
        status: str,
        metadata: Optional[dict],
        location: Optional[str],
        payment_id: Optional[str],
    ) -> Booking:
        return self.repo.create_booking(
            self.db,
            workspace_id=workspace_id,
            event_type_id=data.event_type_id,
            service_provider_id=data.service_provider_id,
            department_id=data.department_id,
            host_user_id=host_user_id,
            invitee_name=data.invitee_name.strip(),
            invitee_email=(data.invitee_email or "").strip() or None,
            invitee_phone=(data.invitee_phone or "").strip() or None,
            contact_id=contact_id,
            start_at=start_at,
            end_at=end_at,
            status=status,
            location=location,
            payment_id=payment_id,
            meta_data=metadata,
        )

    async def create_booking(
        self, workspace_id: Optional[int], data: BookingCreate, host_user_id: str
    ) -> Booking:
        """Validate the slot, link the contact, insert and notify"""
        if not data.invitee_name or not data.invitee_name.strip():
            raise HTTPException(status_code=400, detail="Invitee name is required")
        if not data.start_at:
            raise HTTPException(status_code=400, detail="Start time is required")
        if workspace_id is None:
            raise HTTPException(status_code=400, detail="Workspace ID not found")

        start_at, end_at, contact_id = await self._validate_and_link(workspace_id, data)
        booking = self._insert(
            workspace_id,
            data,
            start_at,
            end_at,
            contact_id,
            host_user_id=host_user_id,
            status=data.status or "pending",
            metadata=data.metadata,
            location=data.location or None,
            payment_id=data.payment_id or None,
        )
        logger.info(f"✅ Created booking {booking.id} in workspace {workspace_id}")

        notes = (data.metadata or {}).get("notes")
        await notify_booking_created(
            self.db, self.identity, booking, data.timezone, str(notes) if notes else None
        )
        return booking

    async def create_embed_booking(
        self, data: EmbedBookingCreate, auto_confirm: bool
    ) -> Booking:
        """Public booking; caller has already checked the workspace and OTP"""
        start_at, end_at, contact_id = await self._validate_and_link(data.workspace_id, data)

        metadata: dict[str, Any] = {
            "source": "embed",
            "verified_phone": normalize_phone(data.invitee_phone) if data.invitee_phone else None,
            "verified_email": normalize_email(data.invitee_email) if data.invitee_email else None,
        }
        if isinstance(data.intake_form, dict):
            metadata["intake_form"] = data.intake_form
            if data.intake_form.get("additional_description"):
                metadata["notes"] = data.intake_form["additional_description"]

        booking = self._insert(
            data.workspace_id,
            data,
            start_at,
            end_at,
            contact_id,
            host_user_id=None,
            status="confirmed" if auto_confirm else "pending",
            metadata=metadata,
            location=None,
            payment_id=None,
        )
        logger.info(f"✅ Created embed booking {booking.id} in workspace {data.workspace_id}")

        notes = metadata.get("notes")
        await notify_booking_created(
            self.db, self.identity, booking, data.timezone, str(notes) if notes else None
        )
        return booking

    def create_emergency_booking(
        self, workspace_id: Optional[int], data: EmergencyBookingCreate, host_user_id: str
    ) -> Booking:
        if not data.invitee_name or not data.invitee_name.strip():
            raise HTTPException(status_code=400, detail="Name is required")
        if workspace_id is None:
            raise HTTPException(status_code=400, detail="Workspace ID not found")

        now = utcnow()
        description = (data.additional_description or "").strip() or None
        contact_id = find_or_create_contact(
            self.db,
            workspace_id,
            data.invitee_name.strip(),
            (data.invitee_email or "").strip() or None,
            (data.invitee_phone or "").strip() or None,
        )
        booking = self.repo.create_booking(
            self.db,
            workspace_id=workspace_id,
            event_type_id=data.event_type_id,
            service_provider_id=data.service_provider_id,
            department_id=data.department_id,
            host_user_id=host_user_id,
            invitee_name=data.invitee_name.strip(),
            invitee_email=(data.invitee_email or "").strip() or None,
            invitee_phone=(data.invitee_phone or "").strip() or None,
            contact_id=contact_id,
            start_at=now,
            end_at=now,
            status="emergency",
            meta_data={
                "source": "emergency_booking",
                "emergency_datetime": to_iso(now),
                "additional_description": description,
            },
        )
        logger.info(f"🚨 Created emergency booking {booking.id} in workspace {workspace_id}")
        return booking

    def update_booking(self, workspace_id: int, data: BookingUpdate) -> Booking:
        if not data.id:
            raise HTTPException(status_code=400, detail="Booking ID is required")

        booking = self._get_owned(workspace_id, data.id)
        provided = data.model_dump(exclude_unset=True)
        provided.pop("id", None)

        updates: dict[str, Any] = {}
        for key, value in provided.items():
            if key == "start_at":
                updates["start_at"] = parse_request_time(value, "start time") if value else booking.start_at
            elif key == "end_at":
                updates["end_at"] = parse_request_time(value, "end time")
            elif key == "metadata":
                updates["meta_data"] = value or None
            elif key == "invitee_name" and not (value or "").strip():
                raise HTTPException(status_code=400, detail="Invitee name is required")
            elif key == "status":
                if value:
                    updates["status"] = value
            elif isinstance(value, str):
                updates[key] = value.strip() or None
            else:
                updates[key] = value

        return self.repo.update_booking(self.db, booking, updates)

    def delete_booking(self, workspace_id: int, booking_id) -> None:
        booking = self._get_owned(workspace_id, booking_id)
        self.repo.delete_booking(self.db, booking)
        logger.info(f"🗑️ Deleted booking {booking.id} from workspace {workspace_id}")

    def _get_owned(self, workspace_id: int, booking_id) -> Booking:
        try:
            booking_id = int(booking_id)
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail="Invalid booking ID") from e
        booking = self.repo.get_booking(self.db, booking_id, workspace_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found or access denied")
        return booking
