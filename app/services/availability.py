"""
Availability Validation
Checks a requested booking slot against the workspace timesheet, breaks,
per-hour overrides, Google Calendar busy time and existing bookings.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import Booking
from ..utils.date_timezone import day_bounds, get_local_time_parts, utcnow
from .google_calendar_service import GoogleOAuthError, is_slot_busy_in_calendar
from .settings_service import get_settings

logger = logging.getLogger(__name__)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class AvailabilityError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _to_minutes(hhmm: str) -> int:
    hours, minutes = str(hhmm).split(":")[:2]
    return int(hours) * 60 + int(minutes)


def get_effective_availability(
    settings: dict[str, Any], service_provider_id: Optional[str] = None
) -> dict[str, Any]:
    """Workspace availability with the provider's timesheet/individual overrides applied"""
    availability = settings.get("availability") or {}
    if not service_provider_id:
        return availability

    overrides = (availability.get("providers") or {}).get(str(service_provider_id)) or {}
    general_timesheet = availability.get("timesheet")
    if general_timesheet:
        timesheet = {**general_timesheet, **(overrides.get("timesheet") or {})}
    else:
        timesheet = overrides.get("timesheet")
    return {
        "timesheet": timesheet,
        "individual": {**(availability.get("individual") or {}), **(overrides.get("individual") or {})},
    }


def _local_parts(dt: datetime, timezone: Optional[str]) -> dict:
    if timezone and timezone.strip():
        try:
            return get_local_time_parts(dt, timezone.strip())
        except ValueError:
            logger.warning(f"⚠️ Unknown timezone '{timezone}', validating slot in UTC")
    return {
        "day_of_week": dt.isoweekday() % 7,
        "date_str": dt.strftime("%Y-%m-%d"),
        "hours": dt.hour,
        "minutes": dt.minute,
        "start_minutes": dt.hour * 60 + dt.minute,
    }


def check_schedule(
    availability: dict[str, Any],
    start_at: datetime,
    end_at: datetime,
    timezone: Optional[str] = None,
) -> None:
    """Timesheet, break and per-hour override checks; raises AvailabilityError"""
    start_parts = _local_parts(start_at, timezone)
    end_parts = _local_parts(end_at, timezone)

    day_name = DAY_NAMES[start_parts["day_of_week"]]
    day_schedule = (availability.get("timesheet") or {}).get(day_name)
    if not day_schedule or not day_schedule.get("enabled"):
        raise AvailabilityError(
            "This time slot is not available. The selected day is not enabled in availability settings."
        )

    start_minutes = start_parts["start_minutes"]
    end_minutes = end_parts["start_minutes"]
    if start_minutes < _to_minutes(day_schedule["startTime"]) or end_minutes > _to_minutes(
        day_schedule["endTime"]
    ):
        raise AvailabilityError("This time slot is outside available hours.")

    for break_time in day_schedule.get("breaks") or []:
        if start_minutes < _to_minutes(break_time["end"]) and end_minutes > _to_minutes(break_time["start"]):
            raise AvailabilityError("This time slot conflicts with a break time.")

    individual_key = f"{start_parts['date_str']}-{start_parts['hours']}"
    if (availability.get("individual") or {}).get(individual_key) is False:
        raise AvailabilityError("This time slot has been marked as unavailable.")


def has_booking_conflict(
    db: Session,
    workspace_id: int,
    start_at: datetime,
    end_at: datetime,
    service_provider_id: Optional[str] = None,
) -> bool:
    day_start, day_end = day_bounds(start_at)
    query = db.query(Booking.start_at, Booking.end_at).filter(
        Booking.workspace_id == workspace_id,
        Booking.status != "cancelled",
        Booking.start_at >= day_start,
        Booking.start_at <= day_end,
    )
    if service_provider_id:
        query = query.filter(Booking.service_provider_id == str(service_provider_id))

    for booking_start, booking_end in query.all():
        if start_at < (booking_end or booking_start) and end_at > booking_start:
            return True
    return False


async def validate_booking_slot(
    db: Session,
    workspace_id: int,
    start_at: datetime,
    end_at: Optional[datetime] = None,
    service_provider_id: Optional[str] = None,
    timezone: Optional[str] = None,
) -> None:
    """Raise AvailabilityError when the slot cannot be booked"""
    end_at = end_at or start_at

    if start_at < utcnow():
        raise AvailabilityError("Cannot book a time slot in the past. Please select a future time.")

    availability = get_effective_availability(get_settings(db, workspace_id), service_provider_id)
    check_schedule(availability, start_at, end_at, timezone)

    try:
        if await is_slot_busy_in_calendar(db, workspace_id, start_at, end_at):
            raise AvailabilityError(
                "This time slot is already booked or blocked in calendar. Please select another time."
            )
    except (GoogleOAuthError, ValueError) as e:
        logger.warning(f"⚠️ Google Calendar conflict check failed (non-blocking): {e}")

    if has_booking_conflict(db, workspace_id, start_at, end_at, service_provider_id):
        raise AvailabilityError("This time slot is already booked. Please select another time.")
