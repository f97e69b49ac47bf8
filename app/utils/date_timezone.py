"""
Date helpers for availability checks.
All datetimes are persisted as naive UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, TypedDict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


class LocalTimeParts(TypedDict):
    day_of_week: int  # 0 = Sunday
    date_str: str  # YYYY-MM-DD
    hours: int
    minutes: int
    start_minutes: int  # minutes since local midnight


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_datetime(value) -> datetime:
    """Parse an ISO-8601 string (trailing Z allowed) into naive UTC.

    Raises ValueError for unparseable input.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat() + "Z"


def get_local_time_parts(iso_string, tz_name: str) -> LocalTimeParts:
    """Wall-clock parts of an instant as seen in an IANA timezone"""
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz_name}") from e

    local = parse_datetime(iso_string).replace(tzinfo=timezone.utc).astimezone(zone)
    # isoweekday: Monday=1 .. Sunday=7
    day_of_week = local.isoweekday() % 7
    return {
        "day_of_week": day_of_week,
        "date_str": local.strftime("%Y-%m-%d"),
        "hours": local.hour,
        "minutes": local.minute,
        "start_minutes": local.hour * 60 + local.minute,
    }


def day_bounds(dt: datetime) -> tuple[datetime, datetime]:
    """Start of the UTC day containing dt and start of the next day"""
    start = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)
