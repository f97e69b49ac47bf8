"""Slot validation against availability settings and existing bookings."""
from datetime import datetime, timedelta

import pytest

from app.models import Booking, Configuration
from app.services.availability import (
    AvailabilityError,
    check_schedule,
    get_effective_availability,
    has_booking_conflict,
    validate_booking_slot,
)
from app.utils.date_timezone import utcnow

# 2025-03-03 is a Monday
MONDAY_10 = datetime(2025, 3, 3, 10, 0)


def weekday_availability(**overrides) -> dict:
    monday = {"enabled": True, "startTime": "09:00", "endTime": "17:00", "breaks": [{"start": "12:00", "end": "13:00"}]}
    monday.update(overrides)
    return {"timesheet": {"Mon": monday, "Sun": {"enabled": False, "startTime": "09:00", "endTime": "17:00"}}}


class TestCheckSchedule:

    def test_slot_inside_hours_passes(self):
        check_schedule(weekday_availability(), MONDAY_10, MONDAY_10 + timedelta(minutes=30))

    def test_disabled_day_is_rejected(self):
        sunday = MONDAY_10 - timedelta(days=1)
        with pytest.raises(AvailabilityError, match="not enabled in availability settings"):
            check_schedule(weekday_availability(), sunday, sunday + timedelta(minutes=30))

    def test_missing_day_is_rejected(self):
        tuesday = MONDAY_10 + timedelta(days=1)
        with pytest.raises(AvailabilityError, match="not enabled"):
            check_schedule(weekday_availability(), tuesday, tuesday + timedelta(minutes=30))

    def test_slot_before_opening_is_rejected(self):
        start = MONDAY_10.replace(hour=8)
        with pytest.raises(AvailabilityError, match="outside available hours"):
            check_schedule(weekday_availability(), start, start + timedelta(minutes=30))

    def test_slot_running_past_closing_is_rejected(self):
        start = MONDAY_10.replace(hour=16, minute=45)
        with pytest.raises(AvailabilityError, match="outside available hours"):
            check_schedule(weekday_availability(), start, start + timedelta(minutes=30))

    def test_slot_overlapping_break_is_rejected(self):
        start = MONDAY_10.replace(hour=11, minute=45)
        with pytest.raises(AvailabilityError, match="conflicts with a break time"):
            check_schedule(weekday_availability(), start, start + timedelta(minutes=30))

    def test_slot_ending_when_break_starts_passes(self):
        start = MONDAY_10.replace(hour=11, minute=30)
        check_schedule(weekday_availability(), start, start + timedelta(minutes=30))

    def test_hour_marked_unavailable_is_rejected(self):
        availability = weekday_availability()
        availability["individual"] = {"2025-03-03-10": False}
        with pytest.raises(AvailabilityError, match="marked as unavailable"):
            check_schedule(availability, MONDAY_10, MONDAY_10 + timedelta(minutes=30))

    def test_hours_are_checked_in_the_invitee_timezone(self):
        # 04:00 UTC is 09:30 in Kolkata
        start = MONDAY_10.replace(hour=4)
        check_schedule(weekday_availability(), start, start + timedelta(minutes=30), "Asia/Kolkata")
        with pytest.raises(AvailabilityError, match="outside available hours"):
            check_schedule(weekday_availability(), start, start + timedelta(minutes=30))

    def test_unknown_timezone_falls_back_to_utc(self):
        check_schedule(weekday_availability(), MONDAY_10, MONDAY_10 + timedelta(minutes=30), "Not/AZone")


class TestEffectiveAvailability:

    def test_without_provider_returns_workspace_availability(self):
        settings = {"availability": weekday_availability()}
        assert get_effective_availability(settings) == settings["availability"]

    def test_provider_overrides_days_and_hours(self):
        availability = weekday_availability()
        availability["individual"] = {"2025-03-03-9": False}
        availability["providers"] = {
            "prov-1": {
                "timesheet": {"Sun": {"enabled": True, "startTime": "10:00", "endTime": "12:00"}},
                "individual": {"2025-03-03-11": False},
            }
        }

        effective = get_effective_availability({"availability": availability}, "prov-1")

        assert effective["timesheet"]["Sun"]["enabled"] is True
        assert effective["timesheet"]["Mon"]["startTime"] == "09:00"
        assert effective["individual"] == {"2025-03-03-9": False, "2025-03-03-11": False}

    def test_unknown_provider_uses_workspace_schedule(self):
        effective = get_effective_availability({"availability": weekday_availability()}, "someone")
        assert effective["timesheet"]["Mon"]["enabled"] is True


class TestBookingConflicts:

    def _book(self, db, workspace_id, start, minutes=30, status="confirmed", provider=None):
        db.add(
            Booking(
                workspace_id=workspace_id,
                invitee_name="Existing",
                start_at=start,
                end_at=start + timedelta(minutes=minutes),
                status=status,
                service_provider_id=provider,
            )
        )
        db.commit()

    def test_overlap_is_detected(self, db, workspace):
        self._book(db, workspace.id, MONDAY_10)
        assert has_booking_conflict(db, workspace.id, MONDAY_10 + timedelta(minutes=15), MONDAY_10 + timedelta(minutes=45))

    def test_adjacent_slots_do_not_conflict(self, db, workspace):
        self._book(db, workspace.id, MONDAY_10)
        assert not has_booking_conflict(
            db, workspace.id, MONDAY_10 + timedelta(minutes=30), MONDAY_10 + timedelta(minutes=60)
        )

    def test_cancelled_bookings_are_ignored(self, db, workspace):
        self._book(db, workspace.id, MONDAY_10, status="cancelled")
        assert not has_booking_conflict(db, workspace.id, MONDAY_10, MONDAY_10 + timedelta(minutes=30))

    def test_other_providers_do_not_conflict(self, db, workspace):
        self._book(db, workspace.id, MONDAY_10, provider="prov-a")
        assert not has_booking_conflict(
            db, workspace.id, MONDAY_10, MONDAY_10 + timedelta(minutes=30), service_provider_id="prov-b"
        )
        assert has_booking_conflict(
            db, workspace.id, MONDAY_10, MONDAY_10 + timedelta(minutes=30), service_provider_id="prov-a"
        )


class TestValidateBookingSlot:

    @pytest.mark.asyncio
    async def test_past_slot_is_rejected(self, db, workspace):
        start = utcnow() - timedelta(hours=1)
        with pytest.raises(AvailabilityError, match="in the past"):
            await validate_booking_slot(db, workspace.id, start, start + timedelta(minutes=30))

    @pytest.mark.asyncio
    async def test_open_future_slot_passes(self, db, workspace):
        start = (utcnow() + timedelta(days=2)).replace(hour=10, minute=0, second=0, microsecond=0)
        await validate_booking_slot(db, workspace.id, start, start + timedelta(minutes=30))

    @pytest.mark.asyncio
    async def test_booked_slot_is_rejected(self, db, workspace):
        start = (utcnow() + timedelta(days=2)).replace(hour=10, minute=0, second=0, microsecond=0)
        db.add(Booking(workspace_id=workspace.id, invitee_name="A", start_at=start, end_at=start + timedelta(minutes=30)))
        db.commit()

        with pytest.raises(AvailabilityError, match="already booked. Please select another time"):
            await validate_booking_slot(db, workspace.id, start, start + timedelta(minutes=30))

    @pytest.mark.asyncio
    async def test_workspace_without_availability_rejects(self, db, workspace):
        config = db.query(Configuration).filter(Configuration.workspace_id == workspace.id).first()
        config.settings = {"general": {}}
        db.commit()

        start = (utcnow() + timedelta(days=2)).replace(hour=10, minute=0, second=0, microsecond=0)
        with pytest.raises(AvailabilityError, match="not enabled"):
            await validate_booking_slot(db, workspace.id, start, start + timedelta(minutes=30))
