"""Dashboard booking API."""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.models import Booking, Contact, EventType
from app.utils.date_timezone import parse_datetime, utcnow

from .conftest import future_slot


def make_booking(db, workspace_id, name="Existing", days=1, hour=9, status="confirmed", **fields):
    start = (utcnow() + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
    booking = Booking(
        workspace_id=workspace_id,
        invitee_name=name,
        start_at=start,
        end_at=start + timedelta(minutes=30),
        status=status,
        **fields,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_create_booking_success(self, client: AsyncClient, db, workspace, admin_user, auth_headers, notify_mock):
        start, end = future_slot()
        payload = {
            "invitee_name": "  Jane Doe ",
            "invitee_email": "Jane@Example.com",
            "invitee_phone": "+1 555 0100",
            "start_at": start,
            "end_at": end,
            "event_type_id": "",
            "service_provider_id": "",
            "metadata": {"notes": "First visit"},
        }

        response = await client.post("/bookings", json=payload, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["invitee_name"] == "Jane Doe"
        assert data["workspace_id"] == workspace.id
        assert data["host_user_id"] == admin_user.id
        assert data["status"] == "pending"
        assert data["event_type_id"] is None
        assert data["start_at"] == start
        assert data["contact_id"] is not None

        contact = db.get(Contact, data["contact_id"])
        assert contact.email == "Jane@Example.com"
        assert contact.phone == "15550100"

        notify_mock.assert_awaited_once()
        assert notify_mock.await_args.args[4] == "First visit"

    @pytest.mark.asyncio
    async def test_requires_invitee_name(self, client: AsyncClient, workspace, auth_headers, notify_mock):
        start, end = future_slot()
        response = await client.post("/bookings", json={"invitee_name": " ", "start_at": start}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Invitee name is required"

    @pytest.mark.asyncio
    async def test_requires_start_time(self, client: AsyncClient, workspace, auth_headers, notify_mock):
        response = await client.post("/bookings", json={"invitee_name": "Jane"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Start time is required"

    @pytest.mark.asyncio
    async def test_user_without_workspace(self, client: AsyncClient, identity, notify_mock):
        identity.add_user("loner@example.com", {"role": "workspace_admin"}, token="loner")
        start, _ = future_slot()

        response = await client.post(
            "/bookings", json={"invitee_name": "Jane", "start_at": start}, headers={"Authorization": "Bearer loner"}
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Workspace ID not found"

    @pytest.mark.asyncio
    async def test_past_slot_rejected(self, client: AsyncClient, workspace, auth_headers, notify_mock):
        start = (utcnow() - timedelta(hours=2)).isoformat() + "Z"

        response = await client.post("/bookings", json={"invitee_name": "Jane", "start_at": start}, headers=auth_headers)

        assert response.status_code == 400
        assert "in the past" in response.json()["detail"]
        notify_mock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_double_booking_rejected(self, client: AsyncClient, db, workspace, auth_headers, notify_mock):
        start, end = future_slot()
        first = await client.post(
            "/bookings", json={"invitee_name": "A", "start_at": start, "end_at": end}, headers=auth_headers
        )
        second = await client.post(
            "/bookings", json={"invitee_name": "B", "start_at": start, "end_at": end}, headers=auth_headers
        )

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["detail"] == "This time slot is already booked. Please select another time."
        assert db.query(Booking).count() == 1

    @pytest.mark.asyncio
    async def test_invalid_start_time(self, client: AsyncClient, workspace, auth_headers, notify_mock):
        response = await client.post(
            "/bookings", json={"invitee_name": "Jane", "start_at": "tomorrow-ish"}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid start time"


class TestListBookings:

    @pytest.mark.asyncio
    async def test_paginated_listing_is_scoped_to_workspace(self, client: AsyncClient, db, workspace, auth_headers):
        for i in range(3):
            make_booking(db, workspace.id, name=f"Guest {i}", hour=9 + i)
        make_booking(db, workspace.id + 100, name="Other tenant")

        response = await client.get("/bookings", params={"page": 1, "limit": 2}, headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert [b["invitee_name"] for b in body["data"]] == ["Guest 2", "Guest 1"]
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
        assert body["calendar_busy"] == []

    @pytest.mark.asyncio
    async def test_filters(self, client: AsyncClient, db, workspace, auth_headers):
        event_type = EventType(workspace_id=workspace.id, title="Consult", slug="consult")
        db.add(event_type)
        db.commit()
        make_booking(db, workspace.id, name="Alice", status="confirmed", event_type_id=event_type.id)
        make_booking(db, workspace.id, name="Bob", hour=11, status="cancelled")

        by_status = await client.get("/bookings", params={"status": "cancelled"}, headers=auth_headers)
        by_search = await client.get("/bookings", params={"search": "ali"}, headers=auth_headers)
        by_type = await client.get("/bookings", params={"event_type_id": str(event_type.id)}, headers=auth_headers)

        assert [b["invitee_name"] for b in by_status.json()["data"]] == ["Bob"]
        assert [b["invitee_name"] for b in by_search.json()["data"]] == ["Alice"]
        assert by_type.json()["data"][0]["event_types"] == {"title": "Consult"}

    @pytest.mark.asyncio
    async def test_date_range_returns_every_match(self, client: AsyncClient, db, workspace, auth_headers):
        for i in range(12):
            make_booking(db, workspace.id, name=f"Guest {i}", days=1 + i % 2, hour=8 + i % 10)
        make_booking(db, workspace.id, name="Far future", days=10)

        day1 = (utcnow() + timedelta(days=1)).strftime("%Y-%m-%d")
        day2 = (utcnow() + timedelta(days=2)).strftime("%Y-%m-%d")
        response = await client.get(
            "/bookings", params={"start_date": day1, "end_date": day2, "limit": 5}, headers=auth_headers
        )

        body = response.json()
        assert len(body["data"]) == 12
        assert body["pagination"]["total"] == 12

    @pytest.mark.asyncio
    async def test_single_date_filter(self, client: AsyncClient, db, workspace, auth_headers):
        make_booking(db, workspace.id, name="Tomorrow", days=1)
        make_booking(db, workspace.id, name="Later", days=3)

        day = (utcnow() + timedelta(days=1)).strftime("%Y-%m-%d")
        response = await client.get("/bookings", params={"date": day}, headers=auth_headers)

        assert [b["invitee_name"] for b in response.json()["data"]] == ["Tomorrow"]

    @pytest.mark.asyncio
    async def test_latest_sort_orders_by_creation(self, client: AsyncClient, db, workspace, auth_headers):
        early = make_booking(db, workspace.id, name="Booked first", days=5)
        late = make_booking(db, workspace.id, name="Booked second", days=1)
        early.created_at = utcnow() - timedelta(days=1)
        late.created_at = utcnow()
        db.commit()

        response = await client.get("/bookings", params={"sort": "latest"}, headers=auth_headers)

        assert [b["invitee_name"] for b in response.json()["data"]] == ["Booked second", "Booked first"]


class TestUpdateAndDelete:

    @pytest.mark.asyncio
    async def test_partial_update(self, client: AsyncClient, db, workspace, auth_headers):
        booking = make_booking(db, workspace.id, name="Jane", location="Room 1")

        response = await client.patch(
            "/bookings", json={"id": booking.id, "status": "confirmed", "location": ""}, headers=auth_headers
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "confirmed"
        assert data["location"] is None
        assert data["invitee_name"] == "Jane"

    @pytest.mark.asyncio
    async def test_reschedule(self, client: AsyncClient, db, workspace, auth_headers):
        booking = make_booking(db, workspace.id)
        start, end = future_slot(days=4, hour=15)

        response = await client.patch(
            "/bookings", json={"id": booking.id, "start_at": start, "end_at": end}, headers=auth_headers
        )

        db.refresh(booking)
        assert response.status_code == 200
        assert booking.start_at == parse_datetime(start)

    @pytest.mark.asyncio
    async def test_update_other_workspace_booking_is_not_found(self, client: AsyncClient, db, workspace, auth_headers):
        foreign = make_booking(db, workspace.id + 1)

        response = await client.patch("/bookings", json={"id": foreign.id, "status": "confirmed"}, headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Booking not found or access denied"

    @pytest.mark.asyncio
    async def test_update_requires_id(self, client: AsyncClient, workspace, auth_headers):
        response = await client.patch("/bookings", json={"status": "confirmed"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Booking ID is required"

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, db, workspace, auth_headers):
        booking = make_booking(db, workspace.id)

        response = await client.delete("/bookings", params={"id": booking.id}, headers=auth_headers)

        assert response.json() == {"success": True}
        assert db.query(Booking).count() == 0

    @pytest.mark.asyncio
    async def test_delete_foreign_booking(self, client: AsyncClient, db, workspace, auth_headers):
        foreign = make_booking(db, workspace.id + 1)

        response = await client.delete("/bookings", params={"id": foreign.id}, headers=auth_headers)

        assert response.status_code == 404
        assert db.query(Booking).count() == 1


class TestEmergencyBooking:

    @pytest.mark.asyncio
    async def test_emergency_booking_is_stamped_now(self, client: AsyncClient, db, workspace, auth_headers):
        response = await client.post(
            "/bookings/emergency",
            json={"invitee_name": "Walk In", "invitee_phone": "555 0199", "additional_description": "  Urgent  "},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "emergency"
        assert data["metadata"]["source"] == "emergency_booking"
        assert data["metadata"]["additional_description"] == "Urgent"
        assert data["start_at"] == data["end_at"]
        assert abs(parse_datetime(data["start_at"]) - utcnow()) < timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_emergency_booking_requires_name(self, client: AsyncClient, workspace, auth_headers):
        response = await client.post("/bookings/emergency", json={}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == "Name is required"
