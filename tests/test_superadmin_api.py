"""Superadmin API."""
from datetime import timedelta

import pytest
from httpx import AsyncClient

from app.models import Booking, Configuration, Department, Workspace
from app.utils.date_timezone import utcnow


class TestAccess:

    @pytest.mark.asyncio
    async def test_workspace_admin_is_forbidden(self, client: AsyncClient, auth_headers):
        response = await client.get("/superadmin/users", headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "Forbidden: Superadmin access required"

    @pytest.mark.asyncio
    async def test_anonymous_is_unauthorized(self, client: AsyncClient):
        response = await client.get("/superadmin/workspaces")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_verify_reports_role(self, client: AsyncClient, identity, superadmin_headers):
        response = await client.post("/superadmin/auth/verify", json={"access_token": "super-token"})

        body = response.json()
        assert body["role"] == "superadmin"
        assert body["workspace_id"] is None


class TestBookings:

    @pytest.mark.asyncio
    async def test_bookings_across_workspaces(self, client: AsyncClient, db, superadmin_headers):
        first = Workspace(name="North Clinic", slug="north")
        second = Workspace(name="South Salon", slug="south")
        db.add_all([first, second])
        db.commit()
        start = utcnow() + timedelta(days=1)
        db.add_all(
            [
                Booking(workspace_id=first.id, invitee_name="Ann", start_at=start, status="confirmed"),
                Booking(workspace_id=second.id, invitee_name="Ben", start_at=start + timedelta(hours=1), status="pending"),
                Booking(workspace_id=second.id, invitee_name="Cat", start_at=start + timedelta(hours=2), status="pending"),
            ]
        )
        db.commit()

        everything = await client.get("/superadmin/bookings", params={"limit": 2}, headers=superadmin_headers)
        by_workspace_name = await client.get(
            "/superadmin/bookings", params={"filter": "north"}, headers=superadmin_headers
        )
        by_name_ascending = await client.get(
            "/superadmin/bookings",
            params={"sortBy": "name", "sortOrder": "asc", "status": "pending"},
            headers=superadmin_headers,
        )

        body = everything.json()
        assert [b["invitee_name"] for b in body["bookings"]] == ["Cat", "Ben"]
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
        assert [b["invitee_name"] for b in by_workspace_name.json()["bookings"]] == ["Ann"]
        assert [b["invitee_name"] for b in by_name_ascending.json()["bookings"]] == ["Ben", "Cat"]

    @pytest.mark.asyncio
    async def test_distinct_department_names(self, client: AsyncClient, db, workspace, superadmin_headers):
        db.add_all(
            [
                Department(workspace_id=workspace.id, name="Surgery"),
                Department(workspace_id=workspace.id + 1, name="Surgery"),
                Department(workspace_id=workspace.id, name="Audiology"),
            ]
        )
        db.commit()

        response = await client.get("/superadmin/departments", headers=superadmin_headers)

        assert response.json() == {"departments": ["Audiology", "Surgery"]}


class TestUsers:

    @pytest.mark.asyncio
    async def test_create_user(self, client: AsyncClient, identity, workspace, superadmin_headers):
        payload = {
            "email": "new@acme.test",
            "password": "secret123",
            "name": "New Person",
            "role": "customer",
            "workspace_id": workspace.id,
        }

        response = await client.post("/superadmin/users", json=payload, headers=superadmin_headers)

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["role"] == "customer"
        assert user["workspace_id"] == workspace.id
        assert identity.users[user["id"]]["password"] == "secret123"

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client: AsyncClient, identity, superadmin_headers):
        payload = {"email": "root@platform.test", "password": "secret123", "name": "Dup", "role": "superadmin"}

        response = await client.post("/superadmin/users", json=payload, headers=superadmin_headers)

        assert response.status_code == 409
        assert response.json()["detail"] == "This email is already registered"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,detail",
        [
            ({"email": "x@y.test", "password": "secret123", "name": "X"}, "Email, password, name, and role are required"),
            ({"email": "nope", "password": "secret123", "name": "X", "role": "customer"}, "Invalid email format"),
            ({"email": "x@y.test", "password": "123", "name": "X", "role": "customer"}, "Password must be at least 6 characters"),
            ({"email": "x@y.test", "password": "secret123", "name": "X", "role": "owner"}, "Role must be one of: superadmin, workspace_admin, customer"),
            ({"email": "x@y.test", "password": "secret123", "name": "X", "role": "customer"}, "Workspace ID is required for customer and workspace_admin roles"),
            ({"email": "x@y.test", "password": "secret123", "name": "X", "role": "customer", "workspace_id": 9999}, "Invalid workspace ID"),
        ],
    )
    async def test_create_validation(self, client: AsyncClient, superadmin_headers, payload, detail):
        response = await client.post("/superadmin/users", json=payload, headers=superadmin_headers)

        assert response.status_code == 400
        assert response.json()["detail"] == detail

    @pytest.mark.asyncio
    async def test_promote_to_superadmin_drops_workspace(
        self, client: AsyncClient, identity, admin_user, superadmin_headers
    ):
        response = await client.put(
            f"/superadmin/users/{admin_user.id}",
            json={"email": "admin@acme.test", "name": "Ada", "role": "superadmin"},
            headers=superadmin_headers,
        )

        assert response.status_code == 200
        metadata = identity.users[admin_user.id]["user_metadata"]
        assert metadata["role"] == "superadmin"
        assert "workspace_id" not in metadata
        assert identity.users[admin_user.id]["password"] == "secret123"

    @pytest.mark.asyncio
    async def test_update_to_taken_email(self, client: AsyncClient, workspace, admin_user, superadmin_headers):
        response = await client.put(
            f"/superadmin/users/{admin_user.id}",
            json={"email": "root@platform.test", "name": "Ada", "role": "workspace_admin", "workspace_id": workspace.id},
            headers=superadmin_headers,
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, client: AsyncClient, superadmin_headers):
        response = await client.put(
            "/superadmin/users/missing",
            json={"email": "a@b.test", "name": "A", "role": "superadmin"},
            headers=superadmin_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_and_delete(self, client: AsyncClient, identity, admin_user, superadmin_headers):
        listing = await client.get("/superadmin/users", headers=superadmin_headers)
        assert {u["email"] for u in listing.json()["users"]} == {"admin@acme.test", "root@platform.test"}

        deleted = await client.delete(f"/superadmin/users/{admin_user.id}", headers=superadmin_headers)
        missing = await client.delete(f"/superadmin/users/{admin_user.id}", headers=superadmin_headers)

        assert deleted.json() == {"message": "User deleted successfully"}
        assert missing.status_code == 404
        assert admin_user.id not in identity.users


class TestWorkspaces:

    @pytest.mark.asyncio
    async def test_create_workspace_with_admin(self, client: AsyncClient, db, identity, superadmin_headers):
        payload = {
            "name": "Blue Salon",
            "slug": "blue-salon",
            "primary_color": "#112233",
            "admin_email": "owner@blue.test",
            "admin_password": "secret123",
            "admin_name": "Bea",
        }

        response = await client.post("/superadmin/workspaces", json=payload, headers=superadmin_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Workspace and admin user created successfully"
        assert body["workspace"]["primary_color"] == "#112233"
        assert body["user"]["role"] == "workspace_admin"
        assert body["user"]["workspace_id"] == body["workspace"]["id"]

        config = db.query(Configuration).filter(Configuration.workspace_id == body["workspace"]["id"]).one()
        assert config.settings["general"]["accountName"] == "Blue Salon"
        assert config.settings["general"]["primaryColor"] == "#112233"

    @pytest.mark.asyncio
    async def test_create_requires_complete_admin(self, client: AsyncClient, db, superadmin_headers):
        response = await client.post(
            "/superadmin/workspaces",
            json={"name": "Blue", "slug": "blue", "admin_email": "owner@blue.test"},
            headers=superadmin_headers,
        )

        assert response.status_code == 400
        assert db.query(Workspace).count() == 0

    @pytest.mark.asyncio
    async def test_admin_failure_keeps_workspace(self, client: AsyncClient, db, identity, superadmin_headers):
        payload = {
            "name": "Blue",
            "slug": "blue",
            "admin_email": "root@platform.test",
            "admin_password": "secret123",
            "admin_name": "Dup",
        }

        response = await client.post("/superadmin/workspaces", json=payload, headers=superadmin_headers)

        assert response.status_code == 201
        assert response.json()["error"].startswith("Workspace created but failed to create admin user")
        assert db.query(Workspace).count() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,status",
        [
            ({"name": "X"}, 400),
            ({"name": "X", "slug": "Bad Slug"}, 400),
            ({"name": "X", "slug": "ok", "accent_color": "blue"}, 400),
            ({"name": "X", "slug": "acme-clinic"}, 409),
        ],
    )
    async def test_create_validation(self, client: AsyncClient, workspace, superadmin_headers, payload, status):
        response = await client.post("/superadmin/workspaces", json=payload, headers=superadmin_headers)
        assert response.status_code == status

    @pytest.mark.asyncio
    async def test_list_prefers_settings_colours(self, client: AsyncClient, db, workspace, superadmin_headers):
        workspace.primary_color = "#000000"
        config = db.query(Configuration).filter(Configuration.workspace_id == workspace.id).one()
        config.settings = {**config.settings, "general": {"primaryColor": "#abcdef"}}
        db.commit()

        response = await client.get("/superadmin/workspaces", headers=superadmin_headers)

        assert response.json()["workspaces"][0]["primary_color"] == "#abcdef"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client: AsyncClient, db, workspace, superadmin_headers):
        updated = await client.put(
            f"/superadmin/workspaces/{workspace.id}",
            json={"name": "Acme Renamed", "slug": "acme-renamed", "accent_color": "#fff"},
            headers=superadmin_headers,
        )
        assert updated.json()["workspace"]["slug"] == "acme-renamed"
        assert updated.json()["workspace"]["accent_color"] == "#fff"

        deleted = await client.delete(f"/superadmin/workspaces/{workspace.id}", headers=superadmin_headers)
        assert deleted.json() == {"message": "Workspace deleted successfully"}
        assert db.query(Workspace).count() == 0
        assert db.query(Configuration).count() == 0

    @pytest.mark.asyncio
    async def test_update_missing_workspace(self, client: AsyncClient, superadmin_headers):
        response = await client.put(
            "/superadmin/workspaces/9999", json={"name": "X", "slug": "x"}, headers=superadmin_headers
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_upload_rejects_non_images(self, client: AsyncClient, superadmin_headers):
        response = await client.post(
            "/superadmin/workspaces/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=superadmin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Invalid file type")

    @pytest.mark.asyncio
    async def test_upload_stores_logo(self, client: AsyncClient, superadmin_headers, monkeypatch):
        uploaded = {}

        def fake_upload(key, content, content_type):
            uploaded.update(key=key, content=content, content_type=content_type)
            return f"https://cdn.test/{key}"

        monkeypatch.setattr("app.routes.superadmin.upload_public_file", fake_upload)

        response = await client.post(
            "/superadmin/workspaces/upload",
            files={"file": ("logo.PNG", b"\x89PNG", "image/png")},
            data={"workspaceId": "7"},
            headers=superadmin_headers,
        )

        body = response.json()
        assert body["path"].startswith("workspace-7-")
        assert body["path"].endswith(".png")
        assert body["url"] == f"https://cdn.test/{body['path']}"
        assert uploaded["content_type"] == "image/png"
