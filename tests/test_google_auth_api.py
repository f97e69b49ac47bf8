"""Sign in and sign up with Google."""
import base64
import json
import time
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from httpx import AsyncClient
from itsdangerous import TimestampSigner, URLSafeTimedSerializer

from app.config import SECRET_KEY
from app.models import Workspace
from app.security_utils import SIGNUP_PAYLOAD_SALT, decode_state, encode_state
from app.services.google_calendar_service import GoogleOAuthError
from app.services.integrations import get_integration


@pytest.fixture
def google_configured(monkeypatch):
    monkeypatch.setattr("app.services.google_calendar_service.GOOGLE_CLIENT_ID", "client-id")
    monkeypatch.setattr("app.services.google_calendar_service.GOOGLE_CLIENT_SECRET", "client-secret")


def signup_payload(**overrides) -> str:
    payload = {
        "access_token": "g-access",
        "refresh_token": "g-refresh",
        "expires_at": 9999999999,
        "scope": "openid email",
        "email": "gina@example.com",
        "name": "Gina",
        "picture": None,
        "google_id": "g-42",
        "enableCalendarSync": False,
        "isSignup": False,
        "returnTo": None,
    }
    payload.update(overrides)
    return encode_state(payload, SIGNUP_PAYLOAD_SALT)


class BackdatedSigner(TimestampSigner):
    def get_timestamp(self):
        return int(time.time()) - 3600


class BackdatedSerializer(URLSafeTimedSerializer):
    default_signer = BackdatedSigner


def redirect_query(response) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(response.headers["location"]).query).items()}


class TestStartGoogleAuth:

    @pytest.mark.asyncio
    async def test_not_configured(self, client: AsyncClient):
        response = await client.post("/auth/google", json={})
        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_sign_in_url(self, client: AsyncClient, google_configured):
        response = await client.post("/auth/google", json={"returnTo": "/bookings"})

        query = parse_qs(urlparse(response.json()["authUrl"]).query)
        assert query["prompt"] == ["select_account"]
        assert "calendar" not in query["scope"][0]
        assert decode_state(query["state"][0]) == {
            "enableCalendarSync": False,
            "isSignup": False,
            "returnTo": "/bookings",
        }

    @pytest.mark.asyncio
    async def test_sign_up_with_calendar_sync(self, client: AsyncClient, google_configured):
        response = await client.post("/auth/google", json={"isSignup": True, "enableCalendarSync": True})

        query = parse_qs(urlparse(response.json()["authUrl"]).query)
        assert query["prompt"] == ["consent"]
        assert "https://www.googleapis.com/auth/calendar" in query["scope"][0]


class TestGoogleCallback:

    @pytest.mark.asyncio
    async def test_provider_error_on_signup_returns_to_register(self, client: AsyncClient):
        state = encode_state({"isSignup": True})

        response = await client.get("/auth/google/callback", params={"error": "access_denied", "state": state})

        assert response.status_code == 307
        assert urlparse(response.headers["location"]).path == "/register"
        assert redirect_query(response) == {"error": "access_denied"}

    @pytest.mark.asyncio
    async def test_missing_code(self, client: AsyncClient):
        response = await client.get("/auth/google/callback")

        assert urlparse(response.headers["location"]).path == "/login"
        assert redirect_query(response) == {"error": "missing_code"}

    @pytest.mark.asyncio
    async def test_exchange_forwards_profile_to_signup(self, client: AsyncClient, google_configured, monkeypatch):
        monkeypatch.setattr(
            "app.services.google_calendar_service.exchange_code",
            AsyncMock(
                return_value={
                    "access_token": "g-access",
                    "refresh_token": "g-refresh",
                    "expires_at": 123,
                    "scope": "openid https://www.googleapis.com/auth/calendar",
                }
            ),
        )
        monkeypatch.setattr(
            "app.services.google_calendar_service.get_user_info",
            AsyncMock(return_value={"email": "gina@example.com", "name": "Gina", "id": "g-42"}),
        )
        state = encode_state({"enableCalendarSync": True, "isSignup": True})

        response = await client.get("/auth/google/callback", params={"code": "c", "state": state})

        location = urlparse(response.headers["location"])
        assert location.path == "/auth/google/signup"
        payload = decode_state(redirect_query(response)["payload"], SIGNUP_PAYLOAD_SALT)
        assert payload["email"] == "gina@example.com"
        assert payload["enableCalendarSync"] is True
        assert payload["isSignup"] is True

    @pytest.mark.asyncio
    async def test_unsigned_state_is_rejected(self, client: AsyncClient, google_configured, monkeypatch):
        exchange = AsyncMock()
        monkeypatch.setattr("app.services.google_calendar_service.exchange_code", exchange)
        forged = base64.urlsafe_b64encode(json.dumps({"isSignup": False}).encode()).decode()

        response = await client.get("/auth/google/callback", params={"code": "c", "state": forged})

        assert urlparse(response.headers["location"]).path == "/login"
        assert redirect_query(response) == {"error": "invalid_state"}
        exchange.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [GoogleOAuthError("Could not reach Google"), httpx.ConnectError("down")])
    async def test_google_failure_redirects_to_login(
        self, client: AsyncClient, google_configured, monkeypatch, failure
    ):
        monkeypatch.setattr("app.services.google_calendar_service.exchange_code", AsyncMock(side_effect=failure))

        response = await client.get("/auth/google/callback", params={"code": "c", "state": encode_state({})})

        assert response.status_code == 307
        assert urlparse(response.headers["location"]).path == "/login"
        assert redirect_query(response)["error"]

class TestGoogleSignup:

    @pytest.mark.asyncio
    async def test_existing_user_gets_one_time_session(self, client: AsyncClient, db, identity):
        user = identity.add_user("gina@example.com", {"name": "Gina"})

        response = await client.get("/auth/google/signup", params={"payload": signup_payload(returnTo="/bookings")})

        location = urlparse(response.headers["location"])
        query = redirect_query(response)
        assert location.path == "/auth/callback"
        assert query["next"] == "/bookings"
        assert "sb_callback_t=" in response.headers["set-cookie"]

        tokens = await client.get("/auth/callback-tokens", params={"t": query["t"]})
        assert tokens.status_code == 200
        assert identity.tokens[tokens.json()["access_token"]] == user.id

        metadata = identity.users[user.id]["user_metadata"]
        assert metadata["role"] == "workspace_admin"
        assert db.get(Workspace, metadata["workspace_id"]).owner_id == user.id

    @pytest.mark.asyncio
    async def test_external_return_to_is_ignored(self, client: AsyncClient, identity):
        identity.add_user("gina@example.com", {"name": "Gina"})

        response = await client.get(
            "/auth/google/signup", params={"payload": signup_payload(returnTo="https://evil.test")}
        )

        assert redirect_query(response)["next"] == "/"

    @pytest.mark.asyncio
    async def test_unknown_user_signing_in_is_sent_to_register(self, client: AsyncClient, db):
        response = await client.get("/auth/google/signup", params={"payload": signup_payload()})

        assert urlparse(response.headers["location"]).path == "/register"
        assert redirect_query(response) == {"error": "user_not_found"}
        assert db.query(Workspace).count() == 0

    @pytest.mark.asyncio
    async def test_sign_up_creates_user_workspace_and_calendar(self, client: AsyncClient, db, identity):
        payload = signup_payload(isSignup=True, enableCalendarSync=True, scope="https://www.googleapis.com/auth/calendar")

        response = await client.get("/auth/google/signup", params={"payload": payload})

        assert redirect_query(response)["next"] == "/register?onboarding=1"
        user = await identity.admin_find_user_by_email("gina@example.com")
        assert user.user_metadata["signup_method"] == "google"
        assert user.user_metadata["google_calendar_sync"] is True
        assert user.role == "workspace_admin"

        workspace = db.query(Workspace).one()
        assert workspace.owner_id == user.id
        assert get_integration(db, workspace.id, "google_calendar")["refresh_token"] == "g-refresh"

    @pytest.mark.asyncio
    async def test_missing_payload(self, client: AsyncClient):
        response = await client.get("/auth/google/signup")
        assert redirect_query(response) == {"error": "missing_data"}

    @pytest.mark.asyncio
    async def test_incomplete_profile(self, client: AsyncClient):
        response = await client.get("/auth/google/signup", params={"payload": signup_payload(google_id=None)})
        assert redirect_query(response) == {"error": "missing_user_data"}

    @pytest.mark.asyncio
    async def test_forged_payload_opens_no_session(self, client: AsyncClient, identity):
        identity.add_user("admin@acme.test", {"name": "Ada"})
        forged = base64.urlsafe_b64encode(
            json.dumps({"email": "admin@acme.test", "name": "Ada", "google_id": "g-1", "isSignup": False}).encode()
        ).decode()

        response = await client.get("/auth/google/signup", params={"payload": forged})

        assert urlparse(response.headers["location"]).path == "/login"
        assert redirect_query(response) == {"error": "invalid_state"}
        assert "set-cookie" not in response.headers

    @pytest.mark.asyncio
    async def test_tampered_signature(self, client: AsyncClient, identity):
        identity.add_user("gina@example.com", {"name": "Gina"})
        signed = signup_payload()
        body, signature = signed.rsplit(".", 1)
        tampered = f"{body}.{'A' if signature[0] != 'A' else 'B'}{signature[1:]}"

        response = await client.get("/auth/google/signup", params={"payload": tampered})

        assert redirect_query(response) == {"error": "invalid_state"}

    @pytest.mark.asyncio
    async def test_expired_payload(self, client: AsyncClient, identity):
        identity.add_user("gina@example.com", {"name": "Gina"})
        expired = BackdatedSerializer(SECRET_KEY).dumps(
            {"email": "gina@example.com", "name": "Gina", "google_id": "g-42"}, salt=SIGNUP_PAYLOAD_SALT
        )

        response = await client.get("/auth/google/signup", params={"payload": expired})

        assert redirect_query(response) == {"error": "invalid_state"}

    @pytest.mark.asyncio
    async def test_sign_in_state_is_not_a_signup_payload(self, client: AsyncClient, identity):
        identity.add_user("gina@example.com", {"name": "Gina"})
        state = encode_state({"email": "gina@example.com", "name": "Gina", "google_id": "g-42"})

        response = await client.get("/auth/google/signup", params={"payload": state})

        assert redirect_query(response) == {"error": "invalid_state"}
