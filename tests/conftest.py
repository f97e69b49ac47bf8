"""Test config and shared fixtures."""
import copy
import os
import uuid
from datetime import timedelta
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock

import pytest

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key"
for _name in ("REDIS_URL", "REDIS_HOST", "SMTP_USER", "SMTP_PASSWORD", "RESEND_API_KEY"):
    os.environ.pop(_name, None)

from httpx import ASGITransport, AsyncClient  # noqa: E402

from app import cache as cache_module  # noqa: E402
from app import rate_limiter  # noqa: E402
from app.database import Base, SessionLocal, engine, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Configuration, Workspace  # noqa: E402
from app.services.callback_store import clear_callback_sessions  # noqa: E402
from app.services.identity import IdentityError, IdentityUser, get_identity  # noqa: E402
from app.services.workspace_service import get_default_configuration_settings  # noqa: E402
from app.utils.date_timezone import to_iso, utcnow  # noqa: E402

# In-memory SQLite shared through a StaticPool
Base.metadata.create_all(bind=engine)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


class FakeIdentity:
    """In-process stand-in for the GoTrue auth and admin API."""

    def __init__(self):
        self.users: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}
        self.generated_links: list[dict] = []

    def add_user(
        self,
        email: str,
        user_metadata: Optional[dict] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        confirmed: bool = True,
    ) -> IdentityUser:
        user_id = str(uuid.uuid4())
        self.users[user_id] = {
            "id": user_id,
            "email": email,
            "password": password,
            "user_metadata": dict(user_metadata or {}),
            "created_at": "2025-01-01T00:00:00Z",
            "email_confirmed_at": "2025-01-01T00:00:00Z" if confirmed else None,
        }
        if token:
            self.tokens[token] = user_id
        return self._user(user_id)

    def _user(self, user_id: str) -> IdentityUser:
        record = {k: v for k, v in self.users[user_id].items() if k != "password"}
        return IdentityUser.model_validate(copy.deepcopy(record))

    def _email_in_use(self, email: str, exclude_id: Optional[str] = None) -> bool:
        target = email.strip().lower()
        return any(
            (u["email"] or "").lower() == target and u["id"] != exclude_id for u in self.users.values()
        )

    async def get_user(self, access_token: str) -> IdentityUser:
        user_id = self.tokens.get(access_token)
        if user_id is None or user_id not in self.users:
            raise IdentityError("invalid JWT: unable to parse or verify signature", status_code=401)
        return self._user(user_id)

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        for user in self.users.values():
            if (user["email"] or "").lower() == email.lower() and user["password"] == password:
                token = f"session-{uuid.uuid4()}"
                self.tokens[token] = user["id"]
                return {"access_token": token, "refresh_token": f"refresh-{user['id']}"}
        raise IdentityError("Invalid login credentials", status_code=400)

    async def admin_get_user(self, user_id: str) -> IdentityUser:
        if user_id not in self.users:
            raise IdentityError("User not found", status_code=404)
        return self._user(user_id)

    async def admin_list_users(self, page: int = 1, per_page: int = 1000) -> list[IdentityUser]:
        return [self._user(user_id) for user_id in self.users]

    async def admin_find_user_by_email(self, email: str) -> Optional[IdentityUser]:
        target = email.strip().lower()
        for user_id, user in self.users.items():
            if (user["email"] or "").lower() == target:
                return self._user(user_id)
        return None

    async def admin_create_user(
        self,
        email: str,
        password: Optional[str] = None,
        email_confirm: bool = True,
        user_metadata: Optional[dict] = None,
    ) -> IdentityUser:
        if self._email_in_use(email):
            raise IdentityError("User already registered", status_code=422)
        user = self.add_user(email, user_metadata, password=password, confirmed=email_confirm)
        return user

    async def admin_update_user(self, user_id: str, attributes: dict) -> IdentityUser:
        if user_id not in self.users:
            raise IdentityError("User not found", status_code=404)
        record = self.users[user_id]
        if "email" in attributes:
            if self._email_in_use(attributes["email"], exclude_id=user_id):
                raise IdentityError("Email address already registered by another user", status_code=422)
            record["email"] = attributes["email"]
        if "password" in attributes:
            record["password"] = attributes["password"]
        if "user_metadata" in attributes:
            record["user_metadata"] = copy.deepcopy(attributes["user_metadata"])
        return self._user(user_id)

    async def admin_delete_user(self, user_id: str) -> None:
        if user_id not in self.users:
            raise IdentityError("User not found", status_code=404)
        del self.users[user_id]
        self.tokens = {t: u for t, u in self.tokens.items() if u != user_id}

    async def generate_link(
        self,
        link_type: str,
        email: str,
        password: Optional[str] = None,
        data: Optional[dict] = None,
        redirect_to: Optional[str] = None,
    ) -> str:
        self.generated_links.append(
            {"type": link_type, "email": email, "data": data, "redirect_to": redirect_to}
        )
        return f"https://auth.test/verify?type={link_type}&token={uuid.uuid4().hex}"


def open_availability() -> dict:
    """Every day enabled around the clock"""
    return {
        "timesheet": {
            day: {"enabled": True, "startTime": "00:00", "endTime": "23:59", "breaks": []} for day in DAY_NAMES
        },
        "individual": {},
    }


def future_slot(days: int = 1, hour: int = 10, minutes: int = 30) -> tuple[str, str]:
    """(start, end) ISO strings for a slot `days` ahead at hour:00 UTC"""
    start = (utcnow() + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
    return to_iso(start), to_iso(start + timedelta(minutes=minutes))


@pytest.fixture(autouse=True)
def reset_process_state():
    """Rate limit counters, cached values and callback sessions are process-wide"""
    rate_limiter.reset_rate_limits()
    cache_module.cache.clear_local()
    clear_callback_sessions()
    yield
    rate_limiter.reset_rate_limits()
    cache_module.cache.clear_local()
    clear_callback_sessions()


@pytest.fixture
def db():
    """Database session; every table is emptied afterwards"""
    session = SessionLocal()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
async def client(db, identity: FakeIdentity) -> AsyncGenerator[AsyncClient, None]:
    """Create test client."""

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_identity] = lambda: identity

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def workspace(db) -> Workspace:
    """Workspace with default settings and round-the-clock availability"""
    ws = Workspace(name="Acme Clinic", slug="acme-clinic", owner_id="owner-1")
    db.add(ws)
    db.commit()
    db.refresh(ws)

    settings = get_default_configuration_settings("Acme Clinic")
    settings["availability"] = open_availability()
    db.add(Configuration(workspace_id=ws.id, settings=settings))
    db.commit()
    return ws


@pytest.fixture
def admin_user(identity: FakeIdentity, workspace: Workspace) -> IdentityUser:
    return identity.add_user(
        "admin@acme.test",
        {"name": "Ada Admin", "role": "workspace_admin", "workspace_id": workspace.id},
        password="secret123",
        token="admin-token",
    )


@pytest.fixture
def auth_headers(admin_user: IdentityUser) -> dict:
    return {"Authorization": "Bearer admin-token"}


@pytest.fixture
def superadmin_headers(identity: FakeIdentity) -> dict:
    identity.add_user("root@platform.test", {"name": "Root", "role": "superadmin"}, token="super-token")
    return {"Authorization": "Bearer super-token"}


@pytest.fixture
def notify_mock(monkeypatch) -> AsyncMock:
    """Booking side effects (email, WhatsApp, calendar) replaced with a mock"""
    mock = AsyncMock(return_value=None)
    monkeypatch.setattr("app.domain.bookings.service.notify_booking_created", mock)
    return mock
