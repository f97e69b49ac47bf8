"""
Identity Provider Client
Talks to the managed auth service (Supabase GoTrue REST API).
User accounts live only there; the local database stores their ids.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from ..config import SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """Raised when the identity provider rejects a request"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class IdentityUser(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None
    user_metadata: dict[str, Any] = {}
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    email_confirmed_at: Optional[str] = None
    last_sign_in_at: Optional[str] = None

    @property
    def role(self) -> Optional[str]:
        return self.user_metadata.get("role")

    @property
    def name(self) -> Optional[str]:
        return self.user_metadata.get("name")

    @property
    def deactivated(self) -> bool:
        return self.user_metadata.get("deactivated") is True

    @property
    def workspace_id(self) -> Optional[int]:
        raw = self.user_metadata.get("workspace_id")
        if raw is None or raw == "":
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    def summary(self) -> dict:
        """Flattened view used by admin listings"""
        return {
            "id": self.id,
            "email": self.email,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "email_confirmed_at": self.email_confirmed_at,
            "last_sign_in_at": self.last_sign_in_at,
            "role": self.role,
            "name": self.name,
            "workspace_id": self.user_metadata.get("workspace_id"),
        }


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    return (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or f"HTTP {response.status_code}"
    )


class IdentityClient:
    """Async client for the GoTrue auth and admin endpoints"""

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        anon_key: str = SUPABASE_ANON_KEY,
        service_role_key: str = SUPABASE_SERVICE_ROLE_KEY,
        timeout: float = 15.0,
    ):
        self.base_url = base_url
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout = timeout

    def _admin_headers(self) -> dict[str, str]:
        if not self.base_url or not self.service_role_key:
            raise IdentityError("Identity provider not configured", status_code=500)
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }

    async def _request(self, method: str, path: str, headers: dict, **kwargs) -> Any:
        url = f"{self.base_url}/auth/v1{path}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.request(method, url, headers=headers, **kwargs)

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(f"⚠️ Identity provider {method} {path} failed: {response.status_code} {message}")
            raise IdentityError(message, status_code=response.status_code)

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # Token verification
    # ------------------------------------------------------------------

    async def get_user(self, access_token: str) -> IdentityUser:
        """Verify an access token and return its user"""
        if not self.base_url or not self.anon_key:
            raise IdentityError("Identity provider not configured", status_code=500)
        data = await self._request(
            "GET",
            "/user",
            headers={"apikey": self.anon_key, "Authorization": f"Bearer {access_token}"},
        )
        return IdentityUser.model_validate(data)

    async def sign_in_with_password(self, email: str, password: str) -> dict:
        data = await self._request(
            "POST",
            "/token",
            headers={"apikey": self.anon_key},
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return {
            "access_token": data.get("access_token"),
            "refresh_token": data.get("refresh_token"),
        }

    # ------------------------------------------------------------------
    # Admin API (service role)
    # ------------------------------------------------------------------

    async def admin_get_user(self, user_id: str) -> IdentityUser:
        data = await self._request("GET", f"/admin/users/{user_id}", headers=self._admin_headers())
        return IdentityUser.model_validate(data)

    async def admin_list_users(self, page: int = 1, per_page: int = 1000) -> list[IdentityUser]:
        data = await self._request(
            "GET",
            "/admin/users",
            headers=self._admin_headers(),
            params={"page": page, "per_page": per_page},
        )
        users = data.get("users", []) if isinstance(data, dict) else data or []
        return [IdentityUser.model_validate(u) for u in users]

    async def admin_find_user_by_email(self, email: str) -> Optional[IdentityUser]:
        target = email.strip().lower()
        for user in await self.admin_list_users():
            if user.email and user.email.lower() == target:
                return user
        return None

    async def admin_create_user(
        self,
        email: str,
        password: Optional[str] = None,
        email_confirm: bool = True,
        user_metadata: Optional[dict] = None,
    ) -> IdentityUser:
        payload: dict[str, Any] = {
            "email": email,
            "email_confirm": email_confirm,
            "user_metadata": user_metadata or {},
        }
        if password:
            payload["password"] = password
        data = await self._request("POST", "/admin/users", headers=self._admin_headers(), json=payload)
        return IdentityUser.model_validate(data)

    async def admin_update_user(self, user_id: str, attributes: dict) -> IdentityUser:
        data = await self._request(
            "PUT", f"/admin/users/{user_id}", headers=self._admin_headers(), json=attributes
        )
        return IdentityUser.model_validate(data)

    async def admin_delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/admin/users/{user_id}", headers=self._admin_headers())

    async def generate_link(
        self,
        link_type: str,
        email: str,
        password: Optional[str] = None,
        data: Optional[dict] = None,
        redirect_to: Optional[str] = None,
    ) -> str:
        """Create a confirmation/magic link without sending the provider's own email"""
        payload: dict[str, Any] = {"type": link_type, "email": email}
        if password:
            payload["password"] = password
        if data:
            payload["data"] = data
        if redirect_to:
            payload["redirect_to"] = redirect_to
        body = await self._request(
            "POST", "/admin/generate_link", headers=self._admin_headers(), json=payload
        )
        link = body.get("action_link") or (body.get("properties") or {}).get("action_link")
        if not link:
            raise IdentityError("Failed to generate confirmation link", status_code=500)
        return link


identity_client = IdentityClient()


def get_identity() -> IdentityClient:
    """Dependency injection for the identity client"""
    return identity_client
