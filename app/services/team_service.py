"""
Workspace membership lives in identity provider user metadata
(workspace_id, role, departments, deactivated).
"""

import logging

from .identity import IdentityClient, IdentityUser

logger = logging.getLogger(__name__)

TEAM_ROLES = ("workspace_admin", "manager", "service_provider", "customer")


def belongs_to_workspace(user: IdentityUser, workspace_id) -> bool:
    raw = user.user_metadata.get("workspace_id")
    if raw is None or raw == "":
        return False
    return str(raw) == str(workspace_id)


def member_summary(user: IdentityUser) -> dict:
    meta = user.user_metadata
    return {
        "id": user.id,
        "email": user.email,
        "name": meta.get("name") or (user.email or "").split("@")[0] or "Unknown",
        "role": meta.get("role"),
        "departments": meta.get("departments") or [],
        "created_at": user.created_at,
        "email_confirmed_at": user.email_confirmed_at,
        "deactivated": user.deactivated,
    }


async def list_workspace_members(
    identity: IdentityClient, workspace_id, include_deactivated: bool = True
) -> list[dict]:
    users = await identity.admin_list_users()
    return [
        member_summary(u)
        for u in users
        if belongs_to_workspace(u, workspace_id) and (include_deactivated or not u.deactivated)
    ]
