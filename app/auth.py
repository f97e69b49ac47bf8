import logging
from typing import Optional

import httpx
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .services.identity import IdentityClient, IdentityError, IdentityUser, get_identity

logger = logging.getLogger(__name__)

# auto_error=False: the session cookie is accepted when no header is sent
security = HTTPBearer(auto_error=False)

ACCESS_TOKEN_COOKIE = "sb-access-token"
TEAM_MANAGER_ROLES = ("workspace_admin", "manager")


def get_access_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials] = None
) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        token = header[len("Bearer ") :].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


async def verify_access_token(token: str, identity: IdentityClient) -> IdentityUser:
    """Resolve a token to its user or raise 401"""
    try:
        return await identity.get_user(token)
    except IdentityError as e:
        if e.status_code >= 500:
            logger.error(f"❌ Identity provider error during token verification: {e.message}")
            raise HTTPException(status_code=500, detail="Server configuration error") from e
        logger.info(f"ℹ️ Token rejected: {e.message}")
        raise HTTPException(status_code=401, detail="Unauthorized") from e
    except httpx.HTTPError as e:
        logger.error(f"❌ Identity provider unreachable: {e}")
        raise HTTPException(status_code=401, detail="Authentication failed") from e


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: IdentityClient = Depends(get_identity),
) -> IdentityUser:
    """Authenticated caller, verified against the identity provider"""
    token = get_access_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return await verify_access_token(token, identity)


async def get_current_workspace_id(current_user: IdentityUser = Depends(get_current_user)) -> int:
    """Workspace id from the caller's metadata"""
    workspace_id = current_user.workspace_id
    if workspace_id is None:
        raise HTTPException(status_code=400, detail="Workspace ID not found")
    return workspace_id


async def require_team_manager(current_user: IdentityUser = Depends(get_current_user)) -> IdentityUser:
    """Only workspace admins and managers may manage the team"""
    if current_user.role not in TEAM_MANAGER_ROLES:
        logger.warning(f"⚠️ User {current_user.id} with role {current_user.role} denied team access")
        raise HTTPException(status_code=403, detail="Forbidden: Access denied")
    return current_user


async def require_superadmin(current_user: IdentityUser = Depends(get_current_user)) -> IdentityUser:
    if current_user.role != "superadmin":
        logger.warning(f"⚠️ Non-superadmin {current_user.id} attempted superadmin access")
        raise HTTPException(status_code=403, detail="Forbidden: Superadmin access required")
    return current_user
