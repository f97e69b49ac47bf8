import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..auth import get_current_user, verify_access_token
from ..config import ENVIRONMENT, FRONTEND_URL
from ..database import get_db
from ..email_service import EmailError, send_confirmation_email
from ..rate_limiter import create_rate_limiter
from ..services.callback_store import take_callback_session
from ..services.identity import IdentityClient, IdentityError, IdentityUser, get_identity
from ..services.workspace_service import get_or_create_workspace, update_user_workspace_metadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

CALLBACK_COOKIE = "sb_callback_t"
EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
ALREADY_REGISTERED = "This email is already registered. Please login instead."

register_limit = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="register")


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class AccessTokenRequest(BaseModel):
    access_token: Optional[str] = None


def set_session_cookies(response: JSONResponse, role: Optional[str], workspace_id) -> None:
    """HttpOnly role/workspace cookies read by the frontend middleware"""
    secure = ENVIRONMENT == "production"
    for name, value in (("x_role", role), ("x_workspace_id", workspace_id)):
        response.set_cookie(
            name,
            "" if value is None else str(value),
            httponly=True,
            secure=secure,
            samesite="lax",
            path="/",
        )


def require_access_token(data: AccessTokenRequest) -> str:
    if not data.access_token:
        raise HTTPException(status_code=400, detail="no token")
    return data.access_token


@router.post("/bootstrap-workspace")
async def bootstrap_workspace(
    current_user: IdentityUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    identity: IdentityClient = Depends(get_identity),
):
    """Ensure the signed-in user owns a workspace and is linked to it"""
    name = current_user.name or (current_user.email or "").split("@")[0] or "User"

    try:
        workspace_id, is_new = get_or_create_workspace(db, current_user.id, name, current_user.email)
    except SQLAlchemyError as e:
        logger.error(f"❌ Bootstrap workspace error for {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get or create workspace") from e

    try:
        await update_user_workspace_metadata(identity, current_user.id, workspace_id, current_user.user_metadata)
    except IdentityError as e:
        logger.error(f"❌ Bootstrap user update error for {current_user.id}: {e.message}")
        raise HTTPException(status_code=500, detail="Failed to update user metadata") from e

    return {"workspace_id": workspace_id, "is_new": is_new}


@router.get("/callback-tokens")
async def get_callback_tokens(request: Request, t: Optional[str] = Query(None)):
    """Exchange the one-time id set by the Google sign-in callback for the session tokens"""
    session_id = request.cookies.get(CALLBACK_COOKIE) or t
    if not session_id:
        return JSONResponse(status_code=401, content={"detail": "no_callback_token"})

    session = take_callback_session(session_id)
    if session is None:
        response = JSONResponse(status_code=401, content={"detail": "invalid_or_expired"})
    else:
        response = JSONResponse(
            content={
                "access_token": session["access_token"],
                "refresh_token": session.get("refresh_token") or "",
            }
        )
    response.delete_cookie(CALLBACK_COOKIE, path="/")
    return response


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    identity: IdentityClient = Depends(get_identity),
    _: None = Depends(register_limit),
):
    """Email/password sign-up; the account is confirmed through the emailed link"""
    if not data.email or not data.password or not data.name:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if not EMAIL_REGEX.match(data.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if len(data.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    try:
        existing = await identity.admin_find_user_by_email(data.email)
    except IdentityError as e:
        raise HTTPException(status_code=500, detail="Server configuration error") from e

    if existing:
        if existing.email_confirmed_at:
            raise HTTPException(status_code=409, detail=ALREADY_REGISTERED)
        return {
            "user": {"id": existing.id, "email": existing.email},
            "message": "Check your email to confirm your account. If you did not receive it, try again in a few minutes.",
        }

    try:
        action_link = await identity.generate_link(
            "signup",
            data.email,
            password=data.password,
            data={"name": data.name, "role": "workspace_admin"},
            redirect_to=f"{FRONTEND_URL}/register?confirmed=1",
        )
    except IdentityError as e:
        logger.error(f"❌ Signup link generation failed for {data.email}: {e.message}")
        message = e.message or ""
        if "already registered" in message or "already exists" in message:
            raise HTTPException(status_code=409, detail=ALREADY_REGISTERED) from e
        if e.status_code >= 500:
            raise HTTPException(status_code=500, detail=message or "Failed to generate confirmation link") from e
        if "Password" in message:
            raise HTTPException(
                status_code=400, detail="Password does not meet requirements. Please use a stronger password."
            ) from e
        if "Email" in message:
            raise HTTPException(status_code=400, detail="Invalid email address. Please check and try again.") from e
        raise HTTPException(status_code=400, detail=message or "Failed to create user. Please try again.") from e

    try:
        await send_confirmation_email(data.email, data.name, action_link)
    except EmailError as e:
        logger.error(f"❌ Failed to send confirmation email to {data.email}: {e}")

    logger.info(f"✅ Registration started for {data.email}")
    return {"user": {"id": "", "email": data.email}, "message": "Check your email to confirm your account."}


@router.post("/session-set")
async def session_set(data: AccessTokenRequest, identity: IdentityClient = Depends(get_identity)):
    token = require_access_token(data)
    user = await verify_access_token(token, identity)

    response = JSONResponse(content={"ok": True})
    set_session_cookies(response, user.role, user.user_metadata.get("workspace_id"))
    return response


@router.post("/verify")
async def verify(data: AccessTokenRequest, identity: IdentityClient = Depends(get_identity)):
    """Resolve a token to the caller's role and workspace"""
    token = require_access_token(data)
    user = await verify_access_token(token, identity)
    return {
        "user_id": user.id,
        "role": user.role,
        "workspace_id": user.user_metadata.get("workspace_id"),
        "deactivated": user.deactivated,
    }
