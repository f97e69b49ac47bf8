"""
One-time session hand-off for the OAuth sign-in redirect.

The sign-in callback stores the freshly created session under a random id and
redirects the browser with that id; the frontend then exchanges the id for the
tokens exactly once. Entries are process-local and evicted lazily on lookup.
"""

import logging
import time
import uuid
from threading import Lock
from typing import Optional, TypedDict

from ..config import CALLBACK_SESSION_TTL_SECONDS

logger = logging.getLogger(__name__)


class CallbackSession(TypedDict):
    access_token: str
    refresh_token: str


_sessions: dict[str, CallbackSession] = {}
_created_at: dict[str, float] = {}
_lock = Lock()


def set_callback_session(session_id: str, session: CallbackSession) -> None:
    with _lock:
        _sessions[session_id] = session
        _created_at[session_id] = time.monotonic()


def take_callback_session(
    session_id: str, max_age_seconds: int = CALLBACK_SESSION_TTL_SECONDS
) -> Optional[CallbackSession]:
    """Return and remove the session; None if unknown or older than max_age_seconds"""
    with _lock:
        created = _created_at.pop(session_id, None)
        session = _sessions.pop(session_id, None)

    if session is None or created is None:
        return None

    if time.monotonic() - created > max_age_seconds:
        logger.info("ℹ️ Callback session expired before it was claimed")
        return None

    return session


def store_callback_token(access_token: str, refresh_token: Optional[str]) -> str:
    """Store a session under a fresh id and return the id"""
    session_id = str(uuid.uuid4())
    set_callback_session(
        session_id, {"access_token": access_token, "refresh_token": refresh_token or ""}
    )
    return session_id


def clear_callback_sessions() -> None:
    with _lock:
        _sessions.clear()
        _created_at.clear()
