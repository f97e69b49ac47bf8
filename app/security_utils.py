"""
Security Utilities
Token encryption at rest, random tokens and signed OAuth state
"""

import base64
import hashlib
import logging
import secrets
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import SECRET_KEY

logger = logging.getLogger(__name__)

# Fernet needs a 32-byte urlsafe-base64 key; derive it from SECRET_KEY
cipher_suite = Fernet(base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest()))


# ============================================================================
# TOKEN ENCRYPTION
# ============================================================================


def encrypt_token(value: Optional[str]) -> Optional[str]:
    """Encrypt an OAuth token before persisting it"""
    if value is None:
        return None
    return cipher_suite.encrypt(value.encode()).decode()


def decrypt_token(value: Optional[str]) -> Optional[str]:
    """Decrypt a stored OAuth token. Returns None if the ciphertext is invalid."""
    if value is None:
        return None
    try:
        return cipher_suite.decrypt(value.encode()).decode()
    except InvalidToken:
        logger.error("❌ Failed to decrypt stored token (SECRET_KEY rotated?)")
        return None


# ============================================================================
# RANDOM TOKENS
# ============================================================================


def generate_hex_token(num_bytes: int = 32) -> str:
    """Random token rendered as hex (invite links)"""
    return secrets.token_hex(num_bytes)


def generate_otp_code(digits: int = 6) -> str:
    """Numeric one-time code, zero padded"""
    return str(secrets.randbelow(10**digits)).zfill(digits)


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time to prevent timing attacks"""
    return secrets.compare_digest(a.encode(), b.encode())


# ============================================================================
# OAUTH STATE
# ============================================================================


OAUTH_STATE_SALT = "oauth-state"
SIGNUP_PAYLOAD_SALT = "google-signup"
STATE_MAX_AGE_SECONDS = 600


def encode_state(payload: dict[str, Any], salt: str = OAUTH_STATE_SALT) -> str:
    """Sign an OAuth state / redirect payload with SECRET_KEY"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(payload, salt=salt)


def decode_state(
    state: Optional[str], salt: str = OAUTH_STATE_SALT, max_age: int = STATE_MAX_AGE_SECONDS
) -> dict[str, Any]:
    """
    Verify and decode a signed state value

    Raises:
        ValueError: when the state is missing, tampered with, expired or not an object
    """
    if not state:
        raise ValueError("Missing state")
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        decoded = serializer.loads(state, salt=salt, max_age=max_age)
    except SignatureExpired as e:
        logger.warning("⚠️ OAuth state expired")
        raise ValueError("Expired state") from e
    except BadSignature as e:
        logger.warning("⚠️ OAuth state signature invalid")
        raise ValueError("Invalid state") from e
    if not isinstance(decoded, dict):
        raise ValueError("Invalid state")
    return decoded
