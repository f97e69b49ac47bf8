"""
One-time passcodes for public booking verification
Codes are stored in otp_verifications and delivered by email or SMS.
"""

import logging
from datetime import timedelta
from typing import Literal

from sqlalchemy.orm import Session

from .. import rate_limiter
from ..email_service import EmailError, send_otp_email
from ..models import OtpVerification
from ..security_utils import constant_time_compare, generate_otp_code
from ..utils.date_timezone import utcnow
from .sms_service import send_sms

logger = logging.getLogger(__name__)

OTP_EXPIRY_MINUTES = 10
MAX_ATTEMPTS = 5
RATE_LIMIT_MAX_REQUESTS = 3
RATE_LIMIT_WINDOW_MINUTES = 15

OtpType = Literal["email", "phone"]


def generate_otp() -> str:
    return generate_otp_code(6)


def _get_row(db: Session, identifier: str):
    return (
        db.query(OtpVerification)
        .filter(OtpVerification.identifier == identifier)
        .order_by(OtpVerification.created_at.desc())
        .first()
    )


def _delete_rows(db: Session, identifier: str):
    db.query(OtpVerification).filter(OtpVerification.identifier == identifier).delete(
        synchronize_session=False
    )


def store_otp(db: Session, identifier: str, code: str, otp_type: OtpType) -> OtpVerification:
    """Replace any previous code for the identifier"""
    _delete_rows(db, identifier)
    row = OtpVerification(
        identifier=identifier,
        code=code,
        type=otp_type,
        attempts=0,
        verified=False,
        expires_at=utcnow() + timedelta(minutes=OTP_EXPIRY_MINUTES),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def verify_otp(db: Session, identifier: str, code: str, delete_after_verify: bool = False) -> bool:
    row = _get_row(db, identifier)
    if not row:
        logger.warning(f"⚠️ OTP not found for {identifier}")
        return False

    if row.expires_at < utcnow():
        _delete_rows(db, identifier)
        db.commit()
        logger.warning(f"⚠️ OTP expired for {identifier}")
        return False

    if row.attempts >= MAX_ATTEMPTS:
        _delete_rows(db, identifier)
        db.commit()
        logger.warning(f"⚠️ OTP max attempts exceeded for {identifier}")
        return False

    row.attempts = row.attempts + 1
    db.commit()

    if not constant_time_compare(row.code, str(code or "")):
        logger.info(f"OTP code mismatch for {identifier}")
        return False

    if delete_after_verify:
        _delete_rows(db, identifier)
    else:
        row.verified = True
        row.verified_at = utcnow()
    db.commit()
    return True


def is_otp_verified(db: Session, identifier: str) -> bool:
    row = _get_row(db, identifier)
    if not row or row.expires_at < utcnow():
        return False
    return bool(row.verified)


def check_rate_limit(
    identifier: str,
    max_requests: int = RATE_LIMIT_MAX_REQUESTS,
    window_minutes: int = RATE_LIMIT_WINDOW_MINUTES,
) -> bool:
    """True when another code may be sent; errors allow the request"""
    return rate_limiter.is_allowed(f"otp:{identifier}", max_requests, window_minutes * 60)


async def send_otp(destination: str, code: str, otp_type: OtpType) -> bool:
    """Deliver the code; returns False instead of raising"""
    if otp_type == "phone":
        sent, error = await send_sms(
            destination,
            f"Your verification code is: {code}. This code will expire in {OTP_EXPIRY_MINUTES} minutes.",
        )
        if not sent:
            logger.error(f"❌ Failed to send OTP SMS: {error}")
        return sent

    try:
        await send_otp_email(destination, code)
        return True
    except EmailError as e:
        logger.error(f"❌ Failed to send OTP email: {e}")
        return False
