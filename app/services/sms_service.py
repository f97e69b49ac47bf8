"""
Twilio SMS Service
Sends verification codes and other short messages through the Twilio REST API
"""

import logging
from typing import Optional

import httpx

from .. import config

logger = logging.getLogger(__name__)


def is_configured() -> bool:
    return bool(config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN and config.TWILIO_FROM_NUMBER)


async def send_sms(to_phone: str, message_body: str) -> tuple[bool, Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        to_phone: Recipient phone number; a leading + is added when missing
        message_body: SMS message content

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        return False, "No phone number provided"

    if not is_configured():
        logger.warning("⚠️ Twilio not configured, SMS not sent")
        return False, "SMS service not configured"

    if not to_phone.startswith("+"):
        to_phone = f"+{to_phone}"

    account_sid = config.TWILIO_ACCOUNT_SID
    try:
        logger.info(f"🚀 Sending SMS to Twilio API for {to_phone}")
        async with httpx.AsyncClient() as client:
            response = await client.post(
                f"https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json",
                auth=(account_sid, config.TWILIO_AUTH_TOKEN),
                data={"To": to_phone, "From": config.TWILIO_FROM_NUMBER, "Body": message_body},
                timeout=10.0,
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Twilio request failed: {str(e)}")
        return False, str(e)

    if response.status_code in [200, 201]:
        logger.info(f"✅ SMS sent successfully to {to_phone} (SID: {response.json().get('sid')})")
        return True, None

    try:
        error_data = response.json()
    except ValueError:
        error_data = {}
    error_message = error_data.get("message", "Unknown error")
    error_code = error_data.get("code")
    logger.error(f"❌ Twilio API error [{error_code}]: {error_message}")
    return False, f"[{error_code}] {error_message}" if error_code else error_message
