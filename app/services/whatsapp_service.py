"""
WhatsApp Cloud API Service
Sends text and template messages through the Graph API
"""

import logging
import re
from typing import Optional

import httpx

from .. import config
from ..cache import cache

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"
TOKEN_CACHE_KEY = "whatsapp:access_token"
# Drop the cached token this many seconds before Graph expires it
TOKEN_EXPIRY_BUFFER_SECONDS = 60


class WhatsAppError(Exception):
    pass


def format_phone(phone: str) -> str:
    """Digits only, country code included (e.g. 14155550123)"""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < 10:
        raise WhatsAppError("Phone number must be at least 10 digits")
    return digits


async def _exchange_long_lived_token(short_token: str) -> Optional[str]:
    if not config.WHATSAPP_APP_ID or not config.WHATSAPP_APP_SECRET:
        return None

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                f"{GRAPH_BASE_URL}/v22.0/oauth/access_token",
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": config.WHATSAPP_APP_ID,
                    "client_secret": config.WHATSAPP_APP_SECRET,
                    "fb_exchange_token": short_token,
                },
            )
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ WhatsApp token exchange request failed: {e}")
        return None

    if response.status_code != 200:
        logger.warning(f"⚠️ WhatsApp token exchange failed: HTTP {response.status_code}")
        return None

    payload = response.json()
    token = payload.get("access_token")
    if not token:
        return None

    expires_in = int(payload.get("expires_in") or 3600)
    ttl = max(expires_in - TOKEN_EXPIRY_BUFFER_SECONDS, 1)
    cache.set(TOKEN_CACHE_KEY, token, ttl)
    logger.info(f"✅ Exchanged WhatsApp token (expires in {expires_in}s)")
    return token


async def get_access_token() -> str:
    """Cached long-lived token, else a fresh exchange, else the configured tokens"""
    cached = cache.get(TOKEN_CACHE_KEY)
    if cached:
        return cached

    raw_token = config.WHATSAPP_ACCESS_TOKEN
    if raw_token:
        exchanged = await _exchange_long_lived_token(raw_token)
        if exchanged:
            return exchanged

    if config.WHATSAPP_FALLBACK_TOKEN:
        return config.WHATSAPP_FALLBACK_TOKEN
    if raw_token:
        return raw_token
    raise WhatsAppError("WHATSAPP_ACCESS_TOKEN is not configured")


async def _send(payload: dict) -> dict:
    if not config.WHATSAPP_PHONE_NUMBER_ID:
        raise WhatsAppError("WHATSAPP_PHONE_NUMBER_ID is not configured")

    token = await get_access_token()
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            response = await client.post(
                f"{config.WHATSAPP_API_URL}/{config.WHATSAPP_PHONE_NUMBER_ID}/messages",
                headers={"Authorization": f"Bearer {token}"},
                json=payload,
            )
    except httpx.HTTPError as e:
        raise WhatsAppError(f"WhatsApp API request failed: {e}") from e

    try:
        data = response.json()
    except ValueError:
        data = {}

    if response.status_code >= 400 or data.get("error"):
        error = data.get("error") or {}
        message = error.get("message") or f"HTTP {response.status_code}"
        raise WhatsAppError(f"{message} (Code: {error.get('code')}, Type: {error.get('type')})")

    return data


async def send_whatsapp_message(to: str, text: str) -> dict:
    """Send a plain text message; only allowed inside the 24h customer window"""
    phone = format_phone(to)
    data = await _send(
        {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "text",
            "text": {"body": text},
        }
    )
    logger.info(f"✅ WhatsApp message sent to {phone}")
    return data


async def send_whatsapp_template(
    to: str,
    template_name: str,
    language_code: str = "en_US",
    components: Optional[list] = None,
) -> dict:
    phone = format_phone(to)
    template: dict = {"name": template_name, "language": {"code": language_code}}
    if components:
        template["components"] = components

    data = await _send(
        {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "template",
            "template": template,
        }
    )
    logger.info(f"✅ WhatsApp template '{template_name}' sent to {phone}")
    return data
