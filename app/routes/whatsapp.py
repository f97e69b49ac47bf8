"""
WhatsApp contact form and Cloud API webhook
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from .. import config
from ..services.notification_service import send_contact_notifications
from ..services.whatsapp_service import WhatsAppError, send_whatsapp_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])


class ContactMessage(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None


def map_whatsapp_error(message: str) -> tuple[int, str]:
    """Status code and user-facing message for a failed send"""
    text = message or "Failed to send message"
    if "not in allowed list" in text or "recipient" in text:
        return 400, (
            "Recipient phone number is not registered with WhatsApp or not in test list. "
            "Please ensure the number is valid and registered with WhatsApp."
        )
    if "invalid" in text or "format" in text:
        return 400, "Invalid phone number format. Please use international format (e.g., 919876543210)"
    if "token" in text or "authentication" in text:
        return 401, "WhatsApp API authentication failed. Please check your credentials."
    if "template" in text or "parameter" in text:
        return 400, (
            f"Template error: {text}. Please verify the template name, its approval status, "
            "the parameter count (5) and the language code."
        )
    return 500, text


@router.post("")
async def send_contact_message(data: ContactMessage):
    if not data.phone:
        raise HTTPException(status_code=400, detail="Recipient phone number is required")
    if not data.name or not data.message:
        raise HTTPException(status_code=400, detail="Name and message are required")

    try:
        result = await send_contact_notifications(data.name, data.email, data.phone, data.message)
    except WhatsAppError as e:
        status_code, detail = map_whatsapp_error(str(e))
        logger.error(f"❌ Contact form delivery failed ({status_code}): {e}")
        raise HTTPException(status_code=status_code, detail=detail) from e

    result["templateInfo"] = {
        "template": config.WHATSAPP_TEMPLATE_NAME,
        "language": config.WHATSAPP_TEMPLATE_LANGUAGE,
        "parametersCount": 5,
    }
    return result


@router.get("/webhook")
async def verify_webhook(request: Request):
    """Subscription handshake performed by Meta when the webhook is configured"""
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")

    if not config.WHATSAPP_VERIFY_TOKEN:
        logger.error("❌ WHATSAPP_VERIFY_TOKEN is not configured")

    if mode == "subscribe" and config.WHATSAPP_VERIFY_TOKEN and token == config.WHATSAPP_VERIFY_TOKEN and challenge:
        return PlainTextResponse(challenge)
    raise HTTPException(status_code=403, detail="Forbidden")


@router.post("/webhook")
async def receive_webhook(request: Request):
    """Auto-reply to incoming text messages; always acknowledged"""
    try:
        body = await request.json()
    except ValueError:
        logger.warning("⚠️ WhatsApp webhook received a non-JSON body")
        return {"received": True}

    if not isinstance(body, dict) or body.get("object") != "whatsapp_business_account":
        return {"received": True}

    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            for message in (change.get("value") or {}).get("messages") or []:
                sender = message.get("from")
                text = (message.get("text") or {}).get("body") or ""
                if not sender or not text:
                    continue

                logger.info(f"ℹ️ Incoming WhatsApp message from {sender}")
                try:
                    await send_whatsapp_message(sender, f'Thanks for your message! We received: "{text}"')
                except WhatsAppError as e:
                    logger.error(f"❌ Failed to send WhatsApp auto-reply to {sender}: {e}")

    return {"received": True}
