"""
Unified Notification Service
Handles the email, WhatsApp and calendar side effects of a new booking and of
contact form submissions. Every channel is best-effort: failures are logged and
reported, never raised to the caller.
"""

import asyncio
import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from .. import config
from ..email_service import EmailError, send_booking_confirmation_emails, send_contact_form_email
from ..models import Booking, Department, EventType
from ..utils.date_timezone import to_iso
from .google_calendar_service import create_calendar_event
from .identity import IdentityClient, IdentityError
from .whatsapp_service import WhatsAppError, send_whatsapp_template

logger = logging.getLogger(__name__)

# WhatsApp caps each template parameter at this many characters
TEMPLATE_PARAM_LIMIT = 32768


def build_template_components(name: str, email: Optional[str], phone: str, message: str) -> list[dict]:
    """Body parameters for the contact template: first name, full name, email, phone, message"""
    first_name = name.split(" ")[0] or name
    params = [
        first_name or "N/A",
        name or "N/A",
        email or "Not provided",
        phone or "N/A",
        message or "No message",
    ]
    return [
        {
            "type": "body",
            "parameters": [{"type": "text", "text": str(p)[:TEMPLATE_PARAM_LIMIT]} for p in params],
        }
    ]


async def send_contact_notifications(
    name: str, email: Optional[str], phone: str, message: str
) -> dict:
    """
    Email the site owner, then send the contact template to the submitter
    and every admin number.

    Raises WhatsAppError only when the submitter's message fails and nothing
    else was delivered.
    """
    result: dict = {
        "emailSent": False,
        "userWhatsappSent": False,
        "adminWhatsappSent": False,
        "adminResults": [],
    }

    try:
        await send_contact_form_email(name, email or "Not provided", phone, message)
        result["emailSent"] = True
    except EmailError as e:
        result["emailError"] = str(e)
        logger.error(f"❌ Contact form email failed: {e}")

    components = build_template_components(name, email, phone, message)
    template_name = config.WHATSAPP_TEMPLATE_NAME
    language = config.WHATSAPP_TEMPLATE_LANGUAGE

    user_error: Optional[WhatsAppError] = None
    try:
        response = await send_whatsapp_template(phone, template_name, language, components)
        result["userWhatsappSent"] = True
        result["userMessageId"] = ((response.get("messages") or [{}])[0]).get("id")
    except WhatsAppError as e:
        user_error = e
        result["userWhatsappError"] = str(e)
        logger.error(f"❌ WhatsApp template to {phone} failed: {e}")

    admin_numbers = config.ADMIN_WHATSAPP_NUMBERS
    if admin_numbers:
        outcomes = await asyncio.gather(
            *[send_whatsapp_template(n, template_name, language, components) for n in admin_numbers],
            return_exceptions=True,
        )
        for admin_phone, outcome in zip(admin_numbers, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"❌ WhatsApp template to admin {admin_phone} failed: {outcome}")
                result["adminResults"].append({"phone": admin_phone, "success": False, "error": str(outcome)})
            else:
                result["adminResults"].append({"phone": admin_phone, "success": True})
        result["adminWhatsappSent"] = any(r["success"] for r in result["adminResults"])
    else:
        result["adminWhatsappError"] = "Admin numbers not configured"

    result["whatsappSent"] = result["userWhatsappSent"] or result["adminWhatsappSent"]
    result["success"] = result["emailSent"] or result["whatsappSent"]
    result["adminCount"] = len(admin_numbers)
    result["sentTo"] = phone

    if user_error is not None and not result["success"]:
        raise user_error
    return result


def format_when(start_at, timezone: Optional[str] = None) -> str:
    """Short form used in WhatsApp texts, e.g. 'Mon, Mar 3, 2025, 02:30 PM UTC'"""
    dt = start_at.replace(tzinfo=ZoneInfo("UTC"))
    if timezone and timezone.strip():
        try:
            dt = dt.astimezone(ZoneInfo(timezone.strip()))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return f"{dt.strftime('%a, %b')} {dt.day}, {dt.strftime('%Y, %I:%M %p %Z')}"


async def build_booking_context(db: Session, identity: IdentityClient, booking: Booking) -> dict:
    """Names and labels for notification bodies; missing details fall back to labels"""
    event_type_name = "Appointment"
    duration = 30
    provider_name: Optional[str] = None
    provider_email: Optional[str] = None
    department_name: Optional[str] = None

    if booking.event_type_id:
        event_type = db.query(EventType).filter(EventType.id == booking.event_type_id).first()
        if event_type:
            event_type_name = event_type.title or event_type_name
            duration = event_type.duration_minutes or duration

    if booking.department_id:
        department = db.query(Department).filter(Department.id == booking.department_id).first()
        department_name = department.name if department else None

    if booking.service_provider_id:
        try:
            provider = await identity.admin_get_user(booking.service_provider_id)
            provider_email = provider.email
            provider_name = provider.name or (provider.email.split("@")[0] if provider.email else "Service Provider")
        except IdentityError as e:
            logger.error(f"❌ Error fetching service provider {booking.service_provider_id}: {e.message}")

    if provider_name and provider_name.strip():
        provider_label = provider_name
    else:
        provider_label = "Assigned (details unavailable)" if booking.service_provider_id else "Not assigned"
    if department_name and department_name.strip():
        department_label = department_name
    else:
        department_label = "Assigned (details unavailable)" if booking.department_id else "Not assigned"

    return {
        "event_type_name": event_type_name,
        "duration": duration,
        "provider_label": provider_label,
        "provider_email": provider_email,
        "department_label": department_label,
    }


async def notify_booking_created(
    db: Session,
    identity: IdentityClient,
    booking: Booking,
    timezone: Optional[str] = None,
    notes: Optional[str] = None,
) -> None:
    """Confirmation emails, WhatsApp message and Google Calendar event"""
    try:
        context = await build_booking_context(db, identity, booking)
    except Exception as e:
        logger.error(f"❌ Could not build notification context for booking {booking.id}: {e}")
        return

    start_iso = to_iso(booking.start_at)
    end_iso = to_iso(booking.end_at or booking.start_at)

    if booking.invitee_email:
        email_result = await send_booking_confirmation_emails(
            {
                "invitee_name": booking.invitee_name,
                "invitee_email": booking.invitee_email,
                "provider_name": context["provider_label"],
                "provider_email": context["provider_email"],
                "event_type_name": context["event_type_name"],
                "department_name": context["department_label"],
                "start_time": start_iso,
                "end_time": end_iso,
                "duration": context["duration"],
                "notes": notes,
                "timezone": timezone,
            }
        )
        logger.info(f"📧 Booking {booking.id} email notifications: {email_result}")

    if booking.invitee_phone:
        parts = [
            "Booking confirmed",
            f"Event: {context['event_type_name']}",
            f"Department: {context['department_label']}",
            f"Service Provider: {context['provider_label']}",
            f"When: {format_when(booking.start_at, timezone)}",
        ]
        if notes:
            parts.append(f"Notes: {notes}")
        try:
            await send_contact_notifications(
                booking.invitee_name or "Invitee",
                booking.invitee_email,
                booking.invitee_phone,
                " ".join(parts),
            )
        except WhatsAppError as e:
            logger.error(f"❌ Error sending WhatsApp notification for booking {booking.id}: {e}")

    event_id, error = await create_calendar_event(
        db,
        booking.workspace_id,
        summary=f"{context['event_type_name']}: {booking.invitee_name}",
        start_at=start_iso,
        end_at=end_iso,
        description=notes,
        location=booking.location,
        attendee_email=booking.invitee_email,
        metadata={"bookingId": booking.id, "eventTypeName": context["event_type_name"]},
    )
    if error:
        logger.warning(f"⚠️ Google Calendar sync failed for booking {booking.id}: {error}")
    if event_id:
        booking.meta_data = {**(booking.meta_data or {}), "google_calendar_event_id": event_id}
        db.commit()
        db.refresh(booking)
