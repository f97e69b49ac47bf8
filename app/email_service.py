"""
Unified Email Service using SMTP (primary) or Resend (fallback)
Provides email functionality using MJML templates for responsive design
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, TypedDict, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import resend
from mjml import mjml_to_html

from . import config
from .email_templates import (
    booking_confirmation_template,
    contact_form_template,
    invite_template,
    otp_template,
    provider_booking_notification_template,
    registration_confirmation_template,
)
from .utils.date_timezone import parse_datetime, utcnow

logger = logging.getLogger(__name__)


class EmailError(Exception):
    pass


class BookingEmailData(TypedDict, total=False):
    invitee_name: str
    invitee_email: Optional[str]
    provider_name: Optional[str]
    provider_email: Optional[str]
    event_type_name: str
    department_name: Optional[str]
    start_time: str
    end_time: str
    duration: int
    notes: Optional[str]
    timezone: Optional[str]


def smtp_configured() -> bool:
    return bool(config.SMTP_HOST and config.SMTP_USER and config.SMTP_PASSWORD)


def send_via_smtp(
    to: list[str], subject: str, html_content: str, from_address: str
) -> dict:
    """Send email via the configured SMTP server"""
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = from_address
    msg["To"] = ", ".join(to)
    msg.attach(MIMEText(html_content, "html"))

    try:
        if config.SMTP_SECURE or config.SMTP_PORT == 465:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, context=context, timeout=30)
        else:
            server = smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=30)
            server.starttls(context=ssl.create_default_context())

        server.login(config.SMTP_USER, config.SMTP_PASSWORD)
        server.sendmail(from_address.split("<")[-1].rstrip(">"), to, msg.as_string())
        server.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"❌ SMTP send failed: {e}")
        raise EmailError(f"SMTP failed: {str(e)}") from e

    logger.info(f"✅ SMTP email sent successfully via {config.SMTP_HOST}")
    return {"id": f"smtp-{utcnow().timestamp()}", "success": True}


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    result = mjml_to_html(mjml_content)
    # mjml_to_html returns a dict-like object with 'html' and 'errors' keys
    errors = result.get("errors") if hasattr(result, "get") else None
    if errors:
        logger.warning(f"MJML compilation warnings: {errors}")
    return result.get("html", "") if hasattr(result, "get") else str(result)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email using SMTP (if configured) or Resend (fallback)

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    html_content = compile_mjml_to_html(mjml_content)

    recipients = [to] if isinstance(to, str) else to
    sender = from_address or f"{config.APP_NAME} <{config.EMAIL_FROM_ADDRESS}>"

    if smtp_configured():
        try:
            logger.info(f"📧 Sending email via SMTP: {config.SMTP_HOST}")
            return send_via_smtp(recipients, subject, html_content, sender)
        except EmailError as e:
            if not config.RESEND_API_KEY:
                raise
            logger.warning(f"⚠️ SMTP failed, falling back to Resend: {e}")

    if not config.RESEND_API_KEY:
        logger.error("❌ No email service configured - SMTP credentials and RESEND_API_KEY missing")
        raise EmailError("Email service not configured")

    resend.api_key = config.RESEND_API_KEY
    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {"from": sender, "to": recipients, "subject": subject, "html": html_content}
        )
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailError(f"Failed to send email: {str(e)}") from e

    logger.info(f"✅ Email sent successfully via Resend: {response}")
    return response


def format_booking_time(value: str, timezone: Optional[str] = None) -> str:
    """e.g. 'Monday, March 3, 2025 at 02:30 PM IST'; UTC when no timezone"""
    dt = parse_datetime(value).replace(tzinfo=ZoneInfo("UTC"))
    if timezone and timezone.strip():
        try:
            dt = dt.astimezone(ZoneInfo(timezone.strip()))
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"⚠️ Unknown timezone '{timezone}', formatting in UTC")
    return f"{dt.strftime('%A, %B')} {dt.day}, {dt.strftime('%Y at %I:%M %p %Z')}"


# ============================================
# Pre-built emails
# ============================================


async def send_user_booking_email(data: BookingEmailData) -> dict:
    department_label = (data.get("department_name") or "").strip() or "Not assigned"
    provider_label = (data.get("provider_name") or "").strip() or "Not assigned"
    mjml_content = booking_confirmation_template(
        invitee_name=data["invitee_name"],
        event_type_name=data["event_type_name"],
        department_label=department_label,
        provider_label=provider_label,
        start_time=format_booking_time(data["start_time"], data.get("timezone")),
        end_time=format_booking_time(data["end_time"], data.get("timezone")),
        duration=data["duration"],
        notes=data.get("notes"),
    )
    return await send_email(
        to=data["invitee_email"],
        subject=f"Booking Confirmation - {data['event_type_name']}",
        mjml_content=mjml_content,
    )


async def send_provider_booking_email(data: BookingEmailData) -> Optional[dict]:
    if not data.get("provider_email"):
        return None
    department_label = (data.get("department_name") or "").strip() or "Not assigned"
    mjml_content = provider_booking_notification_template(
        provider_name=data.get("provider_name"),
        invitee_name=data["invitee_name"],
        invitee_email=data.get("invitee_email"),
        event_type_name=data["event_type_name"],
        department_label=department_label,
        start_time=format_booking_time(data["start_time"], data.get("timezone")),
        end_time=format_booking_time(data["end_time"], data.get("timezone")),
        duration=data["duration"],
        notes=data.get("notes"),
    )
    return await send_email(
        to=data["provider_email"],
        subject=f"New Booking Alert - {data['event_type_name']} with {data['invitee_name']}",
        mjml_content=mjml_content,
        from_address=f"{config.APP_NAME} Bookings <{config.EMAIL_FROM_ADDRESS}>",
    )


async def send_booking_confirmation_emails(data: BookingEmailData) -> dict:
    """Send both emails; failures are collected, never raised"""
    errors: list[str] = []
    user_email_sent = False
    provider_email_sent = False

    if data.get("invitee_email"):
        try:
            await send_user_booking_email(data)
            user_email_sent = True
        except EmailError as e:
            errors.append(f"Failed to send email to user: {e}")
            logger.error(f"❌ User booking email error: {e}")
    else:
        errors.append("User email not provided")

    if data.get("provider_email"):
        try:
            await send_provider_booking_email(data)
            provider_email_sent = True
        except EmailError as e:
            errors.append(f"Failed to send email to provider: {e}")
            logger.error(f"❌ Provider booking email error: {e}")

    return {
        "userEmailSent": user_email_sent,
        "providerEmailSent": provider_email_sent,
        "errors": errors,
    }


async def send_confirmation_email(to: str, name: Optional[str], confirmation_url: str) -> dict:
    """Registration email confirmation link"""
    return await send_email(
        to=to,
        subject=f"Confirm your {config.APP_NAME} account",
        mjml_content=registration_confirmation_template(name, confirmation_url),
    )


async def send_invite_email(to: str, role: str, invite_url: str) -> dict:
    return await send_email(
        to=to,
        subject=f"You have been invited to join {config.APP_NAME}",
        mjml_content=invite_template(role, invite_url),
    )


async def send_otp_email(to: str, code: str) -> dict:
    return await send_email(to=to, subject="Your Verification Code", mjml_content=otp_template(code))


async def send_contact_form_email(name: str, email: str, phone: str, message: str) -> dict:
    if not config.CONTACT_FORM_SEND_TO:
        raise EmailError("CONTACT_FORM_SEND_TO is not configured")
    return await send_email(
        to=config.CONTACT_FORM_SEND_TO,
        subject="New Contact Form Submission",
        mjml_content=contact_form_template(name, email, phone, message),
    )
