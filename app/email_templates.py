"""
MJML Email Templates
All email templates using MJML for responsive, cross-client compatibility
"""

from html import escape
from typing import Optional

from .config import APP_NAME, FRONTEND_URL

# Indigo/slate color scheme
THEME = {
    "primary": "#4f46e5",
    "primary_light": "#eef2ff",
    "success": "#059669",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "warning_bg": "#fef3c7",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    footer_text: str = "This is an automated message. Please do not reply to this email.",
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section background-color="#ffffff" padding="0 40px 40px 40px">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="0"
              inner-padding="14px 32px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['primary']}" padding="28px 20px">
          <mj-column>
            <mj-text align="center" font-size="22px" font-weight="700" color="#ffffff" padding="0">
              {APP_NAME}
            </mj-text>
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="40px 40px 24px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              {footer_text}
            </mj-text>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="8px 0 0 0">
              &copy; {APP_NAME}. All rights reserved.
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_table(rows: list[tuple[str, Optional[str]]], accent: str) -> str:
    cells = "".join(
        f"""
        <tr>
          <td style="padding: 6px 0; color: {THEME['text_muted']}; width: 40%;">{escape(label)}</td>
          <td style="padding: 6px 0; color: {THEME['text_primary']}; font-weight: 500;">{escape(str(value))}</td>
        </tr>"""
        for label, value in rows
        if value not in (None, "")
    )
    return f"""
    <mj-text font-size="18px" font-weight="600" color="{accent}" padding="16px 0 8px 0">
      Booking Details
    </mj-text>
    <mj-table font-size="15px" padding="0 0 16px 0">
      {cells}
    </mj-table>
    """


def booking_confirmation_template(
    invitee_name: str,
    event_type_name: str,
    department_label: str,
    provider_label: str,
    start_time: str,
    end_time: str,
    duration: int,
    notes: Optional[str] = None,
) -> str:
    """Confirmation sent to the person who booked"""
    content = f"""
    <mj-text>Dear {escape(invitee_name)},</mj-text>
    <mj-text>
      Your booking has been successfully confirmed. We're looking forward to seeing you!
    </mj-text>
    {_details_table([
        ("Event", event_type_name),
        ("Department", department_label),
        ("Service Provider", provider_label),
        ("Start Time", start_time),
        ("End Time", end_time),
        ("Duration", f"{duration} minutes"),
        ("Notes", notes),
    ], THEME['primary'])}
    <mj-text>
      <strong>Important:</strong> Please arrive 5-10 minutes before your scheduled time.
    </mj-text>
    <mj-text color="{THEME['text_muted']}">
      If you need to reschedule or cancel, please contact us as soon as possible.
    </mj-text>
    """
    return get_base_template(
        title="Booking Confirmed!",
        preview_text=f"Your {event_type_name} is booked for {start_time}",
        content_sections=content,
    )


def provider_booking_notification_template(
    provider_name: Optional[str],
    invitee_name: str,
    invitee_email: Optional[str],
    event_type_name: str,
    department_label: str,
    start_time: str,
    end_time: str,
    duration: int,
    notes: Optional[str] = None,
) -> str:
    """New booking alert for the assigned provider"""
    content = f"""
    <mj-text>Dear {escape(provider_name or 'Service Provider')},</mj-text>
    <mj-text>You have received a new booking. Please review the details below:</mj-text>
    {_details_table([
        ("Client Name", invitee_name),
        ("Client Email", invitee_email),
        ("Event Type", event_type_name),
        ("Department", department_label),
        ("Start Time", start_time),
        ("End Time", end_time),
        ("Duration", f"{duration} minutes"),
        ("Client Notes", notes),
    ], THEME['success'])}
    <mj-text background-color="{THEME['warning_bg']}" padding="12px 16px">
      <strong>Action Required:</strong> Please prepare for this appointment and ensure you're available at the scheduled time.
    </mj-text>
    """
    return get_base_template(
        title="New Booking Alert",
        preview_text=f"{invitee_name} booked {event_type_name}",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/bookings",
        cta_label="Open Dashboard",
        footer_text="This is an automated notification from your booking system.",
    )


def registration_confirmation_template(name: Optional[str], confirmation_url: str) -> str:
    content = f"""
    <mj-text>Hi {escape(name or 'there')},</mj-text>
    <mj-text>
      Thanks for signing up for {APP_NAME}. Please confirm your email address by clicking the button below.
    </mj-text>
    <mj-text font-size="13px" color="{THEME['text_muted']}">
      Or copy and paste this link into your browser:<br />
      <a href="{confirmation_url}" style="color: {THEME['primary']}; word-break: break-all;">{confirmation_url}</a>
    </mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      This link expires in 24 hours. If you didn't create an account, you can ignore this email.
    </mj-text>
    """
    return get_base_template(
        title="Confirm your email",
        preview_text=f"Confirm your {APP_NAME} account",
        content_sections=content,
        cta_url=confirmation_url,
        cta_label="Confirm email",
    )


def invite_template(role: str, invite_url: str, expires_hours: int = 72) -> str:
    role_label = role.replace("_", " ").title()
    content = f"""
    <mj-text>You have been invited to join a workspace on {APP_NAME} as a <strong>{escape(role_label)}</strong>.</mj-text>
    <mj-text>Click the button below to set your password and accept the invitation.</mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      This invitation expires in {expires_hours} hours.
    </mj-text>
    """
    return get_base_template(
        title="You're invited!",
        preview_text=f"You have been invited to join {APP_NAME}",
        content_sections=content,
        cta_url=invite_url,
        cta_label="Accept Invitation",
    )


def otp_template(code: str, expires_minutes: int = 10) -> str:
    content = f"""
    <mj-text>Use the code below to verify your booking:</mj-text>
    <mj-text align="center" font-size="32px" font-weight="700" letter-spacing="8px"
      color="{THEME['primary']}" container-background-color="{THEME['primary_light']}" padding="20px">
      {code}
    </mj-text>
    <mj-text font-size="14px" color="{THEME['text_muted']}">
      This code will expire in {expires_minutes} minutes.
    </mj-text>
    """
    return get_base_template(
        title="Your Verification Code",
        preview_text=f"Your verification code is {code}",
        content_sections=content,
    )


def contact_form_template(name: str, email: str, phone: str, message: str) -> str:
    content = f"""
    <mj-table font-size="15px" padding="0 0 16px 0">
      <tr><td style="padding: 6px 0; width: 30%;"><strong>Name:</strong></td><td>{escape(name)}</td></tr>
      <tr><td style="padding: 6px 0;"><strong>Email:</strong></td><td>{escape(email)}</td></tr>
      <tr><td style="padding: 6px 0;"><strong>Phone:</strong></td><td>{escape(phone)}</td></tr>
    </mj-table>
    <mj-text><strong>Message:</strong></mj-text>
    <mj-text>{escape(message)}</mj-text>
    """
    return get_base_template(
        title="New Contact Form Submission",
        preview_text=f"New message from {name}",
        content_sections=content,
    )
