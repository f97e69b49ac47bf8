"""Email delivery, logo storage helpers and health endpoints."""
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from app import email_service
from app.email_service import EmailError
from app.utils import storage


class TestSendEmail:

    @pytest.mark.asyncio
    async def test_unconfigured_raises(self, monkeypatch):
        monkeypatch.setattr("app.config.SMTP_USER", None)
        monkeypatch.setattr("app.config.RESEND_API_KEY", None)

        with pytest.raises(EmailError, match="Email service not configured"):
            await email_service.send_email("a@x.test", "Hi", "<mjml><mj-body></mj-body></mjml>")

    @pytest.mark.asyncio
    async def test_smtp_failure_falls_back_to_resend(self, monkeypatch):
        monkeypatch.setattr("app.config.SMTP_USER", "user")
        monkeypatch.setattr("app.config.SMTP_PASSWORD", "pass")
        monkeypatch.setattr("app.config.RESEND_API_KEY", "re_test")
        monkeypatch.setattr(email_service, "send_via_smtp", MagicMock(side_effect=EmailError("SMTP failed")))
        resend_send = MagicMock(return_value={"id": "email-1"})
        monkeypatch.setattr(email_service.resend.Emails, "send", resend_send)

        result = await email_service.send_email(["a@x.test"], "Hi", "<mjml><mj-body></mj-body></mjml>")

        assert result == {"id": "email-1"}
        sent = resend_send.call_args.args[0]
        assert sent["to"] == ["a@x.test"]
        assert sent["subject"] == "Hi"

    @pytest.mark.asyncio
    async def test_contact_form_needs_recipient(self, monkeypatch):
        monkeypatch.setattr("app.config.CONTACT_FORM_SEND_TO", None)

        with pytest.raises(EmailError, match="CONTACT_FORM_SEND_TO"):
            await email_service.send_contact_form_email("Ana", "a@x.test", "555", "Hi")

    @pytest.mark.asyncio
    async def test_booking_emails_collect_errors(self, monkeypatch):
        monkeypatch.setattr("app.config.SMTP_USER", None)
        monkeypatch.setattr("app.config.RESEND_API_KEY", None)

        result = await email_service.send_booking_confirmation_emails(
            {
                "invitee_name": "Pat",
                "invitee_email": "pat@x.test",
                "provider_name": "Dr. Lee",
                "provider_email": "lee@x.test",
                "event_type_name": "Consult",
                "start_time": "2030-03-04T14:30:00Z",
                "end_time": "2030-03-04T15:00:00Z",
                "duration": 30,
            }
        )

        assert result["userEmailSent"] is False
        assert result["providerEmailSent"] is False
        assert len(result["errors"]) == 2

    def test_format_booking_time(self):
        assert email_service.format_booking_time("2030-03-04T14:30:00Z") == "Monday, March 4, 2030 at 02:30 PM UTC"
        assert (
            email_service.format_booking_time("2030-03-04T14:30:00Z", "Asia/Kolkata")
            == "Monday, March 4, 2030 at 08:00 PM IST"
        )
        assert email_service.format_booking_time("2030-03-04T14:30:00Z", "Mars/Olympus").endswith("UTC")


class TestLogoStorage:

    @pytest.mark.parametrize(
        "size,mime,valid",
        [
            (1024, "image/png", True),
            (1024, "image/webp", True),
            (1024, "application/pdf", False),
            (6 * 1024 * 1024, "image/jpeg", False),
        ],
    )
    def test_validate_image_file(self, size, mime, valid):
        is_valid, error = storage.validate_image_file(size, mime)

        assert is_valid is valid
        assert (error is None) is valid

    def test_build_logo_key(self):
        assert storage.build_logo_key("Brand.JPG", 12).startswith("workspace-12-")
        assert storage.build_logo_key("Brand.JPG", 12).endswith(".jpg")
        assert storage.build_logo_key(None).endswith(".png")
        assert storage.build_logo_key("logo.svg").count("-") == 1

    def test_public_url_prefers_custom_domain(self, monkeypatch):
        monkeypatch.setattr("app.config.R2_PUBLIC_URL", "https://cdn.example.com")
        assert storage.get_public_url("workspace-1-1.png") == "https://cdn.example.com/workspace-1-1.png"

    def test_upload_puts_object(self, monkeypatch):
        client = MagicMock()
        monkeypatch.setattr(storage, "get_r2_client", lambda: client)
        monkeypatch.setattr("app.config.R2_PUBLIC_URL", "https://cdn.example.com")
        monkeypatch.setattr("app.config.R2_BUCKET_NAME", "logos")

        url = storage.upload_public_file("workspace-1-1.png", b"data", "image/png")

        assert url == "https://cdn.example.com/workspace-1-1.png"
        client.put_object.assert_called_once()
        assert client.put_object.call_args.kwargs["Bucket"] == "logos"


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_redis_health_without_redis(self, client: AsyncClient):
        response = await client.get("/health/redis")

        assert response.json()["status"] == "degraded"
        assert response.json()["redis"]["connected"] is False
