"""
Email service using SendGrid.
Part of Infrastructure layer - external service integration.
"""
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from authgate.application.protocols import EmailLinkData
from authgate.core.config import Settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SendGrid rejected or failed to accept a message."""

    def __init__(self, to: str, reason: str):
        super().__init__(f"Failed to send email to {to}: {reason}")
        self.to = to
        self.reason = reason


SUBJECTS = {
    "en": {
        "email-verify": "Verify your email",
        "signin-passwordless": "Your sign-in link",
        "password-reset": "Reset your password",
    },
    "nl": {
        "email-verify": "Bevestig je e-mailadres",
        "signin-passwordless": "Je inloglink",
        "password-reset": "Stel je wachtwoord opnieuw in",
    },
}

ACTIONS = {
    "en": {
        "email-verify": "Verify email",
        "signin-passwordless": "Sign in",
        "password-reset": "Reset password",
    },
    "nl": {
        "email-verify": "Bevestig e-mailadres",
        "signin-passwordless": "Inloggen",
        "password-reset": "Wachtwoord herstellen",
    },
}

DEFAULT_LOCALE = "en"


def render_link_email(template: str, locale: str, data: EmailLinkData) -> tuple[str, str]:
    """
    Render subject and HTML body for a link email.

    Unknown locales fall back to English.
    """
    locale = locale if locale in SUBJECTS else DEFAULT_LOCALE
    subject = SUBJECTS[locale][template]
    action = ACTIONS[locale][template]

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="utf-8"></head>
    <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; padding: 40px 20px;">
            <h2>{subject}</h2>
            <p>{data.display_name}</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{data.link}">{action}</a>
            </p>
            <p style="font-size: 13px; color: #718096; word-break: break-all;">{data.link}</p>
        </div>
    </body>
    </html>
    """
    return subject, html_content


class SendGridEmailer:
    """Service for sending authentication emails via SendGrid."""

    def __init__(self, api_key: Optional[str], from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.client = SendGridAPIClient(api_key) if api_key else None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SendGridEmailer":
        return cls(settings.SENDGRID_API_KEY, settings.EMAIL_FROM, settings.EMAIL_FROM_NAME)

    def send_email(self, to_email: str, subject: str, html_content: str) -> dict:
        """
        Send an email via SendGrid.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of the email

        Returns:
            Dict with success status and details
        """
        if not self.client:
            # Fake mode if no API key
            logger.info(f"[FAKE EMAIL] From: {self.from_name} <{self.from_email}> To: {to_email} Subject: {subject}")
            logger.debug(f"[FAKE EMAIL] Content: {html_content[:200]}...")
            return {
                "success": True,
                "fake": True,
                "message": "Email would be sent (no API key configured)",
            }

        try:
            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content),
            )
            response = self.client.send(message)
            return {
                "success": response.status_code in [200, 201, 202],
                "status_code": response.status_code,
                "message": "Email sent successfully",
            }
        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e} {getattr(e, 'body', '')}")
            return {
                "success": False,
                "error": str(e),
                "message": "Failed to send email",
            }

    def _send_link(self, template: str, to: str, locale: str, data: EmailLinkData) -> None:
        subject, html_content = render_link_email(template, locale, data)
        result = self.send_email(to_email=to, subject=subject, html_content=html_content)
        if not result["success"]:
            raise EmailDeliveryError(to, result.get("error") or f"status {result.get('status_code')}")

    def send_email_verification(self, to: str, locale: str, data: EmailLinkData) -> None:
        self._send_link("email-verify", to, locale, data)

    def send_magic_link(self, to: str, locale: str, data: EmailLinkData) -> None:
        self._send_link("signin-passwordless", to, locale, data)

    def send_password_reset(self, to: str, locale: str, data: EmailLinkData) -> None:
        self._send_link("password-reset", to, locale, data)
