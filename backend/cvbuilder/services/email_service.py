"""Transactional email through Resend.

Email is best-effort everywhere it is used: a send failure is logged and
reported as ``False``, never raised into the request that triggered it.
"""

import asyncio
from datetime import UTC, datetime
from pathlib import Path

import resend
import structlog
from jinja2 import Environment, FileSystemLoader, select_autoescape

from cvbuilder.core.config import get_settings

logger = structlog.get_logger(__name__)

_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


class EmailService:
    """Render and send the application's transactional messages."""

    def __init__(self) -> None:
        self.env = Environment(
            loader=FileSystemLoader(str(_TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
        )

    def render(
        self,
        heading: str,
        name: str | None,
        paragraphs: list[str],
        button_url: str | None = None,
        button_label: str | None = None,
        highlights: list[tuple[str, str]] | None = None,
        notes: list[str] | None = None,
        accent: str = "#2563eb",
    ) -> str:
        settings = get_settings()
        return self.env.get_template("email.html").render(
            heading=heading,
            name=name,
            paragraphs=paragraphs,
            button_url=button_url,
            button_label=button_label,
            highlights=highlights or [],
            notes=notes or [],
            accent=accent,
            year=datetime.now(UTC).year,
            app_name=settings.app_name,
        )

    async def send(self, to: str, subject: str, html: str) -> bool:
        """Send one message. Returns True when Resend accepted it."""
        settings = get_settings()
        if not settings.resend_api_key:
            logger.info("email_not_configured", subject=subject)
            return False

        resend.api_key = settings.resend_api_key
        params = {"from": settings.email_from, "to": [to], "subject": subject, "html": html}
        try:
            await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.warning("email_send_failed", subject=subject, error=str(e), error_type=type(e).__name__)
            return False

        logger.info("email_sent", subject=subject)
        return True

    async def send_welcome(self, email: str, name: str | None, free_credits: str) -> bool:
        frontend = get_settings().frontend_url
        html = self.render(
            heading="Welcome to CV Builder!",
            name=name,
            paragraphs=[
                "Thank you for joining CV Builder. You can now create ATS-optimized CVs and cover letters tailored to any job.",
                f"Your account starts with {free_credits} free credits for AI generations.",
            ],
            button_url=f"{frontend}/dashboard",
            button_label="Go to Dashboard",
            notes=["Need help? Just reply to this email."],
        )
        return await self.send(email, "Welcome to CV Builder - Your AI-Powered Career Assistant", html)

    async def send_verification(self, email: str, name: str | None, token: str) -> bool:
        frontend = get_settings().frontend_url
        html = self.render(
            heading="Verify Your Email",
            name=name,
            paragraphs=["Please confirm your email address to finish setting up your account."],
            button_url=f"{frontend}/verify-email?token={token}",
            button_label="Verify Email",
            notes=[
                "If you didn't create an account, you can safely ignore this email.",
                "This link will expire in 24 hours.",
            ],
        )
        return await self.send(email, "Verify your CV Builder account", html)

    async def send_password_reset(self, email: str, name: str | None, token: str) -> bool:
        frontend = get_settings().frontend_url
        html = self.render(
            heading="Reset Your Password",
            name=name,
            paragraphs=["We received a request to reset your password."],
            button_url=f"{frontend}/reset-password?token={token}",
            button_label="Reset Password",
            notes=[
                "If you didn't request this, you can safely ignore this email.",
                "This link will expire in 1 hour.",
            ],
            accent="#dc2626",
        )
        return await self.send(email, "Reset your CV Builder password", html)

    async def send_low_credits(self, email: str, name: str | None, balance: str) -> bool:
        frontend = get_settings().frontend_url
        html = self.render(
            heading="Running Low on Credits",
            name=name,
            paragraphs=[
                f"You have {balance} credits remaining.",
                "Top up now so you never miss an opportunity.",
            ],
            button_url=f"{frontend}/credits",
            button_label="Buy Credits",
            accent="#f59e0b",
        )
        return await self.send(email, "Your CV Builder credits are running low", html)

    async def send_purchase_confirmation(
        self, email: str, name: str | None, credits: int, amount: str, currency: str
    ) -> bool:
        frontend = get_settings().frontend_url
        html = self.render(
            heading="Payment Successful",
            name=name,
            paragraphs=["Thank you for your purchase. Your credits have been added to your account."],
            highlights=[("Credits added", str(credits)), ("Amount paid", f"{amount} {currency.upper()}")],
            button_url=f"{frontend}/dashboard",
            button_label="Start Creating",
            accent="#16a34a",
        )
        return await self.send(email, f"Payment confirmed - {credits} credits added", html)


_email_service: EmailService | None = None


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
