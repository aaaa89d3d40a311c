"""
auth/mailer.py -- Outbound email for welcome and password reset messages.

Transport: aiosmtplib, so sending suspends the background task instead of
blocking the event loop. Port 465 uses implicit TLS; every other port
upgrades with STARTTLS. The SMTP client's own timeout
(EMAIL_TIMEOUT_SECONDS) is the only deadline these sends have.

Unconfigured mode: when EMAIL_USER or EMAIL_PASS is missing, nothing is sent.
Welcome emails are skipped silently. Reset emails log a warning, and in
DEBUG mode also log the reset link so the flow can be completed locally.

Failures: transport errors are wrapped in EmailDeliveryError and raised. The
orchestrator runs every send as a detached task that logs and discards that
error -- this module does not decide what a failure means to the caller.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import html
import logging
from email.message import EmailMessage
from urllib.parse import quote

import aiosmtplib

from auth.errors import EmailDeliveryError
from core.config import Settings, get_settings

logger = logging.getLogger("gatekeep.auth.mail")


class Mailer:
    """Sends transactional email through the configured SMTP server."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    @property
    def configured(self) -> bool:
        return self._settings.email_enabled

    def reset_url(self, token: str) -> str:
        return f"{self._settings.frontend_url.rstrip('/')}/reset-password?token={quote(token)}"

    async def send_welcome_email(self, email: str, name: str) -> None:
        if not self.configured:
            return
        safe_name = html.escape(name)
        message = self._build(
            to=email,
            subject="Welcome to Gatekeep!",
            text=(
                f"Welcome, {name}!\n\n"
                "Thank you for signing up. We're excited to have you on board!\n"
                "If you have any questions, feel free to reach out to our support team."
            ),
            html_body=(
                f"<h2>Welcome, {safe_name}!</h2>"
                "<p>Thank you for signing up. We're excited to have you on board!</p>"
                "<p>If you have any questions, feel free to reach out to our support team.</p>"
            ),
        )
        await self._send(message)
        logger.info("Welcome email sent")

    async def send_password_reset_email(self, email: str, token: str) -> None:
        url = self.reset_url(token)
        if not self.configured:
            logger.warning("Email service not configured. Password reset email not sent.")
            if self._settings.debug:
                logger.info("Password reset link (development mode): %s", url)
            return
        safe_url = html.escape(url, quote=True)
        message = self._build(
            to=email,
            subject="Password Reset Request",
            text=(
                "You requested a password reset. Open the link below to choose a new password:\n\n"
                f"{url}\n\n"
                "This link will expire in 1 hour.\n"
                "If you didn't request this, please ignore this email."
            ),
            html_body=(
                "<h2>Password Reset Request</h2>"
                "<p>You requested a password reset. Click the link below to reset your password:</p>"
                f'<p><a href="{safe_url}">Reset Password</a></p>'
                "<p>Or copy and paste this link into your browser:</p>"
                f'<p style="word-break: break-all;">{safe_url}</p>'
                "<p>This link will expire in 1 hour.</p>"
                "<p>If you didn't request this, please ignore this email.</p>"
            ),
        )
        await self._send(message)
        logger.info("Password reset email sent")

    def _build(self, to: str, subject: str, text: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._settings.email_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html_body, subtype="html")
        return message

    async def _send(self, message: EmailMessage) -> None:
        cfg = self._settings
        implicit_tls = cfg.email_port == 465
        try:
            smtp_client = aiosmtplib.SMTP(
                hostname=cfg.email_host,
                port=cfg.email_port,
                username=cfg.email_user,
                password=cfg.email_pass,
                use_tls=implicit_tls,
                start_tls=not implicit_tls,
                timeout=cfg.email_timeout_seconds,
            )
            async with smtp_client:
                await smtp_client.send_message(message)
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(
                f"SMTP delivery via {cfg.email_host}:{cfg.email_port} failed: {type(exc).__name__}"
            ) from exc
