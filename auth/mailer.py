"""
auth/mailer.py -- Outbound email for verification codes and reset links.

SmtpMailer is the only delivery channel. Its send() either hands the
message to the SMTP server or raises DeliveryError; it never returns a
status flag. Flows catch DeliveryError, log it, and carry on -- a failed
email must not undo a registration or a freshly issued reset token.

With no SMTP_HOST configured:
  DEBUG=true  -> the message is written to the log instead (local dev, so
                 codes and links can be read without a mail server).
  DEBUG=false -> DeliveryError, like any other transport failure.

Message bodies are built by the *_email() helpers below so the flows only
decide WHAT to send.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from auth.errors import DeliveryError

logger = logging.getLogger("grievance.mailer")

_SMTP_TIMEOUT = 10  # seconds


class Mailer(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> None: ...


class SmtpMailer:
    """Deliver HTML email over SMTP (STARTTLS by default)."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "Grievance Portal <no-reply@localhost>",
        debug: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.debug = debug

    @classmethod
    def from_settings(cls, settings) -> SmtpMailer:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
            debug=settings.debug,
        )

    def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.host:
            if self.debug:
                logger.info("SMTP not configured; email to %s (%s):\n%s", to, subject, html_body)
                return
            raise DeliveryError("SMTP_HOST is not configured")

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=_SMTP_TIMEOUT) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryError(f"Email could not be sent: {exc}") from exc
        logger.info("Email sent to %s (%s)", to, subject)


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------


def welcome_email(name: str, otp: str, ttl_minutes: int) -> tuple[str, str]:
    """Return (subject, html) for the post-registration verification email."""
    body = (
        "<h1>Welcome to Grievance Portal!</h1>"
        f"<p>Hi {html.escape(name)},</p>"
        "<p>Your account has been created successfully.</p>"
        f"<p>Your OTP for email verification is: <strong>{otp}</strong></p>"
        f"<p>This OTP is valid for {ttl_minutes} minutes.</p>"
        "<p>Thank you!</p>"
    )
    return "Email Verification - Grievance Portal", body


def otp_email(name: str, otp: str, ttl_minutes: int) -> tuple[str, str]:
    """Return (subject, html) for a re-sent verification code."""
    body = (
        "<h1>Email Verification</h1>"
        f"<p>Hi {html.escape(name)},</p>"
        f"<p>Your new OTP is: <strong>{otp}</strong></p>"
        f"<p>Valid for {ttl_minutes} minutes.</p>"
    )
    return "Email Verification OTP - Grievance Portal", body


def reset_email(name: str, reset_url: str, ttl_minutes: int) -> tuple[str, str]:
    """Return (subject, html) for a password-reset link."""
    url = html.escape(reset_url, quote=True)
    body = (
        "<h1>Password Reset Request</h1>"
        f"<p>Hi {html.escape(name)},</p>"
        "<p>Click the link below to reset your password:</p>"
        f'<a href="{url}" target="_blank">Reset Password</a>'
        f"<p>This link is valid for {ttl_minutes} minutes.</p>"
    )
    return "Password Reset Request - Grievance Portal", body
