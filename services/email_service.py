"""
Email Service Module

This module sends the transactional emails of the social core over SMTP:
the verification code, the welcome message and the password reset link.
Delivery failures are logged and reported as False to the caller, which
decides whether the failure matters (signup carries on, resend-OTP does not).
"""

import smtplib
from email.message import EmailMessage
from typing import Optional

from config import settings
from utils.logger import get_logger

logger = get_logger(__name__)


def _otp_body(code: str, first_name: str) -> str:
    return (
        f"Hi {first_name},\n\n"
        f"Thank you for signing up! Please use the following code to verify your email address:\n\n"
        f"    {code}\n\n"
        f"This code will expire in {settings.OTP_TTL_MINUTES} minutes.\n\n"
        f"If you didn't create an account, please ignore this email."
    )


def _welcome_body(first_name: str) -> str:
    return (
        f"Hi {first_name},\n\n"
        f"Your email has been verified and your account is ready.\n"
        f"Start connecting with friends and sharing your moments:\n\n"
        f"    {settings.FRONTEND_URL}\n"
    )


def _reset_body(reset_token: str, first_name: Optional[str]) -> str:
    greeting = f"Hi {first_name}," if first_name else "Hi,"
    return (
        f"{greeting}\n\n"
        f"We received a request to reset your password. Use the link below to choose a new one:\n\n"
        f"    {settings.FRONTEND_URL}/reset-password?token={reset_token}\n\n"
        f"This link will expire in 1 hour. If you didn't request this, you can ignore this email."
    )


class SmtpEmailService:
    """EmailNotifier implementation sending plain-text mail through an SMTP relay."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 user: Optional[str] = None, password: Optional[str] = None,
                 use_tls: Optional[bool] = None, sender: Optional[str] = None):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port if port is not None else settings.SMTP_PORT
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = use_tls if use_tls is not None else settings.SMTP_USE_TLS
        self.sender = sender or settings.EMAIL_FROM

    def _send(self, to: str, subject: str, body: str) -> bool:
        """
        Deliver one message.

        Args:
            to: Recipient address.
            subject: Subject line.
            body: Plain-text body.

        Returns:
            bool: True if the relay accepted the message, False otherwise.
        """
        if not self.host:
            logger.warning(f"SMTP host not configured, dropping email '{subject}' to {to}")
            return False

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=settings.SMTP_TIMEOUT) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.user:
                    smtp.login(self.user, self.password)
                smtp.send_message(message)
            logger.info(f"Sent email '{subject}' to {to}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}' to {to}: {e}")
            return False

    def send_otp(self, email: str, code: str, first_name: str) -> bool:
        return self._send(email, "Verify Your Email - MingleMe", _otp_body(code, first_name))

    def send_welcome(self, email: str, first_name: str) -> bool:
        return self._send(email, "Welcome to MingleMe!", _welcome_body(first_name))

    def send_password_reset(self, email: str, reset_token: str, first_name: Optional[str] = None) -> bool:
        return self._send(email, "Reset Your Password - MingleMe", _reset_body(reset_token, first_name))
