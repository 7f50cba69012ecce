"""
Auth Service Module

This module holds the account flows that sit on top of the identity store
and the OTP verifier: signup with an emailed verification code, email
verification, resending the code, and login, which is only open to verified,
active accounts.
"""

import re
from typing import Optional

from config import settings
from data.models import User
from services.identity_service import IdentityService, validate_email
from services.otp_service import OTPService
from services.protocols import CredentialHasher, EmailNotifier
from utils.exceptions import (
    AuthenticationError, EmailDeliveryError, ForbiddenError, InvalidInputError, NotFoundError,
)
from utils.logger import get_logger

logger = get_logger(__name__)


class AuthService:
    """Signup, verification and login flows."""

    def __init__(self, identity: IdentityService, otp: OTPService,
                 hasher: CredentialHasher, email: EmailNotifier):
        self.identity = identity
        self.otp = otp
        self.hasher = hasher
        self.email = email

    def _user_for_email(self, email: str) -> User:
        user = self.identity.find_by_email(validate_email(email))
        if user is None:
            raise NotFoundError("User not found")
        return user

    def signup(self, username: str, email: str, password: str,
               first_name: str, last_name: str) -> User:
        """
        Register an unverified user and email them a verification code.

        The account is created even if the email cannot be delivered; the
        user can ask for the code again with resend_otp().

        Raises:
            InvalidInputError: If any field is malformed.
            ConflictError: If the email or username is already registered.
        """
        user = self.identity.create_user(username, email, password, first_name, last_name)
        code = self.otp.issue_challenge(user.id)
        if not self.email.send_otp(user.email, code, user.first_name):
            logger.warning(f"Verification email to {user.email} failed; user {user.id} must resend")
        return self.identity.get_user(user.id)

    def verify_email(self, email: str, code: str) -> User:
        """
        Verify an account with the emailed code and send the welcome email.

        Raises:
            InvalidInputError: On a malformed code, an already verified account,
                or a wrong or expired code.
            NotFoundError: If no account uses the email.
        """
        code = code.strip() if isinstance(code, str) else ""
        if len(code) != settings.OTP_LENGTH:
            raise InvalidInputError(f"OTP must be {settings.OTP_LENGTH} digits")
        if not re.fullmatch(r"[0-9]+", code):
            raise InvalidInputError("OTP must contain only numbers")

        user = self._user_for_email(email)
        if user.is_verified:
            raise InvalidInputError("Email already verified")
        if not self.otp.verify(user.id, code):
            raise InvalidInputError("Invalid or expired OTP")

        if not self.email.send_welcome(user.email, user.first_name):
            logger.warning(f"Welcome email to {user.email} failed")
        return self.identity.get_user(user.id)

    def resend_otp(self, email: str) -> None:
        """
        Issue a fresh code (replacing the old one) and email it.

        Raises:
            NotFoundError: If no account uses the email.
            InvalidInputError: If the account is already verified.
            EmailDeliveryError: If the email could not be sent.
        """
        user = self._user_for_email(email)
        if user.is_verified:
            raise InvalidInputError("Email already verified")
        code = self.otp.issue_challenge(user.id)
        if not self.email.send_otp(user.email, code, user.first_name):
            raise EmailDeliveryError("Failed to send OTP email")
        logger.info(f"Resent verification code to user {user.id}")

    def login(self, email: str, password: str) -> User:
        """
        Check credentials and record the login.

        Raises:
            AuthenticationError: For an unknown email, a wrong password or a
                deactivated account.
            ForbiddenError: If the account has not verified its email.
        """
        if not isinstance(password, str) or not password:
            raise InvalidInputError("Password is required")

        user: Optional[User] = self.identity.find_by_email(validate_email(email))
        if user is None:
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise AuthenticationError("Account is deactivated")
        if not self.hasher.verify(password, user.password_hash):
            logger.warning(f"Failed login for user {user.id}")
            raise AuthenticationError("Invalid credentials")
        if not user.is_verified:
            raise ForbiddenError("Please verify your email before logging in")

        self.identity.record_login(user.id)
        logger.info(f"User {user.id} logged in")
        return self.identity.get_user(user.id)
