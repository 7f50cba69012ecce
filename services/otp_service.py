"""
OTP Service Module

This module implements email verification with one-time passcodes. Each user
moves through three states:

    unverified (no challenge) -> unverified (live challenge) -> verified

Issuing a challenge replaces any earlier one. A correct, unexpired code
consumes the challenge and verifies the user for good; an expired challenge
is cleared the first time it is tried, so it can never succeed later. A
wrong code leaves the challenge in place.
"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import settings
from data.models import OTPChallenge, User
from data.protocols import UserStorage
from utils.exceptions import InvalidInputError
from utils.helpers import utcnow
from utils.logger import get_logger

logger = get_logger(__name__)


class OTPService:
    """Issues and checks time-boxed verification codes stored on the User document."""

    def __init__(self, users: UserStorage, clock: Callable[[], datetime] = utcnow,
                 code_length: Optional[int] = None, ttl_minutes: Optional[int] = None):
        self.users = users
        self.clock = clock
        self.code_length = code_length if code_length is not None else settings.OTP_LENGTH
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.OTP_TTL_MINUTES)

    def generate_code(self) -> str:
        """Random numeric code with exactly code_length digits (no leading zero)."""
        low = 10 ** (self.code_length - 1)
        return str(low + secrets.randbelow(9 * low))

    def issue_challenge(self, user_id: str) -> str:
        """
        Create a new challenge for a user, replacing any live one.

        Args:
            user_id: The user to challenge.

        Returns:
            str: The code to deliver to the user.

        Raises:
            NotFoundError: If the user does not exist.
            InvalidInputError: If the user is already verified.
        """
        code = self.generate_code()
        expires_at = self.clock() + self.ttl

        def apply(user: User) -> None:
            if user.is_verified:
                raise InvalidInputError("Email already verified")
            user.otp = OTPChallenge(code=code, expires_at=expires_at)

        self.users.mutate_user(user_id, apply)
        logger.info(f"Issued verification code for user {user_id}, expires {expires_at.isoformat()}")
        return code

    def verify(self, user_id: str, submitted_code: Optional[str]) -> bool:
        """
        Check a submitted code against the user's live challenge.

        Returns:
            bool: True only when the code matched an unexpired challenge; the
            user is then verified and the challenge consumed. False otherwise.

        Raises:
            NotFoundError: If the user does not exist.
        """
        submitted = str(submitted_code).strip() if submitted_code is not None else ""
        now = self.clock()

        def apply(user: User) -> bool:
            if user.is_verified:
                return False
            challenge = user.otp
            if challenge is None:
                return False
            if challenge.is_expired(now):
                user.otp = None
                logger.info(f"Expired verification code cleared for user {user.id}")
                return False
            if not submitted or not hmac.compare_digest(challenge.code.encode(), submitted.encode()):
                return False
            user.otp = None
            user.is_verified = True
            return True

        verified = self.users.mutate_user(user_id, apply)
        if verified:
            logger.info(f"User {user_id} verified")
        return verified
