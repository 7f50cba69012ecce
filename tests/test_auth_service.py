"""
Tests for the Auth Service

Tests for signup with an emailed verification code, email verification,
resending the code and login.
"""

import pytest
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.exceptions import (
    AuthenticationError, EmailDeliveryError, ForbiddenError, InvalidInputError, NotFoundError,
)


def _signup(core, username="alice"):
    return core.auth.signup(username, f"{username}@example.com", "secret123", username.capitalize(), "Smith")


# =============================================================================
# Signup and Verification Tests
# =============================================================================

class TestSignup:
    """Tests for signup() and verify_email()."""

    def test_signup_sends_code(self, core, email_notifier):
        """Signup stores an unverified user and emails a 6-digit code."""
        user = _signup(core)
        code = email_notifier.last_code("alice@example.com")

        assert user.is_verified is False
        assert code is not None and len(code) == 6
        assert email_notifier.sent[0]["first_name"] == "Alice"

    def test_signup_survives_email_failure(self, core, email_notifier):
        """The account exists even if the code could not be sent."""
        email_notifier.fail = True
        user = _signup(core)
        assert core.identity.get_user(user.id).otp is not None

    def test_verify_then_welcome(self, core, email_notifier):
        """A correct code verifies the account and sends the welcome email."""
        _signup(core)
        code = email_notifier.last_code("alice@example.com")

        user = core.auth.verify_email("alice@example.com", code)

        assert user.is_verified is True
        assert email_notifier.sent[-1]["kind"] == "welcome"

    @pytest.mark.parametrize("code, message", [
        ("123", "OTP must be 6 digits"),
        ("12a456", "OTP must contain only numbers"),
    ])
    def test_malformed_codes(self, core, code, message):
        """Codes with the wrong length or non-digits are rejected up front."""
        _signup(core)
        with pytest.raises(InvalidInputError, match=message):
            core.auth.verify_email("alice@example.com", code)

    def test_wrong_code(self, core, email_notifier):
        """A wrong code is reported as invalid or expired."""
        _signup(core)
        code = email_notifier.last_code("alice@example.com")
        wrong = "1" * 6 if code != "1" * 6 else "2" * 6
        with pytest.raises(InvalidInputError, match="Invalid or expired OTP"):
            core.auth.verify_email("alice@example.com", wrong)

    def test_expired_code(self, core, email_notifier, clock):
        """A code older than its TTL fails."""
        _signup(core)
        code = email_notifier.last_code("alice@example.com")
        clock.advance(minutes=11)
        with pytest.raises(InvalidInputError, match="Invalid or expired OTP"):
            core.auth.verify_email("alice@example.com", code)

    def test_verify_twice(self, core, email_notifier):
        """Verifying an already verified account is rejected."""
        _signup(core)
        code = email_notifier.last_code("alice@example.com")
        core.auth.verify_email("alice@example.com", code)
        with pytest.raises(InvalidInputError, match="Email already verified"):
            core.auth.verify_email("alice@example.com", code)

    def test_unknown_email(self, core):
        """Verifying an unknown email is NotFound."""
        with pytest.raises(NotFoundError):
            core.auth.verify_email("nobody@example.com", "123456")


class TestResendOtp:
    """Tests for resend_otp()."""

    def test_resend_replaces_code(self, core, email_notifier):
        """After a resend only the new code verifies."""
        _signup(core)
        first = email_notifier.last_code("alice@example.com")
        core.auth.resend_otp("alice@example.com")
        second = email_notifier.last_code("alice@example.com")
        if first == second:
            pytest.skip("random codes collided")

        with pytest.raises(InvalidInputError):
            core.auth.verify_email("alice@example.com", first)
        assert core.auth.verify_email("alice@example.com", second).is_verified is True

    def test_resend_delivery_failure(self, core, email_notifier):
        """A failed resend is reported to the caller."""
        _signup(core)
        email_notifier.fail = True
        with pytest.raises(EmailDeliveryError):
            core.auth.resend_otp("alice@example.com")

    def test_resend_to_verified_account(self, core, make_user):
        """Verified accounts get no new code."""
        make_user("alice")
        with pytest.raises(InvalidInputError, match="Email already verified"):
            core.auth.resend_otp("alice@example.com")


# =============================================================================
# Login Tests
# =============================================================================

class TestLogin:
    """Tests for login()."""

    def test_login_records_time(self, core, make_user, clock):
        """A successful login stores last_login."""
        make_user("alice")
        user = core.auth.login("Alice@Example.com", "secret123")
        assert user.last_login == clock()

    def test_wrong_password(self, core, make_user):
        """Wrong passwords and unknown emails give the same error."""
        make_user("alice")
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            core.auth.login("alice@example.com", "wrong-password")
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            core.auth.login("nobody@example.com", "secret123")

    def test_unverified_login_forbidden(self, core, make_user):
        """Unverified accounts must verify before logging in."""
        make_user("alice", verified=False)
        with pytest.raises(ForbiddenError, match="verify your email"):
            core.auth.login("alice@example.com", "secret123")

    def test_deactivated_login(self, core, make_user):
        """Deactivated accounts cannot log in."""
        alice = make_user("alice")
        core.identity.deactivate_user(alice.id, alice.id)
        with pytest.raises(AuthenticationError, match="deactivated"):
            core.auth.login("alice@example.com", "secret123")

    def test_missing_password(self, core, make_user):
        """An empty password is InvalidInput."""
        make_user("alice")
        with pytest.raises(InvalidInputError, match="Password is required"):
            core.auth.login("alice@example.com", "")
