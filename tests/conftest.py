"""
Shared Test Fixtures for the Social Core

This module provides common fixtures used across all test modules.
Fixtures include a controllable clock, in-memory storages, fake external
collaborators, a mocked pyodbc connection, log capture, and factories for
users and posts.
"""

import pytest
from unittest.mock import MagicMock, patch
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.memory import InMemoryNotificationStorage, InMemoryPostStorage, InMemoryUserStorage
from data.models import ImageRef
from services.protocols import Upload
from utils.exceptions import MediaUploadError


# =============================================================================
# Clock Fixtures
# =============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """
    A controllable clock starting at 2024-01-01 12:00 UTC.

    Usage:
        def test_expiry(clock):
            clock.advance(minutes=11)
    """
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# Fake Collaborators
# =============================================================================

class FakeHasher:
    """CredentialHasher with a deterministic digest that never equals the plaintext."""

    def hash(self, password: str) -> str:
        return "hashed$" + password[::-1]

    def verify(self, password: str, password_hash: str) -> bool:
        return password_hash == self.hash(password)


class FakeEmailNotifier:
    """EmailNotifier that records every message and can be told to fail."""

    def __init__(self):
        self.sent: List[Dict] = []
        self.fail = False

    def _record(self, kind: str, **payload) -> bool:
        if self.fail:
            return False
        self.sent.append(dict(kind=kind, **payload))
        return True

    def send_otp(self, email: str, code: str, first_name: str) -> bool:
        return self._record("otp", email=email, code=code, first_name=first_name)

    def send_welcome(self, email: str, first_name: str) -> bool:
        return self._record("welcome", email=email, first_name=first_name)

    def send_password_reset(self, email: str, reset_token: str, first_name: Optional[str] = None) -> bool:
        return self._record("password_reset", email=email, reset_token=reset_token)

    def last_code(self, email: str) -> Optional[str]:
        for message in reversed(self.sent):
            if message["kind"] == "otp" and message["email"] == email:
                return message["code"]
        return None


class FakeObjectStore:
    """ObjectStore keeping images in a dict; fail_after makes the Nth put fail."""

    def __init__(self):
        self.stored: Dict[str, Upload] = {}
        self.deleted: List[str] = []
        self.fail_after: Optional[int] = None
        self.puts = 0

    def put(self, upload: Upload) -> ImageRef:
        self.puts += 1
        if self.fail_after is not None and self.puts > self.fail_after:
            raise MediaUploadError("store unavailable")
        public_id = f"mingleme/posts/img{self.puts}"
        self.stored[public_id] = upload
        return ImageRef(url=f"https://cdn.example.com/{public_id}.jpg", public_id=public_id)

    def delete(self, ref: ImageRef) -> None:
        self.stored.pop(ref.public_id, None)
        self.deleted.append(ref.public_id)


@pytest.fixture
def hasher():
    return FakeHasher()


@pytest.fixture
def email_notifier():
    return FakeEmailNotifier()


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def image_upload():
    """A small valid image upload."""
    return Upload(filename="photo.jpg", content_type="image/jpeg", data=b"\xff\xd8\xff" + b"0" * 64)


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def user_storage():
    return InMemoryUserStorage()


@pytest.fixture
def post_storage():
    return InMemoryPostStorage()


@pytest.fixture
def notification_storage():
    return InMemoryNotificationStorage()


# =============================================================================
# Application Fixtures
# =============================================================================

@pytest.fixture
def core(clock, hasher, email_notifier, object_store, user_storage, post_storage, notification_storage):
    """
    A fully wired SocialCore over in-memory storage and fake collaborators.

    Returns:
        SocialCore: The application under test.
    """
    from main import SocialCore

    return SocialCore(
        user_storage, post_storage, notification_storage,
        hasher=hasher, email=email_notifier, object_store=object_store, clock=clock,
    )


@pytest.fixture
def make_user(core, clock):
    """
    Factory fixture creating users directly through the identity service.

    Usage:
        def test_something(make_user):
            alice = make_user("alice")
            admin = make_user("root", role="admin")
    """
    def _make_user(username: str, verified: bool = True, role: str = "user", password: str = "secret123"):
        clock.advance(seconds=1)
        user = core.identity.create_user(
            username=username,
            email=f"{username}@example.com",
            password=password,
            first_name=username.capitalize(),
            last_name="Tester",
            role=role,
        )
        if verified:
            def apply(u):
                u.is_verified = True
            core.users.mutate_user(user.id, apply)
        return core.identity.get_user(user.id)

    return _make_user


@pytest.fixture
def make_post(core, clock):
    """
    Factory fixture creating posts; the clock advances one second per post so
    creation order is unambiguous.
    """
    def _make_post(author, content: str = "Hello world", tags=None, is_public: bool = True):
        clock.advance(seconds=1)
        return core.content.create_post(author.id, content, tags=tags, is_public=is_public)

    return _make_post


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def mock_db_connection():
    """
    Mock pyodbc database connection and cursor.

    This fixture provides a mock database connection that simulates
    pyodbc behavior without requiring an actual database connection.

    Usage:
        def test_database(mock_db_connection):
            conn, cursor = mock_db_connection
            cursor.fetchall.return_value = [('row1',), ('row2',)]

    Returns:
        tuple: A tuple of (mock_connection, mock_cursor).
    """
    mock_cursor = MagicMock()
    mock_cursor.description = None
    mock_cursor.fetchall.return_value = []
    mock_cursor.fetchone.return_value = None
    mock_cursor.rowcount = 0

    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor
    mock_conn.commit.return_value = None
    mock_conn.rollback.return_value = None
    mock_conn.close.return_value = None

    with patch('pyodbc.connect', return_value=mock_conn):
        yield mock_conn, mock_cursor


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def capture_logs():
    """
    Capture log messages for assertion in tests.

    Returns:
        list: A list that will contain captured log records.
    """
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    app_logger = logging.getLogger("social")
    original_levels = (root_logger.level, app_logger.level)
    root_logger.setLevel(logging.DEBUG)
    app_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler.records

    root_logger.removeHandler(handler)
    root_logger.setLevel(original_levels[0])
    app_logger.setLevel(original_levels[1])
