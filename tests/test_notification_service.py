"""
Tests for the Notification Service

Tests for notification creation (self-suppression, kind validation,
mentions), best-effort dispatch, and the recipient-scoped inbox operations.
"""

import pytest
from unittest.mock import patch
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import KIND_FOLLOW, KIND_LIKE, KIND_MENTION
from utils.exceptions import InvalidInputError, NotFoundError


# =============================================================================
# Fan-out Tests
# =============================================================================

class TestNotify:
    """Tests for notify() and dispatch()."""

    def test_self_notification_is_suppressed(self, core):
        """A user is never notified about their own action."""
        assert core.notifications.notify("u1", "u1", KIND_LIKE, "liked your post") is None
        assert core.notifications.unread_count("u1") == 0

    def test_notification_is_stored_unread(self, core, clock):
        """New notifications are unread and stamped with the clock."""
        notification = core.notifications.notify("r", "s", KIND_FOLLOW, "started following you")
        assert notification.is_read is False
        assert notification.created_at == clock()
        assert core.notifications.unread_count("r") == 1

    def test_unknown_kind_rejected(self, core):
        """Kinds outside the fixed set are rejected."""
        with pytest.raises(InvalidInputError):
            core.notifications.notify("r", "s", "poke", "poked you")

    def test_empty_message_rejected(self, core):
        """A notification needs a message."""
        with pytest.raises(InvalidInputError):
            core.notifications.notify("r", "s", KIND_LIKE, "   ")

    def test_dispatch_swallows_storage_errors(self, core, capture_logs):
        """dispatch() logs a failed insert and returns None instead of raising."""
        with patch.object(core.notification_store, "insert_notification", side_effect=RuntimeError("down")):
            assert core.notifications.dispatch("r", "s", KIND_LIKE, "liked your post") is None
        assert any("Dropped like notification" in r.getMessage() for r in capture_logs)


class TestMentions:
    """Tests for notify_mentions()."""

    def test_each_mentioned_user_notified_once(self, core, make_user):
        """Repeated mentions of one user produce a single notification."""
        author = make_user("author")
        bob = make_user("bob")

        created = core.notifications.notify_mentions(author.id, "@bob hi @Bob", "post", post_id="p1")

        assert [n.recipient_id for n in created] == [bob.id]
        assert created[0].kind == KIND_MENTION
        assert created[0].message == "mentioned you in a post"

    def test_self_unknown_and_skipped_users_ignored(self, core, make_user):
        """Self-mentions, unknown names and skip_ids produce nothing."""
        author = make_user("author")
        bob = make_user("bob")
        created = core.notifications.notify_mentions(
            author.id, "@author @nobody @bob", "comment", skip_ids=[bob.id]
        )
        assert created == []


# =============================================================================
# Inbox Tests
# =============================================================================

class TestInbox:
    """Tests for list(), mark_read(), mark_all_read() and delete()."""

    def _seed(self, core, clock, count=3, recipient="r"):
        ids = []
        for i in range(count):
            clock.advance(seconds=1)
            ids.append(core.notifications.notify(recipient, f"s{i}", KIND_LIKE, "liked your post").id)
        return ids

    def test_list_newest_first_with_unread_count(self, core, clock):
        """Notifications come newest first and carry the unread total."""
        ids = self._seed(core, clock)
        page = core.notifications.list("r", page=1, page_size=2)

        assert [n.id for n in page.items] == [ids[2], ids[1]]
        assert page.total == 3
        assert page.unread_count == 3
        assert page.has_next is True

    def test_unread_count_ignores_filter_and_page(self, core, clock):
        """unread_count is the same whatever filter and page were requested."""
        ids = self._seed(core, clock)
        core.notifications.mark_read("r", ids[0])

        unread_page = core.notifications.list("r", unread_only=True)
        all_page = core.notifications.list("r", page=2, page_size=1)

        assert unread_page.total == 2
        assert unread_page.unread_count == all_page.unread_count == 2

    def test_mark_read_is_scoped_to_recipient(self, core, clock):
        """Another user cannot mark a notification read."""
        ids = self._seed(core, clock, count=1)
        with pytest.raises(NotFoundError, match="Notification not found"):
            core.notifications.mark_read("intruder", ids[0])
        assert core.notifications.unread_count("r") == 1

    def test_mark_all_read(self, core, clock):
        """mark_all_read flips every unread record and reports the count."""
        self._seed(core, clock)
        self._seed(core, clock, count=1, recipient="other")

        assert core.notifications.mark_all_read("r") == 3
        assert core.notifications.unread_count("r") == 0
        assert core.notifications.unread_count("other") == 1

    def test_delete(self, core, clock):
        """A deleted notification disappears; deleting it again is NotFound."""
        ids = self._seed(core, clock, count=1)
        core.notifications.delete("r", ids[0])
        assert core.notifications.list("r").total == 0
        with pytest.raises(NotFoundError):
            core.notifications.delete("r", ids[0])

    def test_invalid_paging(self, core):
        """Page numbers below one are rejected."""
        with pytest.raises(InvalidInputError):
            core.notifications.list("r", page=0)

    def test_zero_page_size_rejected(self, core):
        """An explicit page_size of 0 is invalid rather than the default."""
        with pytest.raises(InvalidInputError, match="page_size"):
            core.notifications.list("r", page_size=0)
