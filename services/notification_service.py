"""
Notification Service Module

This module is the notification dispatcher. Reaction and follow operations
call it after their own mutation has committed; it turns each action into at
most one Notification per recipient and never notifies a user about their
own action. It also serves the recipient-scoped read side: listing with an
independently counted unread total, mark-read, mark-all-read and delete.

The dispatcher keeps no state of its own. Unread counts are always
recomputed from the stored records, so they cannot drift.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional

from config import settings
from data.models import (
    KIND_MENTION, NOTIFICATION_KINDS, Notification, NotificationPage,
)
from data.protocols import NotificationStorage, UserStorage
from utils.exceptions import InvalidInputError, NotFoundError
from utils.helpers import extract_mentions, new_id, page_offset, utcnow, validate_paging
from utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Creates notifications for reactions and serves each recipient's inbox."""

    def __init__(self, storage: NotificationStorage, users: Optional[UserStorage] = None,
                 clock: Callable[[], datetime] = utcnow,
                 page_size: Optional[int] = None, max_page_size: Optional[int] = None):
        """
        Initialize the dispatcher.

        Args:
            storage: Where notification records live.
            users: User lookup used to resolve @mentions (optional).
            clock: Source of the current time.
            page_size: Default list page size.
            max_page_size: Largest accepted page size.
        """
        self.storage = storage
        self.users = users
        self.clock = clock
        self.page_size = page_size if page_size is not None else settings.NOTIFICATION_PAGE_SIZE
        self.max_page_size = max_page_size if max_page_size is not None else settings.MAX_PAGE_SIZE

    # =========================================================================
    # Fan-out
    # =========================================================================

    def notify(self, recipient_id: str, sender_id: str, kind: str, message: str,
               post_id: Optional[str] = None, comment_id: Optional[str] = None) -> Optional[Notification]:
        """
        Create one notification.

        Args:
            recipient_id: User being notified.
            sender_id: User whose action triggered it.
            kind: One of NOTIFICATION_KINDS.
            message: Human-readable text.
            post_id: Related post (weak reference).
            comment_id: Related comment within that post (weak reference).

        Returns:
            The stored Notification, or None when recipient and sender are
            the same user.

        Raises:
            InvalidInputError: If kind is unknown or the message is empty.
        """
        if recipient_id == sender_id:
            logger.debug(f"Suppressed self-notification ({kind}) for user {sender_id}")
            return None
        if kind not in NOTIFICATION_KINDS:
            raise InvalidInputError(f"Unknown notification kind: {kind}")
        if not message or not message.strip():
            raise InvalidInputError("Notification message is required")

        notification = Notification(
            id=new_id(),
            recipient_id=recipient_id,
            sender_id=sender_id,
            kind=kind,
            message=message.strip(),
            post_id=post_id,
            comment_id=comment_id,
            is_read=False,
            created_at=self.clock(),
        )
        return self.storage.insert_notification(notification)

    def dispatch(self, recipient_id: str, sender_id: str, kind: str, message: str,
                 post_id: Optional[str] = None, comment_id: Optional[str] = None) -> Optional[Notification]:
        """
        Best-effort notify() for use after a committed mutation.

        A failure here must not undo the action that triggered it, so it is
        logged and None is returned instead of raising.
        """
        try:
            return self.notify(recipient_id, sender_id, kind, message, post_id, comment_id)
        except Exception as e:
            logger.warning(f"Dropped {kind} notification for {recipient_id}: {e}", exc_info=True)
            return None

    def notify_mentions(self, sender_id: str, content: str, where: str,
                        post_id: Optional[str] = None, comment_id: Optional[str] = None,
                        skip_ids: Iterable[str] = ()) -> List[Notification]:
        """
        Notify every active user mentioned as @username in content, once each.

        Args:
            sender_id: Author of the content.
            content: Post or comment text.
            where: "post" or "comment", used in the message.
            post_id: Related post.
            comment_id: Related comment.
            skip_ids: Users already notified about this action by other means.

        Returns:
            List[Notification]: The notifications that were created.
        """
        if self.users is None:
            return []

        skipped = set(skip_ids)
        created = []
        for username in extract_mentions(content):
            try:
                user = self.users.find_by_username(username)
            except Exception as e:
                logger.warning(f"Could not resolve mention @{username}: {e}")
                continue
            if user is None or not user.is_active or user.id in skipped:
                continue
            skipped.add(user.id)
            notification = self.dispatch(
                user.id, sender_id, KIND_MENTION, f"mentioned you in a {where}", post_id, comment_id
            )
            if notification:
                created.append(notification)
        return created

    # =========================================================================
    # Recipient inbox
    # =========================================================================

    def list(self, recipient_id: str, page: int = 1, page_size: Optional[int] = None,
             unread_only: bool = False) -> NotificationPage:
        """
        List a recipient's notifications newest first.

        unread_count is counted separately from the page, so it reflects all
        unread records whatever filter or page was requested.
        """
        if page_size is None:
            page_size = self.page_size
        page, page_size = validate_paging(page, page_size, self.max_page_size)
        items, total = self.storage.query_notifications(
            recipient_id, unread_only, page_offset(page, page_size), page_size
        )
        unread = self.storage.count_unread(recipient_id)
        return NotificationPage.build(items, total, page, page_size, unread_count=unread)

    def unread_count(self, recipient_id: str) -> int:
        return self.storage.count_unread(recipient_id)

    def mark_read(self, recipient_id: str, notification_id: str) -> Notification:
        notification = self.storage.mark_read(recipient_id, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    def mark_all_read(self, recipient_id: str) -> int:
        changed = self.storage.mark_all_read(recipient_id)
        logger.info(f"Marked {changed} notifications read for user {recipient_id}")
        return changed

    def delete(self, recipient_id: str, notification_id: str) -> None:
        if not self.storage.delete_notification(recipient_id, notification_id):
            raise NotFoundError("Notification not found")
