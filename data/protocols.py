"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for data layer operations.
These protocols enable dependency injection for storage, making services
testable without real database connections.

Every backend must make a read-modify-write on ONE document atomic: the
``mutate_*`` methods run the supplied function against the current document
and persist the result without interleaving another write to the same
document. Nothing is promised across documents.

Protocols defined:
- UserStorage: User documents and their unique username/email keys
- PostStorage: Post aggregates (embedded comments and like-sets)
- NotificationStorage: Notification records scoped by recipient
"""

from typing import Callable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from data.models import Notification, Post, User

R = TypeVar("R")


class UserStorage(Protocol):
    """Protocol defining the interface for user document storage.

    Implementations should provide methods for:
    - Inserting users while enforcing unique username and email
    - Looking users up by id, email or username
    - Atomically mutating one user document
    - Listing active users for search and follow lists
    """

    def insert_user(self, user: User) -> User:
        """Insert a new user.

        Args:
            user: The fully built User document.

        Returns:
            The stored user.

        Raises:
            ConflictError: If the email or username is already registered.
        """
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        """Return a copy of the user document, or None if absent."""
        ...

    def get_users(self, user_ids: Sequence[str]) -> List[User]:
        """Return the users that exist among user_ids, in the given order."""
        ...

    def find_by_email(self, email: str) -> Optional[User]:
        """Look a user up by (lower-cased) email."""
        ...

    def find_by_username(self, username: str) -> Optional[User]:
        """Look a user up by username, case-insensitively."""
        ...

    def mutate_user(self, user_id: str, mutator: Callable[[User], R]) -> R:
        """Atomically apply mutator to the stored user and persist it.

        If mutator raises, nothing is written and the exception propagates.

        Raises:
            NotFoundError: If the user does not exist.
        """
        ...

    def list_active_users(self, exclude_id: Optional[str] = None) -> List[User]:
        """Return every active user except exclude_id, newest first."""
        ...


class PostStorage(Protocol):
    """Protocol defining the interface for Post aggregate storage.

    Soft-deleted posts stay in storage; the query methods never return them,
    while get_post does so callers can tell "deleted" from "never existed"
    if they need to.
    """

    def insert_post(self, post: Post) -> Post:
        """Insert a new post aggregate."""
        ...

    def get_post(self, post_id: str) -> Optional[Post]:
        """Return a copy of the post (deleted or not), or None if absent."""
        ...

    def mutate_post(self, post_id: str, mutator: Callable[[Post], R]) -> R:
        """Atomically apply mutator to the stored post and persist it.

        If mutator raises, nothing is written and the exception propagates.

        Raises:
            NotFoundError: If the post does not exist.
        """
        ...

    def query_feed(self, viewer_id: Optional[str], skip: int, limit: int) -> Tuple[List[Post], int]:
        """Non-deleted posts that are public or authored by viewer_id.

        Returns:
            (page of posts newest first, total matching count)
        """
        ...

    def query_by_author(self, author_id: str, include_private: bool,
                        skip: int, limit: int) -> Tuple[List[Post], int]:
        """Non-deleted posts by one author, newest first, with total count."""
        ...

    def search_candidates(self, terms: Sequence[str]) -> List[Post]:
        """Public, non-deleted posts whose content or tags contain any term.

        Matching here is a cheap pre-filter; ranking happens in the service.
        """
        ...

    def count_by_author(self, author_id: str) -> int:
        """Number of non-deleted posts by author_id."""
        ...


class NotificationStorage(Protocol):
    """Protocol defining the interface for notification storage.

    Every read and write except insert is scoped by recipient, so a user can
    never observe or change another user's notifications.
    """

    def insert_notification(self, notification: Notification) -> Notification:
        """Insert a notification record."""
        ...

    def query_notifications(self, recipient_id: str, unread_only: bool,
                            skip: int, limit: int) -> Tuple[List[Notification], int]:
        """Recipient's notifications newest first, with the filtered total."""
        ...

    def count_unread(self, recipient_id: str) -> int:
        """Count of read=False records for the recipient."""
        ...

    def mark_read(self, recipient_id: str, notification_id: str) -> Optional[Notification]:
        """Set read=True on one record; None if it is not the recipient's."""
        ...

    def mark_all_read(self, recipient_id: str) -> int:
        """Set read=True on every unread record; returns how many changed."""
        ...

    def delete_notification(self, recipient_id: str, notification_id: str) -> bool:
        """Delete one record; False if it is not the recipient's."""
        ...
