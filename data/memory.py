"""
In-Memory Storage Module

Process-local implementations of the storage protocols. Each document is kept
as a private copy and handed out as a copy, so the only way to change stored
state is through insert_* and the mutate_* methods. A lock per document makes
each read-modify-write atomic for that document, matching the guarantee the
SQL Server backend gives with row locks. A storage-wide lock guards the
dictionaries themselves, so scans never see a key being added.

Used for local runs and for the test suite.
"""

import copy
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from data.models import Notification, Post, User
from utils.exceptions import ConflictError, NotFoundError
from utils.text_search import index_terms


R = TypeVar("R")


class _DocumentLocks:
    """Lock per stored document id, created when the document is inserted."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def add(self, doc_id: str) -> None:
        with self._guard:
            self._locks.setdefault(doc_id, threading.Lock())

    def get(self, doc_id: str) -> Optional[threading.Lock]:
        with self._guard:
            return self._locks.get(doc_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class InMemoryUserStorage:
    """UserStorage backed by dictionaries."""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._by_email: Dict[str, str] = {}
        self._by_username: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._locks = _DocumentLocks()

    def insert_user(self, user: User) -> User:
        email_key = user.email.lower()
        username_key = user.username.lower()
        with self._lock:
            if email_key in self._by_email:
                raise ConflictError("Email already registered")
            if username_key in self._by_username:
                raise ConflictError("Username already taken")
            self._users[user.id] = copy.deepcopy(user)
            self._by_email[email_key] = user.id
            self._by_username[username_key] = user.id
            self._locks.add(user.id)
        return copy.deepcopy(user)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
        return copy.deepcopy(user) if user else None

    def get_users(self, user_ids: Sequence[str]) -> List[User]:
        with self._lock:
            found = [self._users[uid] for uid in user_ids if uid in self._users]
        return [copy.deepcopy(u) for u in found]

    def find_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_email.get((email or "").strip().lower())
        return self.get_user(user_id) if user_id else None

    def find_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            user_id = self._by_username.get((username or "").strip().lower())
        return self.get_user(user_id) if user_id else None

    def mutate_user(self, user_id: str, mutator: Callable[[User], R]) -> R:
        lock = self._locks.get(user_id)
        if lock is None:
            raise NotFoundError("User not found")
        with lock:
            with self._lock:
                working = copy.deepcopy(self._users[user_id])
            result = mutator(working)
            with self._lock:
                self._users[user_id] = working
            return copy.deepcopy(result)

    def list_active_users(self, exclude_id: Optional[str] = None) -> List[User]:
        with self._lock:
            users = [u for u in self._users.values() if u.is_active and u.id != exclude_id]
        users.sort(key=lambda u: (u.created_at, u.id), reverse=True)
        return [copy.deepcopy(u) for u in users]


class InMemoryPostStorage:
    """PostStorage backed by a dictionary of Post aggregates."""

    def __init__(self):
        self._posts: Dict[str, Post] = {}
        self._lock = threading.Lock()
        self._locks = _DocumentLocks()

    def insert_post(self, post: Post) -> Post:
        with self._lock:
            self._posts[post.id] = copy.deepcopy(post)
            self._locks.add(post.id)
        return copy.deepcopy(post)

    def get_post(self, post_id: str) -> Optional[Post]:
        with self._lock:
            post = self._posts.get(post_id)
        return copy.deepcopy(post) if post else None

    def mutate_post(self, post_id: str, mutator: Callable[[Post], R]) -> R:
        lock = self._locks.get(post_id)
        if lock is None:
            raise NotFoundError("Post not found")
        with lock:
            with self._lock:
                working = copy.deepcopy(self._posts[post_id])
            result = mutator(working)
            with self._lock:
                self._posts[post_id] = working
            return copy.deepcopy(result)

    def _snapshot(self) -> List[Post]:
        with self._lock:
            return list(self._posts.values())

    def _newest_first(self, posts: List[Post]) -> List[Post]:
        return sorted(posts, key=lambda p: (p.created_at, p.id), reverse=True)

    def query_feed(self, viewer_id: Optional[str], skip: int, limit: int) -> Tuple[List[Post], int]:
        matching = [
            p for p in self._snapshot()
            if not p.is_deleted and p.is_visible_to(viewer_id)
        ]
        ordered = self._newest_first(matching)
        return [copy.deepcopy(p) for p in ordered[skip:skip + limit]], len(ordered)

    def query_by_author(self, author_id: str, include_private: bool,
                        skip: int, limit: int) -> Tuple[List[Post], int]:
        matching = [
            p for p in self._snapshot()
            if p.author_id == author_id and not p.is_deleted and (include_private or p.is_public)
        ]
        ordered = self._newest_first(matching)
        return [copy.deepcopy(p) for p in ordered[skip:skip + limit]], len(ordered)

    def search_candidates(self, terms: Sequence[str]) -> List[Post]:
        wanted = set(terms)
        if not wanted:
            return []
        matches = []
        for post in self._snapshot():
            if post.is_deleted or not post.is_public:
                continue
            if wanted.intersection(index_terms(post.content, post.tags)):
                matches.append(copy.deepcopy(post))
        return matches

    def count_by_author(self, author_id: str) -> int:
        return sum(1 for p in self._snapshot() if p.author_id == author_id and not p.is_deleted)


class InMemoryNotificationStorage:
    """NotificationStorage backed by a dictionary, every access scoped by recipient."""

    def __init__(self):
        self._notifications: Dict[str, Notification] = {}
        self._lock = threading.Lock()

    def insert_notification(self, notification: Notification) -> Notification:
        with self._lock:
            self._notifications[notification.id] = copy.deepcopy(notification)
        return copy.deepcopy(notification)

    def _owned(self, recipient_id: str, notification_id: str) -> Optional[Notification]:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.recipient_id != recipient_id:
            return None
        return notification

    def query_notifications(self, recipient_id: str, unread_only: bool,
                            skip: int, limit: int) -> Tuple[List[Notification], int]:
        with self._lock:
            matching = [
                n for n in self._notifications.values()
                if n.recipient_id == recipient_id and (not unread_only or not n.is_read)
            ]
            matching.sort(key=lambda n: (n.created_at, n.id), reverse=True)
            return [copy.deepcopy(n) for n in matching[skip:skip + limit]], len(matching)

    def count_unread(self, recipient_id: str) -> int:
        with self._lock:
            return sum(
                1 for n in self._notifications.values()
                if n.recipient_id == recipient_id and not n.is_read
            )

    def mark_read(self, recipient_id: str, notification_id: str) -> Optional[Notification]:
        with self._lock:
            notification = self._owned(recipient_id, notification_id)
            if notification is None:
                return None
            notification.is_read = True
            return copy.deepcopy(notification)

    def mark_all_read(self, recipient_id: str) -> int:
        changed = 0
        with self._lock:
            for notification in self._notifications.values():
                if notification.recipient_id == recipient_id and not notification.is_read:
                    notification.is_read = True
                    changed += 1
        return changed

    def delete_notification(self, recipient_id: str, notification_id: str) -> bool:
        with self._lock:
            if self._owned(recipient_id, notification_id) is None:
                return False
            del self._notifications[notification_id]
            return True
