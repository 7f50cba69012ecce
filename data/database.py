"""
Database Module for the Social Core

This module handles all database connections and operations for the SQL Server
storage backend. It provides the connection manager plus UserStorage,
PostStorage and NotificationStorage implementations on top of it.

Users and posts are persisted as JSON documents. A read-modify-write on one
document runs inside a single transaction that reads the row WITH (UPDLOCK),
so two concurrent mutations of the same user or post serialize on the row
lock instead of overwriting each other.
"""

import json
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, TypeVar

import pyodbc

from config import settings
from data.models import Notification, Post, User
from data.schema import ALL_SCHEMAS
from utils.exceptions import ConflictError, NotFoundError, QueryError, SocialCoreError
from utils.exceptions import ConnectionError as DatabaseConnectionError
from utils.helpers import parse_datetime
from utils.logger import get_logger
from utils.text_search import index_terms

logger = get_logger(__name__)

R = TypeVar("R")


def _sql_time(moment: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to the naive UTC value stored in DATETIME2 columns."""
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _search_column(post: Post) -> str:
    """Space-delimited stems so a single term can be matched with LIKE '% term %'."""
    terms = index_terms(post.content, post.tags)
    return f" {' '.join(terms)} " if terms else " "


class DatabaseConnection:
    """Database connection manager for the social core.

    pyodbc connections must not be shared between threads, so each thread
    gets its own connection the first time it touches the database.
    """

    def __init__(self, connection_string: Optional[str] = None):
        """Initialize the database connection."""
        self.connection_string = connection_string or settings.DB_CONNECTION_STRING
        self._local = threading.local()
        pyodbc.pooling = False

    @property
    def conn(self):
        return getattr(self._local, "conn", None)

    @conn.setter
    def conn(self, value):
        self._local.conn = value

    def connect(self) -> bool:
        """
        Establish a connection to the database.

        Returns:
            bool: True if connection was successful, False otherwise.

        Raises:
            ConnectionError: Re-raised unchanged if the driver layer raised it.
        """
        try:
            self.conn = pyodbc.connect(self.connection_string)
            self.conn.setdecoding(pyodbc.SQL_CHAR, encoding='utf-8')
            logger.info("Successfully connected to database")
            return True
        except DatabaseConnectionError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            self.conn = None
            return False

    def close(self) -> None:
        """Close the current thread's database connection."""
        try:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Database connection closed")
        except Exception as e:
            logger.error(f"Error closing database connection: {e}")

    def _require_connection(self):
        if not self.conn and not self.connect():
            raise DatabaseConnectionError("Could not connect to database")
        return self.conn

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """
        Execute a single SQL statement in its own transaction.

        Args:
            query: The SQL query to execute.
            params: Query parameters (optional).

        Returns:
            List[Dict]: Rows as dictionaries for a SELECT, otherwise an empty list.

        Raises:
            ConnectionError: If no connection could be established.
            QueryError: If the statement failed (the transaction is rolled back).
        """
        with self.transaction() as cursor:
            if params:
                cursor.execute(query, params)
            else:
                cursor.execute(query)

            if cursor.description:
                columns = [column[0] for column in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            return []

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Run a block of statements as one transaction.

        Commits when the block finishes, rolls back when it raises. Errors of
        the application's own exception types propagate unchanged; driver
        errors are wrapped in QueryError.

        Yields:
            A pyodbc cursor bound to the transaction.
        """
        conn = self._require_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except SocialCoreError:
            self._rollback(conn)
            raise
        except pyodbc.IntegrityError as e:
            self._rollback(conn)
            raise ConflictError(f"Unique constraint violated: {e}") from e
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            self._rollback(conn)
            raise QueryError(f"Query failed: {e}") from e

    def _rollback(self, conn) -> None:
        try:
            conn.rollback()
        except Exception as e:
            logger.warning(f"Rollback failed: {e}")

    def init_schema(self) -> None:
        """Create the tables and indexes if they do not exist yet."""
        for statement in ALL_SCHEMAS:
            self.execute_query(statement)
        logger.info("Database schema is up to date")


# =============================================================================
# Users
# =============================================================================

class SqlUserStorage:
    """UserStorage persisted in dbo.users."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def insert_user(self, user: User) -> User:
        with self.db.transaction() as cursor:
            cursor.execute(
                "SELECT email, username_key FROM dbo.users WITH (UPDLOCK, HOLDLOCK) "
                "WHERE email = ? OR username_key = ?",
                (user.email.lower(), user.username.lower()),
            )
            for email, username_key in cursor.fetchall():
                if email == user.email.lower():
                    raise ConflictError("Email already registered")
                if username_key == user.username.lower():
                    raise ConflictError("Username already taken")

            cursor.execute(
                "INSERT INTO dbo.users (id, username, username_key, email, is_active, created_at, document) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (user.id, user.username, user.username.lower(), user.email.lower(),
                 user.is_active, _sql_time(user.created_at), json.dumps(user.to_dict())),
            )
        logger.debug(f"Inserted user {user.id}")
        return user

    def _one(self, where: str, value: str) -> Optional[User]:
        rows = self.db.execute_query(f"SELECT document FROM dbo.users WHERE {where} = ?", (value,))
        return User.from_dict(json.loads(rows[0]["document"])) if rows else None

    def get_user(self, user_id: str) -> Optional[User]:
        return self._one("id", user_id)

    def get_users(self, user_ids: Sequence[str]) -> List[User]:
        if not user_ids:
            return []
        placeholders = ", ".join("?" for _ in user_ids)
        rows = self.db.execute_query(
            f"SELECT document FROM dbo.users WHERE id IN ({placeholders})", tuple(user_ids)
        )
        found = {}
        for row in rows:
            user = User.from_dict(json.loads(row["document"]))
            found[user.id] = user
        return [found[uid] for uid in user_ids if uid in found]

    def find_by_email(self, email: str) -> Optional[User]:
        return self._one("email", (email or "").strip().lower())

    def find_by_username(self, username: str) -> Optional[User]:
        return self._one("username_key", (username or "").strip().lower())

    def mutate_user(self, user_id: str, mutator: Callable[[User], R]) -> R:
        with self.db.transaction() as cursor:
            cursor.execute(
                "SELECT document FROM dbo.users WITH (UPDLOCK, ROWLOCK) WHERE id = ?", (user_id,)
            )
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError("User not found")
            user = User.from_dict(json.loads(row[0]))
            result = mutator(user)
            cursor.execute(
                "UPDATE dbo.users SET is_active = ?, document = ? WHERE id = ?",
                (user.is_active, json.dumps(user.to_dict()), user_id),
            )
        return result

    def list_active_users(self, exclude_id: Optional[str] = None) -> List[User]:
        query = "SELECT document FROM dbo.users WHERE is_active = 1"
        params: Tuple = ()
        if exclude_id is not None:
            query += " AND id <> ?"
            params = (exclude_id,)
        query += " ORDER BY created_at DESC, id DESC"
        rows = self.db.execute_query(query, params or None)
        return [User.from_dict(json.loads(row["document"])) for row in rows]


# =============================================================================
# Posts
# =============================================================================

class SqlPostStorage:
    """PostStorage persisted in dbo.posts; comments stay embedded in the document."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def insert_post(self, post: Post) -> Post:
        self.db.execute_query(
            "INSERT INTO dbo.posts (id, author_id, is_public, is_deleted, created_at, search_terms, document) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (post.id, post.author_id, post.is_public, post.is_deleted,
             _sql_time(post.created_at), _search_column(post), json.dumps(post.to_dict())),
        )
        logger.debug(f"Inserted post {post.id}")
        return post

    def get_post(self, post_id: str) -> Optional[Post]:
        rows = self.db.execute_query("SELECT document FROM dbo.posts WHERE id = ?", (post_id,))
        return Post.from_dict(json.loads(rows[0]["document"])) if rows else None

    def mutate_post(self, post_id: str, mutator: Callable[[Post], R]) -> R:
        with self.db.transaction() as cursor:
            cursor.execute(
                "SELECT document FROM dbo.posts WITH (UPDLOCK, ROWLOCK) WHERE id = ?", (post_id,)
            )
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError("Post not found")
            post = Post.from_dict(json.loads(row[0]))
            result = mutator(post)
            cursor.execute(
                "UPDATE dbo.posts SET is_public = ?, is_deleted = ?, search_terms = ?, document = ? "
                "WHERE id = ?",
                (post.is_public, post.is_deleted, _search_column(post),
                 json.dumps(post.to_dict()), post_id),
            )
        return result

    def _page(self, where: str, params: tuple, skip: int, limit: int) -> Tuple[List[Post], int]:
        count_rows = self.db.execute_query(f"SELECT COUNT(*) AS total FROM dbo.posts WHERE {where}", params)
        total = int(count_rows[0]["total"]) if count_rows else 0
        rows = self.db.execute_query(
            f"SELECT document FROM dbo.posts WHERE {where} "
            "ORDER BY created_at DESC, id DESC OFFSET ? ROWS FETCH NEXT ? ROWS ONLY",
            params + (skip, limit),
        )
        return [Post.from_dict(json.loads(row["document"])) for row in rows], total

    def query_feed(self, viewer_id: Optional[str], skip: int, limit: int) -> Tuple[List[Post], int]:
        if viewer_id is None:
            return self._page("is_deleted = 0 AND is_public = 1", (), skip, limit)
        return self._page("is_deleted = 0 AND (is_public = 1 OR author_id = ?)", (viewer_id,), skip, limit)

    def query_by_author(self, author_id: str, include_private: bool,
                        skip: int, limit: int) -> Tuple[List[Post], int]:
        where = "author_id = ? AND is_deleted = 0"
        if not include_private:
            where += " AND is_public = 1"
        return self._page(where, (author_id,), skip, limit)

    def search_candidates(self, terms: Sequence[str]) -> List[Post]:
        if not terms:
            return []
        # Terms hold only letters and digits, never %, _ or [, so LIKE needs no escaping
        clauses = " OR ".join("search_terms LIKE ?" for _ in terms)
        rows = self.db.execute_query(
            f"SELECT document FROM dbo.posts WHERE is_deleted = 0 AND is_public = 1 AND ({clauses})",
            tuple(f"% {term} %" for term in terms),
        )
        return [Post.from_dict(json.loads(row["document"])) for row in rows]

    def count_by_author(self, author_id: str) -> int:
        rows = self.db.execute_query(
            "SELECT COUNT(*) AS total FROM dbo.posts WHERE author_id = ? AND is_deleted = 0", (author_id,)
        )
        return int(rows[0]["total"]) if rows else 0


# =============================================================================
# Notifications
# =============================================================================

class SqlNotificationStorage:
    """NotificationStorage persisted as flat rows in dbo.notifications."""

    _COLUMNS = "id, recipient_id, sender_id, kind, message, post_id, comment_id, is_read, created_at"

    def __init__(self, db: DatabaseConnection):
        self.db = db

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> Notification:
        return Notification(
            id=row["id"],
            recipient_id=row["recipient_id"],
            sender_id=row["sender_id"],
            kind=row["kind"],
            message=row["message"],
            post_id=row.get("post_id"),
            comment_id=row.get("comment_id"),
            is_read=bool(row["is_read"]),
            created_at=parse_datetime(row["created_at"]),
        )

    def insert_notification(self, notification: Notification) -> Notification:
        self.db.execute_query(
            f"INSERT INTO dbo.notifications ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (notification.id, notification.recipient_id, notification.sender_id, notification.kind,
             notification.message, notification.post_id, notification.comment_id,
             notification.is_read, _sql_time(notification.created_at)),
        )
        return notification

    def query_notifications(self, recipient_id: str, unread_only: bool,
                            skip: int, limit: int) -> Tuple[List[Notification], int]:
        where = "recipient_id = ?"
        if unread_only:
            where += " AND is_read = 0"
        count_rows = self.db.execute_query(
            f"SELECT COUNT(*) AS total FROM dbo.notifications WHERE {where}", (recipient_id,)
        )
        total = int(count_rows[0]["total"]) if count_rows else 0
        rows = self.db.execute_query(
            f"SELECT {self._COLUMNS} FROM dbo.notifications WHERE {where} "
            "ORDER BY created_at DESC, id DESC OFFSET ? ROWS FETCH NEXT ? ROWS ONLY",
            (recipient_id, skip, limit),
        )
        return [self._from_row(row) for row in rows], total

    def count_unread(self, recipient_id: str) -> int:
        rows = self.db.execute_query(
            "SELECT COUNT(*) AS total FROM dbo.notifications WHERE recipient_id = ? AND is_read = 0",
            (recipient_id,),
        )
        return int(rows[0]["total"]) if rows else 0

    def mark_read(self, recipient_id: str, notification_id: str) -> Optional[Notification]:
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE dbo.notifications SET is_read = 1 WHERE id = ? AND recipient_id = ?",
                (notification_id, recipient_id),
            )
            if cursor.rowcount < 1:
                return None
            cursor.execute(
                f"SELECT {self._COLUMNS} FROM dbo.notifications WHERE id = ?", (notification_id,)
            )
            columns = [column[0] for column in cursor.description]
            row = cursor.fetchone()
        return self._from_row(dict(zip(columns, row))) if row else None

    def mark_all_read(self, recipient_id: str) -> int:
        with self.db.transaction() as cursor:
            cursor.execute(
                "UPDATE dbo.notifications SET is_read = 1 WHERE recipient_id = ? AND is_read = 0",
                (recipient_id,),
            )
            changed = cursor.rowcount
        return max(changed, 0)

    def delete_notification(self, recipient_id: str, notification_id: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute(
                "DELETE FROM dbo.notifications WHERE id = ? AND recipient_id = ?",
                (notification_id, recipient_id),
            )
            deleted = cursor.rowcount
        return deleted > 0
