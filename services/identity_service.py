"""
Identity Service Module

This module manages User records: account creation with unique username and
email, profile reads and updates, deactivation, user search and the
follower/following lists. Credentials are hashed through the injected
CredentialHasher; plaintext passwords are never stored.
"""

import re
from datetime import datetime
from typing import Callable, List, Optional

from config import settings
from data.models import ROLE_USER, ROLES, Page, User, UserProfile, UserSummary
from data.protocols import PostStorage, UserStorage
from services.protocols import CredentialHasher
from utils.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from utils.helpers import new_id, page_offset, utcnow, validate_paging
from utils.logger import get_logger
from utils.text_search import query_terms, rank_key, score_document

logger = get_logger(__name__)


def _require_text(value, label: str, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{label} is required")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidInputError(f"{label} cannot exceed {max_length} characters")
    return value


def validate_username(username) -> str:
    """Trimmed username, or InvalidInputError if it breaks the length/charset rules."""
    if not isinstance(username, str):
        raise InvalidInputError("Username is required")
    username = username.strip()
    if not settings.USERNAME_MIN_LENGTH <= len(username) <= settings.USERNAME_MAX_LENGTH:
        raise InvalidInputError(
            f"Username must be between {settings.USERNAME_MIN_LENGTH} and "
            f"{settings.USERNAME_MAX_LENGTH} characters"
        )
    if not re.match(settings.USERNAME_PATTERN, username):
        raise InvalidInputError("Username can only contain letters, numbers, and underscores")
    return username


def validate_email(email) -> str:
    """Lower-cased, trimmed email, or InvalidInputError."""
    if not isinstance(email, str) or not re.match(settings.EMAIL_PATTERN, email.strip()):
        raise InvalidInputError("Please enter a valid email")
    return email.strip().lower()


def validate_password(password) -> str:
    if not isinstance(password, str) or len(password) < settings.PASSWORD_MIN_LENGTH:
        raise InvalidInputError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
        )
    return password


class IdentityService:
    """Service for User records and the follow graph read side."""

    def __init__(self, users: UserStorage, posts: PostStorage, hasher: CredentialHasher,
                 clock: Callable[[], datetime] = utcnow,
                 page_size: Optional[int] = None, follow_page_size: Optional[int] = None,
                 max_page_size: Optional[int] = None):
        self.users = users
        self.posts = posts
        self.hasher = hasher
        self.clock = clock
        self.page_size = page_size if page_size is not None else settings.DEFAULT_PAGE_SIZE
        self.follow_page_size = follow_page_size if follow_page_size is not None else settings.NOTIFICATION_PAGE_SIZE
        self.max_page_size = max_page_size if max_page_size is not None else settings.MAX_PAGE_SIZE

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_user(self, username: str, email: str, password: str,
                    first_name: str, last_name: str, role: str = ROLE_USER) -> User:
        """
        Validate and insert a new, unverified user.

        Args:
            username: 3-30 letters, digits or underscores.
            email: A valid address; stored lower-cased.
            password: Plaintext password, hashed before storage.
            first_name: Required, at most NAME_MAX_LENGTH characters.
            last_name: Required, at most NAME_MAX_LENGTH characters.
            role: "user" or "admin".

        Returns:
            User: The stored user.

        Raises:
            InvalidInputError: If any field is malformed.
            ConflictError: If the email or username is already registered.
        """
        username = validate_username(username)
        email = validate_email(email)
        password = validate_password(password)
        first_name = _require_text(first_name, "First name", settings.NAME_MAX_LENGTH)
        last_name = _require_text(last_name, "Last name", settings.NAME_MAX_LENGTH)
        if role not in ROLES:
            raise InvalidInputError(f"Unknown role: {role}")

        user = User(
            id=new_id(),
            username=username,
            email=email,
            password_hash=self.hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            created_at=self.clock(),
        )
        stored = self.users.insert_user(user)
        logger.info(f"Created user {stored.id} ({stored.username})")
        return stored

    def get_user(self, user_id: str) -> User:
        """Any user by id, active or not."""
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def get_active_user(self, user_id: str) -> User:
        """An active user by id; deactivated users read as absent."""
        user = self.users.get_user(user_id)
        if user is None or not user.is_active:
            raise NotFoundError("User not found")
        return user

    def find_by_email(self, email: str) -> Optional[User]:
        return self.users.find_by_email(email)

    def is_admin(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        user = self.users.get_user(user_id)
        return bool(user and user.is_admin)

    def _require_self_or_admin(self, actor_id: str, user_id: str) -> None:
        if actor_id != user_id and not self.is_admin(actor_id):
            raise ForbiddenError("Access denied")

    def record_login(self, user_id: str) -> None:
        now = self.clock()

        def apply(user: User) -> None:
            user.last_login = now

        self.users.mutate_user(user_id, apply)

    def liked_post_ids(self, user_id: str) -> List[str]:
        """Ids of the posts the user currently likes, per the user-side index."""
        return sorted(self.get_user(user_id).liked_post_ids)

    # =========================================================================
    # Profiles
    # =========================================================================

    def get_profile(self, viewer_id: Optional[str], user_id: str) -> UserProfile:
        """
        Profile of an active user as seen by viewer_id.

        Raises:
            NotFoundError: If the user is absent or deactivated.
        """
        user = self.get_active_user(user_id)
        return UserProfile(
            id=user.id,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            avatar=user.avatar,
            cover_photo=user.cover_photo,
            bio=user.bio,
            is_verified=user.is_verified,
            follower_count=len(user.followers),
            following_count=len(user.following),
            post_count=self.posts.count_by_author(user.id),
            is_following=bool(viewer_id) and viewer_id in user.followers,
            created_at=user.created_at,
        )

    def update_profile(self, actor_id: str, user_id: str, first_name: Optional[str] = None,
                       last_name: Optional[str] = None, bio: Optional[str] = None,
                       avatar: Optional[str] = None, cover_photo: Optional[str] = None) -> User:
        """
        Change profile fields; only the user themself or an admin may do so.

        Fields left as None are unchanged. An empty bio clears it.
        """
        self._require_self_or_admin(actor_id, user_id)

        changes = {}
        if first_name is not None:
            changes["first_name"] = _require_text(first_name, "First name", settings.NAME_MAX_LENGTH)
        if last_name is not None:
            changes["last_name"] = _require_text(last_name, "Last name", settings.NAME_MAX_LENGTH)
        if bio is not None:
            if not isinstance(bio, str):
                raise InvalidInputError("Bio must be text")
            if len(bio.strip()) > settings.BIO_MAX_LENGTH:
                raise InvalidInputError(f"Bio cannot exceed {settings.BIO_MAX_LENGTH} characters")
            changes["bio"] = bio.strip()
        if avatar is not None:
            changes["avatar"] = avatar or None
        if cover_photo is not None:
            changes["cover_photo"] = cover_photo or None

        def apply(user: User) -> User:
            if not user.is_active:
                raise NotFoundError("User not found")
            for name, value in changes.items():
                setattr(user, name, value)
            return user

        updated = self.users.mutate_user(user_id, apply)
        logger.info(f"Updated profile of user {user_id} ({', '.join(changes) or 'no fields'})")
        return updated

    def deactivate_user(self, actor_id: str, user_id: str) -> User:
        """Soft-deactivate an account; users are never hard-deleted."""
        self._require_self_or_admin(actor_id, user_id)

        def apply(user: User) -> User:
            user.is_active = False
            return user

        user = self.users.mutate_user(user_id, apply)
        logger.info(f"Deactivated user {user_id} (by {actor_id})")
        return user

    # =========================================================================
    # Listings
    # =========================================================================

    def search_users(self, viewer_id: Optional[str], term: Optional[str] = None,
                     page: int = 1, page_size: Optional[int] = None) -> Page[UserSummary]:
        """
        Active users other than the viewer.

        With a term, users are ranked by relevance of username and names;
        without one, newest accounts come first.
        """
        if page_size is None:
            page_size = self.page_size
        page, page_size = validate_paging(page, page_size, self.max_page_size)
        candidates = self.users.list_active_users(exclude_id=viewer_id)

        if term and term.strip():
            terms = query_terms(term)
            scored = []
            for user in candidates:
                text = f"{user.username} {user.first_name} {user.last_name}"
                score = score_document(terms, text)
                if score > 0:
                    scored.append((rank_key(score, user.created_at, user.id), user))
            scored.sort(key=lambda pair: pair[0])
            candidates = [user for _, user in scored]

        skip = page_offset(page, page_size)
        items = [UserSummary.from_user(u) for u in candidates[skip:skip + page_size]]
        return Page.build(items, len(candidates), page, page_size)

    def _edge_page(self, ids, page: int, page_size: Optional[int]) -> Page[UserSummary]:
        if page_size is None:
            page_size = self.follow_page_size
        page, page_size = validate_paging(page, page_size, self.max_page_size)
        users = sorted(self.users.get_users(list(ids)), key=lambda u: (u.username.lower(), u.id))
        skip = page_offset(page, page_size)
        items = [UserSummary.from_user(u) for u in users[skip:skip + page_size]]
        return Page.build(items, len(users), page, page_size)

    def list_followers(self, user_id: str, page: int = 1, page_size: Optional[int] = None) -> Page[UserSummary]:
        return self._edge_page(self.get_user(user_id).followers, page, page_size)

    def list_following(self, user_id: str, page: int = 1, page_size: Optional[int] = None) -> Page[UserSummary]:
        return self._edge_page(self.get_user(user_id).following, page, page_size)
