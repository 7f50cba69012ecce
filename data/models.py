"""
Data Models for the Social Core

This module contains the data classes used throughout the application: the
User document, the Post aggregate with its embedded Comments, Notifications,
and the read-side projections and pagination envelope returned to callers.

Documents convert to and from plain dicts (``to_dict``/``from_dict``) so the
storage backends can persist each one as a single JSON document.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Set, TypeVar

from utils.helpers import isoformat, parse_datetime, time_ago, total_pages, utcnow

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

KIND_LIKE = "like"
KIND_COMMENT = "comment"
KIND_FOLLOW = "follow"
KIND_MENTION = "mention"
KIND_POST_SHARED = "post_shared"
NOTIFICATION_KINDS = (KIND_LIKE, KIND_COMMENT, KIND_FOLLOW, KIND_MENTION, KIND_POST_SHARED)

T = TypeVar("T")


# =============================================================================
# Identity
# =============================================================================

@dataclass
class OTPChallenge:
    """A live one-time passcode and the moment it stops being accepted."""
    code: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "expires_at": isoformat(self.expires_at)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["OTPChallenge"]:
        if not data or not data.get("code") or not data.get("expires_at"):
            return None
        return cls(code=data["code"], expires_at=parse_datetime(data["expires_at"]))


@dataclass
class User:
    """User document: credentials, verification state and follow graph edges."""
    id: str
    username: str                      # Unique, case preserved
    email: str                         # Unique, lower-cased
    password_hash: str
    first_name: str
    last_name: str
    bio: str = ""
    avatar: Optional[str] = None
    cover_photo: Optional[str] = None
    is_verified: bool = False
    otp: Optional[OTPChallenge] = None
    followers: Set[str] = field(default_factory=set)
    following: Set[str] = field(default_factory=set)
    liked_post_ids: Set[str] = field(default_factory=set)
    role: str = ROLE_USER
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "password_hash": self.password_hash,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "bio": self.bio,
            "avatar": self.avatar,
            "cover_photo": self.cover_photo,
            "is_verified": self.is_verified,
            "otp": self.otp.to_dict() if self.otp else None,
            "followers": sorted(self.followers),
            "following": sorted(self.following),
            "liked_post_ids": sorted(self.liked_post_ids),
            "role": self.role,
            "is_active": self.is_active,
            "last_login": isoformat(self.last_login),
            "created_at": isoformat(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            username=data["username"],
            email=data["email"],
            password_hash=data.get("password_hash", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            bio=data.get("bio") or "",
            avatar=data.get("avatar"),
            cover_photo=data.get("cover_photo"),
            is_verified=bool(data.get("is_verified", False)),
            otp=OTPChallenge.from_dict(data.get("otp")),
            followers=set(data.get("followers") or []),
            following=set(data.get("following") or []),
            liked_post_ids=set(data.get("liked_post_ids") or []),
            role=data.get("role", ROLE_USER),
            is_active=bool(data.get("is_active", True)),
            last_login=parse_datetime(data.get("last_login")),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass
class UserSummary:
    """Public fields of a user, safe to embed in any response."""
    id: str
    username: str
    first_name: str
    last_name: str
    avatar: Optional[str] = None
    bio: str = ""

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            avatar=user.avatar,
            bio=user.bio,
        )


@dataclass
class UserProfile:
    """Profile projection computed for a specific viewer."""
    id: str
    username: str
    first_name: str
    last_name: str
    avatar: Optional[str]
    cover_photo: Optional[str]
    bio: str
    is_verified: bool
    follower_count: int
    following_count: int
    post_count: int
    is_following: bool
    created_at: datetime


# =============================================================================
# Content
# =============================================================================

@dataclass
class ImageRef:
    """Opaque object-store reference (URL plus store id)."""
    url: str
    public_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "public_id": self.public_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageRef":
        return cls(url=data["url"], public_id=data.get("public_id") or data.get("id"))


@dataclass
class Comment:
    """A comment embedded in a Post; its id is unique within that Post only."""
    id: str
    author_id: str
    content: str
    likes: Set[str] = field(default_factory=set)
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def like_count(self) -> int:
        return len(self.likes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "content": self.content,
            "likes": sorted(self.likes),
            "is_edited": self.is_edited,
            "edited_at": isoformat(self.edited_at),
            "created_at": isoformat(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        return cls(
            id=data["id"],
            author_id=data["author_id"],
            content=data["content"],
            likes=set(data.get("likes") or []),
            is_edited=bool(data.get("is_edited", False)),
            edited_at=parse_datetime(data.get("edited_at")),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass
class Post:
    """Post aggregate: the post, its like-set and its ordered embedded comments."""
    id: str
    author_id: str
    content: str
    images: List[ImageRef] = field(default_factory=list)
    likes: Set[str] = field(default_factory=set)
    comments: List[Comment] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    is_public: bool = True
    is_deleted: bool = False
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    def find_comment(self, comment_id: str) -> Optional[Comment]:
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        return None

    def is_visible_to(self, viewer_id: Optional[str]) -> bool:
        return self.is_public or (viewer_id is not None and viewer_id == self.author_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author_id": self.author_id,
            "content": self.content,
            "images": [image.to_dict() for image in self.images],
            "likes": sorted(self.likes),
            "comments": [comment.to_dict() for comment in self.comments],
            "tags": list(self.tags),
            "is_public": self.is_public,
            "is_deleted": self.is_deleted,
            "is_edited": self.is_edited,
            "edited_at": isoformat(self.edited_at),
            "created_at": isoformat(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        return cls(
            id=data["id"],
            author_id=data["author_id"],
            content=data["content"],
            images=[ImageRef.from_dict(i) for i in data.get("images") or []],
            likes=set(data.get("likes") or []),
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            tags=list(data.get("tags") or []),
            is_public=bool(data.get("is_public", True)),
            is_deleted=bool(data.get("is_deleted", False)),
            is_edited=bool(data.get("is_edited", False)),
            edited_at=parse_datetime(data.get("edited_at")),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )


@dataclass
class CommentView:
    """Comment as seen by one viewer; is_liked is never stored."""
    id: str
    author_id: str
    content: str
    like_count: int
    is_liked: bool
    is_edited: bool
    edited_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment, viewer_id: Optional[str]) -> "CommentView":
        return cls(
            id=comment.id,
            author_id=comment.author_id,
            content=comment.content,
            like_count=comment.like_count,
            is_liked=viewer_id in comment.likes if viewer_id else False,
            is_edited=comment.is_edited,
            edited_at=comment.edited_at,
            created_at=comment.created_at,
        )


@dataclass
class PostView:
    """Post as seen by one viewer, with per-viewer like flags computed at read time."""
    id: str
    author_id: str
    content: str
    images: List[ImageRef]
    tags: List[str]
    like_count: int
    comment_count: int
    is_liked: bool
    is_public: bool
    is_edited: bool
    edited_at: Optional[datetime]
    created_at: datetime
    time_ago: str
    comments: List[CommentView] = field(default_factory=list)

    @classmethod
    def from_post(cls, post: Post, viewer_id: Optional[str], now: Optional[datetime] = None) -> "PostView":
        return cls(
            id=post.id,
            author_id=post.author_id,
            content=post.content,
            images=list(post.images),
            tags=list(post.tags),
            like_count=post.like_count,
            comment_count=post.comment_count,
            is_liked=viewer_id in post.likes if viewer_id else False,
            is_public=post.is_public,
            is_edited=post.is_edited,
            edited_at=post.edited_at,
            created_at=post.created_at,
            time_ago=time_ago(post.created_at, now),
            comments=[CommentView.from_comment(c, viewer_id) for c in post.comments],
        )


@dataclass
class LikeResult:
    """Outcome of a like-set operation; changed is False for a no-op."""
    is_liked: bool
    like_count: int
    changed: bool
    owner_id: Optional[str] = None     # Author of the liked post or comment


# =============================================================================
# Notifications
# =============================================================================

@dataclass
class Notification:
    """A fan-out record; post_id and comment_id are weak references."""
    id: str
    recipient_id: str
    sender_id: str
    kind: str
    message: str
    post_id: Optional[str] = None
    comment_id: Optional[str] = None
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "sender_id": self.sender_id,
            "kind": self.kind,
            "message": self.message,
            "post_id": self.post_id,
            "comment_id": self.comment_id,
            "is_read": self.is_read,
            "created_at": isoformat(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            recipient_id=data["recipient_id"],
            sender_id=data["sender_id"],
            kind=data["kind"],
            message=data["message"],
            post_id=data.get("post_id"),
            comment_id=data.get("comment_id"),
            is_read=bool(data.get("is_read", False)),
            created_at=parse_datetime(data.get("created_at")) or utcnow(),
        )


# =============================================================================
# Pagination
# =============================================================================

@dataclass
class Page(Generic[T]):
    """Pagination envelope returned by every list operation."""
    items: List[T]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: List[T], total: int, page: int, page_size: int, **extra) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages(total, page_size),
            has_next=page * page_size < total,
            has_prev=page > 1,
            **extra,
        )


@dataclass
class NotificationPage(Page[Notification]):
    """Notification list page; unread_count is counted independently of items."""
    unread_count: int = 0
