"""
Reaction Service Module

This module orchestrates the user-facing actions that touch more than one
document: liking posts, commenting, liking comments, following, and
publishing posts that mention other users.

Each action first applies its mutation to the primary document, then the
secondary one (the user's liked-posts index, or the other end of a follow
edge). If the second write fails, the first is reverted so the caller sees
the action as not applied. Notifications go out only after both writes have
committed, and a notification failure never undoes the action.
"""

from typing import Optional, Sequence

from data.models import (
    KIND_COMMENT, KIND_FOLLOW, KIND_LIKE, Comment, LikeResult, Post, User,
)
from data.protocols import UserStorage
from services.content_service import ContentService
from services.identity_service import IdentityService
from services.notification_service import NotificationService
from services.protocols import Upload
from utils.exceptions import InvalidInputError, NotFoundError
from utils.logger import get_logger

logger = get_logger(__name__)


class ReactionService:
    """Composes content and identity mutations with notification fan-out."""

    def __init__(self, content: ContentService, identity: IdentityService,
                 users: UserStorage, notifications: NotificationService):
        self.content = content
        self.identity = identity
        self.users = users
        self.notifications = notifications

    # =========================================================================
    # Posts
    # =========================================================================

    def publish_post(self, author_id: str, content: str, images: Optional[Sequence] = None,
                     tags: Optional[Sequence[str]] = None, is_public: bool = True,
                     uploads: Optional[Sequence[Upload]] = None) -> Post:
        """
        Create a post and notify the users it mentions.

        Mentions in a private post are not announced, since the mentioned
        users could not open it.
        """
        if uploads:
            post = self.content.create_post_with_uploads(author_id, content, uploads, tags, is_public)
        else:
            post = self.content.create_post(author_id, content, images, tags, is_public)
        if post.is_public:
            self.notifications.notify_mentions(author_id, post.content, "post", post_id=post.id)
        return post

    # =========================================================================
    # Post likes
    # =========================================================================

    def _index_like(self, user_id: str, post_id: str, liked: bool) -> None:
        def apply(user: User) -> None:
            if liked:
                user.liked_post_ids.add(post_id)
            else:
                user.liked_post_ids.discard(post_id)
        self.users.mutate_user(user_id, apply)

    def _apply_post_like(self, post_id: str, user_id: str, wanted: Optional[bool]) -> LikeResult:
        self.identity.get_active_user(user_id)
        result = self.content.set_post_like(post_id, user_id, wanted)
        if not result.changed:
            return result

        try:
            self._index_like(user_id, post_id, result.is_liked)
        except Exception:
            logger.error(f"Liked-posts index update failed for user {user_id}, reverting post {post_id}")
            self.content.set_post_like(post_id, user_id, not result.is_liked)
            raise

        if result.is_liked:
            logger.info(f"User {user_id} liked post {post_id}")
            self.notifications.dispatch(result.owner_id, user_id, KIND_LIKE, "liked your post", post_id=post_id)
        else:
            logger.info(f"User {user_id} unliked post {post_id}")
        return result

    def like_post(self, post_id: str, user_id: str) -> LikeResult:
        """Like a post; repeating it changes nothing and sends no second notification."""
        return self._apply_post_like(post_id, user_id, True)

    def unlike_post(self, post_id: str, user_id: str) -> LikeResult:
        return self._apply_post_like(post_id, user_id, False)

    def toggle_post_like(self, post_id: str, user_id: str) -> LikeResult:
        """Like if not liked, unlike if liked, decided atomically on the post document."""
        return self._apply_post_like(post_id, user_id, None)

    # =========================================================================
    # Comments
    # =========================================================================

    def comment_on_post(self, post_id: str, author_id: str, content: str) -> Comment:
        """
        Add a comment, notify the post's author and any mentioned users.

        The post's author receives only the comment notification even if the
        comment also mentions them.
        """
        post_author = self.content.get_post_record(post_id).author_id
        comment = self.content.add_comment(post_id, author_id, content)

        self.notifications.dispatch(
            post_author, author_id, KIND_COMMENT, "commented on your post",
            post_id=post_id, comment_id=comment.id,
        )
        self.notifications.notify_mentions(
            author_id, comment.content, "comment",
            post_id=post_id, comment_id=comment.id, skip_ids=[post_author],
        )
        return comment

    def toggle_comment_like(self, post_id: str, comment_id: str, user_id: str) -> LikeResult:
        """Flip a comment like; comment likes do not notify anyone."""
        self.identity.get_active_user(user_id)
        return self.content.toggle_comment_like(post_id, comment_id, user_id)

    # =========================================================================
    # Follow graph
    # =========================================================================

    def follow(self, actor_id: str, target_id: str) -> None:
        """
        Make actor follow target and notify target.

        Raises:
            InvalidInputError: On a self-follow or if already following.
            NotFoundError: If either user is missing or deactivated.
        """
        if actor_id == target_id:
            raise InvalidInputError("You cannot follow yourself")
        target = self.identity.get_active_user(target_id)
        self.identity.get_active_user(actor_id)

        def add_following(user: User) -> None:
            if target_id in user.following:
                raise InvalidInputError("You are already following this user")
            user.following.add(target_id)

        def add_follower(user: User) -> None:
            if not user.is_active:
                raise NotFoundError("User not found")
            user.followers.add(actor_id)

        self.users.mutate_user(actor_id, add_following)
        try:
            self.users.mutate_user(target_id, add_follower)
        except Exception:
            logger.error(f"Follower edge write failed for {target_id}, reverting follow by {actor_id}")
            self.users.mutate_user(actor_id, lambda user: user.following.discard(target_id))
            raise

        logger.info(f"User {actor_id} now follows {target.username}")
        self.notifications.dispatch(target_id, actor_id, KIND_FOLLOW, "started following you")

    def unfollow(self, actor_id: str, target_id: str) -> None:
        """
        Remove the follow edge in both directions.

        Raises:
            InvalidInputError: If actor is not following target.
            NotFoundError: If either user does not exist.
        """
        if actor_id == target_id:
            raise InvalidInputError("You cannot unfollow yourself")
        self.identity.get_user(target_id)

        def drop_following(user: User) -> None:
            if target_id not in user.following:
                raise InvalidInputError("You are not following this user")
            user.following.discard(target_id)

        self.users.mutate_user(actor_id, drop_following)
        try:
            self.users.mutate_user(target_id, lambda user: user.followers.discard(actor_id))
        except Exception:
            logger.error(f"Follower edge removal failed for {target_id}, restoring follow by {actor_id}")
            self.users.mutate_user(actor_id, lambda user: user.following.add(target_id))
            raise

        logger.info(f"User {actor_id} unfollowed {target_id}")
