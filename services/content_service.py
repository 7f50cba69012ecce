"""
Content Service Module

This module owns the Post aggregate: creating, reading, searching, editing
and soft-deleting posts, plus the embedded comment list and the like-sets on
posts and comments.

Rules shared by every operation:
- Input is validated before anything is written (never a partial update).
- A missing or soft-deleted post is NotFound, for every reader.
- Only the author or an admin may edit or delete a post. A comment may be
  removed by its author, the post's author or an admin, and edited only by
  its author.
- Private posts are visible to, and can be reacted to by, their author only.
- Like operations are set operations decided inside the storage's atomic
  mutation, so repeating one has no further effect.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from config import settings
from data.models import (
    Comment, ImageRef, LikeResult, Page, Post, PostView, User, UserSummary,
)
from data.protocols import PostStorage, UserStorage
from services.protocols import ObjectStore, Upload
from utils.exceptions import (
    ForbiddenError, InvalidInputError, MediaUploadError, NotFoundError, UnavailableError,
)
from utils.helpers import new_id, normalize_tags, page_offset, utcnow, validate_paging
from utils.logger import get_logger
from utils.text_search import query_terms, rank_key, score_document

logger = get_logger(__name__)


class ContentService:
    """Service for Post aggregates and their embedded comments."""

    def __init__(self, posts: PostStorage, users: UserStorage,
                 object_store: Optional[ObjectStore] = None,
                 clock: Callable[[], datetime] = utcnow,
                 post_max_length: Optional[int] = None, comment_max_length: Optional[int] = None,
                 max_images: Optional[int] = None, max_tags: Optional[int] = None,
                 page_size: Optional[int] = None, max_page_size: Optional[int] = None):
        self.posts = posts
        self.users = users
        self.object_store = object_store
        self.clock = clock
        self.post_max_length = post_max_length if post_max_length is not None else settings.POST_CONTENT_MAX_LENGTH
        self.comment_max_length = comment_max_length if comment_max_length is not None else settings.COMMENT_CONTENT_MAX_LENGTH
        self.max_images = max_images if max_images is not None else settings.MAX_IMAGES_PER_POST
        self.max_tags = max_tags if max_tags is not None else settings.MAX_TAGS_PER_POST
        self.page_size = page_size if page_size is not None else settings.DEFAULT_PAGE_SIZE
        self.max_page_size = max_page_size if max_page_size is not None else settings.MAX_PAGE_SIZE

    # =========================================================================
    # Validation
    # =========================================================================

    def _validate_content(self, content, label: str, max_length: int) -> str:
        if not isinstance(content, str) or not content.strip():
            raise InvalidInputError(f"{label} content is required")
        content = content.strip()
        if len(content) > max_length:
            raise InvalidInputError(f"{label} content cannot exceed {max_length} characters")
        return content

    def _validate_images(self, images) -> List[ImageRef]:
        if images is None:
            return []
        if not isinstance(images, (list, tuple)):
            raise InvalidInputError("Images must be an array")
        if len(images) > self.max_images:
            raise InvalidInputError(f"A post cannot have more than {self.max_images} images")

        refs = []
        for image in images:
            if isinstance(image, dict):
                if not image.get("url"):
                    raise InvalidInputError("Each image needs a url")
                image = ImageRef.from_dict(image)
            if not isinstance(image, ImageRef) or not image.url:
                raise InvalidInputError("Invalid image reference")
            refs.append(image)
        return refs

    def _validate_tags(self, tags) -> List[str]:
        normalized = normalize_tags(tags)
        if len(normalized) > self.max_tags:
            raise InvalidInputError(f"A post cannot have more than {self.max_tags} tags")
        return normalized

    def _require_author(self, author_id: str) -> User:
        author = self.users.get_user(author_id)
        if author is None or not author.is_active:
            raise NotFoundError("User not found")
        return author

    def _is_admin(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        user = self.users.get_user(user_id)
        return bool(user and user.is_admin)

    # =========================================================================
    # Lookup helpers used inside mutations
    # =========================================================================

    @staticmethod
    def _live(post: Post) -> Post:
        if post.is_deleted:
            raise NotFoundError("Post not found")
        return post

    @staticmethod
    def _visible(post: Post, viewer_id: Optional[str]) -> Post:
        if not post.is_visible_to(viewer_id):
            raise ForbiddenError("Access denied")
        return post

    @staticmethod
    def _comment(post: Post, comment_id: str) -> Comment:
        comment = post.find_comment(comment_id)
        if comment is None:
            raise NotFoundError("Comment not found")
        return comment

    def _mutate_live(self, post_id: str, mutator: Callable[[Post], object]):
        def apply(post: Post):
            return mutator(self._live(post))
        return self.posts.mutate_post(post_id, apply)

    def get_post_record(self, post_id: str) -> Post:
        """The stored aggregate of a live post, without visibility checks."""
        post = self.posts.get_post(post_id)
        if post is None or post.is_deleted:
            raise NotFoundError("Post not found")
        return post

    # =========================================================================
    # Create
    # =========================================================================

    def create_post(self, author_id: str, content: str, images: Optional[Sequence] = None,
                    tags: Optional[Sequence[str]] = None, is_public: bool = True) -> Post:
        """
        Create a post.

        Args:
            author_id: Active user creating the post.
            content: Post text, at most post_max_length characters.
            images: ImageRef objects (or {"url", "public_id"} dicts) already stored.
            tags: Tag strings; trimmed, lower-cased and de-duplicated.
            is_public: Visibility of the post.

        Returns:
            Post: The stored post with empty like and comment collections.

        Raises:
            InvalidInputError: If content, images or tags are invalid.
            NotFoundError: If the author does not exist or is deactivated.
        """
        content = self._validate_content(content, "Post", self.post_max_length)
        refs = self._validate_images(images)
        normalized_tags = self._validate_tags(tags)
        if not isinstance(is_public, bool):
            raise InvalidInputError("is_public must be a boolean")
        self._require_author(author_id)

        post = Post(
            id=new_id(),
            author_id=author_id,
            content=content,
            images=refs,
            tags=normalized_tags,
            is_public=is_public,
            created_at=self.clock(),
        )
        stored = self.posts.insert_post(post)
        logger.info(f"Post {stored.id} created by {author_id}")
        return stored

    def store_uploads(self, uploads: Iterable[Upload]) -> List[ImageRef]:
        """
        Put every upload in the object store, all or nothing.

        If any upload fails, the images stored earlier in the same call are
        deleted again before the error propagates.

        Raises:
            InvalidInputError: If a file is not an acceptable image.
            UnavailableError: If no object store is configured or it failed.
        """
        uploads = list(uploads)
        if not uploads:
            return []
        if self.object_store is None:
            raise UnavailableError("No object store is configured")
        if len(uploads) > self.max_images:
            raise InvalidInputError(f"A post cannot have more than {self.max_images} images")

        stored: List[ImageRef] = []
        try:
            for upload in uploads:
                stored.append(self.object_store.put(upload))
        except (InvalidInputError, UnavailableError):
            self.discard_images(stored)
            raise
        return stored

    def discard_images(self, refs: Iterable[ImageRef]) -> None:
        """Best-effort delete of stored images; failures are logged only."""
        if self.object_store is None:
            return
        for ref in refs:
            try:
                self.object_store.delete(ref)
            except MediaUploadError as e:
                logger.warning(f"Could not delete image {ref.public_id}: {e}")

    def create_post_with_uploads(self, author_id: str, content: str, uploads: Sequence[Upload],
                                 tags: Optional[Sequence[str]] = None, is_public: bool = True) -> Post:
        """
        Store the uploaded images, then create the post referencing them.

        Input is validated first; a store failure aborts the create, and a
        failed create removes the images it had stored.
        """
        self._validate_content(content, "Post", self.post_max_length)
        self._validate_tags(tags)
        refs = self.store_uploads(uploads)
        try:
            return self.create_post(author_id, content, refs, tags, is_public)
        except Exception:
            self.discard_images(refs)
            raise

    # =========================================================================
    # Read
    # =========================================================================

    def _views(self, posts: List[Post], viewer_id: Optional[str]) -> List[PostView]:
        now = self.clock()
        return [PostView.from_post(post, viewer_id, now) for post in posts]

    def get_post(self, post_id: str, viewer_id: Optional[str] = None) -> PostView:
        """
        Fetch one post for a viewer.

        Raises:
            NotFoundError: If the post is absent or soft-deleted.
            ForbiddenError: If the post is private and viewer is not its author.
        """
        post = self._visible(self.get_post_record(post_id), viewer_id)
        return PostView.from_post(post, viewer_id, self.clock())

    def get_feed(self, viewer_id: Optional[str], page: int = 1,
                 page_size: Optional[int] = None) -> Page[PostView]:
        """Public posts plus the viewer's own private ones, newest first."""
        if page_size is None:
            page_size = self.page_size
        page, page_size = validate_paging(page, page_size, self.max_page_size)
        posts, total = self.posts.query_feed(viewer_id, page_offset(page, page_size), page_size)
        return Page.build(self._views(posts, viewer_id), total, page, page_size)

    def list_user_posts(self, viewer_id: Optional[str], author_id: str, page: int = 1,
                        page_size: Optional[int] = None) -> Page[PostView]:
        """An author's posts, newest first; private ones only when the author is viewing."""
        if page_size is None:
            page_size = self.page_size
        page, page_size = validate_paging(page, page_size, self.max_page_size)
        author = self.users.get_user(author_id)
        if author is None or not author.is_active:
            raise NotFoundError("User not found")
        include_private = viewer_id is not None and viewer_id == author_id
        posts, total = self.posts.query_by_author(
            author_id, include_private, page_offset(page, page_size), page_size
        )
        return Page.build(self._views(posts, viewer_id), total, page, page_size)

    def search_posts(self, term: str, page: int = 1, page_size: Optional[int] = None,
                     viewer_id: Optional[str] = None) -> Page[PostView]:
        """
        Free-text search over public, non-deleted posts.

        Posts are ranked by relevance of content and tags to the term; equal
        scores fall back to newest first, then id, so identical inputs always
        give the same order.

        Raises:
            InvalidInputError: If term is blank or the paging is invalid.
        """
        if not isinstance(term, str) or not term.strip():
            raise InvalidInputError("Search term is required")
        if page_size is None:
            page_size = self.page_size
        page, page_size = validate_paging(page, page_size, self.max_page_size)

        terms = query_terms(term)
        ranked: List[Tuple[tuple, Post]] = []
        for post in self.posts.search_candidates(terms):
            if post.is_deleted or not post.is_public:
                continue
            score = score_document(terms, post.content, post.tags)
            if score > 0:
                ranked.append((rank_key(score, post.created_at, post.id), post))
        ranked.sort(key=lambda pair: pair[0])

        skip = page_offset(page, page_size)
        posts = [post for _, post in ranked[skip:skip + page_size]]
        return Page.build(self._views(posts, viewer_id), len(ranked), page, page_size)

    def get_post_likes(self, post_id: str, viewer_id: Optional[str] = None) -> List[UserSummary]:
        """Users who like a post, ordered by username."""
        post = self._visible(self.get_post_record(post_id), viewer_id)
        likers = self.users.get_users(sorted(post.likes))
        likers.sort(key=lambda u: (u.username.lower(), u.id))
        return [UserSummary.from_user(u) for u in likers]

    # =========================================================================
    # Update / delete
    # =========================================================================

    def update_post(self, post_id: str, editor_id: str, content: Optional[str] = None,
                    images: Optional[Sequence] = None, tags: Optional[Sequence[str]] = None,
                    is_public: Optional[bool] = None) -> Post:
        """
        Change a post's content, images, tags or visibility.

        Any accepted update marks the post edited with the current time, even
        when the new values equal the old ones. Images dropped by the update
        are removed from the object store afterwards (best-effort).

        Raises:
            InvalidInputError: If nothing is given or a value is invalid.
            NotFoundError: If the post is absent or soft-deleted.
            ForbiddenError: If editor is neither the author nor an admin.
        """
        changes = {}
        if content is not None:
            changes["content"] = self._validate_content(content, "Post", self.post_max_length)
        if images is not None:
            changes["images"] = self._validate_images(images)
        if tags is not None:
            changes["tags"] = self._validate_tags(tags)
        if is_public is not None:
            if not isinstance(is_public, bool):
                raise InvalidInputError("is_public must be a boolean")
            changes["is_public"] = is_public
        if not changes:
            raise InvalidInputError("Nothing to update")

        editor_is_admin = self._is_admin(editor_id)
        now = self.clock()
        removed: List[ImageRef] = []

        def apply(post: Post) -> Post:
            if post.author_id != editor_id and not editor_is_admin:
                raise ForbiddenError("Access denied")
            if "images" in changes:
                kept = {ref.public_id for ref in changes["images"]}
                removed.extend(ref for ref in post.images if ref.public_id not in kept)
            for name, value in changes.items():
                setattr(post, name, value)
            post.is_edited = True
            post.edited_at = now
            return post

        updated = self._mutate_live(post_id, apply)
        logger.info(f"Post {post_id} updated by {editor_id} ({', '.join(changes)})")
        self.discard_images(removed)
        return updated

    def soft_delete_post(self, post_id: str, actor_id: str) -> None:
        """
        Hide a post from every read while keeping it, with its comments and
        likes, in storage.

        Raises:
            NotFoundError: If the post is absent or already deleted.
            ForbiddenError: If actor is neither the author nor an admin.
        """
        actor_is_admin = self._is_admin(actor_id)

        def apply(post: Post) -> None:
            if post.author_id != actor_id and not actor_is_admin:
                raise ForbiddenError("Access denied")
            post.is_deleted = True

        self._mutate_live(post_id, apply)
        logger.info(f"Post {post_id} soft-deleted by {actor_id}")

    # =========================================================================
    # Likes
    # =========================================================================

    def set_post_like(self, post_id: str, user_id: str, wanted: Optional[bool]) -> LikeResult:
        """Add, remove (or, with wanted=None, flip) user_id in the post's like-set."""

        def apply(post: Post) -> LikeResult:
            self._visible(post, user_id)
            currently = user_id in post.likes
            target = (not currently) if wanted is None else wanted
            if target:
                post.likes.add(user_id)
            else:
                post.likes.discard(user_id)
            return LikeResult(
                is_liked=target,
                like_count=post.like_count,
                changed=target != currently,
                owner_id=post.author_id,
            )

        return self._mutate_live(post_id, apply)

    def like_post(self, post_id: str, user_id: str) -> LikeResult:
        """Idempotent like; liking an already liked post reports changed=False."""
        return self.set_post_like(post_id, user_id, True)

    def unlike_post(self, post_id: str, user_id: str) -> LikeResult:
        """Idempotent unlike; unliking a post not liked reports changed=False."""
        return self.set_post_like(post_id, user_id, False)

    def toggle_post_like(self, post_id: str, user_id: str) -> LikeResult:
        """Flip membership, deciding from the state read inside the same atomic mutation."""
        return self.set_post_like(post_id, user_id, None)

    def toggle_comment_like(self, post_id: str, comment_id: str, user_id: str,
                            wanted: Optional[bool] = None) -> LikeResult:
        """Flip (or, with wanted, set) user_id's like on one comment of a post."""

        def apply(post: Post) -> LikeResult:
            self._visible(post, user_id)
            comment = self._comment(post, comment_id)
            currently = user_id in comment.likes
            target = (not currently) if wanted is None else wanted
            if target:
                comment.likes.add(user_id)
            else:
                comment.likes.discard(user_id)
            return LikeResult(
                is_liked=target,
                like_count=comment.like_count,
                changed=target != currently,
                owner_id=comment.author_id,
            )

        return self._mutate_live(post_id, apply)

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(self, post_id: str, author_id: str, content: str) -> Comment:
        """
        Append a comment to a post.

        Returns:
            Comment: The new comment with a freshly assigned id.

        Raises:
            InvalidInputError: If content is empty or too long.
            NotFoundError: If the post or author is missing.
            ForbiddenError: If the post is private and author is not its owner.
        """
        content = self._validate_content(content, "Comment", self.comment_max_length)
        self._require_author(author_id)
        comment = Comment(id=new_id(), author_id=author_id, content=content, created_at=self.clock())

        def apply(post: Post) -> Comment:
            self._visible(post, author_id)
            post.comments.append(comment)
            return comment

        added = self._mutate_live(post_id, apply)
        logger.info(f"Comment {added.id} added to post {post_id} by {author_id}")
        return added

    def edit_comment(self, post_id: str, comment_id: str, actor_id: str, content: str) -> Comment:
        """Replace a comment's content; only the comment's author may do this."""
        content = self._validate_content(content, "Comment", self.comment_max_length)
        now = self.clock()

        def apply(post: Post) -> Comment:
            comment = self._comment(post, comment_id)
            if comment.author_id != actor_id:
                raise ForbiddenError("Access denied. You can only edit your own comments.")
            comment.content = content
            comment.is_edited = True
            comment.edited_at = now
            return comment

        return self._mutate_live(post_id, apply)

    def remove_comment(self, post_id: str, comment_id: str, actor_id: str) -> None:
        """
        Hard-remove a comment from its post.

        Allowed for the comment's author, the post's author and admins.
        Notifications that referenced the comment are left as they are.
        """
        actor_is_admin = self._is_admin(actor_id)

        def apply(post: Post) -> None:
            comment = self._comment(post, comment_id)
            if actor_id not in (comment.author_id, post.author_id) and not actor_is_admin:
                raise ForbiddenError("Access denied. You can only delete your own comments.")
            post.comments = [c for c in post.comments if c.id != comment_id]

        self._mutate_live(post_id, apply)
        logger.info(f"Comment {comment_id} removed from post {post_id} by {actor_id}")
