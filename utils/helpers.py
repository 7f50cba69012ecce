"""
Helper Utility Module

This module provides various helper functions used throughout the social core:
pagination arithmetic, tag and mention parsing, timestamps and identifiers.
"""

import math
import re
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from utils.exceptions import InvalidInputError

MENTION_PATTERN = re.compile(r"(?<![A-Za-z0-9_@])@([A-Za-z0-9_]{3,30})")


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate an opaque identifier (32 hex characters)."""
    return uuid.uuid4().hex


def validate_paging(page: int, page_size: int, max_page_size: int) -> Tuple[int, int]:
    """
    Check pagination arguments before any query runs.

    Args:
        page: 1-based page number.
        page_size: Number of items per page.
        max_page_size: Largest page size accepted.

    Returns:
        Tuple: (page, page_size) as ints.

    Raises:
        InvalidInputError: If either value is not a positive integer or the
            page size exceeds the maximum.
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise InvalidInputError("page must be a positive integer")
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size < 1:
        raise InvalidInputError("page_size must be a positive integer")
    if page_size > max_page_size:
        raise InvalidInputError(f"page_size cannot exceed {max_page_size}")
    return page, page_size


def page_offset(page: int, page_size: int) -> int:
    """Number of items to skip for a 1-based page."""
    return (page - 1) * page_size


def total_pages(total: int, page_size: int) -> int:
    """Page count for a result set, ceil(total / page_size)."""
    return math.ceil(total / page_size) if page_size else 0


def normalize_tags(tags: Optional[Iterable]) -> List[str]:
    """
    Trim and lower-case tags, dropping blanks and duplicates.

    Order of first appearance is kept so callers see their tags back in the
    order they sent them.

    Args:
        tags: A list of tag strings (or None).

    Returns:
        List[str]: The normalized tags.

    Raises:
        InvalidInputError: If tags is not a list/tuple of strings.
    """
    if tags is None:
        return []
    if isinstance(tags, (str, bytes)) or not isinstance(tags, (list, tuple)):
        raise InvalidInputError("Tags must be an array")

    normalized = []
    for tag in tags:
        if not isinstance(tag, str):
            raise InvalidInputError("Tags must be strings")
        cleaned = tag.strip().lower()
        if cleaned and cleaned not in normalized:
            normalized.append(cleaned)
    return normalized


def extract_mentions(text: str) -> List[str]:
    """
    Find @username mentions in a piece of content.

    Args:
        text: Post or comment content.

    Returns:
        List[str]: Lower-cased usernames in order of first appearance.
    """
    seen = []
    for match in MENTION_PATTERN.finditer(text or ""):
        username = match.group(1).lower()
        if username not in seen:
            seen.append(username)
    return seen


def time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Render a timestamp relative to now.

    Args:
        moment: The past timestamp.
        now: Reference time (defaults to the current UTC time).

    Returns:
        str: "just now", "5m ago", "3h ago", "2d ago" or "1mo ago".
    """
    if moment is None:
        return ""
    now = now or utcnow()
    seconds = int((now - moment).total_seconds())

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 2592000:
        return f"{seconds // 86400}d ago"
    return f"{seconds // 2592000}mo ago"


def truncate_text(text: str, max_length: int = 100, add_ellipsis: bool = True) -> str:
    """
    Truncate text to a maximum length.

    Args:
        text: The text to truncate
        max_length: Maximum length
        add_ellipsis: Whether to add an ellipsis if text is truncated

    Returns:
        str: Truncated text
    """
    if not text or len(text) <= max_length:
        return text

    truncated = text[:max_length].rstrip()
    if add_ellipsis:
        truncated += "..."

    return truncated


def isoformat(moment: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for a JSON document (None passes through)."""
    return moment.isoformat() if moment else None


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse a stored timestamp back into an aware datetime.

    Naive values are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        moment = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment
