"""
Tests for Helper Utilities

Tests for pagination arithmetic, tag normalization, mention extraction,
relative time rendering and timestamp parsing.
"""

import pytest
from datetime import datetime, timedelta, timezone
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.exceptions import InvalidInputError
from utils.helpers import (
    extract_mentions, new_id, normalize_tags, page_offset, parse_datetime,
    time_ago, total_pages, truncate_text, validate_paging,
)


# =============================================================================
# Pagination Tests
# =============================================================================

class TestPagination:
    """Tests for paging validation and arithmetic."""

    def test_offset_for_first_and_later_pages(self):
        """skip = (page - 1) * page_size."""
        assert page_offset(1, 10) == 0
        assert page_offset(3, 10) == 20

    def test_total_pages_rounds_up(self):
        """totalPages = ceil(total / page_size)."""
        assert total_pages(0, 10) == 0
        assert total_pages(10, 10) == 1
        assert total_pages(11, 10) == 2

    @pytest.mark.parametrize("page, size", [(0, 10), (-1, 10), (1, 0), ("1", 10), (True, 10)])
    def test_invalid_paging_rejected(self, page, size):
        """Non-positive or non-integer page values are InvalidInput."""
        with pytest.raises(InvalidInputError):
            validate_paging(page, size, 100)

    def test_page_size_over_maximum_rejected(self):
        """A page size above the maximum is InvalidInput."""
        with pytest.raises(InvalidInputError, match="cannot exceed 100"):
            validate_paging(1, 101, 100)


# =============================================================================
# Tag and Mention Tests
# =============================================================================

class TestNormalizeTags:
    """Tests for normalize_tags()."""

    def test_trims_lowercases_and_dedupes(self):
        """Tags are trimmed, lower-cased, de-duplicated and keep first-seen order."""
        assert normalize_tags(["  Python", "python ", "AI", "", "ai"]) == ["python", "ai"]

    def test_none_is_empty(self):
        """Missing tags normalize to an empty list."""
        assert normalize_tags(None) == []

    def test_non_array_rejected(self):
        """A bare string is not an array of tags."""
        with pytest.raises(InvalidInputError, match="Tags must be an array"):
            normalize_tags("python")

    def test_non_string_member_rejected(self):
        """Every tag must be a string."""
        with pytest.raises(InvalidInputError, match="Tags must be strings"):
            normalize_tags(["ok", 3])


class TestExtractMentions:
    """Tests for extract_mentions()."""

    def test_finds_distinct_lowercased_usernames(self):
        """Mentions are lower-cased and reported once each."""
        assert extract_mentions("hi @Alice and @bob, also @alice") == ["alice", "bob"]

    def test_ignores_email_addresses_and_short_names(self):
        """An @ inside a word (email) or a name under 3 characters is not a mention."""
        assert extract_mentions("mail me at carol@example.com or @ab") == []


# =============================================================================
# Time Tests
# =============================================================================

class TestTimeAgo:
    """Tests for time_ago()."""

    NOW = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("delta, expected", [
        (timedelta(seconds=30), "just now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3), "3h ago"),
        (timedelta(days=2), "2d ago"),
        (timedelta(days=65), "2mo ago"),
    ])
    def test_buckets(self, delta, expected):
        """Each range renders with its own unit."""
        assert time_ago(self.NOW - delta, self.NOW) == expected

    def test_none_renders_empty(self):
        """A missing timestamp renders as an empty string."""
        assert time_ago(None, self.NOW) == ""


class TestParseDatetime:
    """Tests for parse_datetime()."""

    def test_naive_values_are_utc(self):
        """Naive datetimes (as returned by DATETIME2 columns) are read as UTC."""
        parsed = parse_datetime(datetime(2024, 1, 1, 8, 30))
        assert parsed.tzinfo == timezone.utc

    def test_zulu_suffix(self):
        """ISO strings with a Z suffix parse to aware UTC datetimes."""
        assert parse_datetime("2024-01-01T08:30:00Z") == datetime(2024, 1, 1, 8, 30, tzinfo=timezone.utc)

    def test_empty_is_none(self):
        """Empty values parse to None."""
        assert parse_datetime("") is None
        assert parse_datetime(None) is None


class TestMisc:
    """Tests for small helpers."""

    def test_new_id_is_unique_hex(self):
        """Identifiers are 32 hex characters and do not repeat."""
        ids = {new_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(len(i) == 32 and int(i, 16) >= 0 for i in ids)

    def test_truncate_text(self):
        """Long text is cut and suffixed with an ellipsis."""
        assert truncate_text("abcdef", 3) == "abc..."
        assert truncate_text("abc", 3) == "abc"
