"""
Tests for the Text Search Utility

Tests for stemming, stop-word handling, scoring and the deterministic
ranking key used by post and user search.
"""

from datetime import datetime, timezone
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.text_search import analyze, index_terms, query_terms, rank_key, score_document


class TestAnalyze:
    """Tests for text analysis."""

    def test_stems_and_drops_stop_words(self):
        """Inflected forms reduce to the same stem and stop words disappear."""
        assert analyze("The runner is running") == analyze("runner run")

    def test_query_terms_are_distinct(self):
        """Repeated query words produce one term."""
        assert query_terms("cats cat CAT") == ["cat"]

    def test_index_terms_cover_tags(self):
        """Index terms include stems from both content and tags, sorted."""
        terms = index_terms("Sunny beaches", ["Travel"])
        assert terms == sorted(terms)
        assert "travel" in terms
        assert analyze("beaches")[0] in terms


class TestScoring:
    """Tests for score_document() and rank_key()."""

    def test_no_match_scores_zero(self):
        """A document sharing no stem with the query scores 0."""
        assert score_document(query_terms("python"), "I like rust") == 0.0

    def test_more_occurrences_score_higher(self):
        """Repeating the query word raises the score."""
        query = query_terms("garden")
        once = score_document(query, "my garden today and yesterday")
        twice = score_document(query, "my garden garden today yesterday")
        assert twice > once > 0

    def test_tag_match_counts(self):
        """A match found only in tags still scores."""
        assert score_document(query_terms("travel"), "photos from last week", ["travel"]) > 0

    def test_score_is_deterministic(self):
        """Identical inputs always give identical scores."""
        query = query_terms("open source python")
        content = "Python is great for open source work"
        assert score_document(query, content, ["python"]) == score_document(query, content, ["python"])

    def test_rank_key_orders_by_score_then_newest_then_id(self):
        """Higher scores first; equal scores fall back to newest, then id."""
        older = datetime(2024, 1, 1, tzinfo=timezone.utc)
        newer = datetime(2024, 1, 2, tzinfo=timezone.utc)
        keys = sorted([
            rank_key(1.0, newer, "b"),
            rank_key(2.0, older, "z"),
            rank_key(1.0, older, "a"),
            rank_key(1.0, newer, "a"),
        ])
        assert keys == [
            rank_key(2.0, older, "z"),
            rank_key(1.0, newer, "a"),
            rank_key(1.0, newer, "b"),
            rank_key(1.0, older, "a"),
        ]


class TestUnicodeTerms:
    """Tests for words outside the ASCII range."""

    def test_non_latin_words_are_terms(self):
        """Arabic-script, Cyrillic and CJK words are kept unchanged."""
        assert analyze("سلام دنیا") == ["سلام", "دنیا"]
        assert analyze("Привет мир") == ["привет", "мир"]
        assert analyze("東京 2024") == ["東京", "2024"]

    def test_underscore_splits_words(self):
        """Underscores separate words the same way punctuation does."""
        assert analyze("snake_case") == analyze("snake case")

    def test_non_latin_query_scores(self):
        """A query in another script matches a document written in it."""
        assert score_document(query_terms("دنیا"), "سلام دنیا") > 0
        assert score_document(query_terms("мир"), "Привет мир") > 0
        assert score_document(query_terms("мир"), "hello world") == 0.0
