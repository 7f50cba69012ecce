"""
Text Search Utility Module

This module implements the free-text relevance used by post and user search.
Text is lower-cased and split into words of letters and digits in any script,
then stop words are dropped. ASCII words are reduced to Porter stems, so "running",
"runs" and "run" all match each other. Words in other scripts are kept as they
are. A document matches when it shares at least one term with the query.

Scores depend only on the query and the document text, and ties are broken
by creation time (newest first) and then id, so identical inputs always
produce the same ordering.
"""

import re
from collections import Counter
from datetime import datetime
from typing import Iterable, List, Sequence, Tuple

from nltk.stem import PorterStemmer

from config import settings

_WORD_PATTERN = re.compile(r"[^\W_]+")
_stemmer = PorterStemmer()


def analyze(text: str) -> List[str]:
    """
    Reduce text to its list of search stems (duplicates kept).

    Args:
        text: Any free text.

    Returns:
        List[str]: Stems in order of appearance.
    """
    words = _WORD_PATTERN.findall((text or "").lower())
    return [
        _stemmer.stem(word) if word.isascii() else word
        for word in words
        if word not in settings.SEARCH_STOP_WORDS
    ]


def query_terms(term: str) -> List[str]:
    """Distinct stems of a search query, in order of first appearance."""
    seen = []
    for stem in analyze(term):
        if stem not in seen:
            seen.append(stem)
    return seen


def index_terms(content: str, tags: Iterable[str] = ()) -> List[str]:
    """Sorted distinct stems of a document, used for storage-side pre-filtering."""
    stems = set(analyze(content))
    for tag in tags:
        stems.update(analyze(tag))
    return sorted(stems)


def _field_score(query: Sequence[str], tokens: List[str], weight: float) -> float:
    if not tokens:
        return 0.0
    counts = Counter(tokens)
    score = 0.0
    for stem in query:
        frequency = counts.get(stem, 0)
        if frequency:
            # Occurrences count fully; shorter fields get a small bonus
            score += weight * frequency * (0.5 + 0.5 / len(tokens)) + weight * 0.5
    return score


def score_document(query: Sequence[str], content: str, tags: Iterable[str] = ()) -> float:
    """
    Relevance of a document (content plus tags) for a list of query stems.

    Args:
        query: Stems from query_terms().
        content: Document body.
        tags: Document tags.

    Returns:
        float: 0.0 when nothing matches, otherwise a positive score rounded
        to 6 decimal places.
    """
    tag_tokens = []
    for tag in tags:
        tag_tokens.extend(analyze(tag))

    score = _field_score(query, analyze(content), settings.SEARCH_CONTENT_WEIGHT)
    score += _field_score(query, tag_tokens, settings.SEARCH_TAG_WEIGHT)
    return round(score, 6)


def rank_key(score: float, created_at: datetime, doc_id: str) -> Tuple[float, float, str]:
    """Sort key: highest score, then newest, then id."""
    return (-score, -created_at.timestamp(), doc_id)
