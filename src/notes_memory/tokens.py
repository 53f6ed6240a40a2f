"""
Tokenization shared by the embedder, lexical search and re-ranking.
"""

from __future__ import annotations

import re


_NON_TOKEN_RE = re.compile(r"[^a-z0-9_\s-]")
_WHITESPACE_RE = re.compile(r"\s+")

STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "if", "then", "else",
        "is", "are", "was", "were", "be", "been", "being",
        "to", "of", "in", "on", "for", "with", "by", "as", "at", "from",
        "that", "this", "it", "its", "into", "about", "over", "under",
        "we", "you", "they", "i", "he", "she", "them",
        "our", "your", "my", "me", "us",
        "do", "does", "did", "done",
        "can", "could", "should", "would", "will", "shall", "may", "might",
        "not", "no", "yes",
    }
)


def tokenize_for_search(text: str) -> list[str]:
    """Lowercase, strip punctuation, and drop stop words and 1-char tokens."""
    cleaned = _NON_TOKEN_RE.sub(" ", text.lower())
    return [
        token
        for token in _WHITESPACE_RE.split(cleaned)
        if len(token) > 1 and token not in STOP_WORDS
    ]


def query_terms(query: str, max_terms: int = 8) -> list[str]:
    """Return the first *max_terms* search tokens of a query."""
    return tokenize_for_search(query)[:max_terms]


def build_fts_query(raw: str, max_terms: int = 8) -> str | None:
    """Build a conjunctive full-text query string, or None if nothing is searchable."""
    terms = query_terms(raw, max_terms)
    if not terms:
        return None
    return " ".join(terms)
