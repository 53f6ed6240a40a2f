"""
Scoring primitives and the hybrid merge/re-rank step.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from typing import Sequence

from ..config import DEFAULT_SETTINGS, IndexSettings
from ..tokens import tokenize_for_search


_WHITESPACE_RE = re.compile(r"\s+")
_UNRANKED = 999


@dataclass(frozen=True)
class Candidate:
    """A chunk proposed by the lexical or vector retrieval path."""

    id: str
    path: str
    start_line: int
    end_line: int
    snippet: str
    created_at: int
    text_score: float = 0.0
    vector_score: float = 0.0


@dataclass(frozen=True)
class RankedChunk:
    """Merged retrieval candidate with its final score."""

    id: str
    path: str
    start_line: int
    end_line: int
    snippet: str
    created_at: int
    text_score: float
    vector_score: float
    hybrid_score: float
    rerank_score: float
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine over the shared prefix of *a* and *b*; 0 if either has zero norm."""
    dims = min(len(a), len(b))
    if dims == 0:
        return 0.0
    dot = a_norm = b_norm = 0.0
    for i in range(dims):
        dot += a[i] * b[i]
        a_norm += a[i] * a[i]
        b_norm += b[i] * b[i]
    if a_norm == 0 or b_norm == 0:
        return 0.0
    return dot / math.sqrt(a_norm * b_norm)


def normalize_bm25_rank(rank: float | None) -> float:
    """Map a lower-is-better rank onto (0, 1]; negative or undefined ranks score poorly."""
    if rank is None or not math.isfinite(rank) or rank < 0:
        rank = _UNRANKED
    return 1 / (1 + rank)


def normalize_snippet(text: str, max_chars: int = DEFAULT_SETTINGS.max_snippet_chars) -> str:
    compact = _WHITESPACE_RE.sub(" ", text).strip()
    if len(compact) <= max_chars:
        return compact
    return compact[: max_chars - 3] + "..."


def compute_overlap_score(query: str, path: str, snippet: str) -> float:
    """Lexical overlap of *query* with a candidate, with phrase and path boosts."""
    query_tokens = tokenize_for_search(query)
    if not query_tokens:
        return 0.0

    snippet_tokens = set(tokenize_for_search(snippet))
    overlap = sum(1 for token in query_tokens if token in snippet_tokens)
    score = overlap / len(query_tokens)

    lower_query = query.lower()
    if lower_query and lower_query in snippet.lower():
        score += 0.2

    lower_path = path.lower()
    path_hits = sum(1 for token in query_tokens if token in lower_path)
    if path_hits:
        score += min(0.15, path_hits / len(query_tokens))

    return min(1.0, score)


def merge_and_rerank(
    query: str,
    lexical: list[Candidate],
    vector: list[Candidate],
    *,
    settings: IndexSettings = DEFAULT_SETTINGS,
) -> list[RankedChunk]:
    """Union candidates by id, hybrid-score them, re-rank and sort best first."""
    merged: dict[str, Candidate] = {}

    for candidate in vector:
        merged[candidate.id] = replace(candidate, text_score=0.0)

    for candidate in lexical:
        existing = merged.get(candidate.id)
        if existing is None:
            merged[candidate.id] = replace(candidate, vector_score=0.0)
            continue
        merged[candidate.id] = replace(
            existing,
            text_score=candidate.text_score,
            snippet=candidate.snippet or existing.snippet,
            created_at=max(existing.created_at, candidate.created_at),
        )

    ranked: list[RankedChunk] = []
    for candidate in merged.values():
        hybrid = (
            settings.vector_weight * candidate.vector_score
            + settings.text_weight * candidate.text_score
        )
        rerank = compute_overlap_score(query, candidate.path, candidate.snippet)
        ranked.append(
            RankedChunk(
                id=candidate.id,
                path=candidate.path,
                start_line=candidate.start_line,
                end_line=candidate.end_line,
                snippet=candidate.snippet,
                created_at=candidate.created_at,
                text_score=candidate.text_score,
                vector_score=candidate.vector_score,
                hybrid_score=hybrid,
                rerank_score=rerank,
                score=settings.hybrid_weight * hybrid + settings.rerank_weight * rerank,
            )
        )

    ranked.sort(key=lambda chunk: (-chunk.score, chunk.path, chunk.start_line))
    return ranked
