"""Search helpers for indexed notes."""

from .query import HybridQueryEngine
from .ranker import (
    Candidate,
    RankedChunk,
    compute_overlap_score,
    cosine_similarity,
    merge_and_rerank,
    normalize_bm25_rank,
    normalize_snippet,
)

__all__ = [
    "HybridQueryEngine",
    "Candidate",
    "RankedChunk",
    "compute_overlap_score",
    "cosine_similarity",
    "merge_and_rerank",
    "normalize_bm25_rank",
    "normalize_snippet",
]
