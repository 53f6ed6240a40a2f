"""
Hybrid lexical + vector retrieval over indexed note chunks.
"""

from __future__ import annotations

import logging
import math

from ..config import DEFAULT_SETTINGS, IndexSettings
from ..embeddings import EmbeddingProvider, HashingEmbeddingProvider, is_zero_vector
from ..storage import LexicalIndexUnavailable, ParsedChunkCache, StorageBackend
from ..tokens import build_fts_query, query_terms
from .ranker import (
    Candidate,
    RankedChunk,
    compute_overlap_score,
    cosine_similarity,
    merge_and_rerank,
    normalize_bm25_rank,
    normalize_snippet,
)

logger = logging.getLogger(__name__)


class HybridQueryEngine:
    """Retrieval engine combining a lexical path and a vector path."""

    def __init__(
        self,
        storage: StorageBackend,
        cache: ParsedChunkCache,
        embedding_provider: EmbeddingProvider | None = None,
        settings: IndexSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.storage = storage
        self.cache = cache
        self.settings = settings
        self.embedding_provider = embedding_provider or HashingEmbeddingProvider(
            dim=settings.vector_dims
        )

    def search(self, *, workspace_id: str, query: str, limit: int = 10) -> list[RankedChunk]:
        if limit <= 0:
            return []
        trimmed = query.strip()
        if not trimmed:
            return []

        candidate_limit = max(limit, limit * self.settings.search_candidate_multiplier)
        lexical = self.search_lexical(
            workspace_id=workspace_id, query=trimmed, limit=candidate_limit
        )
        vector = self.search_vector(
            workspace_id=workspace_id, query=trimmed, limit=candidate_limit
        )
        ranked = merge_and_rerank(trimmed, lexical, vector, settings=self.settings)
        return ranked[:limit]

    def search_lexical(self, *, workspace_id: str, query: str, limit: int) -> list[Candidate]:
        if not self.storage.fts_available:
            return self.search_lexical_fallback(
                workspace_id=workspace_id, query=query, limit=limit
            )
        fts_query = build_fts_query(query, self.settings.max_query_terms)
        if fts_query is None:
            return self.search_lexical_fallback(
                workspace_id=workspace_id, query=query, limit=limit
            )

        try:
            rows = self.storage.search_chunks_fts(
                workspace_id=workspace_id,
                fts_query=fts_query,
                limit=limit,
            )
        except LexicalIndexUnavailable as exc:
            logger.debug("Full-text search unavailable, falling back: %s", exc)
            return self.search_lexical_fallback(
                workspace_id=workspace_id, query=query, limit=limit
            )

        # Row order, not the raw bm25 value, keeps scores comparable across backends.
        return [
            Candidate(
                id=row["id"],
                path=row["path"],
                start_line=row["start_line"],
                end_line=row["end_line"],
                snippet=self._snippet(row["text"]),
                created_at=row["mtime"],
                text_score=normalize_bm25_rank(index),
            )
            for index, row in enumerate(rows)
        ]

    def search_lexical_fallback(
        self,
        *,
        workspace_id: str,
        query: str,
        limit: int,
    ) -> list[Candidate]:
        terms = query_terms(query, self.settings.max_query_terms)
        raw = query.strip()
        if not terms and not raw:
            return []

        rows = self.storage.search_chunks_like(
            workspace_id=workspace_id,
            patterns=terms or [raw],
            limit=limit * self.settings.search_candidate_multiplier,
        )
        candidates = [
            Candidate(
                id=row["id"],
                path=row["path"],
                start_line=row["start_line"],
                end_line=row["end_line"],
                snippet=self._snippet(row["text"]),
                created_at=row["mtime"],
                text_score=compute_overlap_score(query, row["path"], row["text"]),
            )
            for row in rows
        ]
        candidates.sort(key=lambda candidate: (-candidate.text_score, -candidate.created_at))
        return candidates[:limit]

    def search_vector(self, *, workspace_id: str, query: str, limit: int) -> list[Candidate]:
        query_embedding = self.embedding_provider.embed_query(query)
        if is_zero_vector(query_embedding):
            return []

        candidates: list[Candidate] = []
        for chunk in self.cache.get(workspace_id):
            score = cosine_similarity(query_embedding, chunk.embedding)
            candidates.append(
                Candidate(
                    id=chunk.id,
                    path=chunk.path,
                    start_line=chunk.start_line,
                    end_line=chunk.end_line,
                    snippet=self._snippet(chunk.text),
                    created_at=chunk.mtime,
                    vector_score=min(1.0, max(0.0, score)) if math.isfinite(score) else 0.0,
                )
            )
        candidates.sort(key=lambda candidate: -candidate.vector_score)
        return candidates[:limit]

    def _snippet(self, text: str) -> str:
        return normalize_snippet(text, self.settings.max_snippet_chars)
