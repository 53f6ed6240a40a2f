"""
Public facade over the notes index.

Read operations serve whatever is currently stored and schedule a background
sync as a side effect, so results may lag the disk by one pass.
"""

from __future__ import annotations

import logging
import math
import os
from typing import Callable

from .config import DEFAULT_SETTINGS, IndexSettings, resolve_db_path
from .embeddings import EmbeddingProvider, HashingEmbeddingProvider
from .fs import resolve_workspace_file
from .indexing import NoteChunker, SyncResult, WorkspaceSynchronizer
from .models import (
    MemoryDetail,
    MemorySearchResult,
    MemoryTimelineEntry,
    normalize_memory_id,
    to_memory_id,
)
from .search import HybridQueryEngine, normalize_snippet
from .storage import DuckDBStorage, ParsedChunkCache, StorageBackend

logger = logging.getLogger(__name__)

_RECENT_SNIPPET_RELEVANCE = 0.5


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


class NotesMemoryIndex:
    """Search, browse and maintain the per-workspace index of note files."""

    def __init__(
        self,
        storage: StorageBackend,
        *,
        settings: IndexSettings = DEFAULT_SETTINGS,
        embedding_provider: EmbeddingProvider | None = None,
        chunker: NoteChunker | None = None,
        token_estimator: Callable[[str], int] | None = None,
    ) -> None:
        self.storage = storage
        self.settings = settings
        self.token_estimator = token_estimator or estimate_tokens
        provider = embedding_provider or HashingEmbeddingProvider(dim=settings.vector_dims)
        self.cache = ParsedChunkCache(storage)
        self.synchronizer = WorkspaceSynchronizer(
            storage,
            self.cache,
            chunker=chunker,
            embedding_provider=provider,
            settings=settings,
        )
        self.query_engine = HybridQueryEngine(
            storage,
            self.cache,
            embedding_provider=provider,
            settings=settings,
        )

    @classmethod
    def open(cls, db_path: str | None = None, **kwargs) -> NotesMemoryIndex:
        """Open (or create) a DuckDB-backed index at the resolved path."""
        return cls(DuckDBStorage(resolve_db_path(db_path)), **kwargs)

    def search(
        self,
        workspace_id: str,
        workspace_path: str,
        query: str,
        limit: int = 10,
    ) -> list[MemorySearchResult]:
        if limit <= 0:
            return []
        trimmed = query.strip()
        if not trimmed:
            return []

        self.schedule_sync(workspace_id, workspace_path)
        ranked = self.query_engine.search(workspace_id=workspace_id, query=trimmed, limit=limit)
        return [
            MemorySearchResult(
                id=to_memory_id(chunk.id),
                snippet=chunk.snippet,
                relevance_score=min(1.0, max(0.0, chunk.score)),
                created_at=chunk.created_at,
                path=chunk.path,
                start_line=chunk.start_line,
                end_line=chunk.end_line,
            )
            for chunk in ranked
        ]

    def get_recent_snippets(
        self,
        workspace_id: str,
        workspace_path: str,
        limit: int = 3,
    ) -> list[MemorySearchResult]:
        """Return the first chunk of each of the most recently modified notes."""
        if limit <= 0:
            return []
        self.schedule_sync(workspace_id, workspace_path)

        results: list[MemorySearchResult] = []
        for file in self.storage.recent_files(workspace_id=workspace_id, limit=limit):
            chunk = self.storage.first_chunk(workspace_id=workspace_id, path=file["path"])
            if chunk is None:
                continue
            results.append(
                MemorySearchResult(
                    id=to_memory_id(chunk["id"]),
                    snippet=normalize_snippet(chunk["text"], self.settings.max_snippet_chars),
                    relevance_score=_RECENT_SNIPPET_RELEVANCE,
                    created_at=chunk["mtime"],
                    path=chunk["path"],
                    start_line=chunk["start_line"],
                    end_line=chunk["end_line"],
                )
            )
        return results

    def schedule_sync(self, workspace_id: str, workspace_path: str, force: bool = False) -> None:
        self.synchronizer.schedule_sync(workspace_id, workspace_path, force=force)

    async def sync_workspace(
        self,
        workspace_id: str,
        workspace_path: str,
        force: bool = False,
        generation: int | None = None,
    ) -> SyncResult:
        return await self.synchronizer.sync_workspace(
            workspace_id, workspace_path, force=force, generation=generation
        )

    def clear_workspace(self, workspace_id: str) -> None:
        """Abort pending syncs and delete every indexed row of a workspace."""
        self.synchronizer.forget_workspace(workspace_id)
        self.storage.clear_workspace(workspace_id=workspace_id)
        self.cache.invalidate(workspace_id)

    def cleanup_missing_files(self, workspace_id: str, workspace_path: str) -> int:
        """Drop index entries whose backing file is gone. Returns the number removed."""
        if not workspace_path or not os.path.exists(workspace_path):
            return 0

        indexed = self.storage.list_files(workspace_id=workspace_id)
        if not indexed:
            return 0

        removed = 0
        with self.storage.transaction():
            for record in indexed:
                abs_path = resolve_workspace_file(workspace_path, record.path)
                if abs_path is None or not os.path.exists(abs_path):
                    self.storage.delete_file(workspace_id=workspace_id, path=record.path)
                    removed += 1

        if removed:
            self.cache.invalidate(workspace_id)
            self.storage.refresh_fts_index()
            logger.info("Removed %d missing notes from index %s", removed, workspace_id)
        return removed

    def is_memory_id(self, memory_id: str) -> bool:
        return normalize_memory_id(memory_id) is not None

    def get_timeline_context(
        self,
        memory_id: str,
        window_size: int = 5,
    ) -> list[MemoryTimelineEntry]:
        """Return up to ``2 * window_size + 1`` chunks around *memory_id*, in line order."""
        chunk_id = normalize_memory_id(memory_id)
        if chunk_id is None:
            return []
        current = self.storage.get_chunk(chunk_id=chunk_id)
        if current is None:
            return []

        around = self.storage.chunks_near_line(
            workspace_id=current["workspace_id"],
            path=current["path"],
            line=current["start_line"],
            limit=max(0, window_size) * 2 + 1,
        )
        around.sort(key=lambda row: row["start_line"])
        return [
            MemoryTimelineEntry(
                id=to_memory_id(row["id"]),
                content=row["text"],
                created_at=row["mtime"],
            )
            for row in around
        ]

    def get_details(self, memory_ids: list[str]) -> list[MemoryDetail]:
        """Resolve prefixed ids to full records, in input order, skipping unknown ids."""
        chunk_ids = [
            chunk_id
            for chunk_id in (normalize_memory_id(memory_id) for memory_id in memory_ids)
            if chunk_id is not None
        ]
        if not chunk_ids:
            return []

        by_id = {
            row["id"]: row
            for row in self.storage.get_chunks(chunk_ids=list(dict.fromkeys(chunk_ids)))
        }
        details: list[MemoryDetail] = []
        for chunk_id in chunk_ids:
            row = by_id.get(chunk_id)
            if row is None:
                continue
            details.append(
                MemoryDetail(
                    id=to_memory_id(row["id"]),
                    workspace_id=row["workspace_id"],
                    content=row["text"],
                    summary=f"{row['path']}#L{row['start_line']}-{row['end_line']}",
                    tokens=self.token_estimator(row["text"]),
                    created_at=row["mtime"],
                    updated_at=row["updated_at"],
                )
            )
        return details

    def shutdown(self) -> None:
        """Stop all background work and drop in-memory state; stored rows are kept."""
        self.synchronizer.shutdown()
        self.cache.clear()

    def close(self) -> None:
        self.shutdown()
        self.storage.close()
