"""
Per-workspace cache of decoded chunk rows for the vector search path.
"""

from __future__ import annotations

from dataclasses import dataclass

from .base import ChunkRecord, StorageBackend


@dataclass(frozen=True)
class _CacheEntry:
    signature: str
    chunks: list[ChunkRecord]


class ParsedChunkCache:
    """
    Reuse decoded chunks until the workspace's chunk signature changes.

    The signature (row count plus newest ``updated_at``) comes from one
    aggregate query; the full table is re-read only on a mismatch. Writers
    must still call ``invalidate`` after committing, since distinct mutation
    sequences can in principle leave the signature unchanged.
    """

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage
        self._entries: dict[str, _CacheEntry] = {}

    def get(self, workspace_id: str) -> list[ChunkRecord]:
        signature = self.storage.chunk_signature(workspace_id=workspace_id)
        cached = self._entries.get(workspace_id)
        if cached is not None and cached.signature == signature:
            return cached.chunks

        chunks = self.storage.load_chunks(workspace_id=workspace_id)
        self._entries[workspace_id] = _CacheEntry(signature=signature, chunks=chunks)
        return chunks

    def invalidate(self, workspace_id: str) -> None:
        self._entries.pop(workspace_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, workspace_id: object) -> bool:
        return workspace_id in self._entries
