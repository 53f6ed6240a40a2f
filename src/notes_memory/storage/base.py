"""
Storage interfaces and data models for index persistence.
"""

from __future__ import annotations

import hashlib
import json
import math
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class FileRecord:
    """Per-file metadata used to detect changes between sync passes."""

    workspace_id: str
    path: str
    content_hash: str
    mtime: int
    size: int
    updated_at: int


@dataclass(frozen=True)
class ChunkRecord:
    """A redacted, embedded line range of an indexed file."""

    id: str
    workspace_id: str
    path: str
    start_line: int
    end_line: int
    text: str
    embedding: list[float]
    mtime: int
    updated_at: int


def _sha1(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()


def make_content_hash(content: str) -> str:
    return _sha1(content)


def make_chunk_id(
    workspace_id: str,
    path: str,
    start_line: int,
    end_line: int,
    content_hash: str,
) -> str:
    """Deterministic id: unchanged content at the same location keeps its id."""
    return _sha1(f"{workspace_id}:{path}:{start_line}:{end_line}:{content_hash}")


def serialize_embedding(embedding: list[float]) -> str:
    return json.dumps(embedding)


def parse_embedding(raw: Any) -> list[float]:
    """Decode a persisted embedding, returning [] for anything unparsable."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return []
    if not isinstance(raw, list):
        return []

    values: list[float] = []
    for item in raw:
        if isinstance(item, bool):
            continue
        try:
            value = float(item)
        except (TypeError, ValueError):
            continue
        if math.isfinite(value):
            values.append(value)
    return values


class StorageBackend(Protocol):
    """Protocol for persistence operations used by sync and retrieval."""

    fts_available: bool

    def close(self) -> None:
        """Release the underlying connection."""

    def transaction(self) -> AbstractContextManager[None]:
        """Run the enclosed statements atomically, rolling back on error."""

    def list_files(self, *, workspace_id: str) -> list[FileRecord]:
        """List per-file metadata for a workspace."""

    def update_file_metadata(
        self,
        *,
        workspace_id: str,
        path: str,
        mtime: int,
        size: int,
        updated_at: int,
    ) -> None:
        """Record an mtime/size change for a file whose content is unchanged."""

    def replace_file(self, file: FileRecord, chunks: list[ChunkRecord]) -> None:
        """Upsert a file's metadata and replace all of its chunks."""

    def delete_file(self, *, workspace_id: str, path: str) -> None:
        """Delete a file's metadata, chunks and lexical-index rows."""

    def clear_workspace(self, *, workspace_id: str) -> None:
        """Delete every row belonging to a workspace."""

    def refresh_fts_index(self) -> None:
        """Rebuild the ranked full-text index after committed mutations."""

    def chunk_signature(self, *, workspace_id: str) -> str:
        """Return a cheap fingerprint of a workspace's chunk rows."""

    def load_chunks(self, *, workspace_id: str) -> list[ChunkRecord]:
        """Load and decode every chunk of a workspace."""

    def search_chunks_fts(
        self,
        *,
        workspace_id: str,
        fts_query: str,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Ranked full-text search, best match first."""

    def search_chunks_like(
        self,
        *,
        workspace_id: str,
        patterns: list[str],
        limit: int,
    ) -> list[dict[str, Any]]:
        """Substring search OR-ed across patterns, newest first."""

    def recent_files(self, *, workspace_id: str, limit: int) -> list[dict[str, Any]]:
        """Return the most recently modified files of a workspace."""

    def first_chunk(self, *, workspace_id: str, path: str) -> dict[str, Any] | None:
        """Return the lowest-line chunk of a file."""

    def get_chunk(self, *, chunk_id: str) -> dict[str, Any] | None:
        """Fetch one chunk by id."""

    def get_chunks(self, *, chunk_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch chunks by id, in no particular order."""

    def chunks_near_line(
        self,
        *,
        workspace_id: str,
        path: str,
        line: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Return the chunks of a file whose start lines are closest to *line*."""


class LexicalIndexUnavailable(RuntimeError):
    """Raised when the ranked full-text index cannot serve a query."""
