"""
Configuration helpers for the notes index.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


DEFAULT_DB_PATH = "~/.notes_memory/index.duckdb"
ENV_DB_PATH = "NOTES_MEMORY_DB_PATH"

NOTE_EXTENSIONS: frozenset[str] = frozenset({".md", ".markdown"})
IGNORED_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        "node_modules",
        "dist",
        "build",
        "coverage",
        ".next",
        ".turbo",
        ".cache",
        ".idea",
        ".vscode",
        "release",
    }
)


@dataclass(frozen=True)
class IndexSettings:
    """Tunables shared by the chunker, synchronizer and retrieval engine."""

    sync_debounce_seconds: float = 15.0
    async_sync_delay_seconds: float = 0.25
    async_sync_max_delay_seconds: float = 1.5
    max_indexed_file_bytes: int = 2 * 1024 * 1024
    target_chunk_chars: int = 800
    min_chunk_chars: int = 220
    overlap_lines: int = 2
    vector_dims: int = 256
    max_snippet_chars: int = 700
    search_candidate_multiplier: int = 4
    vector_weight: float = 0.55
    text_weight: float = 0.45
    hybrid_weight: float = 0.75
    rerank_weight: float = 0.25
    max_query_terms: int = 8
    note_extensions: frozenset[str] = NOTE_EXTENSIONS
    ignored_dirs: frozenset[str] = IGNORED_DIRS


DEFAULT_SETTINGS = IndexSettings()


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from an explicit override, env var, or default.

    Precedence:
    1) explicit override_path
    2) NOTES_MEMORY_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)
