"""Shared fixtures for the notes index tests."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest

from notes_memory import DuckDBStorage, IndexSettings, NotesMemoryIndex


def write_note(root: Path, rel_path: str, content: str, mtime: float | None = None) -> Path:
    """Write a note under *root*, optionally pinning its mtime (epoch seconds)."""
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def storage(tmp_path: Path) -> Iterator[DuckDBStorage]:
    # Substring search keeps these tests independent of the fts extension.
    backend = DuckDBStorage(str(tmp_path / "index.duckdb"), enable_fts=False)
    yield backend
    backend.close()


@pytest.fixture
def index(storage: DuckDBStorage) -> Iterator[NotesMemoryIndex]:
    service = NotesMemoryIndex(storage)
    yield service
    service.shutdown()


@pytest.fixture
def fast_index(storage: DuckDBStorage) -> Iterator[NotesMemoryIndex]:
    """An index whose background passes start almost immediately."""
    service = NotesMemoryIndex(
        storage,
        settings=IndexSettings(async_sync_delay_seconds=0.01, async_sync_max_delay_seconds=0.01),
    )
    yield service
    service.shutdown()
