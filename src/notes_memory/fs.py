"""
Filesystem helpers: note discovery and workspace-contained path resolution.

Every blocking call runs in a worker thread so the event loop can interleave
other scheduled work between directories, stats and reads.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_SETTINGS, IndexSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoteFile:
    """A discovered note file on disk."""

    abs_path: str
    rel_path: str
    mtime: int
    size: int


def _scan_dir(directory: str) -> list[tuple[str, bool, bool]]:
    with os.scandir(directory) as entries:
        return [
            (entry.name, entry.is_dir(follow_symlinks=False), entry.is_file())
            for entry in entries
        ]


async def list_note_files(
    workspace_path: str,
    settings: IndexSettings = DEFAULT_SETTINGS,
) -> list[NoteFile]:
    """Recursively list indexable note files under *workspace_path*, sorted by path."""
    root = os.path.abspath(workspace_path)
    found: list[NoteFile] = []
    stack = [root]

    while stack:
        current = stack.pop()
        try:
            entries = await asyncio.to_thread(_scan_dir, current)
        except OSError as exc:
            logger.debug("Skipping unreadable directory %s: %s", current, exc)
            continue

        for name, is_dir, is_file in entries:
            abs_path = os.path.join(current, name)
            if is_dir:
                if name not in settings.ignored_dirs:
                    stack.append(abs_path)
                continue
            if not is_file:
                continue
            if Path(name).suffix.lower() not in settings.note_extensions:
                continue

            try:
                stat = await asyncio.to_thread(os.stat, abs_path)
            except OSError as exc:
                logger.debug("Skipping unreadable file %s: %s", abs_path, exc)
                continue
            if stat.st_size > settings.max_indexed_file_bytes:
                continue

            rel_path = os.path.relpath(abs_path, root).replace(os.sep, "/")
            if not rel_path or rel_path.startswith(".."):
                continue

            found.append(
                NoteFile(
                    abs_path=abs_path,
                    rel_path=rel_path,
                    mtime=stat.st_mtime_ns // 1_000_000,
                    size=int(stat.st_size),
                )
            )

    found.sort(key=lambda note: note.rel_path)
    return found


async def read_note_file(abs_path: str) -> str:
    return await asyncio.to_thread(
        Path(abs_path).read_text, encoding="utf-8", errors="replace"
    )


def resolve_workspace_file(workspace_path: str, relative_path: str) -> str | None:
    """Resolve *relative_path* under the workspace root, or None if it escapes it."""
    root = os.path.abspath(workspace_path)
    candidate = os.path.abspath(os.path.join(root, relative_path))
    if candidate.startswith(root + os.sep):
        return candidate
    return None
