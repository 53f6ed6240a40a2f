"""
Incremental workspace synchronization.

A pass walks the workspace, diffs the discovered notes against stored file
metadata, and applies metadata updates, re-indexing and deletions in one
transaction. Passes are scheduled with debouncing and are cancelled
cooperatively through a per-workspace generation counter: a pass that
captured an older generation stops at its next suspension point without
touching the store.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass

from .chunker import NoteChunker
from ..config import DEFAULT_SETTINGS, IndexSettings
from ..embeddings import EmbeddingProvider, HashingEmbeddingProvider
from ..fs import NoteFile, list_note_files, read_note_file
from ..redaction import redact_sensitive_content
from ..storage import (
    ChunkRecord,
    FileRecord,
    ParsedChunkCache,
    StorageBackend,
    make_chunk_id,
    make_content_hash,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Summary output for a synchronization pass."""

    workspace_id: str
    reindexed_files: int = 0
    metadata_updates: int = 0
    deleted_files: int = 0
    chunks_written: int = 0
    skipped: bool = False
    failed: bool = False

    @property
    def index_changed(self) -> bool:
        return self.reindexed_files > 0 or self.deleted_files > 0


@dataclass(frozen=True)
class _PendingReindex:
    file: NoteFile
    content: str
    content_hash: str


def _now_ms() -> int:
    return int(time.time() * 1000)


class WorkspaceSynchronizer:
    """Keep the stored index of a workspace's notes in step with the disk."""

    def __init__(
        self,
        storage: StorageBackend,
        cache: ParsedChunkCache,
        chunker: NoteChunker | None = None,
        embedding_provider: EmbeddingProvider | None = None,
        settings: IndexSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.storage = storage
        self.cache = cache
        self.settings = settings
        self.chunker = chunker or NoteChunker(
            target_chars=settings.target_chunk_chars,
            min_chars=settings.min_chunk_chars,
            overlap_lines=settings.overlap_lines,
        )
        self.embedding_provider = embedding_provider or HashingEmbeddingProvider(
            dim=settings.vector_dims
        )
        self._last_sync: dict[str, float] = {}
        self._generations: dict[str, int] = {}
        self._scheduled: dict[str, asyncio.TimerHandle] = {}
        self._pending: dict[str, asyncio.Task[SyncResult]] = {}

    def current_generation(self, workspace_id: str) -> int:
        return self._generations.get(workspace_id, 0)

    def bump_generation(self, workspace_id: str) -> int:
        generation = self.current_generation(workspace_id) + 1
        self._generations[workspace_id] = generation
        return generation

    def is_sync_outstanding(self, workspace_id: str) -> bool:
        return workspace_id in self._scheduled or workspace_id in self._pending

    def schedule_sync(self, workspace_id: str, workspace_path: str, force: bool = False) -> None:
        """Request an eventual pass without blocking the caller.

        At most one pass per workspace is scheduled or running at a time;
        further requests are no-ops until it finishes.
        """
        if not workspace_path or not os.path.exists(workspace_path):
            return
        if self.is_sync_outstanding(workspace_id):
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; not scheduling sync for %s", workspace_id)
            return

        delay = self._schedule_delay(workspace_id, force=force)
        generation = self.current_generation(workspace_id)
        self._scheduled[workspace_id] = loop.call_later(
            delay,
            self._enqueue_sync,
            workspace_id,
            workspace_path,
            force,
            generation,
        )

    async def sync_workspace(
        self,
        workspace_id: str,
        workspace_path: str,
        force: bool = False,
        generation: int | None = None,
    ) -> SyncResult:
        """Run one synchronization pass.

        Safe to call directly. When *generation* is given and no longer
        current, the pass stops before committing anything.
        """
        if self._is_stale(workspace_id, generation):
            return SyncResult(workspace_id=workspace_id, skipped=True)
        if not workspace_path or not os.path.exists(workspace_path):
            return SyncResult(workspace_id=workspace_id, skipped=True)

        now = time.monotonic()
        last_sync = self._last_sync.get(workspace_id)
        if (
            not force
            and last_sync is not None
            and now - last_sync < self.settings.sync_debounce_seconds
        ):
            return SyncResult(workspace_id=workspace_id, skipped=True)
        self._last_sync[workspace_id] = now

        try:
            return await self._run_pass(workspace_id, workspace_path, generation)
        except Exception as exc:
            logger.warning("Failed to sync notes index for %s: %s", workspace_id, exc)
            return SyncResult(workspace_id=workspace_id, failed=True)

    def forget_workspace(self, workspace_id: str) -> None:
        """Abort outstanding work for a workspace and drop its sync state."""
        self.bump_generation(workspace_id)
        timer = self._scheduled.pop(workspace_id, None)
        if timer is not None:
            timer.cancel()
        self._last_sync.pop(workspace_id, None)

    def shutdown(self) -> None:
        for timer in self._scheduled.values():
            timer.cancel()
        workspace_ids = (
            set(self._scheduled)
            | set(self._last_sync)
            | set(self._pending)
            | set(self._generations)
        )
        self._scheduled.clear()
        for workspace_id in workspace_ids:
            self.bump_generation(workspace_id)
        self._pending.clear()
        self._last_sync.clear()

    async def _run_pass(
        self,
        workspace_id: str,
        workspace_path: str,
        generation: int | None,
    ) -> SyncResult:
        stale = SyncResult(workspace_id=workspace_id, skipped=True)

        discovered = await list_note_files(workspace_path, self.settings)
        if self._is_stale(workspace_id, generation):
            return stale
        discovered_paths = {note.rel_path for note in discovered}

        existing = {
            record.path: record
            for record in self.storage.list_files(workspace_id=workspace_id)
        }
        metadata_only: list[NoteFile] = []
        to_reindex: list[_PendingReindex] = []

        for note in discovered:
            if self._is_stale(workspace_id, generation):
                return stale

            previous = existing.get(note.rel_path)
            if previous is not None and previous.mtime == note.mtime and previous.size == note.size:
                continue

            try:
                content = await read_note_file(note.abs_path)
            except OSError as exc:
                logger.debug("Skipping unreadable note %s: %s", note.abs_path, exc)
                continue
            if self._is_stale(workspace_id, generation):
                return stale

            content_hash = make_content_hash(content)
            if previous is not None and previous.content_hash == content_hash:
                metadata_only.append(note)
                continue
            to_reindex.append(
                _PendingReindex(file=note, content=content, content_hash=content_hash)
            )

        if self._is_stale(workspace_id, generation):
            return stale

        removed_paths = sorted(path for path in existing if path not in discovered_paths)
        if not metadata_only and not to_reindex and not removed_paths:
            return SyncResult(workspace_id=workspace_id)

        updated_at = _now_ms()
        chunks_written = 0
        with self.storage.transaction():
            for note in metadata_only:
                self.storage.update_file_metadata(
                    workspace_id=workspace_id,
                    path=note.rel_path,
                    mtime=note.mtime,
                    size=note.size,
                    updated_at=updated_at,
                )
            for item in to_reindex:
                chunks = self._build_chunks(workspace_id, item, updated_at)
                self.storage.replace_file(
                    FileRecord(
                        workspace_id=workspace_id,
                        path=item.file.rel_path,
                        content_hash=item.content_hash,
                        mtime=item.file.mtime,
                        size=item.file.size,
                        updated_at=updated_at,
                    ),
                    chunks,
                )
                chunks_written += len(chunks)
            for path in removed_paths:
                self.storage.delete_file(workspace_id=workspace_id, path=path)

        result = SyncResult(
            workspace_id=workspace_id,
            reindexed_files=len(to_reindex),
            metadata_updates=len(metadata_only),
            deleted_files=len(removed_paths),
            chunks_written=chunks_written,
        )
        if result.index_changed:
            self.cache.invalidate(workspace_id)
            self.storage.refresh_fts_index()
            logger.info(
                "Synced notes index for %s: %d reindexed, %d removed, %d chunks",
                workspace_id,
                result.reindexed_files,
                result.deleted_files,
                result.chunks_written,
            )
        return result

    def _build_chunks(
        self,
        workspace_id: str,
        item: _PendingReindex,
        updated_at: int,
    ) -> list[ChunkRecord]:
        segments: list[tuple[int, int, str]] = []
        for chunk in self.chunker.chunk_text(item.content):
            text = redact_sensitive_content(chunk.text).strip()
            if text:
                segments.append((chunk.start_line, chunk.end_line, text))
        if not segments:
            return []

        embeddings = self.embedding_provider.embed_texts([text for _, _, text in segments])
        return [
            ChunkRecord(
                id=make_chunk_id(
                    workspace_id,
                    item.file.rel_path,
                    start_line,
                    end_line,
                    item.content_hash,
                ),
                workspace_id=workspace_id,
                path=item.file.rel_path,
                start_line=start_line,
                end_line=end_line,
                text=text,
                embedding=embedding,
                mtime=item.file.mtime,
                updated_at=updated_at,
            )
            for (start_line, end_line, text), embedding in zip(segments, embeddings)
        ]

    def _schedule_delay(self, workspace_id: str, *, force: bool) -> float:
        if force:
            return 0.0
        last_sync = self._last_sync.get(workspace_id)
        if last_sync is None:
            return self.settings.async_sync_delay_seconds
        elapsed = time.monotonic() - last_sync
        if elapsed >= self.settings.sync_debounce_seconds:
            return self.settings.async_sync_delay_seconds
        return min(
            self.settings.async_sync_max_delay_seconds,
            self.settings.sync_debounce_seconds - elapsed,
        )

    def _enqueue_sync(
        self,
        workspace_id: str,
        workspace_path: str,
        force: bool,
        generation: int,
    ) -> None:
        self._scheduled.pop(workspace_id, None)
        if workspace_id in self._pending or self._is_stale(workspace_id, generation):
            return

        task = asyncio.get_running_loop().create_task(
            self.sync_workspace(workspace_id, workspace_path, force, generation)
        )
        self._pending[workspace_id] = task
        task.add_done_callback(lambda done: self._on_sync_done(workspace_id, done))

    def _on_sync_done(self, workspace_id: str, task: asyncio.Task[SyncResult]) -> None:
        if self._pending.get(workspace_id) is task:
            del self._pending[workspace_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background notes sync failed for %s: %s", workspace_id, exc)

    def _is_stale(self, workspace_id: str, generation: int | None) -> bool:
        return generation is not None and generation != self.current_generation(workspace_id)
