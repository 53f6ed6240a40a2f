"""Tests for the public index facade: browsing, maintenance and background sync."""

from __future__ import annotations

import asyncio
import math
import os
from pathlib import Path

import pytest

from conftest import write_note
from notes_memory import NotesMemoryIndex
from notes_memory.storage import DuckDBStorage, FileRecord

WS = "ws-1"


async def _wait_for_idle(index: NotesMemoryIndex, workspace_id: str, timeout: float = 5.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while index.synchronizer.is_sync_outstanding(workspace_id):
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("background sync did not finish")
        await asyncio.sleep(0.02)


def _uniform_note(line_count: int) -> str:
    # 61 chars per line with the newline, so every chunk spans 14 lines.
    return "\n".join(f"row {i:04d} " + "x" * 51 for i in range(line_count))


# ---------------------------------------------------------------------------
# Recent snippets
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_recent_snippets_newest_first(index: NotesMemoryIndex, workspace: Path) -> None:
    write_note(workspace, "old.md", "# Old\n\nolder note", mtime=1_600_000_000)
    write_note(workspace, "new.md", "# New\n\nnewer   note\n\nwith text", mtime=1_700_000_000)
    await index.sync_workspace(WS, str(workspace), force=True)

    results = index.get_recent_snippets(WS, str(workspace), limit=1)

    assert len(results) == 1
    assert results[0].path == "new.md"
    assert results[0].relevance_score == 0.5
    assert results[0].created_at == 1_700_000_000_000
    assert results[0].snippet == "# New newer note with text"
    assert [r.path for r in index.get_recent_snippets(WS, str(workspace), limit=5)] == [
        "new.md",
        "old.md",
    ]
    assert index.get_recent_snippets(WS, str(workspace), limit=0) == []


# ---------------------------------------------------------------------------
# Cleanup and clearing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cleanup_removes_entries_for_deleted_files(
    index: NotesMemoryIndex,
    storage: DuckDBStorage,
    workspace: Path,
) -> None:
    write_note(workspace, "keep.md", "# Keep\n\nstill here")
    gone = write_note(workspace, "gone.md", "# Gone\n\nabout to vanish")
    await index.sync_workspace(WS, str(workspace), force=True)
    gone_ids = [
        f"md:{chunk.id}" for chunk in storage.load_chunks(workspace_id=WS) if chunk.path == "gone.md"
    ]
    gone.unlink()

    removed = index.cleanup_missing_files(WS, str(workspace))

    assert removed == 1
    assert [r.path for r in index.get_recent_snippets(WS, str(workspace), limit=5)] == ["keep.md"]
    assert index.get_details(gone_ids) == []
    assert index.cleanup_missing_files(WS, str(workspace)) == 0


def test_cleanup_removes_paths_outside_workspace(
    index: NotesMemoryIndex,
    storage: DuckDBStorage,
    tmp_path: Path,
    workspace: Path,
) -> None:
    write_note(tmp_path, "outside.md", "# escaped")
    storage.replace_file(
        FileRecord(
            workspace_id=WS, path="../outside.md", content_hash="h", mtime=1, size=1, updated_at=1
        ),
        [],
    )

    assert index.cleanup_missing_files(WS, str(workspace)) == 1
    assert storage.list_files(workspace_id=WS) == []


def test_cleanup_with_missing_workspace_is_a_no_op(index: NotesMemoryIndex, tmp_path: Path) -> None:
    assert index.cleanup_missing_files(WS, str(tmp_path / "absent")) == 0
    assert index.cleanup_missing_files(WS, "") == 0


@pytest.mark.asyncio
async def test_clear_workspace_removes_everything(
    index: NotesMemoryIndex,
    workspace: Path,
) -> None:
    write_note(workspace, "a.md", "# Alpha\n\nalpha notes")
    await index.sync_workspace(WS, str(workspace), force=True)
    generation = index.synchronizer.current_generation(WS)

    index.clear_workspace(WS)

    assert index.synchronizer.current_generation(WS) == generation + 1
    assert index.get_recent_snippets(WS, str(workspace)) == []
    assert index.search(WS, str(workspace), "alpha") == []


# ---------------------------------------------------------------------------
# Ids, timeline and details
# ---------------------------------------------------------------------------


def test_is_memory_id(index: NotesMemoryIndex) -> None:
    assert index.is_memory_id("md:abc")
    assert index.is_memory_id("  md:abc ")
    assert not index.is_memory_id("abc")
    assert not index.is_memory_id("md:")
    assert not index.is_memory_id("")


@pytest.mark.asyncio
async def test_timeline_returns_neighbours_in_line_order(
    index: NotesMemoryIndex,
    storage: DuckDBStorage,
    workspace: Path,
) -> None:
    write_note(workspace, "log.md", _uniform_note(70))
    await index.sync_workspace(WS, str(workspace), force=True)
    chunks = sorted(storage.load_chunks(workspace_id=WS), key=lambda chunk: chunk.start_line)
    assert len(chunks) >= 5

    middle = chunks[2]
    timeline = index.get_timeline_context(f"md:{middle.id}", window_size=1)

    assert [entry.id for entry in timeline] == [f"md:{chunk.id}" for chunk in chunks[1:4]]
    assert timeline[1].content == middle.text

    full = index.get_timeline_context(f"md:{middle.id}")
    assert len(full) == min(len(chunks), 11)


def test_timeline_with_unknown_ids(index: NotesMemoryIndex) -> None:
    assert index.get_timeline_context("abc") == []
    assert index.get_timeline_context("md:does-not-exist") == []


@pytest.mark.asyncio
async def test_details_keep_input_order_and_skip_unknown(
    index: NotesMemoryIndex,
    storage: DuckDBStorage,
    workspace: Path,
) -> None:
    write_note(workspace, "a.md", "# Alpha\n\nalpha notes")
    write_note(workspace, "b.md", "# Beta\n\nbeta notes and more")
    await index.sync_workspace(WS, str(workspace), force=True)
    by_path = {chunk.path: chunk for chunk in storage.load_chunks(workspace_id=WS)}
    a, b = by_path["a.md"], by_path["b.md"]

    details = index.get_details([f"md:{b.id}", "bogus", "md:missing", f"md:{a.id}", f"md:{b.id}"])

    assert [detail.id for detail in details] == [f"md:{b.id}", f"md:{a.id}", f"md:{b.id}"]
    first = details[0]
    assert first.workspace_id == WS
    assert first.content == b.text
    assert first.summary == f"b.md#L{b.start_line}-{b.end_line}"
    assert first.tokens == math.ceil(len(b.text) / 4)
    assert first.is_compressed and not first.is_private
    assert first.type == "summary"
    assert index.get_details([]) == []


def test_token_estimator_is_injectable(storage: DuckDBStorage) -> None:
    index = NotesMemoryIndex(storage, token_estimator=lambda text: 42)
    assert index.token_estimator("anything") == 42


# ---------------------------------------------------------------------------
# Background sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_serves_stale_results_then_syncs(
    fast_index: NotesMemoryIndex,
    workspace: Path,
) -> None:
    write_note(workspace, "a.md", "# Alpha\n\nalpha notes about kestrels")

    assert fast_index.search(WS, str(workspace), "kestrels") == []
    assert fast_index.synchronizer.is_sync_outstanding(WS)

    await _wait_for_idle(fast_index, WS)

    results = fast_index.search(WS, str(workspace), "kestrels")
    assert [result.path for result in results] == ["a.md"]


@pytest.mark.asyncio
async def test_repeated_schedule_collapses_to_one_pass(
    fast_index: NotesMemoryIndex,
    workspace: Path,
    monkeypatch,
) -> None:
    write_note(workspace, "a.md", "alpha")
    passes = []
    real_run_pass = fast_index.synchronizer._run_pass

    async def counting_run_pass(*args, **kwargs):
        passes.append(args[0])
        return await real_run_pass(*args, **kwargs)

    monkeypatch.setattr(fast_index.synchronizer, "_run_pass", counting_run_pass)
    for _ in range(5):
        fast_index.schedule_sync(WS, str(workspace))

    await _wait_for_idle(fast_index, WS)

    assert passes == [WS]


@pytest.mark.asyncio
async def test_clear_workspace_cancels_scheduled_sync(
    fast_index: NotesMemoryIndex,
    storage: DuckDBStorage,
    workspace: Path,
) -> None:
    write_note(workspace, "a.md", "alpha")

    fast_index.schedule_sync(WS, str(workspace))
    fast_index.clear_workspace(WS)
    assert not fast_index.synchronizer.is_sync_outstanding(WS)

    await asyncio.sleep(0.1)
    assert storage.list_files(workspace_id=WS) == []


@pytest.mark.asyncio
async def test_shutdown_stops_background_work_but_keeps_data(
    fast_index: NotesMemoryIndex,
    storage: DuckDBStorage,
    workspace: Path,
) -> None:
    write_note(workspace, "a.md", "alpha")
    await fast_index.sync_workspace(WS, str(workspace), force=True)
    write_note(workspace, "b.md", "beta")

    fast_index.schedule_sync(WS, str(workspace), force=True)
    fast_index.shutdown()
    await asyncio.sleep(0.1)

    assert not fast_index.synchronizer.is_sync_outstanding(WS)
    assert [record.path for record in storage.list_files(workspace_id=WS)] == ["a.md"]


def test_schedule_without_event_loop_is_a_no_op(index: NotesMemoryIndex, workspace: Path) -> None:
    write_note(workspace, "a.md", "alpha")

    index.schedule_sync(WS, str(workspace))

    assert not index.synchronizer.is_sync_outstanding(WS)


def test_schedule_for_missing_workspace_is_ignored(index: NotesMemoryIndex, tmp_path: Path) -> None:
    index.schedule_sync(WS, str(tmp_path / "absent"))
    assert not index.synchronizer.is_sync_outstanding(WS)


def test_open_resolves_path_from_environment(tmp_path: Path, monkeypatch) -> None:
    db_path = tmp_path / "nested" / "notes.duckdb"
    monkeypatch.setenv("NOTES_MEMORY_DB_PATH", str(db_path))

    index = NotesMemoryIndex.open()
    try:
        assert os.path.exists(db_path)
    finally:
        index.close()
