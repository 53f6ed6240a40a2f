from pathlib import Path

import pytest

from conftest import write_note
from notes_memory.config import IndexSettings
from notes_memory.fs import list_note_files, read_note_file, resolve_workspace_file


@pytest.mark.asyncio
async def test_list_note_files_walks_and_filters(workspace: Path) -> None:
    write_note(workspace, "b.md", "b")
    write_note(workspace, "a/nested/deep.MD", "deep")
    write_note(workspace, "a/notes.markdown", "notes")
    write_note(workspace, "dist/out.md", "built")
    write_note(workspace, ".vscode/settings.md", "ide")
    write_note(workspace, "image.png", "binary")

    notes = await list_note_files(str(workspace))

    assert [note.rel_path for note in notes] == ["a/nested/deep.MD", "a/notes.markdown", "b.md"]
    deep = notes[0]
    assert deep.abs_path == str(workspace / "a" / "nested" / "deep.MD")
    assert deep.size == 4
    assert deep.mtime == (workspace / "a" / "nested" / "deep.MD").stat().st_mtime_ns // 1_000_000


@pytest.mark.asyncio
async def test_list_note_files_honours_settings(workspace: Path) -> None:
    write_note(workspace, "keep.md", "x" * 10)
    write_note(workspace, "huge.md", "x" * 50)
    write_note(workspace, "custom/skip.md", "x")

    settings = IndexSettings(max_indexed_file_bytes=20, ignored_dirs=frozenset({"custom"}))
    notes = await list_note_files(str(workspace), settings)

    assert [note.rel_path for note in notes] == ["keep.md"]


@pytest.mark.asyncio
async def test_list_note_files_of_missing_directory(tmp_path: Path) -> None:
    assert await list_note_files(str(tmp_path / "absent")) == []


@pytest.mark.asyncio
async def test_read_note_file_replaces_invalid_utf8(tmp_path: Path) -> None:
    path = tmp_path / "bad.md"
    path.write_bytes(b"ok \xff done")

    content = await read_note_file(str(path))

    assert content.startswith("ok ")
    assert content.endswith(" done")
    assert "�" in content


def test_resolve_workspace_file_rejects_escapes(tmp_path: Path) -> None:
    root = str(tmp_path / "ws")

    assert resolve_workspace_file(root, "notes/a.md") == str(tmp_path / "ws" / "notes" / "a.md")
    assert resolve_workspace_file(root, "../other/a.md") is None
    assert resolve_workspace_file(root, "notes/../../a.md") is None
    assert resolve_workspace_file(root, ".") is None
    assert resolve_workspace_file(root, str(tmp_path / "elsewhere.md")) is None
