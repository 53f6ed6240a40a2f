"""
Chunking utilities for indexing note content.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config import DEFAULT_SETTINGS


@dataclass(frozen=True)
class TextChunk:
    """A content chunk with 1-based inclusive line bounds."""

    start_line: int
    end_line: int
    text: str


class NoteChunker:
    """
    Line-based chunker that prefers ending at blank or heading lines.

    A chunk closes once it reaches ``target_chars``, or earlier at a boundary
    line once it holds at least ``min_chars``. Consecutive chunks share up to
    ``overlap_lines`` lines.
    """

    def __init__(
        self,
        target_chars: int = DEFAULT_SETTINGS.target_chunk_chars,
        min_chars: int = DEFAULT_SETTINGS.min_chunk_chars,
        overlap_lines: int = DEFAULT_SETTINGS.overlap_lines,
    ) -> None:
        if target_chars <= 0:
            raise ValueError("target_chars must be > 0")
        if min_chars < 0:
            raise ValueError("min_chars must be >= 0")
        if min_chars > target_chars:
            raise ValueError("min_chars must not exceed target_chars")
        if overlap_lines < 0:
            raise ValueError("overlap_lines must be >= 0")

        self.target_chars = target_chars
        self.min_chars = min_chars
        self.overlap_lines = overlap_lines

    def chunk_text(self, text: str) -> list[TextChunk]:
        if not text.strip():
            return []

        lines = text.split("\n")
        total = len(lines)
        chunks: list[TextChunk] = []
        cursor = 0

        while cursor < total:
            end = cursor
            chars = 0
            while end < total:
                line = lines[end]
                chars += len(line) + 1
                end += 1
                if chars >= self.target_chars:
                    break
                if self._is_boundary(line) and chars >= self.min_chars:
                    break

            chunk_text = "\n".join(lines[cursor:end]).strip()
            if chunk_text:
                chunks.append(TextChunk(start_line=cursor + 1, end_line=end, text=chunk_text))

            if end >= total:
                break
            cursor = max(cursor + 1, end - self.overlap_lines)

        return chunks

    @staticmethod
    def _is_boundary(line: str) -> bool:
        return line.strip() == "" or line.lstrip().startswith("#")


def chunk_note_text(text: str) -> list[TextChunk]:
    """Chunk *text* with the default settings."""
    return NoteChunker().chunk_text(text)
