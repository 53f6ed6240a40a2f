"""Indexing components for the notes index."""

from .chunker import NoteChunker, TextChunk, chunk_note_text
from .sync import SyncResult, WorkspaceSynchronizer

__all__ = [
    "NoteChunker",
    "TextChunk",
    "chunk_note_text",
    "SyncResult",
    "WorkspaceSynchronizer",
]
