"""
notes_memory - retrieval index over a workspace's note files.

This package indexes the markdown notes of a workspace into a DuckDB store
and serves hybrid lexical + vector search over them, with a model-free
embedding so indexing never needs network access.

Example usage:
    >>> from notes_memory import NotesMemoryIndex
    >>> index = NotesMemoryIndex.open("/tmp/notes.duckdb")
    >>> await index.sync_workspace("ws-1", "/path/to/workspace", force=True)
    >>> index.search("ws-1", "/path/to/workspace", "release checklist", limit=5)
"""

from .config import IndexSettings, resolve_db_path
from .embeddings import EmbeddingProvider, HashingEmbeddingProvider
from .indexing import NoteChunker, SyncResult, TextChunk, WorkspaceSynchronizer
from .models import MemoryDetail, MemorySearchResult, MemoryTimelineEntry
from .redaction import redact_sensitive_content
from .search import HybridQueryEngine
from .service import NotesMemoryIndex
from .storage import DuckDBStorage, ParsedChunkCache, StorageBackend

__all__ = [
    # Facade
    "NotesMemoryIndex",
    # Components
    "DuckDBStorage",
    "StorageBackend",
    "ParsedChunkCache",
    "WorkspaceSynchronizer",
    "SyncResult",
    "HybridQueryEngine",
    "NoteChunker",
    "TextChunk",
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "redact_sensitive_content",
    # Models
    "MemorySearchResult",
    "MemoryTimelineEntry",
    "MemoryDetail",
    # Config
    "IndexSettings",
    "resolve_db_path",
]
