"""Storage backends for the notes index."""

from .base import (
    ChunkRecord,
    FileRecord,
    LexicalIndexUnavailable,
    StorageBackend,
    make_chunk_id,
    make_content_hash,
    parse_embedding,
    serialize_embedding,
)
from .cache import ParsedChunkCache
from .duckdb import DuckDBStorage

__all__ = [
    "ChunkRecord",
    "FileRecord",
    "LexicalIndexUnavailable",
    "StorageBackend",
    "make_chunk_id",
    "make_content_hash",
    "parse_embedding",
    "serialize_embedding",
    "ParsedChunkCache",
    "DuckDBStorage",
]
