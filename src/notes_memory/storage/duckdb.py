"""
DuckDB storage backend for index persistence.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import duckdb

from .base import (
    ChunkRecord,
    FileRecord,
    LexicalIndexUnavailable,
    parse_embedding,
    serialize_embedding,
)

logger = logging.getLogger(__name__)

_FTS_TABLE = "chunks_fts"
_FTS_PRAGMA = (
    f"PRAGMA create_fts_index('{_FTS_TABLE}', 'chunk_id', 'text', "
    "stemmer = 'none', stopwords = 'none', ignore = '[^a-z0-9_-]+', "
    "lower = 1, overwrite = 1)"
)
_CHUNK_COLUMNS = "id, workspace_id, path, start_line, end_line, text, mtime, updated_at"


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _chunk_row(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "workspace_id": str(row[1]),
        "path": str(row[2]),
        "start_line": int(row[3]),
        "end_line": int(row[4]),
        "text": str(row[5]),
        "mtime": int(row[6]),
        "updated_at": int(row[7]),
    }


class DuckDBStorage:
    """DuckDB-backed persistence for indexed files, chunks and the lexical index."""

    def __init__(
        self,
        db_path: str,
        *,
        enable_fts: bool = True,
        install_fts: bool = False,
    ) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = str(Path(db_path).expanduser().resolve())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self.db_path)
        self.fts_available = enable_fts and self._load_fts_extension(install=install_fts)
        self._fts_ready = False
        self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS files (
                workspace_id VARCHAR NOT NULL,
                path VARCHAR NOT NULL,
                content_hash VARCHAR NOT NULL,
                mtime BIGINT NOT NULL,
                size BIGINT NOT NULL,
                updated_at BIGINT NOT NULL,
                PRIMARY KEY (workspace_id, path)
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chunks (
                id VARCHAR PRIMARY KEY,
                workspace_id VARCHAR NOT NULL,
                path VARCHAR NOT NULL,
                start_line INTEGER NOT NULL,
                end_line INTEGER NOT NULL,
                text VARCHAR NOT NULL,
                embedding VARCHAR NOT NULL,
                mtime BIGINT NOT NULL,
                updated_at BIGINT NOT NULL
            );
            """
        )
        if self.fts_available:
            self._conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_FTS_TABLE} (
                    chunk_id VARCHAR NOT NULL,
                    workspace_id VARCHAR NOT NULL,
                    path VARCHAR NOT NULL,
                    start_line INTEGER NOT NULL,
                    end_line INTEGER NOT NULL,
                    text VARCHAR NOT NULL
                );
                """
            )
            self.refresh_fts_index()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._conn.execute("BEGIN TRANSACTION")
        try:
            yield
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def list_files(self, *, workspace_id: str) -> list[FileRecord]:
        rows = self._conn.execute(
            """
            SELECT workspace_id, path, content_hash, mtime, size, updated_at
            FROM files
            WHERE workspace_id = ?
            ORDER BY path
            """,
            [workspace_id],
        ).fetchall()
        return [
            FileRecord(
                workspace_id=str(row[0]),
                path=str(row[1]),
                content_hash=str(row[2]),
                mtime=int(row[3]),
                size=int(row[4]),
                updated_at=int(row[5]),
            )
            for row in rows
        ]

    def update_file_metadata(
        self,
        *,
        workspace_id: str,
        path: str,
        mtime: int,
        size: int,
        updated_at: int,
    ) -> None:
        self._conn.execute(
            """
            UPDATE files
            SET mtime = ?, size = ?, updated_at = ?
            WHERE workspace_id = ? AND path = ?
            """,
            [mtime, size, updated_at, workspace_id, path],
        )

    def replace_file(self, file: FileRecord, chunks: list[ChunkRecord]) -> None:
        # The file row is upserted rather than deleted and re-inserted, which
        # DuckDB rejects for the same key inside one transaction.
        self._delete_chunks(workspace_id=file.workspace_id, path=file.path)

        if chunks:
            self._conn.executemany(
                """
                INSERT INTO chunks (
                    id, workspace_id, path, start_line, end_line, text, embedding, mtime, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk.id,
                        chunk.workspace_id,
                        chunk.path,
                        chunk.start_line,
                        chunk.end_line,
                        chunk.text,
                        serialize_embedding(chunk.embedding),
                        chunk.mtime,
                        chunk.updated_at,
                    )
                    for chunk in chunks
                ],
            )
            if self.fts_available:
                self._conn.executemany(
                    f"""
                    INSERT INTO {_FTS_TABLE} (
                        chunk_id, workspace_id, path, start_line, end_line, text
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            chunk.id,
                            chunk.workspace_id,
                            chunk.path,
                            chunk.start_line,
                            chunk.end_line,
                            chunk.text,
                        )
                        for chunk in chunks
                    ],
                )

        self._conn.execute(
            """
            INSERT INTO files (workspace_id, path, content_hash, mtime, size, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (workspace_id, path) DO UPDATE SET
                content_hash = excluded.content_hash,
                mtime = excluded.mtime,
                size = excluded.size,
                updated_at = excluded.updated_at
            """,
            [
                file.workspace_id,
                file.path,
                file.content_hash,
                file.mtime,
                file.size,
                file.updated_at,
            ],
        )

    def delete_file(self, *, workspace_id: str, path: str) -> None:
        self._delete_chunks(workspace_id=workspace_id, path=path)
        self._conn.execute(
            "DELETE FROM files WHERE workspace_id = ? AND path = ?",
            [workspace_id, path],
        )

    def clear_workspace(self, *, workspace_id: str) -> None:
        with self.transaction():
            if self.fts_available:
                self._conn.execute(
                    f"DELETE FROM {_FTS_TABLE} WHERE workspace_id = ?",
                    [workspace_id],
                )
            self._conn.execute("DELETE FROM chunks WHERE workspace_id = ?", [workspace_id])
            self._conn.execute("DELETE FROM files WHERE workspace_id = ?", [workspace_id])
        self.refresh_fts_index()

    def refresh_fts_index(self) -> None:
        if not self.fts_available:
            return
        try:
            self._conn.execute(_FTS_PRAGMA)
        except duckdb.Error as exc:
            logger.debug("Full-text index rebuild failed: %s", exc)
            self._fts_ready = False
            return
        self._fts_ready = True

    def chunk_signature(self, *, workspace_id: str) -> str:
        row = self._conn.execute(
            """
            SELECT COUNT(*), COALESCE(MAX(updated_at), 0)
            FROM chunks
            WHERE workspace_id = ?
            """,
            [workspace_id],
        ).fetchone()
        if row is None:
            return f"{workspace_id}:0:0"
        return f"{workspace_id}:{int(row[0])}:{int(row[1])}"

    def load_chunks(self, *, workspace_id: str) -> list[ChunkRecord]:
        rows = self._conn.execute(
            """
            SELECT id, workspace_id, path, start_line, end_line, text, embedding, mtime, updated_at
            FROM chunks
            WHERE workspace_id = ?
            """,
            [workspace_id],
        ).fetchall()
        return [
            ChunkRecord(
                id=str(row[0]),
                workspace_id=str(row[1]),
                path=str(row[2]),
                start_line=int(row[3]),
                end_line=int(row[4]),
                text=str(row[5]),
                embedding=parse_embedding(row[6]),
                mtime=int(row[7]),
                updated_at=int(row[8]),
            )
            for row in rows
        ]

    def search_chunks_fts(
        self,
        *,
        workspace_id: str,
        fts_query: str,
        limit: int,
    ) -> list[dict[str, Any]]:
        if not self.fts_available or not self._fts_ready:
            raise LexicalIndexUnavailable("full-text index is not available")

        try:
            rows = self._conn.execute(
                f"""
                SELECT f.chunk_id, f.path, f.start_line, f.end_line, f.text, c.mtime, f.score
                FROM (
                    SELECT
                        chunk_id, path, start_line, end_line, text,
                        fts_main_{_FTS_TABLE}.match_bm25(chunk_id, ?, conjunctive := 1) AS score
                    FROM {_FTS_TABLE}
                    WHERE workspace_id = ?
                ) f
                JOIN chunks c ON c.id = f.chunk_id
                WHERE f.score IS NOT NULL
                ORDER BY f.score DESC, f.path ASC, f.start_line ASC
                LIMIT ?
                """,
                [fts_query, workspace_id, limit],
            ).fetchall()
        except duckdb.Error as exc:
            raise LexicalIndexUnavailable(str(exc)) from exc

        results: list[dict[str, Any]] = []
        for row in rows:
            results.append(
                {
                    "id": str(row[0]),
                    "path": str(row[1]),
                    "start_line": int(row[2]),
                    "end_line": int(row[3]),
                    "text": str(row[4]),
                    "mtime": int(row[5]),
                    "rank_score": float(row[6]),
                }
            )
        return results

    def search_chunks_like(
        self,
        *,
        workspace_id: str,
        patterns: list[str],
        limit: int,
    ) -> list[dict[str, Any]]:
        if not patterns:
            return []

        clause = " OR ".join(["text ILIKE ? ESCAPE '\\'"] * len(patterns))
        params: list[Any] = [workspace_id]
        params.extend(f"%{_escape_like(pattern)}%" for pattern in patterns)
        params.append(limit)
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM chunks
            WHERE workspace_id = ? AND ({clause})
            ORDER BY mtime DESC, path ASC, start_line ASC
            LIMIT ?
            """,
            params,
        ).fetchall()
        return [_chunk_row(row) for row in rows]

    def recent_files(self, *, workspace_id: str, limit: int) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            """
            SELECT path, mtime
            FROM files
            WHERE workspace_id = ?
            ORDER BY mtime DESC, path ASC
            LIMIT ?
            """,
            [workspace_id, limit],
        ).fetchall()
        return [{"path": str(row[0]), "mtime": int(row[1])} for row in rows]

    def first_chunk(self, *, workspace_id: str, path: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM chunks
            WHERE workspace_id = ? AND path = ?
            ORDER BY start_line ASC
            LIMIT 1
            """,
            [workspace_id, path],
        ).fetchone()
        if row is None:
            return None
        return _chunk_row(row)

    def get_chunk(self, *, chunk_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id = ? LIMIT 1",
            [chunk_id],
        ).fetchone()
        if row is None:
            return None
        return _chunk_row(row)

    def get_chunks(self, *, chunk_ids: list[str]) -> list[dict[str, Any]]:
        if not chunk_ids:
            return []
        placeholders = ", ".join(["?"] * len(chunk_ids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",
            list(chunk_ids),
        ).fetchall()
        return [_chunk_row(row) for row in rows]

    def chunks_near_line(
        self,
        *,
        workspace_id: str,
        path: str,
        line: int,
        limit: int,
    ) -> list[dict[str, Any]]:
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM chunks
            WHERE workspace_id = ? AND path = ?
            ORDER BY abs(start_line - ?) ASC, start_line ASC
            LIMIT ?
            """,
            [workspace_id, path, line, limit],
        ).fetchall()
        return [_chunk_row(row) for row in rows]

    def _delete_chunks(self, *, workspace_id: str, path: str) -> None:
        if self.fts_available:
            self._conn.execute(
                f"DELETE FROM {_FTS_TABLE} WHERE workspace_id = ? AND path = ?",
                [workspace_id, path],
            )
        self._conn.execute(
            "DELETE FROM chunks WHERE workspace_id = ? AND path = ?",
            [workspace_id, path],
        )

    def _load_fts_extension(self, *, install: bool) -> bool:
        """Load the fts extension; download it first only when *install* is set."""
        try:
            self._conn.execute("LOAD fts")
            return True
        except duckdb.Error as exc:
            if not install:
                logger.debug("DuckDB fts extension not loaded, using substring search: %s", exc)
                return False
        try:
            self._conn.execute("INSTALL fts")
            self._conn.execute("LOAD fts")
        except duckdb.Error as exc:
            logger.debug("DuckDB fts extension unavailable, using substring search: %s", exc)
            return False
        return True
