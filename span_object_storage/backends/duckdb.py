"""
DuckDB storage backend.

Same tables and contract as the SQLite backend. DuckDB's Python API is
synchronous, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import duckdb

from ..chunking import SPAN_SIZE, check_span_size
from ..config import env_bool, env_int
from ..exceptions import (
    ReferentialIntegrityError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .base import (
    DEFAULT_RECENT_LIMIT,
    ObjectBackend,
    ObjectRecord,
    SpanRecord,
    check_recent_limit,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = 1

_ALLOCATE_SQL = """
    INSERT INTO objects (target, text, len)
    SELECT COALESCE(MAX(target), 0) + 1, CAST(? AS VARCHAR), CAST(? AS BIGINT)
    FROM objects
    RETURNING target
"""

_WRITE_SPAN_SQL = """
    INSERT INTO spans (target, sequence, data)
    SELECT CAST(? AS BIGINT), COALESCE(MAX(sequence), -1) + 1, CAST(? AS BLOB)
    FROM spans
    WHERE target = ?
    RETURNING sequence
"""

_LIST_RECENT_SQL = """
    SELECT text, len, target
    FROM (
        SELECT id, text, len, target
        FROM objects
        ORDER BY id DESC
        LIMIT CAST(? AS BIGINT)
    ) AS recent
    ORDER BY id ASC
"""


@dataclass
class DuckDBConfig:
    """Configuration for DuckDB storage."""

    db_path: str | Path = ":memory:"
    span_size: int = SPAN_SIZE
    recent_limit: int = DEFAULT_RECENT_LIMIT
    atomic_uploads: bool = True

    @classmethod
    def from_env(cls) -> DuckDBConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("SPAN_STORE_DUCKDB_PATH", ":memory:"),
            span_size=env_int("SPAN_STORE_SPAN_SIZE", SPAN_SIZE),
            recent_limit=env_int("SPAN_STORE_RECENT_LIMIT", DEFAULT_RECENT_LIMIT),
            atomic_uploads=env_bool("SPAN_STORE_ATOMIC_UPLOADS", True),
        )


class DuckDBBackend(ObjectBackend):
    """
    DuckDB storage backend.

    Writes go through the main connection, one task at a time. Reads use
    a per-call cursor so they can run in their own thread.

    Span ownership is checked by the insert path rather than a foreign
    key constraint.
    """

    def __init__(self, config: DuckDBConfig):
        self.config = config
        self.span_size = check_span_size(config.span_size)
        self.recent_limit = check_recent_limit(config.recent_limit, "recent_limit")
        self.atomic_uploads = config.atomic_uploads
        self.conn: duckdb.DuckDBPyConnection | None = None
        self._initialized = False
        self._write_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None

    @classmethod
    async def create(cls, config: DuckDBConfig | None = None) -> DuckDBBackend:
        """Create and initialize DuckDB backend."""
        if config is None:
            config = DuckDBConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        """Initialize DuckDB connection and schema."""
        if self._initialized:
            return

        def _init() -> None:
            """Run sync initialization in thread."""
            self.conn = duckdb.connect(str(self.config.db_path))

            self.conn.execute("CREATE SEQUENCE IF NOT EXISTS objects_id_seq START 1")
            self.conn.execute("CREATE SEQUENCE IF NOT EXISTS spans_id_seq START 1")

            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS objects (
                    id BIGINT PRIMARY KEY DEFAULT nextval('objects_id_seq'),
                    target BIGINT NOT NULL UNIQUE,
                    text VARCHAR NOT NULL,
                    len BIGINT NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS spans (
                    id BIGINT PRIMARY KEY DEFAULT nextval('spans_id_seq'),
                    target BIGINT NOT NULL,
                    sequence INTEGER NOT NULL,
                    data BLOB NOT NULL,
                    UNIQUE (target, sequence)
                )
            """)

            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_meta (
                    key VARCHAR PRIMARY KEY,
                    value VARCHAR
                )
            """)
            row = self.conn.execute(
                "SELECT value FROM schema_meta WHERE key = 'version'"
            ).fetchone()
            if row is None:
                self.conn.execute(
                    "INSERT INTO schema_meta (key, value) VALUES ('version', ?)",
                    [str(SCHEMA_VERSION)],
                )

        try:
            await asyncio.to_thread(_init)
            self._initialized = True
            logger.info(f"DuckDB backend initialized: {self.config.db_path}")
        except Exception as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close DuckDB connection."""
        if self.conn is not None:
            await asyncio.to_thread(self.conn.close)
            self.conn = None

        self._initialized = False

    def _require_conn(self, operation: str) -> duckdb.DuckDBPyConnection:
        if self.conn is None:
            raise StorageIOError(operation, cause=RuntimeError("Not initialized"))
        return self.conn

    async def _read(
        self,
        operation: str,
        fn: Callable[[duckdb.DuckDBPyConnection], T],
        target: int | None = None,
    ) -> T:
        """Run ``fn`` against a fresh cursor in a worker thread."""
        conn = self._require_conn(operation)

        def _run() -> T:
            cursor = conn.cursor()
            try:
                return fn(cursor)
            finally:
                cursor.close()

        try:
            return await asyncio.to_thread(_run)
        except duckdb.Error as e:
            raise StorageIOError(operation, target, e) from e

    # =========================================================================
    # Transactions
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed writes in one transaction."""
        conn = self._require_conn("transaction")
        if self._tx_owner is not None and self._tx_owner is asyncio.current_task():
            yield
            return

        async with self._write_lock:
            self._tx_owner = asyncio.current_task()
            try:
                try:
                    await asyncio.to_thread(conn.begin)
                except duckdb.Error as e:
                    raise StorageIOError("begin_transaction", cause=e) from e
                try:
                    yield
                except BaseException:
                    await asyncio.to_thread(conn.rollback)
                    raise
                try:
                    await asyncio.to_thread(conn.commit)
                except duckdb.Error as e:
                    raise StorageIOError("commit", cause=e) from e
            finally:
                self._tx_owner = None

    # =========================================================================
    # Object Operations
    # =========================================================================

    async def allocate_object(self, text: str, length: int) -> int:
        """Insert an object row and return its newly allocated target."""
        if length < 0:
            raise ValidationError("len", "negative_size", length, "negative object length")

        conn = self._require_conn("allocate_object")

        def _allocate() -> Any:
            return conn.execute(_ALLOCATE_SQL, [text, length]).fetchone()

        async with self.transaction():
            try:
                row = await asyncio.to_thread(_allocate)
            except duckdb.Error as e:
                raise StorageIOError("allocate_object", cause=e) from e

        if row is None:
            raise StorageIOError("allocate_object", cause=RuntimeError("No target returned"))
        target = int(row[0])
        logger.debug(f"Allocated target {target} (len={length})")
        return target

    async def get_object(self, target: int) -> ObjectRecord | None:
        """Get object metadata by target."""

        def _get(cursor: duckdb.DuckDBPyConnection) -> Any:
            return cursor.execute(
                "SELECT target, text, len FROM objects WHERE target = ?", [target]
            ).fetchone()

        row = await self._read("get_object", _get, target)
        if row is None:
            return None
        return ObjectRecord(target=int(row[0]), text=row[1], len=int(row[2] or 0))

    async def list_recent(self, limit: int | None = None) -> list[ObjectRecord]:
        """Most recent objects, oldest first."""
        limit = check_recent_limit(limit if limit is not None else self.recent_limit)

        def _list(cursor: duckdb.DuckDBPyConnection) -> list[Any]:
            return cursor.execute(_LIST_RECENT_SQL, [limit]).fetchall()

        rows = await self._read("list_recent", _list)
        return [ObjectRecord(text=row[0], len=int(row[1] or 0), target=int(row[2])) for row in rows]

    # =========================================================================
    # Span Operations
    # =========================================================================

    async def write_span(self, target: int, data: bytes) -> int:
        """Append one span to ``target``."""
        if len(data) > self.span_size:
            raise ValidationError(
                "data",
                "span_size",
                len(data),
                f"span of {len(data)} bytes exceeds span size {self.span_size}",
            )

        conn = self._require_conn("write_span")
        payload = bytes(data)

        def _write() -> Any:
            exists = conn.execute("SELECT 1 FROM objects WHERE target = ?", [target]).fetchone()
            if exists is None:
                return None
            return conn.execute(_WRITE_SPAN_SQL, [target, payload, target]).fetchone()

        async with self.transaction():
            try:
                row = await asyncio.to_thread(_write)
            except duckdb.Error as e:
                raise StorageIOError("write_span", target, e) from e
            if row is None:
                raise ReferentialIntegrityError(target)

        sequence = int(row[0])
        logger.debug(f"Wrote span {sequence} for target {target} ({len(payload)} bytes)")
        return sequence

    async def iter_spans(self, target: int) -> AsyncIterator[SpanRecord]:
        """Yield spans of ``target`` ordered by sequence.

        Rows are fetched one span per thread hop.
        """
        conn = self._require_conn("iter_spans")
        try:
            cursor = await asyncio.to_thread(conn.cursor)
        except duckdb.Error as e:
            raise StorageIOError("iter_spans", target, e) from e

        try:
            await asyncio.to_thread(
                cursor.execute,
                "SELECT sequence, data FROM spans WHERE target = ? ORDER BY sequence ASC",
                [target],
            )
            while True:
                row = await asyncio.to_thread(cursor.fetchone)
                if row is None:
                    break
                yield SpanRecord(target=target, sequence=int(row[0]), data=bytes(row[1]))
        except duckdb.Error as e:
            raise StorageIOError("iter_spans", target, e) from e
        finally:
            cursor.close()

    async def count_spans(self, target: int) -> int:
        """Number of spans stored for ``target``."""

        def _count(cursor: duckdb.DuckDBPyConnection) -> Any:
            return cursor.execute(
                "SELECT COUNT(*) FROM spans WHERE target = ?", [target]
            ).fetchone()

        row = await self._read("count_spans", _count, target)
        return int(row[0]) if row else 0
