"""
SQLite storage backend.

Objects live in one table and their payload spans in another, one row
per span. Ideal for embedded deployments and testing.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiosqlite

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

SCHEMA_VERSION = 1

# Target allocation: the next target is computed and inserted by a single
# statement, so two allocations can never observe the same maximum.
_ALLOCATE_SQL = """
    INSERT INTO objects (target, text, len)
    SELECT COALESCE(MAX(target), 0) + 1, ?, ?
    FROM objects
    RETURNING target
"""

_WRITE_SPAN_SQL = """
    INSERT INTO spans (target, sequence, data)
    SELECT ?, COALESCE(MAX(sequence), -1) + 1, ?
    FROM spans
    WHERE target = ?
    RETURNING sequence
"""

_NEXT_SPAN_SQL = """
    SELECT sequence, data
    FROM spans
    WHERE target = ? AND sequence > ?
    ORDER BY sequence ASC
    LIMIT 1
"""

# Newest window, presented oldest first
_LIST_RECENT_SQL = """
    SELECT text, len, target
    FROM (
        SELECT id, text, len, target
        FROM objects
        ORDER BY id DESC
        LIMIT ?
    ) AS recent
    ORDER BY id ASC
"""


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path = ":memory:"
    span_size: int = SPAN_SIZE
    recent_limit: int = DEFAULT_RECENT_LIMIT
    atomic_uploads: bool = True

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("SPAN_STORE_SQLITE_PATH", ":memory:"),
            span_size=env_int("SPAN_STORE_SPAN_SIZE", SPAN_SIZE),
            recent_limit=env_int("SPAN_STORE_RECENT_LIMIT", DEFAULT_RECENT_LIMIT),
            atomic_uploads=env_bool("SPAN_STORE_ATOMIC_UPLOADS", True),
        )


class SQLiteBackend(ObjectBackend):
    """
    SQLite storage backend.

    Features:
    - Single file database (or in-memory)
    - Foreign key from spans to objects enforced by the engine
    - Explicit per-target span sequence, never relies on rowid order
    - Transaction scope shared by the allocation and span writes of one upload
    - Reads from other tasks wait while a transaction is open, so they never
      see uncommitted rows on the shared connection
    """

    def __init__(self, config: SQLiteConfig):
        """
        Initialize SQLite backend.

        Args:
            config: SQLite configuration
        """
        self.config = config
        self.span_size = check_span_size(config.span_size)
        self.recent_limit = check_recent_limit(config.recent_limit, "recent_limit")
        self.atomic_uploads = config.atomic_uploads
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False
        # One shared connection: writers take turns holding the transaction.
        self._write_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task[Any] | None = None

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteBackend:
        """Create and initialize SQLite backend."""
        if config is None:
            config = SQLiteConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        """Initialize SQLite connection and schema."""
        if self._initialized:
            return

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            await self.conn.execute("PRAGMA foreign_keys = ON")

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS objects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    target INTEGER NOT NULL UNIQUE,
                    text TEXT NOT NULL,
                    len INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT DEFAULT (datetime('now'))
                )
            """)

            await self.conn.execute("""
                CREATE TABLE IF NOT EXISTS spans (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    target INTEGER NOT NULL REFERENCES objects (target),
                    sequence INTEGER NOT NULL,
                    data BLOB NOT NULL,
                    UNIQUE (target, sequence)
                )
            """)

            await self._create_schema_meta_table()
            if await self._get_schema_version() is None:
                await self._set_schema_version(SCHEMA_VERSION)

            await self.conn.commit()
            self._initialized = True
            logger.info(f"SQLite backend initialized: {self.config.db_path}")

        except Exception as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn is not None:
            await self.conn.close()
            self.conn = None

        self._initialized = False

    # =========================================================================
    # Schema Management
    # =========================================================================

    async def _create_schema_meta_table(self) -> None:
        """Create schema_meta table for version tracking."""
        await self._require_conn("initialize").execute("""
            CREATE TABLE IF NOT EXISTS schema_meta (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

    async def _get_schema_version(self) -> int | None:
        """Get the stored schema version, None for a fresh database."""
        async with self._require_conn("initialize").execute(
            "SELECT value FROM schema_meta WHERE key = 'version'"
        ) as cursor:
            result = await cursor.fetchone()
            return int(result[0]) if result else None

    async def _set_schema_version(self, version: int) -> None:
        """Set the schema version."""
        await self._require_conn("initialize").execute(
            """
            INSERT INTO schema_meta (key, value) VALUES ('version', ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value
            """,
            (str(version),),
        )

    async def get_schema_version(self) -> int:
        """Schema version of the open database."""
        version = await self._get_schema_version()
        return version if version is not None else SCHEMA_VERSION

    def _require_conn(self, operation: str) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError(operation, cause=RuntimeError("Not initialized"))
        return self.conn

    # =========================================================================
    # Transactions
    # =========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Run the enclosed writes in one transaction.

        Commits when the block exits normally and rolls back on any
        exception. Re-entering from the task that already holds the
        transaction joins it.
        """
        conn = self._require_conn("transaction")
        if self._tx_owner is not None and self._tx_owner is asyncio.current_task():
            yield
            return

        async with self._write_lock:
            self._tx_owner = asyncio.current_task()
            try:
                try:
                    await conn.execute("BEGIN IMMEDIATE")
                except aiosqlite.Error as e:
                    raise StorageIOError("begin_transaction", cause=e) from e
                try:
                    yield
                except BaseException:
                    await conn.rollback()
                    raise
                try:
                    await conn.commit()
                except aiosqlite.Error as e:
                    await conn.rollback()
                    raise StorageIOError("commit", cause=e) from e
            finally:
                self._tx_owner = None

    @asynccontextmanager
    async def _read_scope(self) -> AsyncIterator[None]:
        """Hold off reads while another task has a transaction open.

        Every task shares one connection, so a read issued mid-upload would
        otherwise see the upload's uncommitted rows.
        """
        if self._tx_owner is not None and self._tx_owner is asyncio.current_task():
            yield
            return
        async with self._write_lock:
            yield

    # =========================================================================
    # Object Operations
    # =========================================================================

    async def allocate_object(self, text: str, length: int) -> int:
        """Insert an object row and return its newly allocated target."""
        if length < 0:
            raise ValidationError("len", "negative_size", length, "negative object length")

        async with self.transaction():
            try:
                async with self._require_conn("allocate_object").execute(
                    _ALLOCATE_SQL, (text, length)
                ) as cursor:
                    row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise StorageIOError("allocate_object", cause=e) from e

        if row is None:
            raise StorageIOError("allocate_object", cause=RuntimeError("No target returned"))
        target = int(row[0])
        logger.debug(f"Allocated target {target} (len={length})")
        return target

    async def get_object(self, target: int) -> ObjectRecord | None:
        """Get object metadata by target."""
        conn = self._require_conn("get_object")
        try:
            async with self._read_scope(), conn.execute(
                "SELECT target, text, len FROM objects WHERE target = ?", (target,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("get_object", target, e) from e

        if row is None:
            return None
        return ObjectRecord(target=int(row[0]), text=row[1], len=int(row[2] or 0))

    async def list_recent(self, limit: int | None = None) -> list[ObjectRecord]:
        """Most recent objects, oldest first."""
        limit = check_recent_limit(limit if limit is not None else self.recent_limit)
        conn = self._require_conn("list_recent")
        try:
            async with self._read_scope(), conn.execute(_LIST_RECENT_SQL, (limit,)) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageIOError("list_recent", cause=e) from e

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
        async with self.transaction():
            try:
                async with conn.execute(
                    "SELECT 1 FROM objects WHERE target = ?", (target,)
                ) as cursor:
                    exists = await cursor.fetchone()
                if exists is None:
                    raise ReferentialIntegrityError(target)

                async with conn.execute(
                    _WRITE_SPAN_SQL, (target, bytes(data), target)
                ) as cursor:
                    row = await cursor.fetchone()
            except aiosqlite.IntegrityError as e:
                raise ReferentialIntegrityError(target, e) from e
            except aiosqlite.Error as e:
                raise StorageIOError("write_span", target, e) from e

        sequence = int(row[0])
        logger.debug(f"Wrote span {sequence} for target {target} ({len(data)} bytes)")
        return sequence

    async def iter_spans(self, target: int) -> AsyncIterator[SpanRecord]:
        """Yield spans of ``target`` ordered by sequence.

        Spans are fetched one at a time, so no lock is held while the
        caller consumes a span.
        """
        conn = self._require_conn("iter_spans")
        sequence = -1
        while True:
            try:
                async with self._read_scope(), conn.execute(
                    _NEXT_SPAN_SQL, (target, sequence)
                ) as cursor:
                    row = await cursor.fetchone()
            except aiosqlite.Error as e:
                raise StorageIOError("iter_spans", target, e) from e
            if row is None:
                return
            sequence = int(row[0])
            yield SpanRecord(target=target, sequence=sequence, data=bytes(row[1]))

    async def count_spans(self, target: int) -> int:
        """Number of spans stored for ``target``."""
        conn = self._require_conn("count_spans")
        try:
            async with self._read_scope(), conn.execute(
                "SELECT COUNT(*) FROM spans WHERE target = ?", (target,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("count_spans", target, e) from e
        return int(row[0]) if row else 0
