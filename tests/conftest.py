"""
Shared test configuration and fixtures.

Backends run against real in-memory engines. A small span size keeps
multi-span objects small enough to write inline in tests.
"""

import pytest

from span_object_storage.backends.duckdb import DuckDBBackend, DuckDBConfig
from span_object_storage.backends.sqlite import SQLiteBackend, SQLiteConfig

SMALL_SPAN = 8


async def create_backend(kind: str, **overrides):
    """Create an initialized in-memory backend of the given kind."""
    options = {"db_path": ":memory:", "span_size": SMALL_SPAN, **overrides}
    if kind == "duckdb":
        return await DuckDBBackend.create(DuckDBConfig(**options))
    return await SQLiteBackend.create(SQLiteConfig(**options))


@pytest.fixture
async def sqlite_backend():
    """Fixture providing an in-memory SQLite backend."""
    backend = await create_backend("sqlite")
    yield backend
    await backend.close()


@pytest.fixture
async def duckdb_backend():
    """Fixture providing an in-memory DuckDB backend."""
    backend = await create_backend("duckdb")
    yield backend
    await backend.close()


@pytest.fixture(params=["sqlite", "duckdb"])
async def backend(request):
    """Fixture providing each backend in turn."""
    backend = await create_backend(request.param)
    yield backend
    await backend.close()


@pytest.fixture(params=["sqlite", "duckdb"])
async def non_atomic_backend(request):
    """Backend configured to commit every span separately."""
    backend = await create_backend(request.param, atomic_uploads=False)
    yield backend
    await backend.close()
