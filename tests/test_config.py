"""
Tests for environment-driven configuration.
"""

import pytest

from span_object_storage.backends.duckdb import DuckDBConfig
from span_object_storage.backends.sqlite import SQLiteBackend, SQLiteConfig
from span_object_storage.chunking import SPAN_SIZE
from span_object_storage.exceptions import SpanStorageError, StorageConnectionError


class TestFromEnv:
    def test_defaults(self, monkeypatch):
        for name in (
            "SPAN_STORE_SQLITE_PATH",
            "SPAN_STORE_SPAN_SIZE",
            "SPAN_STORE_RECENT_LIMIT",
            "SPAN_STORE_ATOMIC_UPLOADS",
        ):
            monkeypatch.delenv(name, raising=False)

        config = SQLiteConfig.from_env()

        assert config.db_path == ":memory:"
        assert config.span_size == SPAN_SIZE
        assert config.recent_limit == 100
        assert config.atomic_uploads is True

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SPAN_STORE_DUCKDB_PATH", "/tmp/objects.duckdb")
        monkeypatch.setenv("SPAN_STORE_SPAN_SIZE", "1024")
        monkeypatch.setenv("SPAN_STORE_RECENT_LIMIT", "10")
        monkeypatch.setenv("SPAN_STORE_ATOMIC_UPLOADS", "false")

        config = DuckDBConfig.from_env()

        assert config.db_path == "/tmp/objects.duckdb"
        assert config.span_size == 1024
        assert config.recent_limit == 10
        assert config.atomic_uploads is False

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("SPAN_STORE_SPAN_SIZE", "big"),
            ("SPAN_STORE_SPAN_SIZE", "0"),
            ("SPAN_STORE_RECENT_LIMIT", "-5"),
            ("SPAN_STORE_ATOMIC_UPLOADS", "maybe"),
        ],
    )
    def test_invalid_values(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(SpanStorageError) as exc_info:
            SQLiteConfig.from_env()

        assert exc_info.value.details["variable"] == name


class TestBackendCreation:
    @pytest.mark.asyncio
    async def test_unopenable_database(self, tmp_path):
        config = SQLiteConfig(db_path=tmp_path / "missing-dir" / "objects.db")

        with pytest.raises(StorageConnectionError):
            await SQLiteBackend.create(config)

    def test_invalid_span_size(self):
        with pytest.raises(SpanStorageError):
            SQLiteBackend(SQLiteConfig(span_size=0))

    @pytest.mark.asyncio
    async def test_schema_version_recorded(self, sqlite_backend):
        assert await sqlite_backend.get_schema_version() == 1
