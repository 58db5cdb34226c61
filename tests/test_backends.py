"""
Tests for the relational backends.

Every test runs against both SQLite and DuckDB (in-memory).
"""

import asyncio

import pytest

from conftest import SMALL_SPAN, create_backend
from span_object_storage.backends.base import ObjectRecord
from span_object_storage.backends.duckdb import DuckDBBackend, DuckDBConfig
from span_object_storage.backends.sqlite import SQLiteBackend, SQLiteConfig
from span_object_storage.exceptions import (
    ReferentialIntegrityError,
    StorageIOError,
    ValidationError,
)


class TestAllocation:
    """Target allocation."""

    @pytest.mark.asyncio
    async def test_first_target_is_one(self, backend):
        assert await backend.allocate_object("doc", 0) == 1

    @pytest.mark.asyncio
    async def test_targets_are_sequential(self, backend):
        targets = [await backend.allocate_object(f"obj-{i}", i) for i in range(5)]
        assert targets == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_concurrent_allocations_are_distinct_and_gapless(self, backend):
        targets = await asyncio.gather(
            *(backend.allocate_object(f"obj-{i}", 0) for i in range(25))
        )
        assert sorted(targets) == list(range(1, 26))

    @pytest.mark.asyncio
    async def test_metadata_stored(self, backend):
        target = await backend.allocate_object("img", 3_000_000)

        record = await backend.get_object(target)

        assert record == ObjectRecord(target=target, text="img", len=3_000_000)

    @pytest.mark.asyncio
    async def test_negative_length_rejected(self, backend):
        with pytest.raises(ValidationError):
            await backend.allocate_object("bad", -1)

    @pytest.mark.asyncio
    async def test_get_unknown_object(self, backend):
        assert await backend.get_object(99) is None


class TestListRecent:
    @pytest.mark.asyncio
    async def test_empty(self, backend):
        assert await backend.list_recent() == []

    @pytest.mark.asyncio
    async def test_oldest_first(self, backend):
        for name in ("a", "b", "c"):
            await backend.allocate_object(name, 0)

        records = await backend.list_recent()

        assert [r.text for r in records] == ["a", "b", "c"]
        assert [r.target for r in records] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_window_keeps_newest(self, backend):
        for i in range(6):
            await backend.allocate_object(f"obj-{i}", 0)

        records = await backend.list_recent(limit=3)

        assert [r.target for r in records] == [4, 5, 6]

    @pytest.mark.asyncio
    async def test_to_dict_shape(self, backend):
        await backend.allocate_object("doc", 12)
        records = await backend.list_recent()
        assert records[0].to_dict() == {"text": "doc", "len": 12, "target": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1, -100])
    async def test_non_positive_limit_rejected(self, backend, limit):
        for i in range(5):
            await backend.allocate_object(f"obj-{i}", 0)

        with pytest.raises(ValidationError) as exc_info:
            await backend.list_recent(limit=limit)

        assert exc_info.value.details["reason"] == "limit_range"
        assert exc_info.value.value == limit

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", ["sqlite", "duckdb"])
    async def test_default_window_is_configured_limit(self, kind):
        backend = await create_backend(kind, recent_limit=2)
        try:
            for i in range(4):
                await backend.allocate_object(f"obj-{i}", 0)

            records = await backend.list_recent()
        finally:
            await backend.close()

        assert [r.target for r in records] == [3, 4]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_configured_limit_must_be_positive(self, limit):
        with pytest.raises(ValidationError):
            SQLiteBackend(SQLiteConfig(recent_limit=limit))
        with pytest.raises(ValidationError):
            DuckDBBackend(DuckDBConfig(recent_limit=limit))


class TestSpans:
    """Span persistence and ordering."""

    @pytest.mark.asyncio
    async def test_sequences_increase_per_target(self, backend):
        first = await backend.allocate_object("a", 0)
        second = await backend.allocate_object("b", 0)

        assert await backend.write_span(first, b"one") == 0
        assert await backend.write_span(second, b"uno") == 0
        assert await backend.write_span(first, b"two") == 1

    @pytest.mark.asyncio
    async def test_spans_returned_in_write_order(self, backend):
        target = await backend.allocate_object("doc", 9)
        for part in (b"ccc", b"aaa", b"bbb"):
            await backend.write_span(target, part)

        spans = [span async for span in backend.iter_spans(target)]

        assert [s.data for s in spans] == [b"ccc", b"aaa", b"bbb"]
        assert [s.sequence for s in spans] == [0, 1, 2]
        assert await backend.count_spans(target) == 3

    @pytest.mark.asyncio
    async def test_spans_isolated_by_target(self, backend):
        a = await backend.allocate_object("a", 0)
        b = await backend.allocate_object("b", 0)
        await backend.write_span(a, b"aa")
        await backend.write_span(b, b"bb")

        spans = [span.data async for span in backend.iter_spans(b)]

        assert spans == [b"bb"]

    @pytest.mark.asyncio
    async def test_write_to_unknown_target_fails(self, backend):
        with pytest.raises(ReferentialIntegrityError) as exc_info:
            await backend.write_span(42, b"orphan")

        assert isinstance(exc_info.value, StorageIOError)
        assert exc_info.value.target == 42
        assert await backend.count_spans(42) == 0

    @pytest.mark.asyncio
    async def test_oversized_span_rejected(self, backend):
        target = await backend.allocate_object("doc", 0)

        with pytest.raises(ValidationError):
            await backend.write_span(target, b"x" * (SMALL_SPAN + 1))

    @pytest.mark.asyncio
    async def test_no_spans(self, backend):
        target = await backend.allocate_object("doc", 0)
        assert [span async for span in backend.iter_spans(target)] == []
        assert await backend.count_spans(target) == 0


class TestTransactions:
    @pytest.mark.asyncio
    async def test_commit(self, backend):
        async with backend.transaction():
            target = await backend.allocate_object("doc", 3)
            await backend.write_span(target, b"abc")

        assert await backend.get_object(target) is not None
        assert await backend.count_spans(target) == 1

    @pytest.mark.asyncio
    async def test_rollback_discards_everything(self, backend):
        with pytest.raises(RuntimeError):
            async with backend.transaction():
                target = await backend.allocate_object("doc", 3)
                await backend.write_span(target, b"abc")
                raise RuntimeError("boom")

        assert await backend.get_object(target) is None
        assert await backend.count_spans(target) == 0
        assert await backend.list_recent() == []

    @pytest.mark.asyncio
    async def test_rolled_back_allocation_leaves_no_row(self, backend):
        with pytest.raises(RuntimeError):
            async with backend.transaction():
                await backend.allocate_object("discarded", 0)
                raise RuntimeError("boom")

        assert await backend.allocate_object("kept", 0) == 1

    @pytest.mark.asyncio
    async def test_reader_never_sees_uncommitted_upload(self, backend):
        written = asyncio.Event()
        release = asyncio.Event()

        async def upload():
            async with backend.transaction():
                target = await backend.allocate_object("doc", 6)
                await backend.write_span(target, b"abc")
                written.set()
                await release.wait()
                raise RuntimeError("boom")

        upload_task = asyncio.create_task(upload())
        await written.wait()
        read_task = asyncio.create_task(backend.get_object(1))
        await asyncio.sleep(0)
        release.set()

        with pytest.raises(RuntimeError):
            await upload_task
        assert await read_task is None
        assert [span async for span in backend.iter_spans(1)] == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes(self, backend):
        async with backend as opened:
            assert opened is backend
        assert backend.conn is None

    @pytest.mark.asyncio
    async def test_operations_after_close_fail(self, backend):
        await backend.close()
        with pytest.raises(StorageIOError):
            await backend.allocate_object("doc", 0)
