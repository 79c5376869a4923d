"""Tests for cache stores and the cache manager."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from jsco.cache import create_store
from jsco.cache.files import FileCacheStore
from jsco.cache.manager import CacheManager, detection_key, payload_key
from jsco.cache.memory import InMemoryCacheStore
from jsco.config import Settings
from jsco.errors import CacheError
from jsco.models import CacheRecord, DetectionResult, FeatureOccurrence, Position, Span

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _record(key: str, payload: bytes = b"{}") -> CacheRecord:
    return CacheRecord(key=key, payload=payload, created_at=NOW)


def _result(feature_id: str = "fetch") -> DetectionResult:
    span = Span(start=Position(line=1, column=1), end=Position(line=1, column=6), start_byte=0, end_byte=5)
    return DetectionResult(occurrences=[FeatureOccurrence(feature_id=feature_id, span=span, source="a.js")])


class _Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> datetime:
        return self.now


class _BrokenStore(InMemoryCacheStore):
    async def get(self, key: str) -> CacheRecord | None:
        raise CacheError("disk on fire")

    async def put(self, record: CacheRecord) -> None:
        raise CacheError("disk on fire")


def test_keys() -> None:
    assert detection_key("v1", "javascript", "abc") == "detect:v1:javascript:abc"
    assert payload_key("https://cdn.example.com/lib.js?v=2") == "url:https://cdn.example.com/lib.js"
    assert payload_key("https://cdn.example.com/lib.js?v=3") == payload_key("https://cdn.example.com/lib.js")


def test_create_store_follows_settings(tmp_path: Path) -> None:
    assert isinstance(create_store(Settings(cache_backend="memory")), InMemoryCacheStore)
    store = create_store(Settings(cache_backend="file", cache_dir=tmp_path))
    assert isinstance(store, FileCacheStore)


class TestInMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_evicts_least_recently_used(self) -> None:
        store = InMemoryCacheStore(capacity=2)
        await store.put(_record("a"))
        await store.put(_record("b"))
        await store.get("a")
        await store.put(_record("c"))

        assert await store.get("b") is None
        assert await store.get("a") is not None
        assert await store.get("c") is not None
        stats = await store.stats()
        assert stats["entries"] == 2
        assert stats["evictions"] == 1

    @pytest.mark.asyncio
    async def test_clear_and_delete(self) -> None:
        store = InMemoryCacheStore()
        await store.put(_record("a"))
        await store.put(_record("b"))
        await store.delete("a")
        assert await store.get("a") is None
        assert await store.clear() == 1

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(ValueError):
            InMemoryCacheStore(capacity=0)


class TestFileCacheStore:
    @pytest.mark.asyncio
    async def test_persists_between_instances(self, tmp_path: Path) -> None:
        await FileCacheStore(tmp_path).put(_record("detect:v:javascript:h", b'{"occurrences": []}'))
        record = await FileCacheStore(tmp_path).get("detect:v:javascript:h")
        assert record is not None
        assert record.payload == b'{"occurrences": []}'

    @pytest.mark.asyncio
    async def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        store = FileCacheStore(tmp_path / "nope")
        assert await store.get("k") is None
        assert await store.stats() == {"entries": 0, "bytes": 0}
        assert await store.clear() == 0

    @pytest.mark.asyncio
    async def test_corrupt_entry_raises_cache_error(self, tmp_path: Path) -> None:
        store = FileCacheStore(tmp_path)
        await store.put(_record("k"))
        next(tmp_path.glob("*.json")).write_text("not json", encoding="utf-8")
        with pytest.raises(CacheError):
            await store.get("k")

    @pytest.mark.asyncio
    async def test_clear_removes_entries(self, tmp_path: Path) -> None:
        store = FileCacheStore(tmp_path)
        await store.put(_record("a"))
        await store.put(_record("b"))
        assert (await store.stats())["entries"] == 2
        assert await store.clear() == 2
        assert await store.get("a") is None


class TestCacheManager:
    @pytest.mark.asyncio
    async def test_round_trips_detection_results(self) -> None:
        manager = CacheManager(InMemoryCacheStore())
        await manager.put("k", _result())
        assert await manager.get("k") == _result()

    @pytest.mark.asyncio
    async def test_entries_expire(self) -> None:
        clock = _Clock()
        manager = CacheManager(InMemoryCacheStore(), default_ttl=60, clock=clock)
        await manager.put("k", _result())
        clock.now = NOW + timedelta(seconds=59)
        assert await manager.get("k") is not None
        clock.now = NOW + timedelta(seconds=60)
        assert await manager.get("k") is None
        assert (await manager.stats())["entries"] == 0

    @pytest.mark.asyncio
    async def test_payload_and_detection_records_do_not_mix(self) -> None:
        manager = CacheManager(InMemoryCacheStore())
        await manager.put_payload("https://example.com/a.js?x=1", b"fetch();")
        assert await manager.get_payload("https://example.com/a.js") == b"fetch();"
        assert await manager.get(payload_key("https://example.com/a.js")) is None

    @pytest.mark.asyncio
    async def test_store_failures_are_not_fatal(self) -> None:
        manager = CacheManager(_BrokenStore())
        calls = 0

        async def compute() -> DetectionResult:
            nonlocal calls
            calls += 1
            return _result()

        assert await manager.single_flight("k", compute) == _result()
        assert await manager.single_flight("k", compute) == _result()
        assert calls == 2

    @pytest.mark.asyncio
    async def test_single_flight_runs_once_for_concurrent_callers(self) -> None:
        manager = CacheManager(InMemoryCacheStore())
        calls = 0
        release = asyncio.Event()

        async def compute() -> DetectionResult:
            nonlocal calls
            calls += 1
            await release.wait()
            return _result()

        tasks = [asyncio.create_task(manager.single_flight("k", compute)) for _ in range(8)]
        await asyncio.sleep(0)
        assert manager.in_flight == 1
        release.set()
        results = await asyncio.gather(*tasks)

        assert calls == 1
        assert all(r == _result() for r in results)
        assert manager.in_flight == 0

    @pytest.mark.asyncio
    async def test_single_flight_shares_failures(self) -> None:
        manager = CacheManager(InMemoryCacheStore())
        release = asyncio.Event()

        async def compute() -> DetectionResult:
            await release.wait()
            raise RuntimeError("parse exploded")

        tasks = [asyncio.create_task(manager.single_flight("k", compute)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, RuntimeError) for r in results)
        assert await manager.get("k") is None

    @pytest.mark.asyncio
    async def test_single_flight_without_cache_does_not_store(self) -> None:
        manager = CacheManager(InMemoryCacheStore())

        async def compute() -> DetectionResult:
            return _result()

        await manager.single_flight("k", compute, use_cache=False)
        assert await manager.get("k") is None

    @pytest.mark.asyncio
    async def test_cancelled_caller_leaves_shared_work_running(self) -> None:
        manager = CacheManager(InMemoryCacheStore())
        calls = 0
        release = asyncio.Event()

        async def compute() -> DetectionResult:
            nonlocal calls
            calls += 1
            await release.wait()
            return _result()

        first = asyncio.create_task(manager.single_flight("k", compute))
        await asyncio.sleep(0)
        second = asyncio.create_task(manager.single_flight("k", compute))
        await asyncio.sleep(0)
        first.cancel()
        await asyncio.sleep(0)
        release.set()

        assert await second == _result()
        with pytest.raises(asyncio.CancelledError):
            await first
        assert calls == 1
        assert await manager.get("k") == _result()
        assert manager.in_flight == 0

    @pytest.mark.asyncio
    async def test_waiters_start_over_when_shared_work_is_cancelled(self) -> None:
        manager = CacheManager(InMemoryCacheStore())
        calls = 0

        async def compute() -> DetectionResult:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise asyncio.CancelledError
            return _result()

        assert await manager.single_flight("k", compute) == _result()
        assert calls == 2
