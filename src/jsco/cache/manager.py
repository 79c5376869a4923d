import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Literal
from urllib.parse import urlparse

from pydantic import ValidationError

from jsco.cache.memory import InMemoryCacheStore
from jsco.config import DEFAULT_CACHE_TTL, DEFAULT_REMOTE_TTL
from jsco.core.ports.cache import CacheStore
from jsco.errors import CacheError
from jsco.models import CacheRecord, DetectionResult

logger = logging.getLogger(__name__)

RecordKind = Literal["detection", "payload"]


def detection_key(ruleset_version: str, language: str, content_hash: str) -> str:
    return f"detect:{ruleset_version}:{language}:{content_hash}"


def payload_key(url: str) -> str:
    """Key remote payloads by scheme, host and path; the query string is ignored."""
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return f"url:{parsed.scheme}://{parsed.netloc}{parsed.path}"
    return f"url:{url}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheManager:
    """Content-addressed cache of detection results and remote payloads.

    ``single_flight`` guarantees at most one computation in flight per key:
    the first caller starts a shared task, later callers await it.
    """

    def __init__(
        self,
        store: CacheStore | None = None,
        default_ttl: float | None = DEFAULT_CACHE_TTL,
        remote_ttl: float | None = DEFAULT_REMOTE_TTL,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store: CacheStore = store if store is not None else InMemoryCacheStore()
        self.default_ttl = default_ttl
        self.remote_ttl = remote_ttl
        self._clock = clock
        self._in_flight: dict[str, asyncio.Task[DetectionResult]] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _expiry(self, now: datetime, ttl: float | None) -> datetime | None:
        return now + timedelta(seconds=ttl) if ttl is not None else None

    async def _load(self, key: str, kind: RecordKind) -> CacheRecord | None:
        try:
            record = await self.store.get(key)
        except CacheError:
            logger.warning("Cache read failed for %s; recomputing", key, exc_info=True)
            return None
        if record is None:
            return None
        if record.kind != kind or record.is_expired(self._clock()):
            logger.debug("Cache entry %s expired or mismatched", key)
            await self._discard(key)
            return None
        return record

    async def _store(self, key: str, kind: RecordKind, payload: bytes, ttl: float | None) -> None:
        now = self._clock()
        record = CacheRecord(key=key, kind=kind, payload=payload, created_at=now, expires_at=self._expiry(now, ttl))
        try:
            await self.store.put(record)
        except CacheError:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    async def _discard(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except CacheError:
            logger.warning("Cache delete failed for %s", key, exc_info=True)

    async def get(self, key: str) -> DetectionResult | None:
        record = await self._load(key, "detection")
        if record is None:
            return None
        try:
            return DetectionResult.model_validate_json(record.payload)
        except ValidationError:
            logger.warning("Discarding undecodable cache entry %s", key)
            await self._discard(key)
            return None

    async def put(self, key: str, result: DetectionResult, ttl: float | None = None) -> None:
        payload = result.model_dump_json().encode("utf-8")
        await self._store(key, "detection", payload, self.default_ttl if ttl is None else ttl)

    async def get_payload(self, url: str) -> bytes | None:
        record = await self._load(payload_key(url), "payload")
        return record.payload if record is not None else None

    async def put_payload(self, url: str, content: bytes, ttl: float | None = None) -> None:
        await self._store(payload_key(url), "payload", content, self.remote_ttl if ttl is None else ttl)

    async def _compute_and_store(
        self,
        key: str,
        compute: Callable[[], Awaitable[DetectionResult]],
        use_cache: bool,
        ttl: float | None,
    ) -> DetectionResult:
        result = await self.get(key) if use_cache else None
        if result is not None:
            logger.debug("Cache hit for %s", key)
            return result
        result = await compute()
        if use_cache:
            await self.put(key, result, ttl)
        return result

    def _release(self, key: str, task: asyncio.Task[DetectionResult]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Every waiter may have been cancelled before the task finished.
        if not task.cancelled():
            task.exception()

    async def single_flight(
        self,
        key: str,
        compute: Callable[[], Awaitable[DetectionResult]],
        *,
        use_cache: bool = True,
        ttl: float | None = None,
    ) -> DetectionResult:
        """Run *compute* once for all concurrent callers of *key*.

        The computation runs in its own task. A cancelled caller only stops
        waiting; the task keeps running for everyone else. A joining caller
        shares the first caller's result or error, including an error raised by
        a timeout that only the first caller asked for.
        """
        while True:
            task = self._in_flight.get(key)
            if task is None:
                task = asyncio.create_task(self._compute_and_store(key, compute, use_cache, ttl))
                self._in_flight[key] = task
                task.add_done_callback(partial(self._release, key))
            else:
                logger.debug("Joining in-flight detection for %s", key)
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if task.cancelled() and (current is None or not current.cancelling()):
                    logger.debug("In-flight detection for %s was cancelled; starting over", key)
                    continue
                raise

    async def clear(self) -> int:
        return await self.store.clear()

    async def stats(self) -> dict[str, int]:
        stats = await self.store.stats()
        return {**stats, "in_flight": self.in_flight}

    async def dispose(self) -> None:
        await self.store.dispose()
