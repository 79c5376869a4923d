import threading
from collections import OrderedDict

from jsco.models import CacheRecord


class InMemoryCacheStore:
    """Process-local cache store with optional least-recently-used eviction."""

    def __init__(self, capacity: int | None = 500) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.records: OrderedDict[str, CacheRecord] = OrderedDict()
        self.evictions = 0
        self._lock = threading.Lock()

    async def get(self, key: str) -> CacheRecord | None:
        with self._lock:
            record = self.records.get(key)
            if record is not None:
                self.records.move_to_end(key)
            return record

    async def put(self, record: CacheRecord) -> None:
        with self._lock:
            self.records[record.key] = record
            self.records.move_to_end(record.key)
            if self.capacity is not None:
                while len(self.records) > self.capacity:
                    self.records.popitem(last=False)
                    self.evictions += 1

    async def delete(self, key: str) -> None:
        with self._lock:
            self.records.pop(key, None)

    async def clear(self) -> int:
        with self._lock:
            count = len(self.records)
            self.records.clear()
            return count

    async def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self.records),
                "capacity": self.capacity or 0,
                "evictions": self.evictions,
            }

    async def dispose(self) -> None:
        pass
