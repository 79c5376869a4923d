from typing import Protocol

from jsco.models import CacheRecord


class CacheStore(Protocol):
    async def get(self, key: str) -> CacheRecord | None: ...

    async def put(self, record: CacheRecord) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def clear(self) -> int: ...

    async def stats(self) -> dict[str, int]: ...

    async def dispose(self) -> None: ...
