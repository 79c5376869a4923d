import asyncio
import hashlib
import logging
from pathlib import Path

from pydantic import ValidationError

from jsco.errors import CacheError
from jsco.models import CacheRecord

logger = logging.getLogger(__name__)


class FileCacheStore:
    """One JSON document per key under a cache directory (default ``.jsco-cache``).

    Records survive process restarts; nothing is evicted except by expiry or
    ``clear``.
    """

    def __init__(self, directory: str | Path = ".jsco-cache") -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _read(self, key: str) -> CacheRecord | None:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"Failed to read cache entry {path}: {exc}") from exc
        try:
            record = CacheRecord.model_validate_json(raw)
        except ValidationError as exc:
            raise CacheError(f"Corrupt cache entry {path}") from exc
        if record.key != key:
            logger.debug("Cache key collision at %s", path)
            return None
        return record

    def _write(self, record: CacheRecord) -> None:
        path = self._path(record.key)
        tmp = path.with_suffix(".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(record.model_dump_json(), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise CacheError(f"Failed to write cache entry {path}: {exc}") from exc

    def _delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise CacheError(f"Failed to delete cache entry for {key}: {exc}") from exc

    def _clear(self) -> int:
        if not self.directory.exists():
            return 0
        count = 0
        try:
            for entry in self.directory.glob("*.json"):
                entry.unlink(missing_ok=True)
                count += 1
        except OSError as exc:
            raise CacheError(f"Failed to clear cache directory {self.directory}: {exc}") from exc
        return count

    def _stats(self) -> dict[str, int]:
        if not self.directory.exists():
            return {"entries": 0, "bytes": 0}
        files = list(self.directory.glob("*.json"))
        return {"entries": len(files), "bytes": sum(f.stat().st_size for f in files)}

    async def get(self, key: str) -> CacheRecord | None:
        return await asyncio.to_thread(self._read, key)

    async def put(self, record: CacheRecord) -> None:
        await asyncio.to_thread(self._write, record)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    async def clear(self) -> int:
        return await asyncio.to_thread(self._clear)

    async def stats(self) -> dict[str, int]:
        return await asyncio.to_thread(self._stats)

    async def dispose(self) -> None:
        pass
