from pathlib import Path

from jsco.cache.files import FileCacheStore
from jsco.cache.manager import CacheManager, detection_key, payload_key
from jsco.cache.memory import InMemoryCacheStore
from jsco.config import Settings
from jsco.core.ports.cache import CacheStore


def create_store(settings: Settings) -> CacheStore:
    if settings.cache_backend == "file":
        return FileCacheStore(Path(settings.cache_dir))
    return InMemoryCacheStore(settings.cache_capacity)


def create_cache_manager(settings: Settings) -> CacheManager:
    return CacheManager(
        create_store(settings),
        default_ttl=settings.cache_ttl,
        remote_ttl=settings.remote_ttl,
    )


__all__ = [
    "CacheManager",
    "CacheStore",
    "FileCacheStore",
    "InMemoryCacheStore",
    "create_cache_manager",
    "create_store",
    "detection_key",
    "payload_key",
]
