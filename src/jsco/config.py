"""Runtime settings, read from ``JSCO_*`` environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CACHE_TTL = 7 * 24 * 60 * 60.0
DEFAULT_REMOTE_TTL = 24 * 60 * 60.0
DEFAULT_CACHE_CAPACITY = 500


def _float_env(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    if raw.strip().lower() in ("none", "0"):
        return None
    return float(raw)


def _int_env(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    cache_dir: Path = field(default_factory=lambda: Path(".jsco-cache"))
    cache_backend: str = "memory"
    cache_ttl: float | None = DEFAULT_CACHE_TTL
    remote_ttl: float | None = DEFAULT_REMOTE_TTL
    cache_capacity: int | None = DEFAULT_CACHE_CAPACITY
    workers: int | None = None
    worker_mode: str = "process"
    compat_data: Path | None = None
    http_timeout: float = 30.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "Settings":
        backend = os.getenv("JSCO_CACHE_BACKEND", "memory").strip().lower()
        if backend not in ("memory", "file"):
            raise ValueError(f"Unsupported cache backend '{backend}'. Supported: ['file', 'memory']")
        worker_mode = os.getenv("JSCO_WORKER_MODE", "process").strip().lower()
        if worker_mode not in ("process", "thread"):
            raise ValueError(f"Unsupported worker mode '{worker_mode}'. Supported: ['process', 'thread']")
        compat_data = os.getenv("JSCO_COMPAT_DATA")
        return cls(
            cache_dir=Path(os.getenv("JSCO_CACHE_DIR", ".jsco-cache")),
            cache_backend=backend,
            cache_ttl=_float_env("JSCO_CACHE_TTL", DEFAULT_CACHE_TTL),
            remote_ttl=_float_env("JSCO_REMOTE_TTL", DEFAULT_REMOTE_TTL),
            cache_capacity=_int_env("JSCO_CACHE_CAPACITY", DEFAULT_CACHE_CAPACITY),
            workers=_int_env("JSCO_WORKERS", None),
            worker_mode=worker_mode,
            compat_data=Path(compat_data) if compat_data else None,
            http_timeout=_float_env("JSCO_HTTP_TIMEOUT", 30.0) or 30.0,
            log_level=os.getenv("JSCO_LOG_LEVEL", "WARNING").upper(),
        )

    @property
    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1
