import asyncio
import glob
import hashlib
import logging
from collections.abc import Sequence
from pathlib import Path

import httpx

from jsco.cache.manager import CacheManager
from jsco.core.languages import is_remote, is_supported_source, resolve_language
from jsco.errors import LoadError
from jsco.models import Origin, SourceUnit

logger = logging.getLogger(__name__)

_GLOB_CHARS = ("*", "?", "[")


def compute_content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def make_source_unit(
    identity: str,
    content: bytes,
    origin: Origin = Origin.LOCAL,
    language: str | None = None,
) -> SourceUnit:
    return SourceUnit(
        identity=identity,
        content=content,
        content_hash=compute_content_hash(content),
        origin=origin,
        language=resolve_language(language, identity),
    )


def source_from_code(code: str, language: str | None = None, identity: str = "<inline>") -> SourceUnit:
    return make_source_unit(identity, code.encode("utf-8"), Origin.LOCAL, language)


def read_local(path: str, language: str | None = None) -> SourceUnit:
    file_path = Path(path)
    try:
        content = file_path.read_bytes()
    except FileNotFoundError:
        raise LoadError(path, "file not found") from None
    except IsADirectoryError:
        raise LoadError(path, "is a directory") from None
    except OSError as exc:
        raise LoadError(path, f"cannot read file: {exc.strerror or exc}") from exc
    return make_source_unit(path, content, Origin.LOCAL, language)


def expand_inputs(inputs: Sequence[str]) -> list[str]:
    """Expand directories and glob patterns into source files; URLs and plain paths pass through.

    Directories are scanned one level deep and matches are sorted so the
    expansion is stable between runs.
    """
    expanded: list[str] = []
    for item in inputs:
        if is_remote(item):
            expanded.append(item)
        elif any(ch in item for ch in _GLOB_CHARS):
            matches = sorted(glob.glob(item, recursive=True))
            expanded.extend(m for m in matches if is_supported_source(m) and Path(m).is_file())
        elif Path(item).is_dir():
            children = sorted(p for p in Path(item).iterdir() if p.is_file() and is_supported_source(p.name))
            expanded.extend(str(p) for p in children)
        else:
            expanded.append(item)
    return expanded


class SourceLoader:
    """Resolves paths and URLs to ``SourceUnit``s.

    Remote payloads go through the cache manager keyed by URL so unchanged
    resources are not fetched again within the remote TTL.
    """

    def __init__(
        self,
        cache: CacheManager | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.cache = cache
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def load(self, ref: str, language: str | None = None, use_cache: bool = True) -> SourceUnit:
        if is_remote(ref):
            return await self.fetch(ref, language, use_cache=use_cache)
        return await asyncio.to_thread(read_local, ref, language)

    async def fetch(self, url: str, language: str | None = None, use_cache: bool = True) -> SourceUnit:
        if use_cache and self.cache is not None:
            cached = await self.cache.get_payload(url)
            if cached is not None:
                logger.info("Using cached copy of %s", url)
                return make_source_unit(url, cached, Origin.REMOTE, language)

        logger.info("Downloading %s", url)
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise LoadError(url, "request timed out") from None
        except httpx.HTTPStatusError as exc:
            raise LoadError(url, f"HTTP {exc.response.status_code}") from None
        except httpx.HTTPError as exc:
            raise LoadError(url, f"request failed: {exc}") from exc

        content = response.content
        if use_cache and self.cache is not None:
            await self.cache.put_payload(url, content)
        return make_source_unit(url, content, Origin.REMOTE, language)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
