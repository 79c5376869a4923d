"""Shared fixtures and helpers for tests."""

import threading
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from jsco.cache.manager import CacheManager
from jsco.cache.memory import InMemoryCacheStore
from jsco.config import Settings
from jsco.core.analyze import Analyzer
from jsco.core.compat import CompatibilityDatabase
from jsco.core.engine import FeatureRuleEngine, default_engine
from jsco.core.parser import ASTHandle, TreeSitterParser

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class CountingParser(TreeSitterParser):
    """Parser that records how many times it was invoked."""

    def __init__(self, delay: float = 0.0) -> None:
        self.calls = 0
        self.delay = delay
        self._lock = threading.Lock()

    def parse(self, content: bytes, language: str, identity: str = "<memory>") -> ASTHandle:
        with self._lock:
            self.calls += 1
        if self.delay:
            threading.Event().wait(self.delay)
        return super().parse(content, language, identity)


SMALL_DATASET = {
    "version": "test-1",
    "environments": ["legacy-ie", "chromium"],
    "features": {
        "optional-chaining": {
            "mdn_url": "https://developer.mozilla.org/docs/Web/JavaScript/Reference/Operators/Optional_chaining",
            "support": {"legacy-ie": False, "chromium": "80"},
        },
        "nullish-coalescing": {"support": {"legacy-ie": False, "chromium": "80"}},
        "fetch": {"support": {"legacy-ie": False, "chromium": "42"}},
        "promise": {"support": {"legacy-ie": False, "chromium": "32"}},
        "promise-all-settled": {"support": {"legacy-ie": False, "chromium": "76"}},
        "spread-in-arrays": {"support": {"legacy-ie": False, "chromium": "46"}},
        "await": {"support": {"legacy-ie": False, "chromium": "55"}},
    },
}


# ---------------------------------------------------------------------------
# Shared unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def small_database() -> CompatibilityDatabase:
    return CompatibilityDatabase.from_mapping(SMALL_DATASET)


@pytest.fixture
def parser() -> TreeSitterParser:
    return TreeSitterParser()


@pytest.fixture
def engine() -> FeatureRuleEngine:
    return default_engine()


@pytest.fixture
def detect_ids(parser: TreeSitterParser, engine: FeatureRuleEngine) -> Callable[..., list[str]]:
    """Return feature ids detected in a snippet, in document order."""

    def _detect(code: str, language: str = "javascript") -> list[str]:
        handle = parser.parse(code.encode("utf-8"), language)
        return [o.feature_id for o in engine.detect(handle, "<test>").occurrences]

    return _detect


@pytest.fixture
def thread_settings() -> Settings:
    return Settings(worker_mode="thread", workers=4)


@pytest.fixture
def counting_parser() -> CountingParser:
    return CountingParser()


@pytest.fixture
def executor() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def analyzer(
    small_database: CompatibilityDatabase,
    counting_parser: CountingParser,
    executor: ThreadPoolExecutor,
    thread_settings: Settings,
) -> Analyzer:
    return Analyzer(
        database=small_database,
        cache=CacheManager(InMemoryCacheStore()),
        parser=counting_parser,
        executor=executor,
        settings=thread_settings,
    )
