"""Read-only compatibility database.

The dataset is loaded once per process through ``initialize_database`` (or
lazily by ``get_database``) and never mutated afterwards, so concurrent
analyses can call ``lookup`` without coordination.
"""

import json
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import Any

from jsco.core.rules import DEFAULT_RULES, FeatureRule
from jsco.models import CompatibilityEntry, Support

logger = logging.getLogger(__name__)

BUNDLED_DATASET = Path(__file__).parent.parent / "data" / "compat.json"

DEFAULT_BCD_ENVIRONMENTS = ("chrome", "edge", "firefox", "safari", "nodejs")


def version_key(version: str) -> tuple[int, ...]:
    """Numeric sort key for dotted versions such as ``"13.1"`` or ``"14.0.0"``."""
    parts: list[int] = []
    for piece in version.split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def parse_support(value: Any) -> Support:
    """Convert a dataset value (version string, ``false``, ``null``) into a ``Support``."""
    if value is False:
        return Support.unsupported()
    if value is None or value is True:
        return Support.unknown()
    if isinstance(value, (int, float)):
        return Support.minimum(str(value))
    if isinstance(value, str):
        version = value.strip().lstrip("≤").lstrip("<=").strip()
        if not version:
            return Support.unknown()
        if version.lower() == "preview":
            return Support.unsupported()
        return Support.minimum(version)
    raise ValueError(f"Unsupported compatibility value: {value!r}")


def _bcd_statement_support(statement: Any) -> Support:
    if isinstance(statement, list):
        if not statement:
            return Support.unknown()
        statement = statement[0]
    if not isinstance(statement, Mapping):
        return Support.unknown()
    if statement.get("flags"):
        return Support.unsupported()
    return parse_support(statement.get("version_added"))


def _read_path(data: Mapping[str, Any], path: Sequence[str]) -> Mapping[str, Any] | None:
    current: Any = data
    for part in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current if isinstance(current, Mapping) else None


class CompatibilityDatabase:
    def __init__(
        self,
        entries: Iterable[CompatibilityEntry],
        environments: Sequence[str] | None = None,
        version: str = "unversioned",
    ) -> None:
        by_id = {entry.feature_id: entry for entry in entries}
        self._entries: Mapping[str, CompatibilityEntry] = MappingProxyType(by_id)
        if environments is None:
            environments = sorted({env for entry in by_id.values() for env in entry.support})
        self._environments = tuple(environments)
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    @property
    def environments(self) -> tuple[str, ...]:
        return self._environments

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._entries

    def lookup(self, feature_id: str) -> CompatibilityEntry | None:
        return self._entries.get(feature_id)

    def feature_ids(self) -> list[str]:
        return sorted(self._entries)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CompatibilityDatabase":
        """Build from the bundled schema.

        ``{"version": str, "environments": [...], "features": {id: {"mdn_url": str,
        "support": {env: "80" | false | null}}}}``
        """
        features = data.get("features")
        if not isinstance(features, Mapping):
            raise ValueError("Compatibility dataset has no 'features' mapping")
        entries = []
        for feature_id, body in features.items():
            support_data = body.get("support", {}) if isinstance(body, Mapping) else {}
            entries.append(
                CompatibilityEntry(
                    feature_id=feature_id,
                    support={env: parse_support(value) for env, value in support_data.items()},
                    mdn_url=body.get("mdn_url") if isinstance(body, Mapping) else None,
                )
            )
        environments = data.get("environments")
        return cls(
            entries,
            environments=list(environments) if environments else None,
            version=str(data.get("version", "unversioned")),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "CompatibilityDatabase":
        file_path = Path(path)
        try:
            raw = json.loads(file_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise FileNotFoundError(f"Compatibility dataset not found: {path}") from None
        if isinstance(raw, Mapping) and "features" not in raw and "javascript" in raw:
            return cls.from_bcd(raw)
        return cls.from_mapping(raw)

    @classmethod
    def bundled(cls) -> "CompatibilityDatabase":
        return cls.from_file(BUNDLED_DATASET)

    @classmethod
    def from_bcd(
        cls,
        data: Mapping[str, Any],
        rules: Iterable[FeatureRule] = DEFAULT_RULES,
        environments: Sequence[str] = DEFAULT_BCD_ENVIRONMENTS,
    ) -> "CompatibilityDatabase":
        """Build from an MDN browser-compat-data ``data.json`` document.

        Only features with a BCD key in *rules* are extracted; rules whose key is
        absent from the document stay out of the database and report as unknown.
        """
        entries = []
        for rule in rules:
            if rule.bcd_key is None:
                continue
            node = _read_path(data, rule.bcd_key)
            compat = node.get("__compat") if node is not None else None
            if not isinstance(compat, Mapping):
                logger.debug("No BCD data for %s at %s", rule.id, ".".join(rule.bcd_key))
                continue
            support = compat.get("support", {})
            entries.append(
                CompatibilityEntry(
                    feature_id=rule.id,
                    support={env: _bcd_statement_support(support.get(env)) for env in environments},
                    mdn_url=compat.get("mdn_url"),
                )
            )
        meta = data.get("__meta", {})
        version = f"bcd-{meta.get('version', 'unknown')}" if isinstance(meta, Mapping) else "bcd-unknown"
        return cls(entries, environments=environments, version=version)


_database: CompatibilityDatabase | None = None
_lock = threading.Lock()


def initialize_database(
    path: str | Path | None = None,
    database: CompatibilityDatabase | None = None,
) -> CompatibilityDatabase:
    """Load the process-wide database once; later calls return the loaded instance."""
    global _database  # noqa: PLW0603
    with _lock:
        if _database is None:
            if database is None:
                database = CompatibilityDatabase.from_file(path) if path else CompatibilityDatabase.bundled()
            _database = database
            logger.info("Loaded compatibility dataset %s (%d features)", _database.version, len(_database))
        elif path is not None or database is not None:
            logger.warning("Compatibility dataset already initialized (%s); ignoring new source", _database.version)
        return _database


def get_database() -> CompatibilityDatabase:
    if _database is None:
        return initialize_database()
    return _database
