from pathlib import PurePosixPath
from urllib.parse import urlparse

_LANGUAGE_ALIASES = {
    "javascript": "javascript",
    "js": "javascript",
    "jsx": "javascript",
    "ecmascript": "javascript",
    "ts": "typescript",
    "typescript": "typescript",
    "tsx": "tsx",
}

_EXTENSION_LANGUAGE_MAP = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(_EXTENSION_LANGUAGE_MAP)

_SUPPORTED_LANGUAGES = set(_LANGUAGE_ALIASES.values())

DEFAULT_LANGUAGE = "javascript"


def normalize_language(language: str) -> str:
    normalized = language.strip().lower()
    resolved = _LANGUAGE_ALIASES.get(normalized, normalized)
    if resolved not in _SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language '{language}'. Supported: {sorted(_SUPPORTED_LANGUAGES)}")
    return resolved


def is_remote(identity: str) -> bool:
    return identity.startswith(("http://", "https://"))


def detect_language_from_identity(identity: str) -> str:
    """Resolve the grammar for a path or URL; unknown suffixes fall back to JavaScript."""
    path = urlparse(identity).path if is_remote(identity) else identity
    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lower()
    return _EXTENSION_LANGUAGE_MAP.get(suffix, DEFAULT_LANGUAGE)


def resolve_language(language: str | None, identity: str | None) -> str:
    if language:
        return normalize_language(language)
    if identity:
        return detect_language_from_identity(identity)
    return DEFAULT_LANGUAGE


def is_supported_source(path: str) -> bool:
    return PurePosixPath(path.replace("\\", "/")).suffix.lower() in SUPPORTED_EXTENSIONS
