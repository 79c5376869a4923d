import pytest

from jsco.core.languages import (
    detect_language_from_identity,
    is_remote,
    is_supported_source,
    normalize_language,
    resolve_language,
)


@pytest.mark.parametrize(
    ("alias", "expected"),
    [("js", "javascript"), ("JavaScript", "javascript"), ("ts", "typescript"), ("tsx", "tsx"), (" jsx ", "javascript")],
)
def test_normalize_language(alias: str, expected: str) -> None:
    assert normalize_language(alias) == expected


def test_normalize_language_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="Unsupported language 'python'"):
        normalize_language("python")


@pytest.mark.parametrize(
    ("identity", "expected"),
    [
        ("src/app.js", "javascript"),
        ("lib/module.mjs", "javascript"),
        ("types/index.ts", "typescript"),
        ("ui/Button.tsx", "tsx"),
        ("https://cdn.example.com/lib.ts?v=3", "typescript"),
        ("https://cdn.example.com/bundle", "javascript"),
        ("README", "javascript"),
    ],
)
def test_detect_language_from_identity(identity: str, expected: str) -> None:
    assert detect_language_from_identity(identity) == expected


def test_resolve_language_prefers_explicit_language() -> None:
    assert resolve_language("ts", "file.js") == "typescript"
    assert resolve_language(None, "file.tsx") == "tsx"
    assert resolve_language(None, None) == "javascript"


def test_is_remote() -> None:
    assert is_remote("https://example.com/a.js")
    assert is_remote("http://example.com/a.js")
    assert not is_remote("./a.js")


def test_is_supported_source() -> None:
    assert is_supported_source("a.cjs")
    assert is_supported_source("A.JS")
    assert not is_supported_source("style.css")
