"""Tests for the jsco CLI."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from jsco.cli.app import app

runner = CliRunner()

_ENV = {"JSCO_WORKER_MODE": "thread", "JSCO_WORKERS": "2", "JSCO_CACHE_BACKEND": "memory"}


@pytest.mark.parametrize(
    "args",
    [[], ["check"], ["cache"], ["serve"], ["features"]],
    ids=["root", "check", "cache", "serve", "features"],
)
def test_short_help_flag(args: list[str]) -> None:
    result = runner.invoke(app, [*args, "-h"])
    assert result.exit_code == 0
    assert "Usage" in result.output


def test_check_json_output(tmp_path: Path) -> None:
    source = tmp_path / "app.js"
    source.write_text("const x = a?.b ?? c;\nfetch(x);\n", encoding="utf-8")

    result = runner.invoke(app, ["check", str(source), "--format", "json", "--env", "chrome"], env=_ENV)

    assert result.exit_code == 0, result.output
    (report,) = json.loads(result.stdout)
    assert report["source"] == str(source)
    assert [f["id"] for f in report["features"]] == ["fetch", "nullish-coalescing", "optional-chaining"]
    assert report["summary"] == {"chrome": "80"}


def test_check_inline_code_console_output() -> None:
    result = runner.invoke(app, ["check", "--code", "structuredClone(v);", "--env", "chrome"], env=_ENV)
    assert result.exit_code == 0, result.output
    assert "structuredClone" in result.output


def test_check_directory_reports_errors_with_exit_code(tmp_path: Path) -> None:
    (tmp_path / "ok.js").write_text("queueMicrotask(f);", encoding="utf-8")
    (tmp_path / "broken.js").write_text("function (", encoding="utf-8")

    result = runner.invoke(app, ["check", str(tmp_path), "--format", "json"], env=_ENV)

    assert result.exit_code == 1
    broken, ok = json.loads(result.stdout)
    assert broken["error"]["kind"] == "parse"
    assert [f["id"] for f in ok["features"]] == ["queue-microtask"]


def test_check_without_inputs_fails() -> None:
    result = runner.invoke(app, ["check"], env=_ENV)
    assert result.exit_code == 2


def test_check_rejects_unknown_format(tmp_path: Path) -> None:
    result = runner.invoke(app, ["check", str(tmp_path), "--format", "xml"], env=_ENV)
    assert result.exit_code != 0


def test_features_lists_rules() -> None:
    result = runner.invoke(app, ["features"], env=_ENV)
    assert result.exit_code == 0
    assert "optional-chaining" in result.output


def test_cache_info_and_clear(tmp_path: Path) -> None:
    env = {**_ENV, "JSCO_CACHE_BACKEND": "file", "JSCO_CACHE_DIR": str(tmp_path / "cache")}
    source = tmp_path / "a.js"
    source.write_text("globalThis.x = 1;", encoding="utf-8")

    assert runner.invoke(app, ["check", str(source)], env=env).exit_code == 0
    info = runner.invoke(app, ["cache", "info"], env=env)
    assert info.exit_code == 0
    assert "file" in info.output

    cleared = runner.invoke(app, ["cache", "clear"], env=env)
    assert cleared.exit_code == 0
    assert "Removed 1 cache entries" in cleared.output


def test_serve_mcp_rejects_unknown_transport() -> None:
    result = runner.invoke(app, ["serve", "mcp", "--transport", "carrier-pigeon"], env=_ENV)
    assert result.exit_code == 2


def test_serve_api_rejects_unknown_worker_mode() -> None:
    result = runner.invoke(app, ["serve", "api", "--worker-mode", "fibers"], env=_ENV)
    assert result.exit_code == 2
