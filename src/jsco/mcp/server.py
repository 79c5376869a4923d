"""FastMCP server exposing jsco tools."""

from __future__ import annotations

from typing import Any

from fastmcp import FastMCP

from jsco.core.analyze import Analyzer
from jsco.core.loader import source_from_code
from jsco.errors import JscoError
from jsco.models import AnalyzeOptions


def create_mcp_server(analyzer: Analyzer) -> FastMCP:
    """Create a FastMCP server wired to the given analyzer."""

    mcp = FastMCP("jsco", instructions="Detect JavaScript features and report which environments support them.")

    @mcp.tool()
    async def analyze(
        code: str | None = None,
        path: str | None = None,
        url: str | None = None,
        language: str | None = None,
        environments: list[str] | None = None,
    ) -> dict[str, Any]:
        """Analyze a snippet, local file or URL and return the compatibility report."""
        given = [v for v in (code, path, url) if v is not None]
        if len(given) != 1:
            return {"error": {"kind": "request", "message": "exactly one of 'code', 'path' or 'url' is required"}}
        options = AnalyzeOptions(environments=frozenset(environments or ()))
        try:
            if code is not None:
                unit = source_from_code(code, language)
            else:
                unit = await analyzer.load(given[0], options, language)
            report = await analyzer.analyze(unit, options)
        except JscoError as exc:
            return {"source": exc.source, "error": {"kind": exc.kind, "message": exc.message}}
        except ValueError as exc:
            return {"error": {"kind": "request", "message": str(exc)}}
        return report.model_dump(mode="json")

    @mcp.tool()
    async def list_features() -> list[dict[str, str]]:
        """List the features jsco can detect."""
        return [
            {"id": rule.id, "name": rule.name, "category": rule.category.value}
            for rule in sorted(analyzer.engine.rules, key=lambda r: r.id)
        ]

    @mcp.tool()
    async def compat(feature_id: str) -> dict[str, Any]:
        """Show the minimum supported version of one feature per environment."""
        entry = analyzer.database.lookup(feature_id)
        if entry is None:
            return {"feature_id": feature_id, "support": {}, "known": False}
        return {
            "feature_id": feature_id,
            "support": {env: entry.for_environment(env).render() for env in analyzer.database.environments},
            "mdn_url": entry.mdn_url,
            "known": True,
        }

    return mcp
