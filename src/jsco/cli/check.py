import asyncio
import json
from collections.abc import Sequence
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from jsco.config import Settings
from jsco.core.analyze import Analyzer, BatchResult
from jsco.core.compat import initialize_database
from jsco.core.engine import default_engine
from jsco.core.loader import expand_inputs, source_from_code
from jsco.errors import JscoError
from jsco.models import AnalysisReport, AnalyzeOptions, SourceUnit

console = Console()

_STATUS_STYLES = {"unsupported": "red", "unknown": "dim"}


def _style(value: str) -> str:
    style = _STATUS_STYLES.get(value)
    return f"[{style}]{value}[/{style}]" if style else value


def error_payload(error: JscoError) -> dict[str, Any]:
    payload: dict[str, Any] = {"source": error.source, "error": {"kind": error.kind, "message": error.message}}
    line = getattr(error, "line", None)
    if line is not None:
        payload["error"]["line"] = line
        payload["error"]["column"] = getattr(error, "column", None)
    return payload


def result_payload(result: BatchResult) -> dict[str, Any]:
    if isinstance(result, JscoError):
        return error_payload(result)
    return result.model_dump(mode="json")


def _render_report(report: AnalysisReport) -> None:
    environments = list(report.summary)
    table = Table(title=escape(report.source), show_lines=False)
    table.add_column("feature")
    table.add_column("count", justify="right")
    table.add_column("first seen")
    for env in environments:
        table.add_column(env)
    for row in report.features:
        first = row.occurrences[0] if row.occurrences else None
        table.add_row(
            row.name,
            str(row.count),
            f"{first.line}:{first.column}" if first else "",
            *(_style(row.compatibility[env]) for env in environments),
        )
    table.add_section()
    table.add_row("[bold]minimum[/bold]", "", "", *(_style(report.summary[env]) for env in environments))
    console.print(table)
    if not report.features:
        console.print("[dim]No tracked features detected.[/dim]")
    for fault in report.diagnostics:
        console.print(
            f"[yellow]rule {fault.rule_id} failed at {fault.line}:{fault.column}: {escape(fault.message)}[/yellow]"
        )


def render_console(results: Sequence[BatchResult]) -> None:
    for result in results:
        if isinstance(result, JscoError):
            console.print(f"[red]{result.kind} error[/red] {escape(result.source)}: {escape(result.message)}")
        else:
            _render_report(result)


def check(
    inputs: Annotated[
        list[str] | None, typer.Argument(help="Files, directories, glob patterns or URLs to analyze.")
    ] = None,
    code: Annotated[str | None, typer.Option(help="Analyze a source snippet instead of inputs.")] = None,
    language: Annotated[str | None, typer.Option(help="Language of --code (javascript, typescript, tsx).")] = None,
    output_format: Annotated[str, typer.Option("--format", "-f", help="Output format: console or json.")] = "console",
    env: Annotated[
        list[str] | None, typer.Option("--env", "-e", help="Environment to report on; repeatable.")
    ] = None,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Bypass the result cache.")] = False,
    timeout: Annotated[float | None, typer.Option(help="Per-input load and parse timeout in seconds.")] = None,
) -> None:
    """Detect features in the inputs and report their compatibility."""
    if output_format not in ("console", "json"):
        raise typer.BadParameter("must be 'console' or 'json'", param_hint="--format")

    refs: list[SourceUnit | str]
    if code is not None:
        try:
            refs = [source_from_code(code, language)]
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--language") from exc
    else:
        refs = list(expand_inputs(inputs or []))
    if not refs:
        console.print("[red]No inputs to analyze.[/red]")
        raise typer.Exit(code=2)

    options = AnalyzeOptions(use_cache=not no_cache, environments=frozenset(env or ()), timeout=timeout)

    async def _run() -> list[BatchResult]:
        async with Analyzer(settings=Settings.from_env()) as analyzer:
            return await analyzer.analyze_batch(refs, options)

    results = asyncio.run(_run())
    if output_format == "json":
        typer.echo(json.dumps([result_payload(r) for r in results], indent=2))
    else:
        render_console(results)

    if any(isinstance(r, JscoError) for r in results):
        raise typer.Exit(code=1)


def features() -> None:
    """List the detection rules and whether the dataset covers them."""
    database = initialize_database(Settings.from_env().compat_data)
    table = Table(show_lines=False)
    for header in ("id", "name", "category", "data"):
        table.add_column(header)
    rules = sorted(default_engine().rules, key=lambda r: r.id)
    for rule in rules:
        table.add_row(rule.id, rule.name, rule.category.value, "yes" if rule.id in database else "[dim]no[/dim]")
    console.print(table)
    console.print(f"({len(rules)} rules, dataset {database.version})")
