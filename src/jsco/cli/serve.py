from dataclasses import replace
from typing import Any

import typer
from rich.console import Console

from jsco.config import Settings

serve_app = typer.Typer(help="Start servers.")
console = Console()
# stdout belongs to the protocol when MCP runs over stdio.
err_console = Console(stderr=True)

MCP_TRANSPORTS = ("stdio", "sse", "http")


def _settings(worker_mode: str | None, workers: int | None) -> Settings:
    settings = Settings.from_env()
    if worker_mode is not None:
        if worker_mode not in ("process", "thread"):
            raise typer.BadParameter("must be 'process' or 'thread'", param_hint="--worker-mode")
        settings = replace(settings, worker_mode=worker_mode)
    if workers is not None:
        settings = replace(settings, workers=workers)
    return settings


@serve_app.command("api")
def api(
    host: str = "127.0.0.1",
    port: int = 8000,
    worker_mode: str | None = typer.Option(None, "--worker-mode", help="Detection pool: process or thread."),
    workers: int | None = typer.Option(None, "--workers", min=1, help="Detection pool size (default: CPU count)."),
) -> None:
    """Serve /analyze and /analyze/batch over HTTP."""
    import uvicorn

    from jsco.api.app import create_app

    settings = _settings(worker_mode, workers)
    app = create_app(settings)
    console.print(
        f"[green]jsco API on http://{host}:{port}[/green] "
        f"[dim]({settings.worker_mode} pool of {settings.worker_count}, {settings.cache_backend} cache)[/dim]"
    )
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


@serve_app.command("mcp")
def mcp(
    transport: str = typer.Option("stdio", help="One of: stdio, sse, http."),
    host: str = "127.0.0.1",
    port: int = 8002,
    worker_mode: str | None = typer.Option(None, "--worker-mode", help="Detection pool: process or thread."),
) -> None:
    """Expose the analyze, list_features and compat tools over MCP."""
    from jsco.core.analyze import Analyzer
    from jsco.mcp.server import create_mcp_server

    if transport not in MCP_TRANSPORTS:
        raise typer.BadParameter(f"must be one of {', '.join(MCP_TRANSPORTS)}", param_hint="--transport")
    analyzer = Analyzer(settings=_settings(worker_mode, None))
    server = create_mcp_server(analyzer)

    run_kwargs: dict[str, Any] = {"transport": transport}
    if transport == "stdio":
        err_console.print(f"[green]jsco MCP server on stdio[/green] [dim](dataset {analyzer.database.version})[/dim]")
    else:
        run_kwargs.update(host=host, port=port)
        err_console.print(
            f"[green]jsco MCP server on {transport} http://{host}:{port}[/green] "
            f"[dim](dataset {analyzer.database.version})[/dim]"
        )
    server.run(**run_kwargs)
