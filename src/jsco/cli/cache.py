import asyncio

import typer
from rich.console import Console
from rich.table import Table

from jsco.cache import create_cache_manager
from jsco.config import Settings

cache_app = typer.Typer(help="Inspect and clear the result cache.")
console = Console()


@cache_app.command("info")
def info() -> None:
    """Show cache backend and entry counts."""
    settings = Settings.from_env()
    manager = create_cache_manager(settings)

    async def _run() -> dict[str, int]:
        try:
            return await manager.stats()
        finally:
            await manager.dispose()

    stats = asyncio.run(_run())
    table = Table(show_header=False)
    table.add_row("backend", settings.cache_backend)
    if settings.cache_backend == "file":
        table.add_row("directory", str(settings.cache_dir))
    for name, value in stats.items():
        table.add_row(name, str(value))
    console.print(table)


@cache_app.command("clear")
def clear() -> None:
    """Delete every cached entry."""
    settings = Settings.from_env()
    manager = create_cache_manager(settings)

    async def _run() -> int:
        try:
            return await manager.clear()
        finally:
            await manager.dispose()

    removed = asyncio.run(_run())
    console.print(f"[green]Removed[/green] {removed} cache entries ({settings.cache_backend})")
