import logging
import os
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from jsco.cli.cache import cache_app
from jsco.cli.check import check, features
from jsco.cli.serve import serve_app

app = typer.Typer(
    name="jsco",
    help="jsco: detect modern JavaScript features and check where they run.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def setup_logging(verbose: bool = False) -> None:
    level = "DEBUG" if verbose else os.getenv("JSCO_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr.")] = False,
) -> None:
    setup_logging(verbose)


app.command("check")(check)
app.command("features")(features)
app.add_typer(cache_app, name="cache")
app.add_typer(serve_app, name="serve")


def main() -> None:
    app()
