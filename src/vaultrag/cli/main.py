"""vaultrag CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from vaultrag.cli.build import build_cmd
from vaultrag.cli.clear import clear_cmd
from vaultrag.cli.remove import remove_cmd
from vaultrag.cli.search import search_cmd
from vaultrag.cli.session import setup_logging
from vaultrag.cli.status import status_cmd
from vaultrag.cli.update import update_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("vaultrag")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vaultrag {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="vaultrag",
    help=(
        "vaultrag — semantic search over a notes vault.\n\n"
        "  vaultrag build    Chunk, embed and index every note.\n"
        "  vaultrag search   Find the passages closest to a query."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    """vaultrag — semantic search over a notes vault."""
    setup_logging(verbose)


app.command("build")(build_cmd)
app.command("search")(search_cmd)
app.command("status")(status_cmd)
app.command("update")(update_cmd)
app.command("remove")(remove_cmd)
app.command("clear")(clear_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed vaultrag version."""
    typer.echo(f"vaultrag {_installed_version()}")


if __name__ == "__main__":
    app()
