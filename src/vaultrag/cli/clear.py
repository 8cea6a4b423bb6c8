"""vaultrag clear — delete the whole index (notes are untouched)."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from vaultrag.cli.session import VaultOption, console, open_manager


def clear_cmd(
    vault: VaultOption = Path("."),
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete every indexed chunk and the saved index."""
    if not yes:
        if not typer.confirm("Delete the whole index?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    with open_manager(vault) as manager:
        manager.clear_index()

    console.print("[green]✓[/] Index cleared. Run  vaultrag build  to re-index.")
