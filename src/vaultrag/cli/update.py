"""vaultrag update — re-index a single note after editing it.

Usage:
  vaultrag update notes/today.md
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from vaultrag.cli.errors import err_no_index
from vaultrag.cli.session import VaultOption, console, open_manager
from vaultrag.index.manager import UpdateOutcome


def update_cmd(
    document: Annotated[str, typer.Argument(help="Note path relative to the vault root.")],
    vault: VaultOption = Path("."),
) -> None:
    """Re-chunk and re-embed one note."""
    with open_manager(vault) as manager:
        if not manager.load():
            console.print(err_no_index(str(manager.db_path)))
            raise typer.Exit(1)
        outcome = manager.update_document(document).result()
        reason = manager.failed_documents().get(document)

    if outcome is UpdateOutcome.APPLIED:
        console.print(f"[green]✓[/] Re-indexed: {document}")
    elif outcome is UpdateOutcome.UNCHANGED:
        console.print(f"[dim]↷ Unchanged — {document} is already up to date[/]")
    else:
        console.print(f"[red]✗ Could not index[/] {document}: {reason or outcome.value}")
        raise typer.Exit(1)
