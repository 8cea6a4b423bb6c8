"""vaultrag remove — drop one note from the index.

The note file itself is not touched.

Usage:
  vaultrag remove notes/old.md
  vaultrag remove notes/old.md --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from vaultrag.cli.errors import err_document_not_found, err_no_index
from vaultrag.cli.session import VaultOption, console, open_manager


def remove_cmd(
    document: Annotated[str, typer.Argument(help="Note path relative to the vault root.")],
    vault: VaultOption = Path("."),
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a note's chunks from the index."""
    with open_manager(vault) as manager:
        if not manager.load():
            console.print(err_no_index(str(manager.db_path)))
            raise typer.Exit(1)

        chunk_count = len(manager.store.records_for(document))
        if manager.store.fingerprint(document) is None:
            console.print(err_document_not_found(document))
            raise typer.Exit(0)

        console.print(f"\nRemove from index: [bold]{document}[/]  ({chunk_count} chunks)")
        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        removed = manager.remove_document(document)
        manager.save()

    console.print(f"[green]✓[/] Removed: {document}  ({removed} chunks)")
