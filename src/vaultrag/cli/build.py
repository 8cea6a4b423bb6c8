"""vaultrag build — index (or re-index) the vault.

Without --force the persisted snapshot is reused: unchanged notes keep their
vectors, edited and new notes are re-embedded, deleted notes are dropped.

Usage:
  vaultrag build
  vaultrag build --force
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from vaultrag.cli.errors import err_build_running, warn_skipped
from vaultrag.cli.session import VaultOption, console, open_manager
from vaultrag.errors import BuildCancelled
from vaultrag.index.manager import CancelToken


def build_cmd(
    vault: VaultOption = Path("."),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Re-embed every note, ignoring the saved index."),
    ] = False,
) -> None:
    """Build the semantic index for the vault."""
    token = CancelToken()
    with open_manager(vault) as manager:
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                console=console,
            ) as prog:
                prog.add_task("Indexing notes…", total=None)
                result = manager.build_index(force=force, cancel=token)
        except KeyboardInterrupt:
            token.cancel()
            console.print("[yellow]Build interrupted — previous index kept.[/]")
            raise typer.Exit(130)
        except BuildCancelled:
            console.print("[yellow]Build cancelled — previous index kept.[/]")
            raise typer.Exit(1)
        except RuntimeError:
            console.print(err_build_running())
            raise typer.Exit(1)

    console.print(
        f"[green]✓[/] Indexed [bold]{result.document_count}[/] notes "
        f"([bold]{result.chunk_count}[/] chunks)"
    )
    if result.reused_documents:
        console.print(f"  [dim]↷ {result.reused_documents} unchanged notes reused[/]")
    if result.skipped_documents:
        console.print(warn_skipped(result.skipped_documents))
