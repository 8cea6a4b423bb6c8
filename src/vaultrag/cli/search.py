"""vaultrag search — semantic search over the vault.

Builds the index first when none exists yet.

Usage:
  vaultrag search "how do I rotate keys"
  vaultrag search "meeting notes" -k 5
  vaultrag search "project goals" --context
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from vaultrag.cli.errors import err_dimensionality, err_embedding
from vaultrag.cli.session import VaultOption, console, open_manager
from vaultrag.errors import DimensionalityMismatch, EmbeddingError

_PREVIEW_CHARS = 120


def search_cmd(
    query: Annotated[str, typer.Argument(help="What to look for.")],
    vault: VaultOption = Path("."),
    k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Number of results (default: retrieval.top_k)."),
    ] = None,
    context: Annotated[
        bool,
        typer.Option("--context", help="Print one full passage per note, ready for a prompt."),
    ] = False,
) -> None:
    """Find the passages most similar to QUERY."""
    with open_manager(vault) as manager:
        try:
            if context:
                passages = manager.retrieve_context(query, k)
                hits = None
            else:
                hits = manager.search(query, k)
        except EmbeddingError as exc:
            console.print(err_embedding(str(exc)))
            raise typer.Exit(1)
        except DimensionalityMismatch as exc:
            console.print(err_dimensionality(str(exc)))
            raise typer.Exit(1)

    if hits is None:
        if not passages:
            console.print("[dim]No context found.[/]")
            return
        console.print("\n\n".join(passages), markup=False, highlight=False)
        return

    if not hits:
        console.print("[dim]No results — the index is empty.[/]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Note")
    table.add_column("Passage")
    for rank, hit in enumerate(hits, start=1):
        preview = " ".join(hit.chunk_text.split())
        if len(preview) > _PREVIEW_CHARS:
            preview = preview[: _PREVIEW_CHARS - 1] + "…"
        table.add_row(str(rank), f"{hit.score:.3f}", hit.document_id, preview)
    console.print(table)
