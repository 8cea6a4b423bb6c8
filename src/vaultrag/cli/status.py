"""vaultrag status command.

Shows the configured backend and what the saved index contains. Reads the
snapshot database directly, so it works without embedding credentials.
"""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime
from pathlib import Path

from rich.panel import Panel

from vaultrag.cli.session import VaultOption, console, load_vault_config
from vaultrag.config import VaultRagConfig
from vaultrag.db.connection import Database
from vaultrag.db.repository import SnapshotRepository
from vaultrag.db.schema import SNAPSHOT_FORMAT, initialize
from vaultrag.db.vectors import list_vec_tables
from vaultrag.vault import FileSystemVault


def status_cmd(vault: VaultOption = Path(".")) -> None:
    """Show index status: backend, size, and freshness."""
    cfg = load_vault_config(vault)
    _show_config_panel(vault, cfg)

    db_path = vault / cfg.index.path
    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No index found.[/]\n  Run:  vaultrag build",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    with Database(db_path) as conn:
        initialize(conn)
        _show_index_panel(db_path, conn, cfg)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(vault: Path, cfg: VaultRagConfig) -> None:
    notes = len(FileSystemVault(vault, cfg.index.extensions).list_documents())
    lines = [
        f"Vault:     [bold]{vault.resolve()}[/] ({notes} notes)",
        f"Backend:   {cfg.embedding.backend}:{cfg.embedding.model}",
        f"Chunking:  {cfg.chunking.chunk_size} tokens, {cfg.chunking.overlap} overlap",
    ]
    if cfg.embedding.url:
        lines.append(f"Endpoint:  {cfg.embedding.url}")
    console.print(Panel("\n".join(lines), title="[bold]Configuration[/]", expand=False))


def _show_index_panel(db_path: Path, conn: sqlite3.Connection, cfg: VaultRagConfig) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    repo = SnapshotRepository(conn)
    meta = repo.load_meta()

    lines = [f"Database:  {db_path} ({size_mb:.1f} MB)"]
    if meta is None:
        lines.append("[dim]Index is empty.[/]")
        console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
        return

    documents = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
    chunks = conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
    lines.append(
        f"Notes: [bold]{documents:,}[/]  |  Chunks: [bold]{chunks:,}[/]  |  "
        f"Dimensions: [bold]{meta['dimensions'] or '-'}[/]"
    )
    lines.append(f"Built with: {meta['backend_id'] or '-'}")
    for table in list_vec_tables(conn):
        lines.append(f"  [dim]{table}[/]")

    built = datetime.fromtimestamp(meta["built_at"]).strftime("%Y-%m-%d %H:%M")
    age_days = (time.time() - meta["built_at"]) / 86_400
    lines.append(f"Built at:  [dim]{built}[/]")

    configured = f"{cfg.embedding.backend}:{cfg.embedding.model}"
    if meta["format_version"] != SNAPSHOT_FORMAT:
        lines.append("[yellow]✗ Outdated format — next build re-indexes everything[/]")
    elif meta["backend_id"] and meta["backend_id"] != configured:
        lines.append("[yellow]✗ Built with another backend — run: vaultrag build --force[/]")
    elif age_days > cfg.index.max_age_days:
        lines.append(f"[yellow]✗ Older than {cfg.index.max_age_days:g} days — next build refreshes it[/]")
    else:
        lines.append("[green]✓ Up to date[/]")

    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
