"""vaultrag rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from vaultrag.cli.errors import err_no_index
    console.print(err_no_index(".vaultrag.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from vaultrag.db.models import SkippedDocument


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        "  Fix vaultrag.yaml in the vault root (or ~/.vaultrag/config.yaml)."
    )


def err_no_api_key(message: str) -> str:
    """Embedding provider key missing from the environment.

    Example:
        API key not found for provider 'openai'. Set the OPENAI_API_KEY ...
    """
    return (
        f"[red]Error:[/] {message}\n"
        "  Or point vaultrag at a local server:  embedding.backend: http"
    )


def err_no_index(db_path: str) -> str:
    """No usable snapshot at *db_path*."""
    return (
        f"[red]Error:[/] No usable index found at '{db_path}'.\n"
        "  Run:  vaultrag build"
    )


def err_embedding(message: str) -> str:
    """The embedding backend failed after retries."""
    return (
        f"[red]Error:[/] Embedding backend failed: {message}\n"
        "  Check that the backend is reachable, then retry.\n"
        "  Run:  vaultrag status  to see the configured backend."
    )


def err_dimensionality(message: str) -> str:
    """Stored vectors come from a different backend or model."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Rebuild the index for the current backend:  vaultrag build --force"
    )


def err_document_not_found(document_id: str) -> str:
    """Document id is not part of the index."""
    return (
        f"[yellow]Document not indexed:[/] '{document_id}'\n"
        "  Run:  vaultrag status  to see index contents."
    )


def err_build_running() -> str:
    return (
        "[red]Error:[/] Another index build is already running.\n"
        "  Wait for it to finish, then retry."
    )


def warn_skipped(skipped: list[SkippedDocument]) -> str:
    """Documents left out of the build — listed with their reasons."""
    lines = [f"[yellow]⚠[/] {len(skipped)} document(s) skipped:"]
    for item in skipped:
        lines.append(f"    {item.document_id}: [dim]{item.reason}[/]")
    lines.append("  They will be retried on the next build.")
    return "\n".join(lines)
