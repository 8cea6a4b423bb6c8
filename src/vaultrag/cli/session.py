"""Shared CLI plumbing: logging setup and manager construction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from vaultrag.cli.errors import err_config, err_no_api_key
from vaultrag.config import ConfigError, VaultRagConfig, load_config
from vaultrag.embed.factory import create_client
from vaultrag.index.manager import IndexManager

console = Console()

VaultOption = Annotated[
    Path,
    typer.Option("--vault", "-V", help="Vault root directory.", file_okay=False),
]


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich; DEBUG with --verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_vault_config(vault: Path) -> VaultRagConfig:
    try:
        return load_config(vault)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def open_manager(vault: Path, cfg: VaultRagConfig | None = None) -> IndexManager:
    """Build an IndexManager for *vault*, exiting with a helpful message on setup errors."""
    cfg = cfg or load_vault_config(vault)
    try:
        client = create_client(cfg.embedding)
    except EnvironmentError as exc:
        console.print(err_no_api_key(str(exc)))
        raise typer.Exit(1) from exc
    except ValueError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    return IndexManager.from_config(vault, cfg, client=client)
