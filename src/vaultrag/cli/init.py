"""vaultrag init — set up a vault for indexing.

Creates:
  vaultrag.yaml   — per-vault config with every default spelled out (kept if present)
  .vaultrag.db    — empty index database with schema (or the configured db_path)
  <llm_folder>/   — folder for saved chat transcripts
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from vaultrag.cli.common import console, load_vault_config, open_service
from vaultrag.config import PROJECT_CONFIG_NAME, write_project_config


def init_cmd(
    vault: Annotated[
        Path,
        typer.Argument(help="Vault folder to initialize. Defaults to current directory."),
    ] = Path("."),
) -> None:
    """Initialize a vault: config file, index database, chat folder."""
    vault = vault.resolve()
    config_existed = (vault / PROJECT_CONFIG_NAME).exists()
    cfg = load_vault_config(vault)

    config_path = write_project_config(vault, cfg)
    if config_existed:
        console.print(f"  [dim]↷ {config_path.name} already exists — kept[/]")
    else:
        console.print(f"  [green]✓[/] {config_path.name}")

    with open_service(vault, cfg) as service:
        service.store.ensure_folder(cfg.llm_folder)
        db_path = cfg.resolve_db_path(vault)
    console.print(f"  [green]✓[/] {db_path.name}")
    console.print(f"  [green]✓[/] {cfg.llm_folder}/")
    console.print("\nNext:  [bold]vaultrag index[/]")
