"""vaultrag status / reset.

status shows the vault overview: configuration, index contents, and how many
notes are waiting for the next index pass. reset drops every indexed record.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel

from vaultrag.cli.common import DebugOption, VaultOption, console, load_vault_config, open_service
from vaultrag.config import RagConfig
from vaultrag.db.models import Collection
from vaultrag.ingest.fingerprint import FingerprintTracker
from vaultrag.llm.client import get_context_window
from vaultrag.service import RagService


def status_cmd(vault: VaultOption = Path("."), debug: DebugOption = False) -> None:
    """Show configuration, index size, and pending notes."""
    cfg = load_vault_config(vault, debug)

    _show_config_panel(vault, cfg)
    with open_service(vault, cfg) as service:
        _show_index_panel(service)


def reset_cmd(
    vault: VaultOption = Path("."),
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    debug: DebugOption = False,
) -> None:
    """Drop the whole index; the next index run re-embeds every note."""
    cfg = load_vault_config(vault, debug)

    if not yes:
        if not typer.confirm("Delete every indexed note and section?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    with open_service(vault, cfg) as service:
        service.reset()
    console.print("[green]✓[/] Index reset.  Run:  [bold]vaultrag index[/]")


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(vault: Path, cfg: RagConfig) -> None:
    model_window = get_context_window(cfg.selected_llm, default=cfg.context_window)
    lines = [
        f"Vault:       {escape(str(vault.resolve()))}",
        f"Chat model:  [bold]{escape(cfg.selected_llm)}[/]  (context {cfg.context_window:,},"
        f" model max {model_window:,})",
        f"Embeddings:  [bold]{escape(cfg.selected_embedding)}[/]",
        f"Chunks:      {cfg.chunk_size} chars, {cfg.chunk_overlap} overlap"
        f"{', with context summary' if cfg.use_context else ''}",
        f"Search:      top {cfg.similar_notes_search_limit},"
        f" distance ≤ {cfg.similarity_threshold:g}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Configuration[/]", expand=False))


def _show_index_panel(service: RagService) -> None:
    index = service.index
    if not index.is_ready():
        console.print(
            Panel(
                "[yellow]Not indexed yet.[/]\n  Run:  vaultrag index",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    documents = service.indexer.eligible_documents()
    new, updated = FingerprintTracker(index).classify(documents)
    deleted = FingerprintTracker(index).find_deleted(documents)
    pending = len(new) + len(updated)

    lines = [
        f"Notes:       [bold]{index.count(Collection.DOCUMENTS):,}[/]  |  "
        f"Sections: [bold]{index.count(Collection.CHUNKS):,}[/]  |  "
        f"Dimensions: {index.dimensions()}",
        f"In vault:    {len(documents):,}",
    ]
    if pending or deleted:
        lines.append(
            f"Pending:     [yellow]{len(new)} new, {len(updated)} changed, "
            f"{len(deleted)} deleted[/]  →  vaultrag index"
        )
    else:
        lines.append("Pending:     [green]up to date[/]")
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
