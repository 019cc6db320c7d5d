"""vaultrag index / watch — bring the vector index in sync with the vault.

  vaultrag index   one reconcile pass with a progress bar
  vaultrag watch   reconcile every reconcile_interval seconds until Ctrl-C
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from vaultrag.cli.common import DebugOption, VaultOption, console, load_vault_config, open_service
from vaultrag.cli.errors import warn_index_busy, warn_partial_failures
from vaultrag.ingest.indexer import ReconcileReport


def index_cmd(vault: VaultOption = Path("."), debug: DebugOption = False) -> None:
    """Embed new and changed notes; drop deleted ones."""
    cfg = load_vault_config(vault, debug)

    with open_service(vault, cfg) as service:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Indexing notes…", total=None)

            def _progress(done: int, total: int) -> None:
                prog.update(task, completed=done, total=total)

            report = service.reconcile(progress=_progress)

    if report is None:
        console.print(warn_index_busy())
        return
    _print_report(report)
    if report.failures:
        raise typer.Exit(1)


def watch_cmd(vault: VaultOption = Path("."), debug: DebugOption = False) -> None:
    """Keep the index current in the background until interrupted."""
    cfg = load_vault_config(vault, debug)

    with open_service(vault, cfg) as service:
        service.start_scheduler(on_update=_print_report)
        console.print(
            f"Watching [bold]{escape(str(vault))}[/] every {cfg.reconcile_interval:g}s"
            "  (Ctrl-C to stop)"
        )
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            console.print("\n[dim]Stopping…[/]")


def _print_report(report: ReconcileReport) -> None:
    current = report.total - len(report.processed) - len(report.failures)
    console.print(
        f"  [green]✓[/] {len(report.processed)} indexed  |  "
        f"{current} unchanged  |  {len(report.pruned)} removed"
    )
    if report.failures:
        console.print(warn_partial_failures(report.failures))
