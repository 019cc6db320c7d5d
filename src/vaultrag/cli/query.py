"""vaultrag similar / search / find — look things up in the vault.

  similar NOTE    chunks from other notes closest to NOTE
  search QUERY    semantic search with TF-IDF re-ranking
  find NAME       fuzzy note-name lookup (no index needed)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from vaultrag.cli.common import DebugOption, VaultOption, console, load_vault_config, open_service
from vaultrag.cli.errors import err_note_not_found
from vaultrag.db.models import SearchHit
from vaultrag.rag.assembler import note_name
from vaultrag.rag.fuzzy import sequence_matching_search
from vaultrag.store import FolderDocumentStore

_SNIPPET_CHARS = 160


def similar_cmd(
    note: Annotated[str, typer.Argument(help="Vault-relative path of the note, e.g. Notes/Meeting.md")],
    vault: VaultOption = Path("."),
    debug: DebugOption = False,
) -> None:
    """Show sections of other notes similar to NOTE."""
    cfg = load_vault_config(vault, debug)

    with open_service(vault, cfg) as service:
        if not service.store.exists(note):
            console.print(err_note_not_found(note))
            raise typer.Exit(1)
        hits = service.retriever.similar_to_document(note)
        if not hits and service.index.get_document(note) is None:
            console.print(
                f"[yellow]{escape(note)} is not indexed yet.[/]  Run:  vaultrag index"
            )
            return

    _print_hits(hits, f"Similar to {note_name(note)}")


def search_cmd(
    query: Annotated[str, typer.Argument(help="Free-text query.")],
    vault: VaultOption = Path("."),
    debug: DebugOption = False,
) -> None:
    """Semantic search over every indexed note."""
    cfg = load_vault_config(vault, debug)

    with open_service(vault, cfg) as service:
        hits = service.retriever.search(query)

    _print_hits(hits, f"Results for {query!r}")


def find_cmd(
    name: Annotated[str, typer.Argument(help="Characters of the note name, in order.")],
    vault: VaultOption = Path("."),
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum matches to show.")] = 10,
) -> None:
    """Fuzzy-find notes by name, for use as wikilink references in chat."""
    cfg = load_vault_config(vault)
    store = FolderDocumentStore(vault)
    prefix = f"{cfg.llm_folder.rstrip('/')}/"
    documents = [d for d in store.list_documents() if not d.path.startswith(prefix)]

    matches = sequence_matching_search(name, documents)[:limit]
    if not matches:
        console.print(f"[dim]No notes match {escape(name)!r}.[/]")
        return
    for doc in matches:
        console.print(escape(f"[[{note_name(doc.path)}]]"))


def _print_hits(hits: list[SearchHit], title: str) -> None:
    if not hits:
        console.print("[dim]No similar sections found.[/]")
        return
    table = Table(title=escape(title), show_lines=True)
    table.add_column("Note", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Section")
    for hit in hits:
        snippet = " ".join(hit.contents.split())
        if len(snippet) > _SNIPPET_CHARS:
            snippet = snippet[: _SNIPPET_CHARS - 1] + "…"
        table.add_row(escape(note_name(hit.file_path)), f"{hit.score:.3f}", escape(snippet))
    console.print(table)
