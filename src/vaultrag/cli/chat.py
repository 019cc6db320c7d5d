"""vaultrag chat / summarize — talk to the chat model about the vault.

In a message:
  [[Note]]      inline that note as context
  @workspace    retrieve relevant sections from the whole vault

Transcripts are saved as notes under llm_folder (skipped by the indexer).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from vaultrag.cli.common import DebugOption, VaultOption, console, load_vault_config, open_service
from vaultrag.cli.errors import (
    err_missing_references,
    err_not_indexed,
    err_note_not_found,
    err_unreachable,
)
from vaultrag.exceptions import ConnectivityError, IndexNotReadyError, MalformedReferenceError
from vaultrag.ingest.summarizer import ContextSummarizer
from vaultrag.rag.chat import ChatMessage, ChatSession

_EXIT_WORDS = {"exit", "quit", ":q"}


def chat_cmd(
    message: Annotated[
        str | None,
        typer.Argument(help="Send one message and exit. Omit for an interactive session."),
    ] = None,
    vault: VaultOption = Path("."),
    save: Annotated[
        bool,
        typer.Option("--save/--no-save", help="Save the transcript to the chat folder."),
    ] = True,
    debug: DebugOption = False,
) -> None:
    """Chat with your notes (wikilink references and @workspace supported)."""
    cfg = load_vault_config(vault, debug)

    with open_service(vault, cfg) as service:
        session = service.chat_session()
        if message is not None:
            _send(session, message, interactive=False)
        else:
            console.print("[dim]Type a message; 'exit' or Ctrl-D to quit.[/]")
            while True:
                try:
                    text = typer.prompt("you", prompt_suffix="> ")
                except (EOFError, typer.Abort):
                    break
                if text.strip().lower() in _EXIT_WORDS:
                    break
                _send(session, text, interactive=True)

        if save and session.messages:
            path = session.save_history()
            console.print(f"\n[dim]Saved to {escape(path)}[/]")


def _send(session: ChatSession, text: str, interactive: bool) -> None:
    def _echo(fragment: str, _message: ChatMessage) -> None:
        console.print(fragment, end="", markup=False, highlight=False)

    try:
        session.send(text, on_fragment=_echo)
    except (MalformedReferenceError, IndexNotReadyError, ConnectivityError) as exc:
        # One-shot mode exits through open_service; a session keeps going.
        if not interactive:
            raise
        if isinstance(exc, MalformedReferenceError):
            console.print(err_missing_references(exc.references))
        elif isinstance(exc, IndexNotReadyError):
            console.print(err_not_indexed())
        else:
            console.print(f"\n{err_unreachable(str(exc))}")
        return
    console.print()


def summarize_cmd(
    note: Annotated[str, typer.Argument(help="Vault-relative path of the note.")],
    vault: VaultOption = Path("."),
    debug: DebugOption = False,
) -> None:
    """Print the short context summary the indexer would attach to NOTE's chunks."""
    cfg = load_vault_config(vault, debug)

    with open_service(vault, cfg) as service:
        if not service.store.exists(note):
            console.print(err_note_not_found(note))
            raise typer.Exit(1)
        summary = ContextSummarizer(service.chat_model).summarize(service.store.read(note))

    console.print(summary, markup=False, highlight=False)
