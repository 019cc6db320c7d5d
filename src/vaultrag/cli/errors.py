"""vaultrag rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from vaultrag.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from vaultrag.exceptions import PartialIndexFailure

_ENV_MAP = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _ENV_MAP.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or switch to a local model in vaultrag.yaml (e.g. selected_llm: ollama/llama3.2)."
    )


def err_no_vault(path: str) -> str:
    """The vault directory does not exist."""
    return (
        f"[red]Error:[/] Vault directory not found: '{escape(path)}'.\n"
        "  Pass an existing folder of notes with  --vault PATH"
    )


def err_config(message: str) -> str:
    """Configuration file or environment override is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {escape(message)}\n"
        "  Fix vaultrag.yaml (or ~/.vaultrag/config.yaml) and try again."
    )


def err_unreachable(message: str) -> str:
    """Model provider or index database could not be reached."""
    return (
        f"[red]Error:[/] {escape(message)}\n"
        "  Check that the provider is running (for Ollama:  ollama serve)\n"
        "  and that the model is pulled (ollama pull <model>)."
    )


def err_not_indexed() -> str:
    """Query against an empty index."""
    return (
        "[red]Error:[/] The vault has not been indexed yet.\n"
        "  Run:  vaultrag index"
    )


def err_missing_references(references: list[str]) -> str:
    """``[[references]]`` in a chat message that name no note."""
    names = escape(", ".join(f"[[{r}]]" for r in references))
    return (
        f"[red]Error:[/] Referenced note(s) not found: {names}\n"
        "  Check the spelling, or run  vaultrag find <name>  to look up note names."
    )


def err_note_not_found(path: str) -> str:
    """A note given on the command line does not exist in the vault."""
    return (
        f"[red]Error:[/] Note not found: '{escape(path)}'.\n"
        "  Give the path relative to the vault, e.g.  Notes/Meeting.md"
    )


def warn_partial_failures(failures: list[PartialIndexFailure]) -> str:
    """Some notes failed during a reconcile pass."""
    lines = "\n".join(f"    {escape(str(f))}" for f in failures)
    return (
        f"[yellow]⚠[/] {len(failures)} note(s) could not be indexed:\n"
        f"{lines}\n"
        "  They will be retried on the next  vaultrag index  run."
    )


def warn_index_busy() -> str:
    """A reconcile pass was already running."""
    return "[yellow]⚠[/] An index pass is already running; this run was skipped."
