"""vaultrag CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from vaultrag.cli.chat import chat_cmd, summarize_cmd
from vaultrag.cli.index import index_cmd, watch_cmd
from vaultrag.cli.init import init_cmd
from vaultrag.cli.query import find_cmd, search_cmd, similar_cmd
from vaultrag.cli.status import reset_cmd, status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("vaultrag")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vaultrag {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="vaultrag",
    help=(
        "vaultrag — retrieval-augmented chat over a folder of Markdown notes.\n\n"
        "  vaultrag index   Embed new and changed notes.\n"
        "  vaultrag chat    Ask questions; link notes or use @workspace for context."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """vaultrag — retrieval-augmented chat over a folder of Markdown notes."""


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("watch")(watch_cmd)
app.command("similar")(similar_cmd)
app.command("search")(search_cmd)
app.command("find")(find_cmd)
app.command("chat")(chat_cmd)
app.command("summarize")(summarize_cmd)
app.command("status")(status_cmd)
app.command("reset")(reset_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed vaultrag version."""
    typer.echo(f"vaultrag {_installed_version()}")


if __name__ == "__main__":
    app()
