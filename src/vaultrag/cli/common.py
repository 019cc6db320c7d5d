"""Shared CLI plumbing: options, config loading, and the service context."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator

import typer
from rich.console import Console

from vaultrag.cli.errors import (
    err_config,
    err_missing_references,
    err_no_api_key,
    err_no_vault,
    err_not_indexed,
    err_unreachable,
)
from vaultrag.config import ConfigurationError, RagConfig, load_config
from vaultrag.exceptions import ConnectivityError, IndexNotReadyError, MalformedReferenceError
from vaultrag.llm.client import provider_of, validate_api_key
from vaultrag.log import setup_logging
from vaultrag.service import RagService

console = Console()

VaultOption = Annotated[
    Path,
    typer.Option("--vault", "-V", help="Vault folder (defaults to the current directory)."),
]
DebugOption = Annotated[
    bool,
    typer.Option("--debug", help="Log pipeline details to stderr."),
]


def load_vault_config(vault: Path, debug: bool = False) -> RagConfig:
    """Load the vault's config and set up logging. Exits 1 on bad input."""
    if not vault.is_dir():
        console.print(err_no_vault(str(vault)))
        raise typer.Exit(1)
    try:
        cfg = load_config(vault)
    except ConfigurationError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    if debug:
        cfg = cfg.replace(debug=True)
    setup_logging(cfg.debug)
    return cfg


def check_api_keys(cfg: RagConfig) -> None:
    for model in (cfg.selected_embedding, cfg.selected_llm):
        try:
            validate_api_key(model)
        except EnvironmentError:
            console.print(err_no_api_key(provider_of(model)))
            raise typer.Exit(1)


@contextmanager
def open_service(vault: Path, cfg: RagConfig) -> Iterator[RagService]:
    """Open a RagService for *vault* and turn pipeline errors into exit code 1."""
    check_api_keys(cfg)
    try:
        with RagService(vault, cfg) as service:
            yield service
    except ConfigurationError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)
    except ConnectivityError as exc:
        console.print(err_unreachable(str(exc)))
        raise typer.Exit(1)
    except IndexNotReadyError:
        console.print(err_not_indexed())
        raise typer.Exit(1)
    except MalformedReferenceError as exc:
        console.print(err_missing_references(exc.references))
        raise typer.Exit(1)
