"""Logging setup: one rich handler on the ``vaultrag`` logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "vaultrag"


def setup_logging(debug: bool = False, console: Console | None = None) -> logging.Logger:
    """Attach a RichHandler to the package logger and return it.

    Modules log through ``logging.getLogger(__name__)`` and inherit this
    handler. Calling again only adjusts the level.

    Args:
        debug: Log at DEBUG (pipeline internals) instead of WARNING.
        console: Console to write to (stderr by default).
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=debug,
            rich_tracebacks=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s", datefmt="[%X]"))
        logger.addHandler(handler)

    return logger
