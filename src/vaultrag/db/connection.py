"""SQLite connection layer with sqlite-vec extension."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import sqlite_vec

from vaultrag.exceptions import ConnectivityError

logger = logging.getLogger(__name__)


class Database:
    """Per-vault SQLite database with sqlite-vec vector search support.

    The handle is owned explicitly: every ``connect()`` returns a new
    connection and the handle keeps track of them so ``close()`` releases all
    of them on shutdown. WAL journaling lets a reader connection query while a
    writer connection is mid-transaction.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open a connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._open: list[sqlite3.Connection] = []
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection.

        Raises:
            ConnectivityError: If the database file cannot be opened.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
        except (sqlite3.Error, OSError) as exc:
            raise ConnectivityError(f"Cannot open index database '{self.db_path}': {exc}") from exc
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA journal_mode = WAL")
        self._open.append(conn)
        logger.debug("Opened connection to %s", self.db_path)
        return conn

    def close(self) -> None:
        """Close every connection opened through this handle."""
        while self._open:
            conn = self._open.pop()
            conn.close()
        self._conn = None

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connections when leaving the context manager."""
        self.close()
