"""Document store: the vault of Markdown notes the index mirrors."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path, PurePosixPath
from typing import Protocol

from vaultrag.db.models import SourceDocument

logger = logging.getLogger(__name__)

_NOTE_EXTS = {".md", ".markdown"}
_SKIP_DIRS = {".git", ".obsidian", ".trash"}


class DocumentStore(Protocol):
    """Enumerates, reads and writes notes by vault-relative POSIX path."""

    def list_documents(self) -> list[SourceDocument]: ...

    def read(self, path: str) -> str: ...

    def write(self, path: str, contents: str) -> None: ...

    def ensure_folder(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...

    def resolve_reference(self, name: str) -> str | None: ...


class FolderDocumentStore:
    """DocumentStore over a directory of Markdown notes.

    Paths are vault-relative with forward slashes (``Notes/Meeting.md``).
    Modification times are integer milliseconds.

    Args:
        root: Vault directory.
        exclude: Glob patterns (matched against relative paths) to skip.
    """

    def __init__(self, root: Path | str, exclude: list[str] | None = None) -> None:
        self.root = Path(root)
        self._exclude = exclude or []

    def list_documents(self) -> list[SourceDocument]:
        """Return every note under the vault root, sorted by path."""
        documents: list[SourceDocument] = []
        for file in sorted(self.root.rglob("*")):
            rel = file.relative_to(self.root)
            if any(part in _SKIP_DIRS or part.startswith(".") for part in rel.parts[:-1]):
                continue
            if not file.is_file() or file.suffix.lower() not in _NOTE_EXTS:
                continue
            rel_path = rel.as_posix()
            if any(fnmatch.fnmatch(rel_path, pat) for pat in self._exclude):
                continue
            documents.append(
                SourceDocument(path=rel_path, modified_time=file.stat().st_mtime_ns // 1_000_000)
            )
        return documents

    def read(self, path: str) -> str:
        """Return the full text of the note at *path*.

        Raises:
            FileNotFoundError: If the note does not exist.
        """
        return self._resolve(path).read_text(encoding="utf-8", errors="replace")

    def write(self, path: str, contents: str) -> None:
        """Write *contents* to *path*, replacing any existing note."""
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(contents, encoding="utf-8")
        logger.debug("Wrote %s (%d chars)", path, len(contents))

    def ensure_folder(self, path: str) -> None:
        """Create the folder *path* (and parents) if absent."""
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def resolve_reference(self, name: str) -> str | None:
        """Resolve a ``[[name]]`` link to a note path, or None.

        Tries the name as a path, then with ``.md`` appended.
        """
        for candidate in (name, f"{name}.md"):
            if candidate and self.exists(candidate):
                return candidate
        return None

    def _resolve(self, path: str) -> Path:
        """Map a vault-relative path to disk, refusing paths outside the vault."""
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValueError(f"Path escapes the vault: '{path}'")
        return self.root.joinpath(*rel.parts)
