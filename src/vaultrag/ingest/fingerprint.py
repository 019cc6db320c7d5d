"""Content fingerprints and new/updated/deleted detection against the index.

A note is *new* when its path has no DocumentRecord, *updated* when its
modification time is strictly greater than the stored one. Stale records of
updated notes are purged here, before the indexer re-inserts them.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Iterable

from vaultrag.db.base import FieldFilter, VectorIndex
from vaultrag.db.models import Collection, DocumentRecord, SourceDocument

logger = logging.getLogger(__name__)


def content_hash(path: str, contents: str) -> str:
    """MD5 fingerprint of a note (path and contents). Used for change detection only."""
    return hashlib.md5(f"{path}\n{contents}".encode("utf-8")).hexdigest()


def chunk_hash(text: str) -> str:
    """MD5 fingerprint of a context-augmented chunk."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


class FingerprintTracker:
    """Decide which notes need (re-)embedding.

    Args:
        index: Vector index holding the current DocumentRecords.
    """

    def __init__(self, index: VectorIndex) -> None:
        self._index = index

    def classify(
        self, documents: Iterable[SourceDocument]
    ) -> tuple[list[SourceDocument], list[tuple[SourceDocument, DocumentRecord]]]:
        """Split *documents* into new ones and (updated, stale record) pairs.

        Documents whose stored modification time is equal or newer are current
        and appear in neither list.
        """
        indexed: dict[str, DocumentRecord] = {d.path: d for d in self._index.list_documents()}
        new: list[SourceDocument] = []
        updated: list[tuple[SourceDocument, DocumentRecord]] = []
        seen: set[str] = set()
        for doc in documents:
            if doc.path in seen:
                continue
            seen.add(doc.path)
            record = indexed.get(doc.path)
            if record is None:
                new.append(doc)
            elif doc.modified_time > record.modified_time:
                updated.append((doc, record))
        return new, updated

    def find_new_or_updated(self, documents: Iterable[SourceDocument]) -> list[SourceDocument]:
        """Return new notes followed by updated notes, purging stale records.

        For every updated note the DocumentRecord and all ChunkRecords with a
        matching ``file_path`` are deleted before the note is returned.
        """
        new, updated = self.classify(documents)
        logger.debug("New documents: %s", [d.path for d in new])
        logger.debug("Updated documents: %s", [d.path for d, _ in updated])
        for doc, _record in updated:
            self.purge(doc.path)
        return new + [doc for doc, _ in updated]

    def find_deleted(self, documents: Iterable[SourceDocument]) -> list[str]:
        """Return indexed paths that no longer exist in *documents*."""
        present = {d.path for d in documents}
        return [d.path for d in self._index.list_documents() if d.path not in present]

    def purge(self, path: str) -> None:
        """Delete the DocumentRecord and every ChunkRecord of *path*."""
        self._index.delete_by_filter(FieldFilter.any_of("path", [path]), Collection.DOCUMENTS)
        self._index.delete_by_filter(FieldFilter.any_of("file_path", [path]), Collection.CHUNKS)
        logger.debug("Purged stale records for %s", path)
