"""Reconcile the vector index with the notes in the document store.

Per note:  unseen → current (first embed + insert)
           current → stale (store modification time advances)
           stale → current (delete + recompute + reinsert, one transaction)
           current|stale → absent (note deleted from the store, when pruning)

One pass at a time: a trigger that arrives while a pass is running is
suppressed, never run concurrently. Within a process a lock enforces this; across
processes sharing the index (watch running while index is invoked) a lease row
in the database does.
"""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from vaultrag.config import RagConfig
from vaultrag.db.base import VectorIndex
from vaultrag.db.models import ChunkRecord, DocumentRecord, SourceDocument
from vaultrag.exceptions import PartialIndexFailure
from vaultrag.ingest.fingerprint import FingerprintTracker, chunk_hash, content_hash
from vaultrag.ingest.splitter import ChunkSplitter
from vaultrag.ingest.summarizer import ContextSummarizer
from vaultrag.llm.client import EmbeddingModel
from vaultrag.store import DocumentStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Embedding models reject empty input.
_EMPTY_PLACEHOLDER = " "

# A pass that dies without releasing its lease blocks others for at most this long.
LEASE_TTL_MS = 5 * 60 * 1000


@dataclass
class ReconcileReport:
    """Outcome of one reconcile pass.

    Attributes:
        total: Notes considered (after excluding the chat folder).
        processed: Paths embedded and stored in this pass.
        failures: Notes that failed; they are retried on the next pass.
        pruned: Paths removed because the note no longer exists.
    """

    total: int = 0
    processed: list[str] = field(default_factory=list)
    failures: list[PartialIndexFailure] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)

    @property
    def has_updates(self) -> bool:
        return bool(self.processed or self.pruned)


class Indexer:
    """Keep the vector index current with the document store.

    Args:
        store:      Source of notes.
        index:      Vector index to write through to.
        embedder:   Embedding model for documents and chunks.
        summarizer: Context summarizer (None disables contextual chunks).
        config:     Chunking, context and folder options.
        progress:   Called with ``(done, total)`` after each note.
    """

    def __init__(
        self,
        store: DocumentStore,
        index: VectorIndex,
        embedder: EmbeddingModel,
        summarizer: ContextSummarizer | None,
        config: RagConfig,
        progress: ProgressCallback | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._embedder = embedder
        self._summarizer = summarizer if config.use_context else None
        self._config = config
        self._splitter = ChunkSplitter(config.chunk_size, config.chunk_overlap)
        self._tracker = FingerprintTracker(index)
        self._progress = progress
        self._lock = threading.Lock()
        self._holder = f"{os.getpid()}-{uuid.uuid4().hex}"

    @property
    def running(self) -> bool:
        """True while a reconcile pass holds the lock."""
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def reconcile(self, progress: ProgressCallback | None = None) -> ReconcileReport | None:
        """Bring the index in sync with the store.

        Returns:
            The pass report, or None if another pass was already running, in
            this process or in another one using the same index.
        """
        if not self._lock.acquire(blocking=False):
            logger.debug("Reconcile already running; trigger suppressed")
            return None
        try:
            if not self._index.acquire_lease(self._holder, LEASE_TTL_MS):
                logger.debug("Reconcile running in another process; trigger suppressed")
                return None
            try:
                return self._reconcile(progress or self._progress)
            finally:
                self._index.release_lease(self._holder)
        finally:
            self._lock.release()

    def _reconcile(self, progress: ProgressCallback | None) -> ReconcileReport:
        documents = self.eligible_documents()
        report = ReconcileReport(total=len(documents))

        if self._config.prune_deleted:
            for path in self._tracker.find_deleted(documents):
                self._tracker.purge(path)
                report.pruned.append(path)
                logger.info("Removed deleted note %s from the index", path)

        pending = self._tracker.find_new_or_updated(documents)
        done = len(documents) - len(pending)
        logger.debug("%d of %d notes need embedding", len(pending), len(documents))
        _notify(progress, done, len(documents))

        for doc in pending:
            if not self._index.renew_lease(self._holder, LEASE_TTL_MS):
                logger.warning("Reconcile lease expired; another pass may be writing")
            try:
                self.process_document(doc)
            except Exception as exc:
                failure = PartialIndexFailure(path=doc.path, reason=f"{type(exc).__name__}: {exc}")
                report.failures.append(failure)
                logger.warning("Failed to index %s: %s", doc.path, failure.reason)
            else:
                report.processed.append(doc.path)
            done += 1
            _notify(progress, done, len(documents))

        return report

    def eligible_documents(self) -> list[SourceDocument]:
        """Notes from the store, excluding the saved-chat folder."""
        prefix = f"{self._config.llm_folder.rstrip('/')}/"
        return [d for d in self._store.list_documents() if not d.path.startswith(prefix)]

    # ------------------------------------------------------------------
    # Per-document pipeline
    # ------------------------------------------------------------------

    def process_document(self, doc: SourceDocument) -> tuple[DocumentRecord, list[ChunkRecord]]:
        """Embed one note and its chunks, then replace it in the index.

        Every model call happens before the single write, so a failure leaves
        the index without a partial copy of this note.
        """
        contents = self._store.read(doc.path)
        file_hash = content_hash(doc.path, contents)
        logger.debug("Processing %s (hash %s, %d chars)", doc.path, file_hash, len(contents))

        record = DocumentRecord(
            path=doc.path,
            content_hash=file_hash,
            modified_time=doc.modified_time,
            embedding=self._embedder.embed(contents or _EMPTY_PLACEHOLDER),
            length=len(contents.strip()),
            embed_model=self._embedder.model,
        )
        chunks = self.build_chunks(doc, contents, file_hash)
        self._index.replace_document(record, chunks)
        return record, chunks

    def build_chunks(
        self, doc: SourceDocument, contents: str, file_hash: str
    ) -> list[ChunkRecord]:
        """Split, optionally contextualise, and embed the chunks of one note."""
        texts = self._splitter.split(contents)

        context = ""
        if len(texts) > 1 and self._summarizer is not None:
            context = self._summarizer.summarize(contents)
        else:
            logger.debug("No context needed for %s", doc.path)

        chunks: list[ChunkRecord] = []
        for text in texts:
            augmented = ChunkSplitter.augment(doc.path, text, context)
            chunks.append(
                ChunkRecord(
                    file_path=doc.path,
                    file_hash=file_hash,
                    chunk_hash=chunk_hash(augmented),
                    contents=text,
                    context=context,
                    embedding=self._embedder.embed(augmented),
                    chunk_length=len(text.strip()),
                    modified_time=doc.modified_time,
                    timestamp=int(time.time() * 1000),
                    embed_model=self._embedder.model,
                )
            )
        return chunks

    def reset(self) -> None:
        """Drop every record; the next reconcile re-embeds the whole vault."""
        with self._lock:
            self._index.reset()
        logger.info("Index reset")


def _notify(progress: ProgressCallback | None, done: int, total: int) -> None:
    if progress is not None:
        progress(done, total)
