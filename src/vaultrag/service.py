"""RagService: the owned handle that opens, wires and closes the RAG pipeline.

One service per vault. ``open()`` connects two SQLite connections to the
vault's index database: the writer is used only by the Indexer, the reader
by the Retriever, so queries keep working while a reconcile pass writes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from vaultrag.config import ConfigurationError, RagConfig
from vaultrag.db.connection import Database
from vaultrag.db.repository import Repository
from vaultrag.db.schema import initialize
from vaultrag.ingest.indexer import Indexer, ProgressCallback, ReconcileReport
from vaultrag.ingest.scheduler import ReconcileScheduler
from vaultrag.ingest.summarizer import ContextSummarizer
from vaultrag.llm.client import (
    ChatModel,
    EmbeddingModel,
    LiteLLMChatModel,
    LiteLLMEmbeddingModel,
)
from vaultrag.rag.assembler import PromptAssembler
from vaultrag.rag.chat import ChatSession
from vaultrag.rag.retriever import Retriever
from vaultrag.store import DocumentStore, FolderDocumentStore

logger = logging.getLogger(__name__)

_PROBE_TEXT = "dimension probe"


class RagService:
    """Open/close lifecycle and wiring for one vault.

    Args:
        vault_dir:  Vault root; also where a relative ``db_path`` lives.
        config:     Loaded configuration.
        store:      Note store (defaults to the vault folder).
        embedder:   Embedding model (defaults to LiteLLM with ``selected_embedding``).
        chat_model: Chat model (defaults to LiteLLM with ``selected_llm``).
    """

    def __init__(
        self,
        vault_dir: Path | str,
        config: RagConfig,
        *,
        store: DocumentStore | None = None,
        embedder: EmbeddingModel | None = None,
        chat_model: ChatModel | None = None,
    ) -> None:
        self.vault_dir = Path(vault_dir)
        self.config = config
        self.store = store or FolderDocumentStore(self.vault_dir)
        self.embedder = embedder or LiteLLMEmbeddingModel(config.selected_embedding)
        self.chat_model = chat_model or LiteLLMChatModel(config.selected_llm)

        self._db: Database | None = None
        self._writer: Repository | None = None
        self._reader: Repository | None = None
        self._indexer: Indexer | None = None
        self._retriever: Retriever | None = None
        self._assembler: PromptAssembler | None = None
        self._scheduler: ReconcileScheduler | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._db is not None

    def open(self) -> RagService:
        """Connect to the index database and build the pipeline.

        Vec tables are created here when the embedding size is already known
        (configured, or from an earlier run); otherwise on first reconcile.

        Raises:
            ConnectivityError: If the database cannot be opened.
        """
        if self.is_open:
            return self
        db = Database(self.config.resolve_db_path(self.vault_dir))
        model = self.embedder.model
        try:
            writer_conn = db.connect()
            initialize(writer_conn)
            writer = Repository(writer_conn, model)
            reader = Repository(db.connect(), model)

            dimensions = self.config.embedding_dimensions or writer.dimensions()
            if dimensions:
                writer.ensure_tables(dimensions)
        except Exception:
            db.close()
            raise
        self._db = db
        self._writer = writer
        self._reader = reader

        summarizer = ContextSummarizer(self.chat_model)
        self._indexer = Indexer(self.store, self._writer, self.embedder, summarizer, self.config)
        self._retriever = Retriever(self._reader, self.embedder, self.config)
        self._assembler = PromptAssembler(self.store, self._retriever, self.config)
        logger.debug("Opened %s (embedding model %s)", db.db_path, model)
        return self

    def close(self) -> None:
        """Stop the scheduler (if any) and close both connections."""
        if self._scheduler is not None:
            self._scheduler.stop()
            self._scheduler = None
        if self._db is not None:
            self._db.close()
            logger.debug("Closed %s", self._db.db_path)
        self._db = None
        self._writer = self._reader = None
        self._indexer = None
        self._retriever = None
        self._assembler = None

    def __enter__(self) -> RagService:
        return self.open()

    def __exit__(self, *args: object) -> None:
        self.close()

    def _require_open(self) -> None:
        if not self.is_open:
            raise RuntimeError("RagService is not open; call open() first")

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def index(self) -> Repository:
        """The writer-side index."""
        self._require_open()
        assert self._writer is not None
        return self._writer

    @property
    def reader(self) -> Repository:
        self._require_open()
        assert self._reader is not None
        return self._reader

    @property
    def indexer(self) -> Indexer:
        self._require_open()
        assert self._indexer is not None
        return self._indexer

    @property
    def retriever(self) -> Retriever:
        self._require_open()
        assert self._retriever is not None
        return self._retriever

    @property
    def assembler(self) -> PromptAssembler:
        self._require_open()
        assert self._assembler is not None
        return self._assembler

    def chat_session(self) -> ChatSession:
        """Start a new, empty conversation."""
        return ChatSession(self.assembler, self.chat_model, self.store, self.config)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def prepare_index(self) -> int:
        """Make sure the vec tables exist, probing the embedding model if needed.

        Returns:
            The embedding dimensions in use.

        Raises:
            ConfigurationError: If the model returns an empty embedding.
            ConnectivityError: If the probe cannot reach the model.
        """
        index = self.index
        model = self.embedder.model
        dimensions = index.dimensions()
        if dimensions is None:
            dimensions = self.config.embedding_dimensions or len(self.embedder.embed(_PROBE_TEXT))
            if dimensions < 1:
                raise ConfigurationError(f"Embedding model '{model}' returned an empty vector")
            logger.info("Embedding model %s produces %d dimensions", model, dimensions)
        index.ensure_tables(dimensions)
        return dimensions

    def reconcile(self, progress: ProgressCallback | None = None) -> ReconcileReport | None:
        """Prepare the index, then run one reconcile pass (None if suppressed)."""
        self.prepare_index()
        return self.indexer.reconcile(progress)

    def reset(self) -> None:
        """Drop every indexed record; the next reconcile re-embeds the vault."""
        self.indexer.reset()

    def start_scheduler(
        self, on_update: Callable[[ReconcileReport], None] | None = None
    ) -> ReconcileScheduler:
        """Start periodic reconcile every ``reconcile_interval`` seconds."""
        self.prepare_index()
        if self._scheduler is None:
            self._scheduler = ReconcileScheduler(
                self.indexer, self.config.reconcile_interval, on_update=on_update
            )
        self._scheduler.start()
        return self._scheduler
