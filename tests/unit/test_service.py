"""Tests for RagService wiring and lifecycle."""

from __future__ import annotations

import threading

import pytest

from conftest import DIMS, FakeChatModel, KeywordEmbedder
from vaultrag.config import ConfigurationError, RagConfig
from vaultrag.db.models import Collection
from vaultrag.service import RagService


def _service(vault, embedder, **config) -> RagService:
    return RagService(vault, RagConfig(**config), embedder=embedder, chat_model=FakeChatModel())


# ------------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------------

def test_open_creates_database(vault, embedder):
    with _service(vault, embedder) as service:
        assert service.is_open
        assert (vault / ".vaultrag.db").exists()
    assert not service.is_open


def test_components_require_open(vault, embedder):
    service = _service(vault, embedder)
    with pytest.raises(RuntimeError, match="not open"):
        service.retriever
    with pytest.raises(RuntimeError):
        service.indexer


def test_open_twice_is_safe(vault, embedder):
    service = _service(vault, embedder)
    assert service.open() is service.open()
    service.close()
    service.close()


def test_absolute_db_path(tmp_path, vault, embedder):
    db_file = tmp_path / "elsewhere" / "index.db"
    db_file.parent.mkdir()
    with _service(vault, embedder, db_path=str(db_file)):
        assert db_file.exists()
    assert not (vault / ".vaultrag.db").exists()


# ------------------------------------------------------------------
# Embedding dimensions
# ------------------------------------------------------------------

def test_open_does_not_probe_the_model(vault, embedder):
    with _service(vault, embedder) as service:
        assert not service.index.is_ready()
    assert embedder.calls == []


def test_reconcile_probes_dimensions(vault, embedder, write_note):
    write_note("a.md", "apple")
    with _service(vault, embedder) as service:
        report = service.reconcile()
        assert report.processed == ["a.md"]
        assert service.index.dimensions() == DIMS
    assert embedder.calls[0] == "dimension probe"


def test_configured_dimensions_skip_probe(vault, embedder):
    with _service(vault, embedder, embedding_dimensions=DIMS) as service:
        assert service.index.is_ready()
        assert service.prepare_index() == DIMS
    assert embedder.calls == []


def test_reopen_reuses_existing_tables(vault, embedder, write_note):
    write_note("a.md", "apple")
    with _service(vault, embedder) as service:
        service.reconcile()

    fresh = KeywordEmbedder()
    with _service(vault, fresh) as service:
        assert service.index.is_ready()
        assert service.prepare_index() == DIMS
    assert "dimension probe" not in fresh.calls


def test_dimension_change_is_a_configuration_error(vault, embedder, write_note):
    write_note("a.md", "apple")
    with _service(vault, embedder) as service:
        service.reconcile()

    with pytest.raises(ConfigurationError, match="vaultrag reset"):
        _service(vault, embedder, embedding_dimensions=4).open()


def test_empty_probe_vector_rejected(vault):
    class EmptyEmbedder(KeywordEmbedder):
        def embed(self, text, context_size=None):
            return []

    with _service(vault, EmptyEmbedder()) as service:
        with pytest.raises(ConfigurationError, match="empty vector"):
            service.prepare_index()


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------

def test_reader_sees_reconciled_notes(vault, embedder, write_note):
    write_note("runs.md", "quick fox runs")
    write_note("dog.md", "lazy dog")
    with _service(vault, embedder, similarity_threshold=1.0) as service:
        service.reconcile()
        hits = service.retriever.search("the quick fox")
        assert hits[0].file_path == "runs.md"
        assert [h.file_path for h in service.retriever.similar_to_document("dog.md")] == ["runs.md"]


def test_chat_session_end_to_end(vault, embedder, write_note):
    write_note("a.md", "apple notes")
    with _service(vault, embedder) as service:
        session = service.chat_session()
        reply = session.send("Explain [[a]]")
        assert reply.message == "Hello, world"
        path = session.save_history()
    assert (vault / path).is_file()


def test_two_services_never_reconcile_concurrently(vault, write_note):
    write_note("a.md", "apple")
    started = threading.Event()
    proceed = threading.Event()

    class SlowEmbedder(KeywordEmbedder):
        def embed(self, text, context_size=None):
            started.set()
            proceed.wait(5)
            return super().embed(text, context_size)

    other = KeywordEmbedder()
    results: list = []
    first = _service(vault, SlowEmbedder(), embedding_dimensions=DIMS)
    second = _service(vault, other, embedding_dimensions=DIMS)
    with first, second:
        worker = threading.Thread(target=lambda: results.append(first.reconcile()))
        worker.start()
        assert started.wait(5)

        assert second.reconcile() is None
        assert other.calls == []

        proceed.set()
        worker.join(5)
        assert second.reconcile().processed == []

    [report] = results
    assert report.processed == ["a.md"]
    assert report.failures == []


def test_reset_clears_index(vault, embedder, write_note):
    write_note("a.md", "apple")
    with _service(vault, embedder) as service:
        service.reconcile()
        service.reset()
        assert service.index.count(Collection.DOCUMENTS) == 0
        assert service.reconcile().processed == ["a.md"]


def test_start_scheduler_runs_and_close_stops_it(vault, embedder, write_note):
    write_note("a.md", "apple")
    updated = threading.Event()
    with _service(vault, embedder, reconcile_interval=60) as service:
        scheduler = service.start_scheduler(on_update=lambda report: updated.set())
        assert updated.wait(5)
        assert scheduler.running
    assert not scheduler.running
