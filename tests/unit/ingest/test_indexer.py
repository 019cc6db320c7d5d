"""Tests for Indexer reconcile passes."""

from __future__ import annotations

import pytest

from conftest import stored_chunks
from vaultrag.config import RagConfig
from vaultrag.db.models import Collection, SourceDocument
from vaultrag.exceptions import ConnectivityError
from vaultrag.ingest.indexer import Indexer, ReconcileReport
from vaultrag.ingest.summarizer import ContextSummarizer
from vaultrag.store import FolderDocumentStore

_LONG = "apple banana cherry delta echo fox quick dog " * 3  # 135 chars


@pytest.fixture
def make_indexer(vault, index, embedder, chat_model):
    def _make(**overrides) -> Indexer:
        cfg = RagConfig(**{"chunk_size": 1024, "chunk_overlap": 256, **overrides})
        return Indexer(
            FolderDocumentStore(vault), index, embedder, ContextSummarizer(chat_model), cfg
        )

    return _make


# ------------------------------------------------------------------
# Basic passes
# ------------------------------------------------------------------

def test_first_pass_indexes_every_note(make_indexer, write_note, index):
    write_note("a.md", "apple pie")
    write_note("Notes/b.md", "banana bread")

    report = make_indexer().reconcile()

    assert isinstance(report, ReconcileReport)
    assert report.total == 2
    assert sorted(report.processed) == ["Notes/b.md", "a.md"]
    assert report.failures == []
    assert index.count(Collection.DOCUMENTS) == 2
    assert index.count(Collection.CHUNKS) == 2


def test_second_pass_is_a_no_op(make_indexer, write_note, embedder, index, tmp_db):
    write_note("a.md", "apple pie")
    indexer = make_indexer()
    indexer.reconcile()
    calls = len(embedder.calls)
    before = [(c.id, c.chunk_hash) for c in stored_chunks(tmp_db, "a.md")]

    report = indexer.reconcile()

    assert report.processed == []
    assert not report.has_updates
    assert len(embedder.calls) == calls
    assert [(c.id, c.chunk_hash) for c in stored_chunks(tmp_db, "a.md")] == before


def test_updated_note_is_replaced(make_indexer, write_note, index, tmp_db):
    write_note("a.md", "apple", mtime_ms=1_000)
    indexer = make_indexer()
    indexer.reconcile()

    write_note("a.md", "banana", mtime_ms=2_000)
    report = indexer.reconcile()

    assert report.processed == ["a.md"]
    assert [c.contents for c in stored_chunks(tmp_db, "a.md")] == ["banana"]
    assert index.get_document("a.md").modified_time == 2_000
    assert index.count(Collection.DOCUMENTS) == 1


def test_document_record_fields(make_indexer, write_note, index):
    write_note("a.md", "  apple  ", mtime_ms=1_234)
    make_indexer().reconcile()
    doc = index.get_by_field(Collection.DOCUMENTS, "path", "a.md")
    assert doc.modified_time == 1_234
    assert doc.length == 5
    assert doc.embedding[0] == pytest.approx(1.0)
    assert doc.embed_model == "test/keyword-embed"


def test_empty_note_is_embedded_with_placeholder(
    make_indexer, write_note, embedder, index, tmp_db,
):
    write_note("empty.md", "")
    report = make_indexer().reconcile()
    assert report.processed == ["empty.md"]
    assert embedder.calls[0] == " "
    assert stored_chunks(tmp_db, "empty.md")[0].chunk_length == 0


# ------------------------------------------------------------------
# Chunking and context
# ------------------------------------------------------------------

def test_single_chunk_note_gets_no_context(make_indexer, write_note, chat_model, index, tmp_db):
    write_note("a.md", "apple")
    make_indexer().reconcile()
    assert chat_model.complete_calls == []
    chunk = stored_chunks(tmp_db, "a.md")[0]
    assert chunk.context == ""


def test_multi_chunk_note_gets_shared_context(
    make_indexer, write_note, chat_model, embedder, index, tmp_db,
):
    write_note("long.md", _LONG)

    make_indexer(chunk_size=40, chunk_overlap=10).reconcile()

    chunks = stored_chunks(tmp_db, "long.md")
    assert len(chunks) == 5  # ceil(135 / 30)
    assert len(chat_model.complete_calls) == 1
    assert {c.context for c in chunks} == {"A note about fruit."}
    assert all(len(c.contents) <= 40 for c in chunks)
    augmented = [t for t in embedder.calls if t.startswith("File: long.md")]
    assert len(augmented) == 5
    assert all("Context: A note about fruit." in t for t in augmented)


def test_use_context_disabled_skips_summary(
    make_indexer, write_note, chat_model, embedder, index, tmp_db,
):
    write_note("long.md", _LONG)

    make_indexer(chunk_size=40, chunk_overlap=10, use_context=False).reconcile()

    assert chat_model.complete_calls == []
    assert {c.context for c in stored_chunks(tmp_db, "long.md")} == {""}
    assert not any("Context:" in t for t in embedder.calls)


# ------------------------------------------------------------------
# Failures
# ------------------------------------------------------------------

def test_failed_note_does_not_abort_pass(make_indexer, write_note, embedder, index, tmp_db):
    write_note("good.md", "apple")
    write_note("bad.md", "BROKEN banana")
    embedder.fail_on = {"BROKEN"}

    report = make_indexer().reconcile()

    assert report.processed == ["good.md"]
    assert [f.path for f in report.failures] == ["bad.md"]
    assert "RuntimeError" in report.failures[0].reason
    assert index.get_document("bad.md") is None
    assert stored_chunks(tmp_db, "bad.md") == []


def test_failed_note_is_retried_next_pass(make_indexer, write_note, embedder):
    write_note("bad.md", "BROKEN")
    embedder.fail_on = {"BROKEN"}
    indexer = make_indexer()
    indexer.reconcile()

    embedder.fail_on = set()
    report = indexer.reconcile()

    assert report.processed == ["bad.md"]
    assert report.failures == []


def test_summary_failure_fails_the_document(make_indexer, write_note, chat_model, index):
    def boom(*args, **kwargs):
        raise ConnectivityError("chat model down")

    chat_model.complete = boom
    write_note("long.md", _LONG)

    report = make_indexer(chunk_size=40, chunk_overlap=10).reconcile()

    assert [f.path for f in report.failures] == ["long.md"]
    assert index.get_document("long.md") is None


# ------------------------------------------------------------------
# Deleted notes and exclusions
# ------------------------------------------------------------------

def test_deleted_note_is_pruned(make_indexer, write_note, index):
    note = write_note("a.md", "apple")
    write_note("b.md", "banana")
    indexer = make_indexer()
    indexer.reconcile()

    note.unlink()
    report = indexer.reconcile()

    assert report.pruned == ["a.md"]
    assert report.has_updates
    assert index.get_document("a.md") is None
    assert index.get_document("b.md") is not None


def test_pruning_can_be_disabled(make_indexer, write_note, index):
    note = write_note("a.md", "apple")
    make_indexer(prune_deleted=False).reconcile()
    note.unlink()

    report = make_indexer(prune_deleted=False).reconcile()

    assert report.pruned == []
    assert index.get_document("a.md") is not None


def test_chat_folder_is_never_indexed(make_indexer, write_note, index):
    write_note("llm-chats/2024-01-01T00-00-00.md", "## user\napple")
    write_note("llm-chats-notes.md", "cherry")
    indexer = make_indexer()

    report = indexer.reconcile()

    assert report.processed == ["llm-chats-notes.md"]
    assert [d.path for d in indexer.eligible_documents()] == ["llm-chats-notes.md"]


# ------------------------------------------------------------------
# Progress and concurrency
# ------------------------------------------------------------------

def test_progress_reports_done_and_total(make_indexer, write_note):
    write_note("a.md", "apple")
    write_note("b.md", "banana")
    seen: list[tuple[int, int]] = []

    make_indexer().reconcile(progress=lambda done, total: seen.append((done, total)))

    assert seen == [(0, 2), (1, 2), (2, 2)]


def test_progress_starts_at_current_count(make_indexer, write_note):
    write_note("a.md", "apple")
    indexer = make_indexer()
    indexer.reconcile()
    write_note("b.md", "banana")
    seen: list[tuple[int, int]] = []

    indexer.reconcile(progress=lambda done, total: seen.append((done, total)))

    assert seen == [(1, 2), (2, 2)]


def test_overlapping_trigger_is_suppressed(make_indexer, write_note):
    write_note("a.md", "apple")
    indexer = make_indexer()
    nested: list[object] = []

    def progress(done, total):
        assert indexer.running
        nested.append(indexer.reconcile())

    report = indexer.reconcile(progress=progress)

    assert report is not None
    assert nested and all(r is None for r in nested)
    assert not indexer.running


def test_pass_held_elsewhere_is_suppressed(make_indexer, write_note, embedder, index):
    write_note("a.md", "apple")
    index.acquire_lease("other-process", 60_000)

    assert make_indexer().reconcile() is None
    assert embedder.calls == []

    index.release_lease("other-process")
    assert make_indexer().reconcile().processed == ["a.md"]


def test_pass_releases_its_lease(make_indexer, write_note, index):
    write_note("a.md", "apple")
    make_indexer().reconcile()
    assert index.acquire_lease("other-process", 60_000)


def test_failed_pass_releases_its_lease(make_indexer, index, monkeypatch):
    indexer = make_indexer()
    monkeypatch.setattr(indexer, "eligible_documents", lambda: 1 / 0)

    with pytest.raises(ZeroDivisionError):
        indexer.reconcile()
    assert index.acquire_lease("other-process", 60_000)


def test_process_document_returns_records(make_indexer, write_note):
    write_note("a.md", "apple")
    record, chunks = make_indexer().process_document(SourceDocument("a.md", 5))
    assert record.path == "a.md"
    assert record.modified_time == 5
    assert [c.contents for c in chunks] == ["apple"]
    assert chunks[0].file_hash == record.content_hash


def test_reset_forces_full_reindex(make_indexer, write_note, index):
    write_note("a.md", "apple")
    indexer = make_indexer()
    indexer.reconcile()

    indexer.reset()
    assert index.count(Collection.DOCUMENTS) == 0

    assert indexer.reconcile().processed == ["a.md"]
