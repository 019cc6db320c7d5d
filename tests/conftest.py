"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import pytest

# Use litellm's bundled model cost map: the remote fetch at import time fails
# offline and can deadlock inside litellm's logging filter under pytest.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from vaultrag.db.connection import Database
from vaultrag.db.models import ChunkRecord
from vaultrag.db.repository import Repository
from vaultrag.db.schema import initialize

KEYWORDS = ("apple", "banana", "cherry", "delta", "echo", "fox", "quick", "dog")
EMBED_MODEL = "test/keyword-embed"
DIMS = len(KEYWORDS) + 1


class KeywordEmbedder:
    """Deterministic embedding: one axis per keyword occurrence count.

    The last axis is a small constant so no vector is all zeros (cosine
    distance is undefined for zero vectors).
    """

    def __init__(self, model: str = EMBED_MODEL) -> None:
        self.model = model
        self.calls: list[str] = []
        self.fail_on: set[str] = set()

    def embed(self, text: str, context_size: int | None = None) -> list[float]:
        self.calls.append(text)
        for marker in self.fail_on:
            if marker in text:
                raise RuntimeError(f"embedding failed for {marker!r}")
        lowered = text.lower()
        return [float(lowered.count(k)) for k in KEYWORDS] + [0.1]


class FakeChatModel:
    """Chat model returning canned text; records every request."""

    def __init__(self, reply: str = "A note about fruit.", fragments: list[str] | None = None):
        self.model = "test/chat"
        self.reply = reply
        self.fragments = fragments if fragments is not None else ["Hello", ", ", "world"]
        self.complete_calls: list[dict] = []
        self.stream_calls: list[dict] = []

    def complete(self, messages, context_size=None, temperature=0.0, seed=None) -> str:
        self.complete_calls.append(
            {"messages": messages, "context_size": context_size,
             "temperature": temperature, "seed": seed}
        )
        return self.reply

    def stream(self, messages, context_size=None, temperature=0.0, seed=None) -> Iterator[str]:
        self.stream_calls.append(
            {"messages": messages, "context_size": context_size,
             "temperature": temperature, "seed": seed}
        )
        yield from self.fragments


def stored_chunks(conn, file_path: str) -> list[ChunkRecord]:
    """Chunks of *file_path* as stored, in insertion order, without embeddings."""
    rows = conn.execute(
        "SELECT id, file_path, file_hash, chunk_hash, contents, context, chunk_length, "
        "modified_time, timestamp, embed_model FROM chunks WHERE file_path = ? ORDER BY id",
        (file_path,),
    ).fetchall()
    return [ChunkRecord(**dict(r)) for r in rows]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".vaultrag.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    db.close()


@pytest.fixture
def index(tmp_db) -> Repository:
    """Repository with vec tables for the keyword embedder."""
    repo = Repository(tmp_db, EMBED_MODEL)
    repo.ensure_tables(DIMS)
    return repo


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def chat_model() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture
def vault(tmp_path) -> Path:
    root = tmp_path / "vault"
    root.mkdir()
    return root


@pytest.fixture
def write_note(vault):
    """Write a note and pin its modification time (milliseconds)."""

    def _write(path: str, text: str, mtime_ms: int = 1_700_000_000_000) -> Path:
        target = vault / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        os.utime(target, ns=(mtime_ms * 1_000_000, mtime_ms * 1_000_000))
        return target

    return _write


@pytest.fixture
def cli_env(monkeypatch, tmp_path, embedder, chat_model):
    """Isolate CLI runs: no global config, no env overrides, fake models."""
    monkeypatch.setattr(
        "vaultrag.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml"
    )
    for name in ("VAULTRAG_LLM", "VAULTRAG_EMBEDDING", "VAULTRAG_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("vaultrag.service.LiteLLMEmbeddingModel", lambda model: embedder)
    monkeypatch.setattr("vaultrag.service.LiteLLMChatModel", lambda model: chat_model)
    monkeypatch.setattr("vaultrag.cli.status.get_context_window", lambda model, default: default)
