"""Tests for ChunkSplitter."""

from __future__ import annotations

import pytest

from vaultrag.config import ConfigurationError
from vaultrag.ingest.splitter import ChunkSplitter


def test_2600_chars_default_sizes():
    splitter = ChunkSplitter(chunk_size=1024, chunk_overlap=256)
    text = "".join(chr(ord("a") + i % 26) for i in range(2600))

    chunks = splitter.split(text)

    assert splitter.offset == 768
    assert splitter.starts(2600) == [0, 768, 1536, 2304]
    assert len(chunks) == 4
    assert chunks[0] == text[0:1024]
    assert chunks[3] == text[2304:2600]
    assert all(len(c) <= 1024 for c in chunks)


def test_consecutive_chunks_overlap():
    splitter = ChunkSplitter(chunk_size=10, chunk_overlap=4)
    chunks = splitter.split("0123456789abcdefghij")
    assert chunks[0][-4:] == chunks[1][:4]


@pytest.mark.parametrize("length", [0, 1, 500, 1024])
def test_single_chunk_documents_are_not_split(length):
    splitter = ChunkSplitter(1024, 256)
    text = "x" * length
    assert splitter.count(length) == 1
    assert splitter.split(text) == [text]


def test_just_over_chunk_size_uses_offset():
    splitter = ChunkSplitter(1024, 256)
    # ceil(1025 / 768) == 2
    assert splitter.count(1025) == 2


def test_empty_document_yields_one_empty_chunk():
    assert ChunkSplitter(8, 2).split("") == [""]


@pytest.mark.parametrize("size,overlap", [(0, 0), (10, -1), (10, 10), (10, 20)])
def test_invalid_sizes_raise(size, overlap):
    with pytest.raises(ConfigurationError):
        ChunkSplitter(size, overlap)


def test_augment_with_context():
    text = ChunkSplitter.augment("Notes/a.md", "body", "summary")
    assert text == "File: Notes/a.md\nContext: summary\nDocument: body"


def test_augment_without_context():
    assert ChunkSplitter.augment("a.md", "body") == "File: a.md\nDocument: body"
