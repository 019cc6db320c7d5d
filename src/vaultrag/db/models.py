"""Record types stored in the vector index.

``IndexRecord`` is a tagged union: the ``collection`` class attribute tells a
DocumentRecord from a ChunkRecord without inspecting optional fields.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import ClassVar, Union


class Collection(str, enum.Enum):
    """The two logical collections of the index."""

    DOCUMENTS = "documents"
    CHUNKS = "chunks"


@dataclass
class SourceDocument:
    """A note as enumerated by a DocumentStore."""

    path: str
    modified_time: int  # milliseconds since the epoch


@dataclass
class DocumentRecord:
    path: str
    content_hash: str
    modified_time: int
    embedding: list[float] = field(default_factory=list)
    length: int = 0
    embed_model: str = ""
    id: int | None = None  # set after insert

    collection: ClassVar[Collection] = Collection.DOCUMENTS


@dataclass
class ChunkRecord:
    file_path: str
    file_hash: str
    chunk_hash: str
    contents: str
    context: str = ""
    embedding: list[float] = field(default_factory=list)
    chunk_length: int = 0
    modified_time: int = 0
    timestamp: int = 0
    embed_model: str = ""
    id: int | None = None  # set after insert

    collection: ClassVar[Collection] = Collection.CHUNKS


IndexRecord = Union[DocumentRecord, ChunkRecord]


@dataclass
class SearchHit:
    """A k-NN result: a chunk with its cosine distance and similarity score."""

    chunk: ChunkRecord
    distance: float

    @property
    def score(self) -> float:
        """Consumer-facing similarity (``1 - distance``)."""
        return 1.0 - self.distance

    @property
    def file_path(self) -> str:
        return self.chunk.file_path

    @property
    def contents(self) -> str:
        return self.chunk.contents
