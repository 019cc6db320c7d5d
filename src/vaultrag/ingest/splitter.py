"""Fixed-window character chunking with overlap.

Chunk ``i`` starts at ``i * (chunk_size - chunk_overlap)`` and is at most
``chunk_size`` characters long. A document that fits in a single chunk is
never split and never gets a context summary.
"""

from __future__ import annotations

import math

from vaultrag.config import ConfigurationError


class ChunkSplitter:
    """Split note text into overlapping fixed-size character windows.

    Args:
        chunk_size: Window length in characters.
        chunk_overlap: Characters shared by consecutive windows.

    Raises:
        ConfigurationError: If the step ``chunk_size - chunk_overlap`` is not positive.
    """

    def __init__(self, chunk_size: int = 1024, chunk_overlap: int = 256) -> None:
        if chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {chunk_size}")
        if chunk_overlap < 0:
            raise ConfigurationError(f"chunk_overlap must be >= 0, got {chunk_overlap}")
        if chunk_overlap >= chunk_size:
            raise ConfigurationError(
                f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    @property
    def offset(self) -> int:
        """Distance between consecutive chunk starts."""
        return self.chunk_size - self.chunk_overlap

    def count(self, length: int) -> int:
        """Number of chunks a document of *length* characters produces."""
        if math.ceil(length / self.chunk_size) <= 1:
            return 1
        return math.ceil(length / self.offset)

    def starts(self, length: int) -> list[int]:
        """Start offsets of each chunk."""
        return [i * self.offset for i in range(self.count(length))]

    def split(self, contents: str) -> list[str]:
        """Return the ordered chunk texts of *contents*.

        Always returns at least one chunk; an empty document yields ``[""]``.
        """
        if self.count(len(contents)) == 1:
            return [contents]
        return [contents[start : start + self.chunk_size] for start in self.starts(len(contents))]

    @staticmethod
    def augment(path: str, chunk: str, context: str = "") -> str:
        """Build the text that is hashed and embedded for a chunk."""
        if context:
            return f"File: {path}\nContext: {context}\nDocument: {chunk}"
        return f"File: {path}\nDocument: {chunk}"
