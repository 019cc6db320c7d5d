"""Exception taxonomy shared by the indexing and retrieval pipeline."""

from __future__ import annotations

from dataclasses import dataclass


class VaultRagError(Exception):
    """Base class for all vaultrag errors."""


class ConnectivityError(VaultRagError):
    """The embedding/chat provider or the vector index could not be reached.

    Surfaced to the caller of the top-level operation. Index state is never
    left half-written because writes are all-or-nothing per document.
    """


class MalformedReferenceError(VaultRagError):
    """One or more ``[[references]]`` in a chat message do not resolve to a note."""

    def __init__(self, references: list[str]) -> None:
        self.references = references
        names = ", ".join(f"[[{r}]]" for r in references)
        super().__init__(f"Referenced note(s) not found: {names}")


class IndexNotReadyError(VaultRagError):
    """The vector index has no embedding tables yet (nothing indexed)."""


@dataclass
class PartialIndexFailure(VaultRagError):
    """One document failed during a reconcile pass.

    The pass continues; the document stays unseen/stale and is retried on the
    next pass.
    """

    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"
