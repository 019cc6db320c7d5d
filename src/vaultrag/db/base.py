"""VectorIndex contract required by the indexer and retriever."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence

from vaultrag.db.models import (
    ChunkRecord,
    Collection,
    DocumentRecord,
    IndexRecord,
    SearchHit,
)

# Columns that may be used for exact-match lookup and filtered deletes.
FILTERABLE_FIELDS: dict[Collection, frozenset[str]] = {
    Collection.DOCUMENTS: frozenset(["id", "path", "content_hash"]),
    Collection.CHUNKS: frozenset(["id", "file_path", "file_hash", "chunk_hash"]),
}


@dataclass(frozen=True)
class FieldFilter:
    """Predicate ``<field> IN (<values>)`` over one collection."""

    field: str
    values: tuple

    @classmethod
    def any_of(cls, field: str, values: Iterable) -> FieldFilter:
        return cls(field=field, values=tuple(values))

    def check(self, collection: Collection) -> None:
        if self.field not in FILTERABLE_FIELDS[collection]:
            raise ValueError(
                f"Field '{self.field}' is not filterable on {collection.value}; "
                f"use one of {sorted(FILTERABLE_FIELDS[collection])}."
            )


class VectorIndex(Protocol):
    """Storage for document- and chunk-level vectors with k-NN search."""

    def upsert(self, records: Sequence[IndexRecord]) -> list[int]: ...

    def delete_by_ids(self, ids: Sequence[int], collection: Collection) -> int: ...

    def delete_by_filter(self, predicate: FieldFilter, collection: Collection) -> int: ...

    def search(
        self,
        query_vector: list[float],
        k: int,
        distance_cutoff: float,
        exclude_path: str | None = None,
    ) -> list[SearchHit]: ...

    def get_by_field(
        self, collection: Collection, field: str, value: object
    ) -> IndexRecord | None: ...

    def list_documents(self) -> list[DocumentRecord]: ...

    def replace_document(
        self, document: DocumentRecord, chunks: Sequence[ChunkRecord]
    ) -> list[int]: ...

    def count(self, collection: Collection) -> int: ...

    def reset(self) -> None: ...

    def acquire_lease(self, holder: str, ttl_ms: int) -> bool: ...

    def renew_lease(self, holder: str, ttl_ms: int) -> bool: ...

    def release_lease(self, holder: str) -> None: ...
