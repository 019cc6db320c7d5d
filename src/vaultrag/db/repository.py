"""SQLite + sqlite-vec implementation of the VectorIndex contract.

Single interface for: documents, chunks, per-model vec embeddings, k-NN search.
Vec tables are model-managed (ensure_vec_tables); the repository handles read + write.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import struct
import time
from contextlib import contextmanager
from typing import Iterator, Sequence

from vaultrag.db.base import FieldFilter
from vaultrag.db.models import (
    ChunkRecord,
    Collection,
    DocumentRecord,
    IndexRecord,
    SearchHit,
)
from vaultrag.db.schema import drop_all, initialize
from vaultrag.db.vectors import (
    ensure_vec_tables,
    model_to_slug,
    vec_table_dimensions,
    vec_table_exists,
    vec_table_name,
)
from vaultrag.exceptions import IndexNotReadyError

logger = logging.getLogger(__name__)

# sqlite-vec rejects k-NN limits above this.
_MAX_KNN = 4096

_DOCUMENT_COLUMNS = "id, path, content_hash, modified_time, length, embed_model"
_CHUNK_COLUMNS = (
    "id, file_path, file_hash, chunk_hash, contents, context, chunk_length, "
    "modified_time, timestamp, embed_model"
)


class Repository:
    """Data access layer for the document and chunk collections.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    (see vaultrag.db.connection.Database) and must be closed after use.

    Args:
        conn: Open connection with sqlite-vec loaded and schema initialised.
        embed_model: Embedding model whose vec tables this repository uses.
    """

    def __init__(self, conn: sqlite3.Connection, embed_model: str) -> None:
        self._conn = conn
        self._embed_model = embed_model
        self._slug = model_to_slug(embed_model)
        self._dimensions: int | None = None

    @property
    def embed_model(self) -> str:
        return self._embed_model

    # ------------------------------------------------------------------
    # Vec tables
    # ------------------------------------------------------------------

    def _vec_table(self, collection: Collection) -> str:
        return vec_table_name(collection, self._slug)

    def ensure_tables(self, dimensions: int) -> None:
        """Create the vec tables for this repository's model if missing."""
        ensure_vec_tables(self._conn, self._slug, dimensions)
        self._dimensions = dimensions

    def dimensions(self) -> int | None:
        """Embedding size of this model's vec tables, or None before they exist."""
        return vec_table_dimensions(self._conn, self._vec_table(Collection.CHUNKS))

    def is_ready(self) -> bool:
        """True once vec tables exist for the embedding model."""
        return all(vec_table_exists(self._conn, self._vec_table(c)) for c in Collection)

    def _require_ready(self) -> None:
        if not self.is_ready():
            raise IndexNotReadyError(
                f"No embeddings found for model '{self._embed_model}'. "
                "Run 'vaultrag index' first to populate the vector index."
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, records: Sequence[IndexRecord]) -> list[int]:
        """Insert or replace *records* in their collections. Returns their ids.

        Documents are keyed by path, chunks by id (when already set).
        """
        self._require_ready()
        with self._immediate():
            return [self._write(record) for record in records]

    def replace_document(
        self, document: DocumentRecord, chunks: Sequence[ChunkRecord]
    ) -> list[int]:
        """Atomically replace a document and all of its chunks.

        Deletes every record for ``document.path`` and inserts the new ones in
        one write transaction, so a path never has two live versions even
        when another process writes the same path.

        Returns:
            ``[document_id, *chunk_ids]``.
        """
        self._require_ready()
        with self._immediate():
            self._delete_path(document.path)
            ids = [self._insert_document(document)]
            ids.extend(self._insert_chunk(chunk) for chunk in chunks)
        logger.debug("Stored %s with %d chunks", document.path, len(chunks))
        return ids

    def delete_by_ids(self, ids: Sequence[int], collection: Collection) -> int:
        """Delete records (and their embeddings) by id. Returns rows deleted."""
        if not ids:
            return 0
        with self._immediate():
            return self._delete_ids(list(ids), collection)

    def delete_by_filter(self, predicate: FieldFilter, collection: Collection) -> int:
        """Delete every record of *collection* matching *predicate*."""
        predicate.check(collection)
        if not predicate.values:
            return 0
        placeholders = ",".join("?" * len(predicate.values))
        with self._immediate():
            ids = [
                r[0]
                for r in self._conn.execute(
                    f"SELECT id FROM {collection.value} WHERE {predicate.field} IN ({placeholders})",  # noqa: S608
                    predicate.values,
                ).fetchall()
            ]
            return self._delete_ids(ids, collection)

    def delete_path(self, path: str) -> int:
        """Delete the document at *path* and all chunks with that file_path."""
        with self._immediate():
            return self._delete_path(path)

    def reset(self) -> None:
        """Drop all tables and recreate the empty schema (vec tables included)."""
        drop_all(self._conn)
        initialize(self._conn)
        if self._dimensions is not None:
            ensure_vec_tables(self._conn, self._slug, self._dimensions)

    # ------------------------------------------------------------------
    # Reconcile lease
    # ------------------------------------------------------------------

    def acquire_lease(self, holder: str, ttl_ms: int) -> bool:
        """Claim the reconcile lease for *holder* unless someone else holds it.

        The lease is a row in the database, so it is shared by every process
        using this index. An expired lease (its holder died mid-pass) can be
        taken over.

        Returns:
            True if *holder* now holds the lease.
        """
        now = _now_ms()
        with self._immediate():
            row = self._conn.execute(
                "SELECT holder, expires_at FROM reconcile_lease WHERE id = 1"
            ).fetchone()
            if row is not None and row["holder"] != holder and row["expires_at"] > now:
                logger.debug("Reconcile lease held by %s", row["holder"])
                return False
            self._conn.execute(
                "INSERT OR REPLACE INTO reconcile_lease (id, holder, expires_at) VALUES (1, ?, ?)",
                (holder, now + ttl_ms),
            )
        return True

    def renew_lease(self, holder: str, ttl_ms: int) -> bool:
        """Push back the expiry of *holder*'s lease. False if it no longer holds it."""
        with self._immediate():
            cur = self._conn.execute(
                "UPDATE reconcile_lease SET expires_at = ? WHERE id = 1 AND holder = ?",
                (_now_ms() + ttl_ms, holder),
            )
            return cur.rowcount == 1

    def release_lease(self, holder: str) -> None:
        with self._immediate():
            self._conn.execute("DELETE FROM reconcile_lease WHERE id = 1 AND holder = ?", (holder,))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_field(
        self, collection: Collection, field: str, value: object
    ) -> IndexRecord | None:
        """Return the first record whose *field* equals *value*, with its embedding."""
        FieldFilter.any_of(field, [value]).check(collection)
        columns = _DOCUMENT_COLUMNS if collection is Collection.DOCUMENTS else _CHUNK_COLUMNS
        row = self._conn.execute(
            f"SELECT {columns} FROM {collection.value} WHERE {field} = ? ORDER BY id LIMIT 1",  # noqa: S608
            (value,),
        ).fetchone()
        if row is None:
            return None
        record: IndexRecord = (
            _row_to_document(row) if collection is Collection.DOCUMENTS else _row_to_chunk(row)
        )
        record.embedding = self._get_embedding(collection, row["id"])
        return record

    def get_document(self, path: str) -> DocumentRecord | None:
        """Return the DocumentRecord stored for *path*, or None if not indexed."""
        record = self.get_by_field(Collection.DOCUMENTS, "path", path)
        return record if isinstance(record, DocumentRecord) else None

    def list_documents(self) -> list[DocumentRecord]:
        """Return all DocumentRecords without embeddings, ordered by path."""
        rows = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY path"  # noqa: S608
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def count(self, collection: Collection) -> int:
        """Return the number of records in *collection*."""
        return self._conn.execute(
            f"SELECT COUNT(*) FROM {collection.value}"  # noqa: S608
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # k-NN search
    # ------------------------------------------------------------------

    def search(
        self,
        query_vector: list[float],
        k: int,
        distance_cutoff: float,
        exclude_path: str | None = None,
    ) -> list[SearchHit]:
        """Nearest-neighbour chunk search by cosine distance.

        Only chunks with ``chunk_length > 0`` and a ``file_path`` other than
        *exclude_path* are eligible. Results are sorted by ascending distance
        and every returned distance is ``<= distance_cutoff``.
        """
        self._require_ready()
        if k < 1:
            return []

        # Over-fetch by the number of ineligible chunks so filtering can't starve k.
        ineligible = self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE chunk_length <= 0 OR file_path = ?",
            (exclude_path or "",),
        ).fetchone()[0]
        limit = min(k + ineligible, _MAX_KNN)

        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {self._vec_table(Collection.CHUNKS)} "  # noqa: S608
            "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(query_vector), limit),
        ).fetchall()

        chunks = self._chunks_by_id([r["rowid"] for r in vec_rows])
        hits: list[SearchHit] = []
        for vec_row in vec_rows:
            chunk = chunks.get(vec_row["rowid"])
            distance = float(vec_row["distance"])
            if chunk is None or chunk.chunk_length <= 0:
                continue
            if exclude_path and chunk.file_path == exclude_path:
                continue
            if distance > distance_cutoff:
                break
            hits.append(SearchHit(chunk=chunk, distance=distance))
            if len(hits) == k:
                break
        return hits

    # ------------------------------------------------------------------
    # Internal helpers (no commit; callers own the transaction)
    # ------------------------------------------------------------------

    @contextmanager
    def _immediate(self) -> Iterator[None]:
        """Write transaction holding the database write lock from its first read."""
        self._conn.execute("BEGIN IMMEDIATE")
        with self._conn:
            yield

    def _write(self, record: IndexRecord) -> int:
        if isinstance(record, DocumentRecord):
            self._delete_ids(
                [
                    r[0]
                    for r in self._conn.execute(
                        "SELECT id FROM documents WHERE path = ?", (record.path,)
                    ).fetchall()
                ],
                Collection.DOCUMENTS,
            )
            return self._insert_document(record)
        if record.id is not None:
            self._delete_ids([record.id], Collection.CHUNKS)
        return self._insert_chunk(record)

    def _insert_document(self, doc: DocumentRecord) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO documents (id, path, content_hash, modified_time, length, embed_model)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                doc.id,
                doc.path,
                doc.content_hash,
                doc.modified_time,
                doc.length,
                doc.embed_model or self._embed_model,
            ),
        )
        doc.id = cur.lastrowid
        self._add_embedding(Collection.DOCUMENTS, doc.id, doc.embedding)
        return doc.id

    def _insert_chunk(self, chunk: ChunkRecord) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO chunks (id, file_path, file_hash, chunk_hash, contents, context,
                                chunk_length, modified_time, timestamp, embed_model)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.file_path,
                chunk.file_hash,
                chunk.chunk_hash,
                chunk.contents,
                chunk.context,
                chunk.chunk_length,
                chunk.modified_time,
                chunk.timestamp,
                chunk.embed_model or self._embed_model,
            ),
        )
        chunk.id = cur.lastrowid
        self._add_embedding(Collection.CHUNKS, chunk.id, chunk.embedding)
        return chunk.id

    def _add_embedding(self, collection: Collection, rowid: int, embedding: list[float]) -> None:
        """Insert an embedding into a vec table with explicit rowid = record id."""
        self._conn.execute(
            f"INSERT INTO {self._vec_table(collection)}(rowid, embedding) VALUES (?, ?)",  # noqa: S608
            (rowid, json.dumps(embedding)),
        )

    def _get_embedding(self, collection: Collection, rowid: int) -> list[float]:
        if not vec_table_exists(self._conn, self._vec_table(collection)):
            return []
        row = self._conn.execute(
            f"SELECT embedding FROM {self._vec_table(collection)} WHERE rowid = ?",  # noqa: S608
            (rowid,),
        ).fetchone()
        if row is None:
            return []
        blob = row[0]
        return list(struct.unpack(f"{len(blob) // 4}f", blob))

    def _delete_ids(self, ids: list[int], collection: Collection) -> int:
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        table = self._vec_table(collection)
        if vec_table_exists(self._conn, table):
            self._conn.execute(
                f"DELETE FROM {table} WHERE rowid IN ({placeholders})", ids  # noqa: S608
            )
        cur = self._conn.execute(
            f"DELETE FROM {collection.value} WHERE id IN ({placeholders})", ids  # noqa: S608
        )
        return cur.rowcount

    def _delete_path(self, path: str) -> int:
        doc_ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM documents WHERE path = ?", (path,)
            ).fetchall()
        ]
        chunk_ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM chunks WHERE file_path = ?", (path,)
            ).fetchall()
        ]
        return self._delete_ids(doc_ids, Collection.DOCUMENTS) + self._delete_ids(
            chunk_ids, Collection.CHUNKS
        )

    def _chunks_by_id(self, ids: list[int]) -> dict[int, ChunkRecord]:
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE id IN ({placeholders})",  # noqa: S608
            ids,
        ).fetchall()
        return {r["id"]: _row_to_chunk(r) for r in rows}


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_document(row: sqlite3.Row) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        path=row["path"],
        content_hash=row["content_hash"],
        modified_time=row["modified_time"],
        length=row["length"],
        embed_model=row["embed_model"],
    )


def _row_to_chunk(row: sqlite3.Row) -> ChunkRecord:
    return ChunkRecord(
        id=row["id"],
        file_path=row["file_path"],
        file_hash=row["file_hash"],
        chunk_hash=row["chunk_hash"],
        contents=row["contents"],
        context=row["context"],
        chunk_length=row["chunk_length"],
        modified_time=row["modified_time"],
        timestamp=row["timestamp"],
        embed_model=row["embed_model"],
    )


def _now_ms() -> int:
    return int(time.time() * 1000)
