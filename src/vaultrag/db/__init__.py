"""vaultrag vector index layer."""

from vaultrag.db.base import FieldFilter, VectorIndex
from vaultrag.db.connection import Database
from vaultrag.db.migrations import MIGRATIONS, run_migrations
from vaultrag.db.models import (
    ChunkRecord,
    Collection,
    DocumentRecord,
    IndexRecord,
    SearchHit,
    SourceDocument,
)
from vaultrag.db.repository import Repository
from vaultrag.db.schema import initialize
from vaultrag.db.vectors import ensure_vec_tables, model_to_slug, vec_table_name

__all__ = [
    "ChunkRecord",
    "Collection",
    "Database",
    "DocumentRecord",
    "FieldFilter",
    "IndexRecord",
    "MIGRATIONS",
    "Repository",
    "SearchHit",
    "SourceDocument",
    "VectorIndex",
    "ensure_vec_tables",
    "initialize",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
