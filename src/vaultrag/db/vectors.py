"""Per-model sqlite-vec virtual table management.

Each embedding model gets one vec table per collection, keyed by the rowid of
the matching ``documents``/``chunks`` row. Distances are cosine distances.
"""

from __future__ import annotations

import re
import sqlite3

from vaultrag.config import ConfigurationError
from vaultrag.db.models import Collection

_DIMS_RE = re.compile(r"float\[(\d+)\]")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "ollama/nomic-embed-text"        -> "ollama_nomic_embed_text"
        "openai/text-embedding-3-small"  -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(collection: Collection, model_slug: str) -> str:
    """Return the vec table name for *collection* and a model slug."""
    return f"vec_{collection.value}_{model_slug}"


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    return (
        conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ).fetchone()
        is not None
    )


def vec_table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the declared embedding size of *table*, or None if it is missing."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    if row is None or row[0] is None:
        return None
    match = _DIMS_RE.search(row[0])
    return int(match.group(1)) if match else None


def ensure_vec_tables(
    conn: sqlite3.Connection, model_slug: str, dimensions: int
) -> dict[Collection, str]:
    """Create the document and chunk vec tables for a model if missing.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 768 for nomic-embed-text).

    Returns:
        Mapping of collection to vec table name.

    Raises:
        ValueError: On an unsanitized slug or non-positive dimensions.
        ConfigurationError: If an existing table was declared with different
            dimensions (the embedding model changed size).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    tables: dict[Collection, str] = {}
    for collection in Collection:
        table = vec_table_name(collection, model_slug)
        existing = vec_table_dimensions(conn, table)
        if existing is None:
            conn.execute(
                f"CREATE VIRTUAL TABLE {table} USING vec0("
                f"embedding float[{dimensions}] distance_metric=cosine)"
            )
        elif existing != dimensions:
            raise ConfigurationError(
                f"Vec table '{table}' stores {existing}-dimensional embeddings, "
                f"but the model produced {dimensions}. Run 'vaultrag reset' to re-embed."
            )
        tables[collection] = table
    conn.commit()
    return tables
