"""k-NN chunk retrieval with TF-IDF re-ranking.

Blended score:
  score(d) = 0.25 * lexical(d) + 0.75 * similarity(d)

lexical(d) is the mean tf·idf of the query terms that occur anywhere in the
candidate set, with idf computed over the candidates only:
  idf(t) = ln(N / (1 + df(t))) + 1        tf(t, d) = ln(1 + count(t in d))
"""

from __future__ import annotations

import logging
import math
import re

from vaultrag.config import ConfigurationError, RagConfig
from vaultrag.db.base import VectorIndex
from vaultrag.db.models import Collection, DocumentRecord, SearchHit
from vaultrag.llm.client import EmbeddingModel

logger = logging.getLogger(__name__)

TFIDF_WEIGHT = 0.25
QUERY_CANDIDATES = 150

STOP_WORDS = frozenset(["the", "is", "and", "a", "to", "in", "of", "for", "at", "an", "on"])
_PUNCTUATION_RE = re.compile(r"[.,/#!$%^&*;:{}=_`~()]")


# ------------------------------------------------------------------
# k-NN
# ------------------------------------------------------------------


def knn_search(
    index: VectorIndex,
    query_vector: list[float],
    k: int,
    threshold: float,
    exclude_path: str = "",
) -> list[SearchHit]:
    """Return up to *k* non-empty chunks within cosine distance *threshold*.

    Chunks of *exclude_path* are never returned (self-exclusion when searching
    for notes similar to that note).

    Raises:
        ConfigurationError: If *k* is not positive.
    """
    if k < 1:
        raise ConfigurationError(f"k must be >= 1, got {k}")
    hits = index.search(query_vector, k, threshold, exclude_path=exclude_path or None)
    return [h for h in hits if h.distance <= threshold and h.file_path != exclude_path]


# ------------------------------------------------------------------
# TF-IDF re-ranking
# ------------------------------------------------------------------


def tokenize_query(query: str) -> list[str]:
    """Strip punctuation, lowercase, split on whitespace, drop stop-words."""
    cleaned = _PUNCTUATION_RE.sub("", query).replace("-", " ")
    return [w for w in cleaned.lower().split() if w not in STOP_WORDS]


def _idf(term: str, texts: list[str]) -> float:
    if not texts:
        return 0.0
    df = sum(1 for text in texts if term in text)
    return math.log(len(texts) / (1 + df)) + 1


def _tf(term: str, tokens: list[str]) -> float:
    return math.log(1 + tokens.count(term))


def lexical_scores(query: str, texts: list[str]) -> list[float]:
    """Mean tf·idf of the query terms for each text (0.0 when no term occurs)."""
    lowered = [t.lower() for t in texts]
    tokenized = [t.split() for t in lowered]
    terms = tokenize_query(query)
    logger.debug("Query terms: %s", terms)

    term_scores: list[list[float]] = []
    for term in terms:
        tfs = [_tf(term, tokens) for tokens in tokenized]
        if sum(tfs) <= 0:
            continue
        idf = _idf(term, lowered)
        term_scores.append([tf * idf for tf in tfs])

    divisor = len(term_scores) or 1
    return [sum(scores[i] for scores in term_scores) / divisor for i in range(len(texts))]


def rerank(query: str, hits: list[SearchHit], limit: int) -> list[SearchHit]:
    """Reorder *hits* by blended lexical/vector score, best first, at most *limit*.

    Ties keep their k-NN order, so the output is deterministic.
    """
    if not hits:
        return []
    lexical = lexical_scores(query, [h.contents for h in hits])
    blended = [
        TFIDF_WEIGHT * lex + (1 - TFIDF_WEIGHT) * hit.score for lex, hit in zip(lexical, hits)
    ]
    order = sorted(range(len(hits)), key=lambda i: blended[i], reverse=True)
    logger.debug("Blended scores: %s", [round(blended[i], 4) for i in order])
    return [hits[i] for i in order[:limit]]


def workspace_threshold(threshold: float) -> float:
    """Looser cosine-distance cutoff: half the minimum similarity of *threshold*.

    Never tighter than *threshold* itself (distances above 1 imply no minimum
    similarity to halve).
    """
    return max(threshold, 1.0 - (1.0 - threshold) / 2)


# ------------------------------------------------------------------
# Retriever
# ------------------------------------------------------------------


class Retriever:
    """Similarity queries against the index.

    Args:
        index:    Vector index (a read connection; never blocked by reconcile).
        embedder: Embedding model used for free-text queries.
        config:   Search limit and distance threshold.
    """

    def __init__(self, index: VectorIndex, embedder: EmbeddingModel, config: RagConfig) -> None:
        self._index = index
        self._embedder = embedder
        self._config = config

    def similar_to_document(self, path: str) -> list[SearchHit]:
        """Chunks from other notes closest to the note at *path*.

        Returns an empty list while *path* is not indexed yet.
        """
        record = self._index.get_by_field(Collection.DOCUMENTS, "path", path)
        if not isinstance(record, DocumentRecord) or not record.embedding:
            logger.debug("%s is not indexed yet", path)
            return []
        return knn_search(
            self._index,
            record.embedding,
            self._config.similar_notes_search_limit,
            self._config.similarity_threshold,
            exclude_path=path,
        )

    def search(self, query: str) -> list[SearchHit]:
        """Embed *query*, fetch broad candidates, and return the re-ranked best."""
        candidates = self.candidates(query, self._config.similarity_threshold)
        return rerank(query, candidates, self._config.similar_notes_search_limit)

    def workspace_candidates(self, query: str) -> list[SearchHit]:
        """Un-ranked candidates for *query* under the looser workspace cutoff."""
        return self.candidates(query, workspace_threshold(self._config.similarity_threshold))

    def candidates(self, query: str, threshold: float) -> list[SearchHit]:
        """Embed *query* and return up to 150 k-NN hits within *threshold*."""
        embedding = self._embedder.embed(query)
        hits = knn_search(self._index, embedding, QUERY_CANDIDATES, threshold)
        logger.debug("%d candidates for %r (cutoff %.3f)", len(hits), query, threshold)
        return hits
