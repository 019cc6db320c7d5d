"""vaultrag ingest pipeline — chunking, fingerprints, summaries, reconcile."""

from vaultrag.ingest.fingerprint import FingerprintTracker, chunk_hash, content_hash
from vaultrag.ingest.indexer import Indexer, ReconcileReport
from vaultrag.ingest.scheduler import ReconcileScheduler
from vaultrag.ingest.splitter import ChunkSplitter
from vaultrag.ingest.summarizer import ContextSummarizer

__all__ = [
    "ChunkSplitter",
    "ContextSummarizer",
    "FingerprintTracker",
    "Indexer",
    "ReconcileReport",
    "ReconcileScheduler",
    "chunk_hash",
    "content_hash",
]
