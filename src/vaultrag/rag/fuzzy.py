"""Fuzzy note-name matching, for suggesting ``[[references]]`` while typing."""

from __future__ import annotations

from pathlib import PurePosixPath

from vaultrag.db.models import SourceDocument


def basename(path: str) -> str:
    """Note name without folder or extension (``Notes/Meeting.md`` → ``Meeting``)."""
    return PurePosixPath(path).stem


def is_subsequence(query: str, text: str) -> bool:
    """True if every character of *query* appears in *text* in order."""
    it = iter(text)
    return all(ch in it for ch in query)


def subsequence_score(query: str, text: str) -> float:
    """Compactness of the tightest match of *query* in *text*: ``1 / (1 + average gap)``.

    Returns 0.0 when *query* is not a subsequence of *text*.
    """
    if not query:
        return 1.0
    best = 0.0
    for start in range(len(text)):
        if text[start] != query[0]:
            continue
        positions = [start]
        for i in range(start + 1, len(text)):
            if len(positions) == len(query):
                break
            if text[i] == query[len(positions)]:
                positions.append(i)
        if len(positions) < len(query):
            continue
        gaps = sum(b - a - 1 for a, b in zip(positions, positions[1:]))
        average = gaps / (len(positions) - 1) if len(positions) > 1 else 0.0
        best = max(best, 1 / (1 + average))
    return best


def sequence_matching_search(query: str, documents: list[SourceDocument]) -> list[SourceDocument]:
    """Notes whose name contains *query* as a subsequence, best match first.

    Case-insensitive. Ordered by compactness, then by most recent
    modification. An empty query returns every note, most recent first.
    """
    query = query.lower()
    matches = [d for d in documents if is_subsequence(query, basename(d.path).lower())]
    matches.sort(key=lambda d: d.modified_time, reverse=True)
    matches.sort(key=lambda d: subsequence_score(query, basename(d.path).lower()), reverse=True)
    return matches
