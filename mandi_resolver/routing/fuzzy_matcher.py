"""
Fuzzy Matcher - Spelling Candidates for Market and Commodity Names

Pure functions, no I/O. Similarity is a normalized edit-distance score:

    similarity(a, b) = 1 - levenshtein(a, b) / max(len(a), len(b))

computed over normalize_name() forms. An entry scores the maximum over its
canonical name and every alias.

Ordering is total, so identical inputs always give identical output:
score descending, then shorter edit distance, then canonical name, district
and state.

Usage:
    from mandi_resolver.routing.fuzzy_matcher import match

    candidates = match("Ravulapalem", index.entries(NameKind.MARKET), threshold=0.6)
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from ..models import Candidate, CandidateSource, NameEntry
from ..utils.text import normalize_name

logger = logging.getLogger(__name__)


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two already-normalized strings."""
    return Levenshtein.distance(a, b)


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """Normalized similarity in [0, 1]; two blank names score 0."""
    return _score(normalize_name(a), normalize_name(b))[0]


def _score(a: str, b: str) -> Tuple[float, int]:
    longest = max(len(a), len(b))
    if not a or not b:
        return 0.0, longest
    distance = edit_distance(a, b)
    return 1.0 - distance / longest, distance


def best_score(query: str, entry: NameEntry) -> Tuple[float, int]:
    """Best (score, distance) for a normalized query over an entry's name and aliases."""
    best: Tuple[float, int] = _score(query, normalize_name(entry.canonical_name))
    for alias in entry.aliases:
        score, distance = _score(query, normalize_name(alias))
        if score > best[0] or (score == best[0] and distance < best[1]):
            best = (score, distance)
    return best


def _sort_key(scored: Tuple[float, int, NameEntry]) -> Tuple[float, int, str, str, str]:
    score, distance, entry = scored
    return (
        -score,
        distance,
        normalize_name(entry.canonical_name),
        normalize_name(entry.district),
        normalize_name(entry.state),
    )


def match(
    query: Optional[str],
    candidates: Iterable[NameEntry],
    threshold: float,
    limit: Optional[int] = None,
) -> List[Candidate]:
    """Rank name entries by spelling similarity to ``query``.

    Args:
        query: Name as typed by the user
        candidates: Entries to compare against
        threshold: Minimum similarity; lower-scoring entries are dropped
        limit: Optional cap on the number of results

    Returns:
        Spelling candidates, best first. ``distance_rank`` carries the edit
        distance of the best-scoring name.
    """
    normalized = normalize_name(query)
    if not normalized:
        return []

    scored: List[Tuple[float, int, NameEntry]] = []
    for entry in candidates:
        score, distance = best_score(normalized, entry)
        if score >= threshold:
            scored.append((score, distance, entry))

    scored.sort(key=_sort_key)
    if limit is not None:
        scored = scored[:limit]

    logger.debug(f"Fuzzy match '{normalized}': {len(scored)} candidates >= {threshold}")
    return [
        Candidate(
            name_entry=entry,
            similarity=min(1.0, max(0.0, score)),
            distance_rank=distance,
            source=CandidateSource.SPELLING,
        )
        for score, distance, entry in scored
    ]
