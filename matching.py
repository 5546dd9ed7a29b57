"""
Name normalisation and typo-tolerant catalog search.

`normalize` produces the key used both to merge stock intake into existing
components and to compare search queries, so the two always agree.
"""

from __future__ import annotations

import re
from typing import Sequence, TypeVar

from rapidfuzz.distance import Levenshtein

# Relative (fraction of query length) and absolute caps on tolerated edits.
RELATIVE_TOLERANCE = 0.3
MAX_EDITS = 3

_NON_ALNUM = re.compile(r"[^a-z0-9]")

T = TypeVar("T")


def normalize(name: str) -> str:
    """Lowercase and strip everything outside [a-z0-9]."""
    return _NON_ALNUM.sub("", name.lower())


def max_edit_distance(normalized_query: str) -> int:
    """Edits tolerated for a query: 30% of its length, never more than 3."""
    return min(int(len(normalized_query) * RELATIVE_TOLERANCE), MAX_EDITS)


def infix_distance(query: str, key: str) -> int:
    """
    Levenshtein distance between `query` and its best-matching substring of `key`.

    Characters of `key` before and after the aligned region cost nothing, so
    "ardino" is one edit away from "arduinouno" (via "arduino").
    """
    if not query:
        return 0
    previous = [0] * (len(key) + 1)
    for i, q_char in enumerate(query, start=1):
        current = [i] + [0] * len(key)
        for j, k_char in enumerate(key, start=1):
            substitution = previous[j - 1] + (q_char != k_char)
            current[j] = min(substitution, previous[j] + 1, current[j - 1] + 1)
        previous = current
    return min(previous)


def _within_tolerance(normalized_query: str, key: str) -> bool:
    limit = max_edit_distance(normalized_query)
    # score_cutoff lets rapidfuzz bail out once the distance exceeds the limit.
    if Levenshtein.distance(normalized_query, key, score_cutoff=limit) <= limit:
        return True
    return infix_distance(normalized_query, key) <= limit


def matches(query: str, display_name: str, normalized_key: str) -> bool:
    """True when a single catalog entry satisfies any of the search rules."""
    normalized_query = normalize(query)

    # Exact/prefix/infix match regardless of punctuation and case.
    if normalized_query in normalized_key:
        return True

    # Keeps matches on spacing/punctuation the user typed deliberately.
    if query.casefold() in display_name.casefold():
        return True

    return _within_tolerance(normalized_query, normalized_key)


def search(query: str, candidates: Sequence[T]) -> list[T]:
    """
    Filter `candidates` (objects with `display_name` and `normalized_key`)
    down to those matching `query`, preserving their order.

    A blank query returns every candidate.
    """
    if not query or not query.strip():
        return list(candidates)
    return [c for c in candidates if matches(query, c.display_name, c.normalized_key)]
