"""Subsequence fuzzy matching for branch names."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")


def _fold(text: str) -> list[str]:
    # Per-character folding keeps indices aligned with the original string.
    return [ch.casefold() for ch in text]


def match_positions(query: str, candidate: str) -> list[int] | None:
    """Leftmost positions of *query*'s characters in *candidate*, or None."""
    needles = _fold(query)
    haystack = _fold(candidate)
    positions: list[int] = []
    idx = 0
    for needle in needles:
        while idx < len(haystack) and haystack[idx] != needle:
            idx += 1
        if idx == len(haystack):
            return None
        positions.append(idx)
        idx += 1
    return positions


def score(query: str, candidate: str) -> int | None:
    """Score *candidate* against *query*; None when it does not match.

    Higher is better. An earlier match start always wins; among equal starts
    the longest contiguous run of matched characters decides. Scores are
    only comparable for the same *query*.
    """
    positions = match_positions(query, candidate)
    if positions is None:
        return None
    if not positions:
        return 0

    longest = run = 1
    for i in range(1, len(positions)):
        run = run + 1 if positions[i] == positions[i - 1] + 1 else 1
        longest = max(longest, run)
    # A run never exceeds len(query), so start dominates.
    return -positions[0] * (len(query) + 1) + longest


def _identity(item: T) -> str:
    return item  # type: ignore[return-value]


def match(
    query: str,
    candidates: Sequence[T],
    key: Callable[[T], str] = _identity,
) -> list[T]:
    """Filter and rank *candidates* whose ``key`` fuzzy-matches *query*.

    An empty query returns every candidate in its original order. Otherwise
    matches are sorted by descending score, ties broken by name.
    """
    if not query:
        return list(candidates)

    scored: list[tuple[int, str, T]] = []
    for candidate in candidates:
        name = key(candidate)
        value = score(query, name)
        if value is not None:
            scored.append((value, name, candidate))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [candidate for _, _, candidate in scored]
