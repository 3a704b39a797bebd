"""Keyword containment scoring used to rank search candidates."""

from __future__ import annotations

from typing import Iterable


def match_score(haystack: str | None, keywords: Iterable[str | None] | None) -> int:
    """Sum the lengths of all keywords contained in ``haystack``.

    Matching is case-insensitive and blank keywords are ignored, so longer
    and more specific hits outweigh several short coincidental ones.
    """
    if not haystack or keywords is None:
        return 0
    feed = haystack.lower()
    score = 0
    for keyword in keywords:
        if keyword is None or not keyword.strip():
            continue
        word = keyword.lower()
        if word in feed:
            score += len(word)
    return score
