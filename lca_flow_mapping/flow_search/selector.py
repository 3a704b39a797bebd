"""Candidate selection for flow search results."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from lca_flow_mapping.core.logging import get_logger
from lca_flow_mapping.core.models import FlowDescriptor, FlowQuery

from .scoring import match_score

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class SelectorDecision:
    """Outcome of a candidate selection operation."""

    candidate: FlowDescriptor | None
    score: int = 0
    reasoning: str | None = None
    strategy: str | None = None


class CandidateSelector(Protocol):
    """Protocol implemented by selection strategies."""

    def select(self, query: FlowQuery, candidates: Sequence[FlowDescriptor]) -> SelectorDecision: ...


def candidate_haystack(candidate: FlowDescriptor) -> str:
    if candidate.category_path:
        return f"{candidate.name} / {candidate.category_path}"
    return candidate.name


def query_keywords(query: FlowQuery) -> list[str]:
    return [query.name, *query.category_segments]


class KeywordCandidateSelector:
    """Pick the candidate with the highest keyword match score.

    A candidate only qualifies when its name contains the query name and its
    score reaches ``min_score``. Ties prefer a candidate already using the
    query unit, then the first candidate in store order.
    """

    def __init__(self, *, min_score: int = 1) -> None:
        self._min_score = max(1, int(min_score))

    def select(self, query: FlowQuery, candidates: Sequence[FlowDescriptor]) -> SelectorDecision:
        if not candidates:
            return SelectorDecision(candidate=None, strategy="keyword")
        keywords = query_keywords(query)
        needle = query.name.lower()
        unit = query.unit

        best: tuple[int, int] | None = None
        best_candidate: FlowDescriptor | None = None
        for candidate in candidates:
            if needle not in candidate.name.lower():
                continue
            score = match_score(candidate_haystack(candidate), keywords)
            if score < self._min_score:
                continue
            rank = (score, 1 if unit and candidate.ref_unit == unit else 0)
            # strict comparison keeps the earliest candidate on full ties
            if best is None or rank > best:
                best = rank
                best_candidate = candidate

        if best is None or best_candidate is None:
            LOGGER.debug("flow_search.no_candidate", query=query.describe(), candidate_count=len(candidates))
            return SelectorDecision(candidate=None, strategy="keyword")
        return SelectorDecision(
            candidate=best_candidate,
            score=best[0],
            reasoning=f"keyword score={best[0]} unit_match={bool(best[1])}",
            strategy="keyword",
        )


def select_candidate(
    query: FlowQuery,
    candidates: Sequence[FlowDescriptor],
    *,
    min_score: int = 1,
) -> SelectorDecision:
    return KeywordCandidateSelector(min_score=min_score).select(query, candidates)
