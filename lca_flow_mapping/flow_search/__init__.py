"""Flow search scoring and candidate selection."""

from .scoring import match_score
from .selector import CandidateSelector, KeywordCandidateSelector, SelectorDecision, select_candidate

__all__ = [
    "CandidateSelector",
    "KeywordCandidateSelector",
    "SelectorDecision",
    "match_score",
    "select_candidate",
]
