"""Flow resolution entrypoints."""

from .dedup import FlowDedupDecision, FlowDedupService
from .service import FlowResolver, build_flow_record

__all__ = [
    "FlowDedupDecision",
    "FlowDedupService",
    "FlowResolver",
    "build_flow_record",
]
