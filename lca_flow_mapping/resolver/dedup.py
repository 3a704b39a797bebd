"""Insert/reuse decisions for flows with deterministic ids."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Literal

from lca_flow_mapping.core.exceptions import ReferenceStoreError, RemoteUnavailableError
from lca_flow_mapping.core.models import FlowRecord
from lca_flow_mapping.store.base import ReferenceDataStore

FlowAction = Literal["insert", "reuse"]


@dataclass(slots=True, frozen=True)
class FlowDedupDecision:
    action: FlowAction
    exists: bool
    reason: str
    record: FlowRecord | None = None


class FlowDedupService:
    """Resolve insert/reuse action based on remote existence checks."""

    def __init__(self, store: ReferenceDataStore) -> None:
        self._store = store
        self._created: set[str] = set()
        self._lock = threading.Lock()

    def decide(self, flow_id: str) -> FlowDedupDecision:
        uuid_value = str(flow_id or "").strip()
        if not uuid_value:
            return FlowDedupDecision(action="insert", exists=False, reason="missing_uuid")
        with self._lock:
            created_here = uuid_value in self._created
        if created_here:
            return FlowDedupDecision(action="reuse", exists=True, reason="created_in_session")

        result = self._store.get_flow(uuid_value)
        if result.ok and result.value is not None:
            return FlowDedupDecision(action="reuse", exists=True, reason="exists", record=result.value)
        if result.status == "unavailable":
            raise RemoteUnavailableError(f"Existence check of flow {uuid_value} failed: {result.error}")
        if result.status == "error":
            raise ReferenceStoreError(f"Existence check of flow {uuid_value} failed: {result.error}")
        return FlowDedupDecision(action="insert", exists=False, reason="missing")

    def mark_created(self, flow_id: str) -> None:
        with self._lock:
            self._created.add(str(flow_id).strip())
