"""Contract of the remote reference data store."""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from lca_flow_mapping.core.models import FlowDescriptor, FlowRecord, FlowType, Ref, StoreResult


class ReferenceDataStore(Protocol):
    """Operations the flow resolver consumes.

    Every operation answers with a :class:`StoreResult`; remote conditions
    (missing records, rejected writes, timeouts) are never raised.
    """

    def find_flows(
        self,
        flow_type: FlowType,
        name: str,
        *,
        category: str | None = None,
        location: str | None = None,
    ) -> StoreResult[list[FlowDescriptor]]: ...

    def get_flow(self, flow_id: str) -> StoreResult[FlowRecord]: ...

    def create_flow(self, record: Mapping[str, Any]) -> StoreResult[str]: ...

    def list_unit_groups(self) -> StoreResult[list[dict[str, Any]]]: ...

    def get_location(self, name: str) -> StoreResult[Ref]: ...

    def create_location(self, record: Mapping[str, Any]) -> StoreResult[str]: ...

    def find_providers(self, flow_id: str) -> StoreResult[list[Ref]]: ...

    def close(self) -> None: ...
