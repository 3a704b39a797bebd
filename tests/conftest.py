"""Shared fixtures: an in-memory reference store that records every call."""

from __future__ import annotations

import copy
import threading
import time
from pathlib import Path
from typing import Any, Mapping

import pytest

from lca_flow_mapping.core.config import Settings
from lca_flow_mapping.core.models import (
    FlowDescriptor,
    FlowPropertyFactor,
    FlowRecord,
    FlowType,
    Ref,
    StoreResult,
)

MASS = Ref(id="fp-mass", name="Mass")
ENERGY = Ref(id="fp-energy", name="Energy")
ITEMS = Ref(id="fp-items", name="Number of items")


def default_unit_groups() -> list[dict[str, Any]]:
    return [
        {
            "@id": "ug-mass",
            "name": "Units of mass",
            "defaultFlowProperty": {"@id": MASS.id, "name": MASS.name},
            "units": [
                {"@id": "u-kg", "name": "kg", "conversionFactor": 1.0, "isRefUnit": True},
                {"@id": "u-g", "name": "g", "conversionFactor": 0.001},
                {"@id": "u-t", "name": "t", "conversionFactor": 1000.0},
            ],
        },
        {
            "@id": "ug-energy",
            "name": "Units of energy",
            "defaultFlowProperty": {"@id": ENERGY.id, "name": ENERGY.name},
            "units": [
                {"@id": "u-mj", "name": "MJ", "conversionFactor": 1.0, "isRefUnit": True},
                {"@id": "u-kwh", "name": "kWh", "conversionFactor": 3.6},
            ],
        },
        {
            "@id": "ug-items",
            "name": "Units of items",
            "defaultFlowProperty": {"@id": ITEMS.id, "name": ITEMS.name},
            "units": [
                {"@id": "u-items", "name": "Item(s)", "conversionFactor": 1.0, "isRefUnit": True},
            ],
        },
    ]


def make_flow(
    flow_id: str,
    name: str,
    *,
    category: str | None = None,
    flow_type: FlowType = FlowType.ELEMENTARY,
    ref_unit: str = "kg",
    properties: tuple[FlowPropertyFactor, ...] | None = None,
) -> FlowRecord:
    return FlowRecord(
        id=flow_id,
        name=name,
        flow_type=flow_type,
        category_path=category,
        flow_properties=properties or (FlowPropertyFactor(flow_property=MASS, conversion_factor=1.0, is_reference=True),),
        ref_unit=ref_unit,
    )


class FakeReferenceStore:
    """Reference store double keeping flows in memory."""

    def __init__(
        self,
        flows: tuple[FlowRecord, ...] | list[FlowRecord] = (),
        *,
        unit_groups: list[dict[str, Any]] | None = None,
        locations: Mapping[str, Ref] | None = None,
        providers: Mapping[str, list[Ref]] | None = None,
        index_created: bool = True,
        search_delay: float = 0.0,
    ) -> None:
        self.flows: dict[str, FlowRecord] = {flow.id: flow for flow in flows}
        self.unit_groups = unit_groups if unit_groups is not None else default_unit_groups()
        self.locations: dict[str, Ref] = dict(locations or {})
        self.providers: dict[str, list[Ref]] = dict(providers or {})
        self.index_created = index_created
        self.search_delay = search_delay
        self.failures: dict[str, StoreResult[Any]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.created_flows: list[dict[str, Any]] = []
        self.created_locations: list[dict[str, Any]] = []
        self._searchable: set[str] = set(self.flows)
        self._lock = threading.Lock()

    def count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for name, _ in self.calls if name == operation)

    def _record(self, operation: str, argument: Any) -> StoreResult[Any] | None:
        with self._lock:
            self.calls.append((operation, argument))
        return self.failures.get(operation)

    def find_flows(self, flow_type, name, *, category=None, location=None):
        failure = self._record("find_flows", (flow_type, name, category, location))
        if failure is not None:
            return failure
        if self.search_delay:
            time.sleep(self.search_delay)
        with self._lock:
            flows = [self.flows[flow_id] for flow_id in self.flows if flow_id in self._searchable]
        return StoreResult.success(
            [
                FlowDescriptor(
                    id=flow.id,
                    name=flow.name,
                    category_path=flow.category_path,
                    flow_type=flow.flow_type,
                    ref_unit=flow.ref_unit,
                )
                for flow in flows
                if flow.flow_type == flow_type
            ]
        )

    def get_flow(self, flow_id):
        failure = self._record("get_flow", flow_id)
        if failure is not None:
            return failure
        flow = self.flows.get(flow_id)
        if flow is None:
            return StoreResult.not_found(f"no flow {flow_id}")
        return StoreResult.success(flow)

    def create_flow(self, record):
        failure = self._record("create_flow", record)
        if failure is not None:
            return failure
        flow_id = record["@id"]
        if flow_id in self.flows:
            return StoreResult.failure(f"duplicate flow {flow_id}")
        factors = tuple(
            FlowPropertyFactor(
                flow_property=Ref(id=item["flowProperty"]["@id"], name=item["flowProperty"].get("name")),
                conversion_factor=item["conversionFactor"],
                is_reference=item["isRefFlowProperty"],
            )
            for item in record["flowProperties"]
        )
        with self._lock:
            self.flows[flow_id] = FlowRecord(
                id=flow_id,
                name=record["name"],
                flow_type=FlowType.parse(record["flowType"]),
                category_path=record.get("category"),
                flow_properties=factors,
                ref_unit=self._reference_unit_of(factors[0].flow_property.id),
            )
            if self.index_created:
                self._searchable.add(flow_id)
            self.created_flows.append(copy.deepcopy(dict(record)))
        return StoreResult.success(flow_id)

    def list_unit_groups(self):
        failure = self._record("list_unit_groups", None)
        if failure is not None:
            return failure
        return StoreResult.success(copy.deepcopy(self.unit_groups))

    def get_location(self, name):
        failure = self._record("get_location", name)
        if failure is not None:
            return failure
        ref = self.locations.get(name)
        if ref is None:
            return StoreResult.not_found(f"no location {name}")
        return StoreResult.success(ref)

    def create_location(self, record):
        failure = self._record("create_location", record)
        if failure is not None:
            return failure
        self.locations[record["name"]] = Ref(id=record["@id"], name=record["name"])
        self.created_locations.append(dict(record))
        return StoreResult.success(record["@id"])

    def find_providers(self, flow_id):
        failure = self._record("find_providers", flow_id)
        if failure is not None:
            return failure
        providers = self.providers.get(flow_id)
        if not providers:
            return StoreResult.not_found()
        return StoreResult.success(list(providers))

    def close(self) -> None:
        return None

    def _reference_unit_of(self, flow_property_id: str) -> str | None:
        for group in self.unit_groups:
            if group["defaultFlowProperty"]["@id"] != flow_property_id:
                continue
            for unit in group["units"]:
                if unit.get("isRefUnit"):
                    return unit["name"]
        return None


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        store_base_url="http://olca.test",
        mapping_dir=tmp_path / "mappings",
        max_retries=1,
        retry_backoff=0.1,
        max_concurrency=4,
    )


@pytest.fixture
def mapping_path(tmp_path: Path) -> Path:
    return tmp_path / "mappings" / "flow_mapping.csv"


@pytest.fixture
def co2_flow() -> FlowRecord:
    return make_flow("flow-co2", "Carbon dioxide", category="air/unspecified")


@pytest.fixture
def store(co2_flow: FlowRecord) -> FakeReferenceStore:
    return FakeReferenceStore([co2_flow])
