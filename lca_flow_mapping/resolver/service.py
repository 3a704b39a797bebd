"""Tiered resolution of flow queries: cache, remote search, remote creation."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Hashable, Iterable, Iterator, TypeVar

from lca_flow_mapping.core.config import Settings, get_settings
from lca_flow_mapping.core.exceptions import (
    FlowMappingError,
    NotFoundError,
    ReferenceStoreError,
    RemoteUnavailableError,
    RemoteWriteError,
    UnitMismatchError,
)
from lca_flow_mapping.core.identity import make_id
from lca_flow_mapping.core.logging import get_logger
from lca_flow_mapping.core.models import (
    FlowMappingEntry,
    FlowMappingTarget,
    FlowQuery,
    FlowQueryBuilder,
    FlowRecord,
    FlowType,
    MappingKey,
    Ref,
    Resolution,
    StoreResult,
    UnitIndexEntry,
)
from lca_flow_mapping.flow_search.selector import CandidateSelector, KeywordCandidateSelector
from lca_flow_mapping.location.service import LocationResolver
from lca_flow_mapping.mapping.cache import MappingCache
from lca_flow_mapping.store.base import ReferenceDataStore
from lca_flow_mapping.units.index import UnitIndex

from .dedup import FlowDedupService

LOGGER = get_logger(__name__)

T = TypeVar("T")

_PROVIDER_FLOW_TYPES = (FlowType.PRODUCT, FlowType.WASTE)


@dataclass(slots=True)
class _LockSlot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class _LockTable:
    """One lock per key, dropped again once no caller holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._slots: dict[Hashable, _LockSlot] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _LockSlot()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[key]


def _as_query(query: FlowQuery | FlowQueryBuilder) -> FlowQuery:
    if isinstance(query, FlowQueryBuilder):
        return query.build()
    return query


def _checked(result: StoreResult[T], action: str) -> T | None:
    """Return the value of an ok result, ``None`` for not-found, raise otherwise."""
    if result.ok:
        return result.value
    if result.status == "not_found":
        return None
    if result.status == "unavailable":
        raise RemoteUnavailableError(f"{action} failed: {result.error}")
    raise ReferenceStoreError(f"{action} failed: {result.error}")


def build_flow_record(
    query: FlowQuery,
    flow_id: str,
    unit_entry: UnitIndexEntry,
    location: Ref | None = None,
) -> dict[str, Any]:
    """Return the data set of a new flow whose reference unit is the query unit."""
    flow_property = unit_entry.flow_property
    if flow_property is None:
        raise NotFoundError(f"Unit group {unit_entry.unit_group.name or unit_entry.unit_group.id} has no flow property")
    record: dict[str, Any] = {
        "@type": "Flow",
        "@id": flow_id,
        "name": query.name,
        "flowType": query.flow_type.value,
        "flowProperties": [
            {
                "@type": "FlowPropertyFactor",
                "isRefFlowProperty": True,
                "conversionFactor": 1.0,
                "flowProperty": {
                    "@type": "FlowProperty",
                    "@id": flow_property.id,
                    "name": flow_property.name,
                },
            }
        ],
    }
    if query.category:
        record["category"] = query.category
    if location is not None:
        record["location"] = {"@type": "Location", "@id": location.id, "name": location.name}
    return record


class FlowResolver:
    """Map flow queries onto canonical flows of the reference store.

    Lookups go through the mapping cache first, then a keyword search of the
    store, and finally create a flow with a deterministic id. Every successful
    resolution is persisted in the cache before it is returned. Concurrent
    callers with the same query share one remote round trip.
    """

    def __init__(
        self,
        store: ReferenceDataStore,
        cache: MappingCache,
        units: UnitIndex,
        *,
        settings: Settings | None = None,
        locations: LocationResolver | None = None,
        selector: CandidateSelector | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._cache = cache
        self._units = units
        self._locations = locations or LocationResolver(store)
        self._selector = selector or KeywordCandidateSelector(min_score=self._settings.match_min_score)
        self._dedup = FlowDedupService(store)
        self._key_locks = _LockTable()
        self._identity_locks = _LockTable()

    @classmethod
    def create(
        cls,
        store: ReferenceDataStore,
        mapping_path: Path | str | None = None,
        *,
        settings: Settings | None = None,
    ) -> "FlowResolver":
        """Build the unit index, load the mapping file and return a resolver."""
        resolved_settings = settings or get_settings()
        path = Path(mapping_path) if mapping_path is not None else resolved_settings.mapping_path
        units = UnitIndex.build(store)
        cache = MappingCache.create(
            path,
            delimiter=resolved_settings.mapping_delimiter,
            lock_timeout=resolved_settings.file_lock_timeout,
        )
        return cls(store, cache, units, settings=resolved_settings)

    @property
    def cache(self) -> MappingCache:
        return self._cache

    @property
    def units(self) -> UnitIndex:
        return self._units

    # Public API --------------------------------------------------------------
    def resolve(self, query: FlowQuery | FlowQueryBuilder) -> FlowMappingEntry:
        """Return the mapping entry for ``query`` or raise a ``FlowMappingError``."""
        flow_query = _as_query(query)
        key = MappingKey.of(flow_query)
        cached = self._cache.try_get(key)
        if cached is not None:
            LOGGER.debug("flow_resolver.cache_hit", query=flow_query.describe())
            return self._from_cache(flow_query, cached)

        with self._key_locks.hold(key):
            cached = self._cache.try_get(key)
            if cached is not None:
                LOGGER.debug("flow_resolver.cache_hit_after_wait", query=flow_query.describe())
                return self._from_cache(flow_query, cached)
            entry = self._search(flow_query)
            if entry is None:
                entry = self._create(flow_query)
            stored = self._cache.put(key, entry)
        LOGGER.info(
            "flow_resolver.resolved",
            query=flow_query.describe(),
            flow_id=stored.target.flow.id,
            conversion_factor=stored.conversion_factor,
        )
        return stored

    def try_resolve(self, query: FlowQuery | FlowQueryBuilder) -> Resolution:
        """Like :meth:`resolve` but report failures as a ``Resolution``."""
        try:
            flow_query = _as_query(query)
        except FlowMappingError as exc:
            return Resolution(query=None, error=exc)
        try:
            entry = self.resolve(flow_query)
        except FlowMappingError as exc:
            LOGGER.warning(
                "flow_resolver.failed",
                query=flow_query.describe(),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return Resolution(query=flow_query, error=exc)
        return Resolution(query=flow_query, entry=entry)

    def resolve_many(
        self,
        queries: Iterable[FlowQuery | FlowQueryBuilder],
        *,
        max_workers: int | None = None,
    ) -> list[Resolution]:
        """Resolve queries concurrently; results keep the input order."""
        items = list(queries)
        if not items:
            return []
        workers = max(1, max_workers or self._settings.max_concurrency)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self.try_resolve, item) for item in items]
            return [future.result() for future in futures]

    def _from_cache(self, query: FlowQuery, cached: FlowMappingEntry) -> FlowMappingEntry:
        cached_unit = cached.source.unit
        if not query.unit or not cached_unit or query.unit == cached_unit:
            return cached
        requested = self._units.find(query.unit)
        stored = self._units.find(cached_unit)
        if requested is None or stored is None or requested == stored:
            return cached
        # keys fold case, so "mg" and "Mg" share a slot; rescale to the requested unit
        factor = cached.conversion_factor * self._units.conversion_factor(query.unit, cached_unit)
        LOGGER.debug(
            "flow_resolver.cache_rescaled",
            query=query.describe(),
            cached_unit=cached_unit,
            conversion_factor=factor,
        )
        return replace(cached, source=query, conversion_factor=factor)

    # Remote search -----------------------------------------------------------
    def _search(self, query: FlowQuery) -> FlowMappingEntry | None:
        location = query.location if query.flow_type != FlowType.ELEMENTARY else None
        candidates = _checked(
            self._store.find_flows(query.flow_type, query.name, category=query.category, location=location),
            f"Flow search for {query.name!r}",
        )
        decision = self._selector.select(query, candidates or [])
        if decision.candidate is None:
            LOGGER.info("flow_resolver.no_match", query=query.describe(), candidate_count=len(candidates or []))
            return None

        candidate = decision.candidate
        record = _checked(self._store.get_flow(candidate.id), f"Fetching flow {candidate.id}")
        if record is None:
            raise ReferenceStoreError(f"Flow {candidate.id} was listed by the search but cannot be fetched")
        LOGGER.info(
            "flow_resolver.matched",
            query=query.describe(),
            flow_id=record.id,
            flow_name=record.name,
            score=decision.score,
        )
        entry = self._entry_for_match(query, record, candidate.ref_unit or record.ref_unit)
        return self._with_provider(entry)

    def _entry_for_match(self, query: FlowQuery, record: FlowRecord, native_unit: str | None) -> FlowMappingEntry:
        reference = record.reference_property
        if reference is None:
            raise ReferenceStoreError(f"Flow {record.id} has no flow property")
        if not native_unit:
            raise ReferenceStoreError(f"Flow {record.id} has no reference unit")
        native = self._units.entry_of(native_unit)
        if query.unit is None or query.unit == native_unit:
            factor = 1.0
        else:
            factor = self._conversion_factor(query.unit, native, record)
        target = FlowMappingTarget(
            flow=record.as_ref(),
            flow_property=reference.flow_property,
            unit=native.unit,
        )
        return FlowMappingEntry(source=query, target=target, conversion_factor=factor)

    def _conversion_factor(self, unit: str, native: UnitIndexEntry, record: FlowRecord) -> float:
        source = self._units.entry_of(unit)
        if source.unit_group.id == native.unit_group.id:
            return source.factor / native.factor
        # other quantities only convert through a property factor declared on the flow
        if source.flow_property is not None:
            alternative = record.property_factor(source.flow_property.id)
            if alternative is not None and alternative.conversion_factor > 0:
                return source.factor / alternative.conversion_factor / native.factor
        raise UnitMismatchError(
            unit,
            native.unit.name or native.unit.id,
            f"flow {record.name} declares no property for unit group {source.unit_group.name or source.unit_group.id}",
        )

    def _with_provider(self, entry: FlowMappingEntry) -> FlowMappingEntry:
        if entry.source.flow_type not in _PROVIDER_FLOW_TYPES:
            return entry
        flow_id = entry.target.flow.id
        providers = _checked(self._store.find_providers(flow_id), f"Provider lookup for flow {flow_id}")
        if not providers:
            return entry
        return replace(entry, target=replace(entry.target, provider=providers[0]))

    # Remote creation ---------------------------------------------------------
    def _create(self, query: FlowQuery) -> FlowMappingEntry:
        if not query.unit:
            raise NotFoundError(f"A unit is required to create flow {query.name!r}")
        unit_entry = self._units.entry_of(query.unit)
        if unit_entry.flow_property is None:
            raise NotFoundError(f"Unit {query.unit!r} has no flow property")
        flow_id = make_id(query.flow_type.value, query.name, query.category, unit_entry.flow_property.id)

        with self._identity_locks.hold(flow_id):
            decision = self._dedup.decide(flow_id)
            if decision.action == "insert":
                location = None
                if query.location and query.flow_type != FlowType.ELEMENTARY:
                    location = self._locations.resolve(query.location)
                record = build_flow_record(query, flow_id, unit_entry, location)
                created = self._store.create_flow(record)
                if created.status == "unavailable":
                    raise RemoteUnavailableError(f"Flow {query.name!r} could not be created: {created.error}")
                if not created.ok:
                    raise RemoteWriteError(f"Flow {query.name!r} ({flow_id}) was rejected: {created.error}")
                self._dedup.mark_created(flow_id)
                LOGGER.info("flow_resolver.flow_created", query=query.describe(), flow_id=flow_id)
            else:
                LOGGER.info(
                    "flow_resolver.flow_reused",
                    query=query.describe(),
                    flow_id=flow_id,
                    reason=decision.reason,
                )

        target = FlowMappingTarget(
            flow=Ref(id=flow_id, name=query.name, category_path=query.category),
            flow_property=unit_entry.flow_property,
            unit=unit_entry.unit,
        )
        entry = FlowMappingEntry(source=query, target=target, conversion_factor=1.0)
        if decision.action == "reuse":
            return self._with_provider(entry)
        return entry
