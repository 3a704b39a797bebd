"""In-memory index from unit names to unit groups and flow properties."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping

from lca_flow_mapping.core.exceptions import (
    ReferenceStoreError,
    RemoteUnavailableError,
    UnitMismatchError,
    UnitNotFoundError,
)
from lca_flow_mapping.core.logging import get_logger
from lca_flow_mapping.core.models import Ref, UnitIndexEntry
from lca_flow_mapping.core.parsing import coerce_float
from lca_flow_mapping.store.base import ReferenceDataStore

LOGGER = get_logger(__name__)


class UnitIndex:
    """Lookup of unit names, built once per session and read-only afterwards."""

    def __init__(self, entries: Mapping[str, UnitIndexEntry]) -> None:
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def build(cls, store: ReferenceDataStore) -> "UnitIndex":
        """List all unit groups of the store and index their units."""
        result = store.list_unit_groups()
        if result.status == "unavailable":
            raise RemoteUnavailableError(f"Unit groups could not be listed: {result.error}")
        if not result.ok:
            raise ReferenceStoreError(f"Unit groups could not be listed: {result.error}")
        index = cls.from_unit_groups(result.value or [])
        LOGGER.info("unit_index.built", unit_count=len(index))
        return index

    @classmethod
    def from_unit_groups(cls, groups: Iterable[Mapping[str, Any]]) -> "UnitIndex":
        entries: dict[str, UnitIndexEntry] = {}
        for group in groups:
            group_id = str(group.get("@id") or "").strip()
            if not group_id:
                continue
            group_ref = Ref(id=group_id, name=group.get("name"))
            default_property = group.get("defaultFlowProperty")
            property_ref = None
            if isinstance(default_property, Mapping) and default_property.get("@id"):
                property_ref = Ref(id=str(default_property["@id"]), name=default_property.get("name"))
            for unit in group.get("units") or ():
                name = str(unit.get("name") or "").strip()
                if not name:
                    continue
                if name in entries:
                    LOGGER.debug("unit_index.duplicate_unit", unit=name, unit_group=group_ref.name)
                    continue
                raw_factor = unit.get("conversionFactor")
                factor = 1.0 if raw_factor is None else coerce_float(raw_factor)
                if factor is None or factor <= 0:
                    raise ReferenceStoreError(
                        f"Unit {name!r} of unit group {group_ref.name or group_id} "
                        f"has an invalid conversion factor: {raw_factor!r}"
                    )
                entries[name] = UnitIndexEntry(
                    unit=Ref(id=str(unit.get("@id") or ""), name=name),
                    unit_group=group_ref,
                    flow_property=property_ref,
                    factor=factor,
                )
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, unit_name: object) -> bool:
        return unit_name in self._entries

    def units(self) -> tuple[str, ...]:
        """Return every indexed unit name."""
        return tuple(self._entries)

    def find(self, unit_name: str | None) -> UnitIndexEntry | None:
        if not unit_name:
            return None
        return self._entries.get(unit_name.strip())

    def entry_of(self, unit_name: str | None) -> UnitIndexEntry:
        """Return the entry for an exact unit name or raise ``UnitNotFoundError``."""
        entry = self.find(unit_name)
        if entry is None:
            raise UnitNotFoundError(unit_name)
        return entry

    def conversion_factor(self, from_unit: str, to_unit: str) -> float:
        """Return the factor converting an amount in ``from_unit`` into ``to_unit``."""
        if from_unit == to_unit:
            return 1.0
        source = self.entry_of(from_unit)
        target = self.entry_of(to_unit)
        if source.unit_group.id != target.unit_group.id:
            raise UnitMismatchError(
                from_unit,
                to_unit,
                f"unit groups {source.unit_group.name or source.unit_group.id} "
                f"and {target.unit_group.name or target.unit_group.id}",
            )
        return source.factor / target.factor
