"""Get-or-create lookup of locations in the reference store."""

from __future__ import annotations

import threading
from typing import Any

from lca_flow_mapping.core.exceptions import ReferenceStoreError, RemoteUnavailableError, RemoteWriteError
from lca_flow_mapping.core.identity import make_id
from lca_flow_mapping.core.logging import get_logger
from lca_flow_mapping.core.models import Ref
from lca_flow_mapping.store.base import ReferenceDataStore

LOGGER = get_logger(__name__)


def build_location_record(name: str) -> dict[str, Any]:
    """Return the data set of a new location identified by its name."""
    cleaned = name.strip()
    return {
        "@type": "Location",
        "@id": make_id("location", cleaned),
        "name": cleaned,
        "code": cleaned,
    }


class LocationResolver:
    """Resolve location names to store references, creating missing ones."""

    def __init__(self, store: ReferenceDataStore) -> None:
        self._store = store
        self._resolved: dict[str, Ref] = {}
        self._lock = threading.Lock()

    def resolve(self, name: str) -> Ref:
        key = name.strip().lower()
        cached = self._resolved.get(key)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._resolved.get(key)
            if cached is not None:
                return cached
            ref = self._lookup_or_create(name.strip())
            self._resolved[key] = ref
            return ref

    def _lookup_or_create(self, name: str) -> Ref:
        found = self._store.get_location(name)
        if found.ok and found.value is not None:
            return found.value
        if found.status == "unavailable":
            raise RemoteUnavailableError(f"Location lookup for {name!r} failed: {found.error}")
        if found.status == "error":
            raise ReferenceStoreError(f"Location lookup for {name!r} failed: {found.error}")

        record = build_location_record(name)
        created = self._store.create_location(record)
        if created.status == "unavailable":
            raise RemoteUnavailableError(f"Location {name!r} could not be created: {created.error}")
        if not created.ok:
            raise RemoteWriteError(f"Location {name!r} was rejected: {created.error}")
        LOGGER.info("location.created", location=name, location_id=record["@id"])
        return Ref(id=created.value or record["@id"], name=name)
