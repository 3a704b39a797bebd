"""
Flow and unit mapping against an openLCA style reference data store.

The package exposes modular building blocks for:
- deterministic ids for records created in the store,
- keyword scoring and selection of flow search candidates,
- a unit index for unit conversion factors,
- a persisted mapping cache,
- a resolver that composes the tiered flow lookup.
"""

from .core.config import Settings, get_settings
from .core.models import FlowMappingEntry, FlowQuery, FlowType
from .resolver import FlowResolver

__all__ = [
    "FlowMappingEntry",
    "FlowQuery",
    "FlowResolver",
    "FlowType",
    "Settings",
    "get_settings",
]
