"""Shared core utilities for flow mapping."""

from .config import Settings, get_settings
from .exceptions import (
    FlowMappingError,
    FlowQueryError,
    MappingParseError,
    MappingWriteError,
    NotFoundError,
    ReferenceStoreError,
    RemoteUnavailableError,
    RemoteWriteError,
    UnitMismatchError,
    UnitNotFoundError,
)
from .identity import make_id
from .logging import configure_logging
from .models import (
    FlowDescriptor,
    FlowMappingEntry,
    FlowMappingTarget,
    FlowPropertyFactor,
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

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "make_id",
    "FlowType",
    "Ref",
    "FlowQuery",
    "FlowQueryBuilder",
    "MappingKey",
    "FlowMappingTarget",
    "FlowMappingEntry",
    "UnitIndexEntry",
    "FlowDescriptor",
    "FlowPropertyFactor",
    "FlowRecord",
    "StoreResult",
    "Resolution",
    "FlowMappingError",
    "FlowQueryError",
    "NotFoundError",
    "UnitNotFoundError",
    "UnitMismatchError",
    "RemoteWriteError",
    "ReferenceStoreError",
    "RemoteUnavailableError",
    "MappingParseError",
    "MappingWriteError",
]
