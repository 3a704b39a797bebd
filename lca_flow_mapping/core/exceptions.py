"""Custom exception hierarchy for flow mapping."""

from __future__ import annotations

from pathlib import Path


class FlowMappingError(Exception):
    """Base error for flow and unit mapping."""


class FlowQueryError(FlowMappingError, ValueError):
    """Raised when a flow query is incomplete or malformed."""


class NotFoundError(FlowMappingError):
    """Raised when a unit or its flow property cannot be found."""


class UnitNotFoundError(NotFoundError):
    """Raised when a unit name is not part of the unit index."""

    def __init__(self, unit_name: str | None) -> None:
        self.unit_name = unit_name
        super().__init__(f"Unknown unit: {unit_name!r}")


class UnitMismatchError(FlowMappingError):
    """Raised when two units have no defined conversion."""

    def __init__(self, from_unit: str, to_unit: str, detail: str | None = None) -> None:
        self.from_unit = from_unit
        self.to_unit = to_unit
        message = f"No conversion from '{from_unit}' to '{to_unit}'"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class RemoteWriteError(FlowMappingError):
    """Raised when the reference store rejects a new record."""


class ReferenceStoreError(FlowMappingError):
    """Raised when the reference store returns an unusable answer."""


class RemoteUnavailableError(ReferenceStoreError):
    """Raised on transport failures or timeouts of the reference store."""


class MappingWriteError(FlowMappingError):
    """Raised when a resolved mapping cannot be persisted to the mapping file."""


class MappingParseError(FlowMappingError):
    """Raised when a persisted mapping row cannot be decoded."""

    def __init__(self, line_number: int, reason: str, path: Path | None = None) -> None:
        self.line_number = line_number
        self.path = path
        self.reason = reason
        location = f"{path}:{line_number}" if path else f"line {line_number}"
        super().__init__(f"Malformed mapping row at {location}: {reason}")
