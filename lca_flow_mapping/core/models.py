"""Shared data models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from .exceptions import FlowMappingError, FlowQueryError

T = TypeVar("T")

StoreStatus = Literal["ok", "not_found", "error", "unavailable"]


class FlowType(str, Enum):
    ELEMENTARY = "ELEMENTARY_FLOW"
    PRODUCT = "PRODUCT_FLOW"
    WASTE = "WASTE_FLOW"

    @classmethod
    def parse(cls, value: Any) -> "FlowType":
        """Accept enum members, openLCA names and short forms like ``waste``."""
        if isinstance(value, FlowType):
            return value
        text = str(value or "").strip().upper().replace(" ", "_")
        if not text:
            raise FlowQueryError("Flow type is required")
        if not text.endswith("_FLOW"):
            text = f"{text}_FLOW"
        try:
            return cls(text)
        except ValueError as exc:
            raise FlowQueryError(f"Unknown flow type: {value!r}") from exc

    @property
    def short_name(self) -> str:
        return self.value.removesuffix("_FLOW").lower()


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True, frozen=True)
class Ref:
    """Reference to an entity of the reference data store."""

    id: str
    name: str | None = None
    category_path: str | None = None


@dataclass(slots=True, frozen=True)
class FlowQuery:
    """Validated description of the flow a caller wants mapped."""

    flow_type: FlowType
    name: str
    unit: str | None = None
    category: str | None = None
    location: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.flow_type, FlowType):
            object.__setattr__(self, "flow_type", FlowType.parse(self.flow_type))
        name = _clean(self.name)
        if not name:
            raise FlowQueryError("Flow name is required")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "unit", _clean(self.unit))
        object.__setattr__(self, "category", _clean(self.category))
        object.__setattr__(self, "location", _clean(self.location))

    @staticmethod
    def builder(flow_type: FlowType | str | None, name: str | None) -> "FlowQueryBuilder":
        return FlowQueryBuilder(flow_type=flow_type, name=name)

    @staticmethod
    def elementary(name: str) -> "FlowQueryBuilder":
        return FlowQueryBuilder(flow_type=FlowType.ELEMENTARY, name=name)

    @staticmethod
    def product(name: str) -> "FlowQueryBuilder":
        return FlowQueryBuilder(flow_type=FlowType.PRODUCT, name=name)

    @staticmethod
    def waste(name: str) -> "FlowQueryBuilder":
        return FlowQueryBuilder(flow_type=FlowType.WASTE, name=name)

    @property
    def category_segments(self) -> tuple[str, ...]:
        if not self.category:
            return ()
        return tuple(part.strip() for part in self.category.split("/") if part.strip())

    def describe(self) -> str:
        parts = [self.flow_type.short_name, self.name, self.unit or "", self.category or "", self.location or ""]
        return " | ".join(parts)


@dataclass(slots=True, frozen=True)
class FlowQueryBuilder:
    """Immutable builder; every ``with_*`` call returns a new builder."""

    flow_type: FlowType | str | None = None
    name: str | None = None
    unit: str | None = None
    category: str | None = None
    location: str | None = None

    def with_unit(self, unit: str | None) -> "FlowQueryBuilder":
        return replace(self, unit=unit)

    def with_category(self, category: str | None) -> "FlowQueryBuilder":
        return replace(self, category=category)

    def with_location(self, location: str | None) -> "FlowQueryBuilder":
        return replace(self, location=location)

    def build(self) -> FlowQuery:
        if self.flow_type is None:
            raise FlowQueryError("Flow type is required")
        if not _clean(self.name):
            raise FlowQueryError("Flow name is required")
        return FlowQuery(
            flow_type=FlowType.parse(self.flow_type),
            name=str(self.name),
            unit=self.unit,
            category=self.category,
            location=self.location,
        )


@dataclass(slots=True, frozen=True)
class MappingKey:
    """Normalised composite key of the mapping cache."""

    flow_type: str
    name: str
    unit: str
    category: str
    location: str

    @classmethod
    def of(cls, query: FlowQuery) -> "MappingKey":
        def norm(value: str | None) -> str:
            return (value or "").strip().lower()

        return cls(
            flow_type=query.flow_type.value.lower(),
            name=norm(query.name),
            unit=norm(query.unit),
            category=norm(query.category),
            location=norm(query.location),
        )


@dataclass(slots=True, frozen=True)
class FlowMappingTarget:
    flow: Ref
    flow_property: Ref
    unit: Ref
    provider: Ref | None = None


@dataclass(slots=True, frozen=True)
class FlowMappingEntry:
    """Resolved correspondence of a query to a canonical flow."""

    source: FlowQuery
    target: FlowMappingTarget
    conversion_factor: float

    def convert(self, amount: float) -> float:
        """Convert an amount given in the query unit into the target unit."""
        return amount * self.conversion_factor


@dataclass(slots=True, frozen=True)
class UnitIndexEntry:
    unit: Ref
    unit_group: Ref
    flow_property: Ref | None
    factor: float


@dataclass(slots=True, frozen=True)
class FlowDescriptor:
    """Search candidate as listed by the reference store."""

    id: str
    name: str
    category_path: str | None = None
    flow_type: FlowType | None = None
    ref_unit: str | None = None
    location: str | None = None


@dataclass(slots=True, frozen=True)
class FlowPropertyFactor:
    flow_property: Ref
    conversion_factor: float = 1.0
    is_reference: bool = False


@dataclass(slots=True, frozen=True)
class FlowRecord:
    """Full flow data set as returned by ``get_flow``."""

    id: str
    name: str
    flow_type: FlowType
    category_path: str | None = None
    flow_properties: tuple[FlowPropertyFactor, ...] = ()
    ref_unit: str | None = None
    location: Ref | None = None

    @property
    def reference_property(self) -> FlowPropertyFactor | None:
        for factor in self.flow_properties:
            if factor.is_reference:
                return factor
        return self.flow_properties[0] if self.flow_properties else None

    def property_factor(self, flow_property_id: str) -> FlowPropertyFactor | None:
        for factor in self.flow_properties:
            if factor.flow_property.id == flow_property_id:
                return factor
        return None

    def as_ref(self) -> Ref:
        return Ref(id=self.id, name=self.name, category_path=self.category_path)


@dataclass(slots=True, frozen=True)
class StoreResult(Generic[T]):
    """Explicit ok/error answer of a reference store operation."""

    status: StoreStatus
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def success(cls, value: T) -> "StoreResult[T]":
        return cls(status="ok", value=value)

    @classmethod
    def not_found(cls, error: str | None = None) -> "StoreResult[T]":
        return cls(status="not_found", error=error)

    @classmethod
    def failure(cls, error: str) -> "StoreResult[T]":
        return cls(status="error", error=error)

    @classmethod
    def unavailable(cls, error: str) -> "StoreResult[T]":
        return cls(status="unavailable", error=error)


@dataclass(slots=True)
class Resolution:
    """Outcome of a single resolution for batch callers."""

    query: FlowQuery | None
    entry: FlowMappingEntry | None = None
    error: FlowMappingError | None = None

    @property
    def ok(self) -> bool:
        return self.entry is not None

    @property
    def reason(self) -> str | None:
        if self.error is None:
            return None
        return f"{type(self.error).__name__}: {self.error}"
