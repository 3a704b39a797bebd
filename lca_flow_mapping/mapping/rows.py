"""Encoding of flow mapping entries as delimited text rows."""

from __future__ import annotations

import math
from typing import Sequence

from lca_flow_mapping.core.exceptions import FlowQueryError
from lca_flow_mapping.core.models import FlowMappingEntry, FlowMappingTarget, FlowQuery, FlowType, Ref

COLUMNS: tuple[str, ...] = (
    "flow_type",
    "name",
    "unit",
    "category",
    "location",
    "flow_id",
    "flow_name",
    "flow_category",
    "unit_id",
    "flow_property_id",
    "provider_id",
    "conversion_factor",
)


class RowFormatError(ValueError):
    """Raised for a row that cannot be decoded; the caller adds the line number."""


def encode_row(entry: FlowMappingEntry) -> list[str]:
    source = entry.source
    target = entry.target
    return [
        source.flow_type.value,
        source.name,
        source.unit or "",
        source.category or "",
        source.location or "",
        target.flow.id,
        target.flow.name or "",
        target.flow.category_path or "",
        target.unit.id,
        target.flow_property.id,
        target.provider.id if target.provider else "",
        repr(float(entry.conversion_factor)),
    ]


def decode_row(row: Sequence[str]) -> FlowMappingEntry:
    if len(row) != len(COLUMNS):
        raise RowFormatError(f"expected {len(COLUMNS)} columns, found {len(row)}")
    values = {column: (cell or "").strip() for column, cell in zip(COLUMNS, row)}
    try:
        source = FlowQuery(
            flow_type=FlowType.parse(values["flow_type"]),
            name=values["name"],
            unit=values["unit"] or None,
            category=values["category"] or None,
            location=values["location"] or None,
        )
    except FlowQueryError as exc:
        raise RowFormatError(str(exc)) from exc

    for column in ("flow_id", "unit_id", "flow_property_id"):
        if not values[column]:
            raise RowFormatError(f"missing {column}")

    try:
        factor = float(values["conversion_factor"])
    except ValueError as exc:
        raise RowFormatError(f"invalid conversion factor {values['conversion_factor']!r}") from exc
    if not math.isfinite(factor) or factor <= 0:
        raise RowFormatError(f"conversion factor must be positive, got {values['conversion_factor']!r}")

    target = FlowMappingTarget(
        flow=Ref(
            id=values["flow_id"],
            name=values["flow_name"] or None,
            category_path=values["flow_category"] or None,
        ),
        flow_property=Ref(id=values["flow_property_id"]),
        unit=Ref(id=values["unit_id"]),
        provider=Ref(id=values["provider_id"]) if values["provider_id"] else None,
    )
    return FlowMappingEntry(source=source, target=target, conversion_factor=factor)
