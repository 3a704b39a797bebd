"""HTTP client for an openLCA style REST data service."""

from __future__ import annotations

from typing import Any, Iterator, Mapping
from urllib.parse import quote

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from lca_flow_mapping.core.config import Settings, get_settings
from lca_flow_mapping.core.logging import get_logger
from lca_flow_mapping.core.models import (
    FlowDescriptor,
    FlowPropertyFactor,
    FlowRecord,
    FlowType,
    Ref,
    StoreResult,
)
from lca_flow_mapping.core.parsing import coerce_float

LOGGER = get_logger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    # timeouts surface immediately; only connection level failures are retried
    return isinstance(exc, httpx.TransportError) and not isinstance(exc, httpx.TimeoutException)


class OlcaRestStore:
    """Reference data store backed by the ``data/...`` endpoints of an openLCA server."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._max_attempts = max(1, self._settings.max_retries)
        self._client = httpx.Client(
            base_url=str(self._settings.store_base_url),
            timeout=self._settings.request_timeout,
            headers=self._settings.store_headers(),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "OlcaRestStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Flows -------------------------------------------------------------------
    def find_flows(
        self,
        flow_type: FlowType,
        name: str,
        *,
        category: str | None = None,
        location: str | None = None,
    ) -> StoreResult[list[FlowDescriptor]]:
        listing = self._request("GET", "data/flows/all")
        if not listing.ok:
            return StoreResult(status=listing.status, error=listing.error)

        needle = (name or "").strip().lower()
        segments = [part.strip().lower() for part in (category or "").split("/") if part.strip()]
        wanted_location = (location or "").strip().lower()
        matches: list[FlowDescriptor] = []
        for descriptor in _iter_flow_descriptors(listing.value):
            if descriptor.flow_type is not None and descriptor.flow_type != flow_type:
                continue
            if flow_type != FlowType.ELEMENTARY and wanted_location:
                if (descriptor.location or "").strip().lower() not in {"", wanted_location}:
                    continue
            flow_name = descriptor.name.lower()
            flow_category = (descriptor.category_path or "").lower()
            if (needle and needle in flow_name) or any(segment in flow_category for segment in segments):
                matches.append(descriptor)
        LOGGER.info(
            "reference_store.find_flows",
            flow_type=flow_type.value,
            name=name,
            candidate_count=len(matches),
        )
        return StoreResult.success(matches)

    def get_flow(self, flow_id: str) -> StoreResult[FlowRecord]:
        result = self._request("GET", f"data/flows/{quote(flow_id, safe='')}")
        if not result.ok:
            return StoreResult(status=result.status, error=result.error)
        record = _parse_flow_record(result.value)
        if record is None:
            LOGGER.warning("reference_store.malformed_flow", flow_id=flow_id)
            return StoreResult.failure(f"Malformed flow payload for {flow_id}")
        return StoreResult.success(record)

    def create_flow(self, record: Mapping[str, Any]) -> StoreResult[str]:
        return self._put("data/flows", record)

    def find_providers(self, flow_id: str) -> StoreResult[list[Ref]]:
        result = self._request("GET", f"data/providers/{quote(flow_id, safe='')}")
        if not result.ok:
            return StoreResult(status=result.status, error=result.error)
        providers: list[Ref] = []
        for item in _as_list(result.value):
            provider = item.get("provider") if isinstance(item.get("provider"), Mapping) else item
            ref = _parse_ref(provider)
            if ref is not None:
                providers.append(ref)
        return StoreResult.success(providers)

    # Unit groups -------------------------------------------------------------
    def list_unit_groups(self) -> StoreResult[list[dict[str, Any]]]:
        listing = self._request("GET", "data/unit-groups/all")
        if not listing.ok:
            return StoreResult(status=listing.status, error=listing.error)
        groups: list[dict[str, Any]] = []
        for item in _as_list(listing.value):
            if isinstance(item.get("units"), list):
                groups.append(dict(item))
                continue
            # descriptor listings carry no units; fetch the full data set
            group_id = item.get("@id")
            if not group_id:
                continue
            full = self._request("GET", f"data/unit-groups/{quote(str(group_id), safe='')}")
            if not full.ok:
                return StoreResult(status=full.status, error=full.error)
            if isinstance(full.value, Mapping):
                groups.append(dict(full.value))
        LOGGER.debug("reference_store.unit_groups", group_count=len(groups))
        return StoreResult.success(groups)

    # Locations ---------------------------------------------------------------
    def get_location(self, name: str) -> StoreResult[Ref]:
        result = self._request("GET", f"data/locations/name/{quote(name, safe='')}")
        if not result.ok:
            return StoreResult(status=result.status, error=result.error)
        ref = _parse_ref(result.value)
        if ref is None:
            return StoreResult.not_found(f"No location named {name!r}")
        return StoreResult.success(ref)

    def create_location(self, record: Mapping[str, Any]) -> StoreResult[str]:
        return self._put("data/locations", record)

    # Internal helpers --------------------------------------------------------
    def _put(self, path: str, record: Mapping[str, Any]) -> StoreResult[str]:
        result = self._request("PUT", path, payload=record)
        if not result.ok:
            return StoreResult(status=result.status, error=result.error)
        created = _parse_ref(result.value)
        return StoreResult.success(created.id if created else str(record.get("@id") or ""))

    def _request(self, method: str, path: str, *, payload: Mapping[str, Any] | None = None) -> StoreResult[Any]:
        LOGGER.debug("reference_store.request", method=method, path=path)
        try:
            response = self._send_with_retry(method, path, payload)
        except httpx.TimeoutException as exc:
            LOGGER.error(
                "reference_store.timeout",
                method=method,
                path=path,
                timeout=self._settings.request_timeout,
            )
            return StoreResult.unavailable(f"{method} {path} timed out ({exc.__class__.__name__})")
        except httpx.TransportError as exc:
            LOGGER.error("reference_store.transport_failed", method=method, path=path, error=str(exc))
            return StoreResult.unavailable(f"{method} {path} failed after {self._max_attempts} attempts: {exc}")

        if response.status_code == 404:
            return StoreResult.not_found(response.text or f"{path} not found")
        if response.status_code >= 400:
            LOGGER.warning("reference_store.error_status", method=method, path=path, status=response.status_code)
            return StoreResult.failure(f"{method} {path} returned {response.status_code}: {response.text}")
        if not response.content:
            return StoreResult.success(None)
        try:
            return StoreResult.success(response.json())
        except ValueError:
            return StoreResult.failure(f"{method} {path} returned non-JSON payload")

    def _send_with_retry(self, method: str, path: str, payload: Mapping[str, Any] | None) -> httpx.Response:
        retryer = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=max(self._settings.retry_backoff, 0.1),
                min=0.5,
                max=8,
            ),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        for attempt in retryer:
            with attempt:
                return self._client.request(method, path, json=dict(payload) if payload is not None else None)
        raise RuntimeError("unreachable")  # pragma: no cover


def _as_list(value: Any) -> list[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        value = value.get("data") or value.get("items") or []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def _iter_flow_descriptors(value: Any) -> Iterator[FlowDescriptor]:
    for item in _as_list(value):
        descriptor = _parse_flow_descriptor(item)
        if descriptor is not None:
            yield descriptor


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _category_path(value: Any) -> str | None:
    if isinstance(value, Mapping):
        path = value.get("categoryPath")
        if isinstance(path, list):
            return "/".join(str(part) for part in path) or None
        return _text(value.get("name"))
    if isinstance(value, list):
        return "/".join(str(part) for part in value) or None
    return _text(value)


def _flow_type(value: Any) -> FlowType | None:
    if not value:
        return None
    try:
        return FlowType.parse(value)
    except ValueError:
        return None


def _parse_ref(payload: Any) -> Ref | None:
    if not isinstance(payload, Mapping):
        return None
    ref_id = _text(payload.get("@id") or payload.get("id"))
    if not ref_id:
        return None
    return Ref(id=ref_id, name=_text(payload.get("name")), category_path=_category_path(payload.get("category")))


def _parse_flow_descriptor(payload: Mapping[str, Any]) -> FlowDescriptor | None:
    flow_id = _text(payload.get("@id") or payload.get("id"))
    name = _text(payload.get("name"))
    if not flow_id or not name:
        return None
    location = payload.get("location")
    if isinstance(location, Mapping):
        location = location.get("code") or location.get("name")
    return FlowDescriptor(
        id=flow_id,
        name=name,
        category_path=_category_path(payload.get("category")),
        flow_type=_flow_type(payload.get("flowType")),
        ref_unit=_text(payload.get("refUnit")),
        location=_text(location),
    )


def _parse_flow_record(payload: Any) -> FlowRecord | None:
    if not isinstance(payload, Mapping):
        return None
    flow_id = _text(payload.get("@id"))
    name = _text(payload.get("name"))
    flow_type = _flow_type(payload.get("flowType"))
    if not flow_id or not name or flow_type is None:
        return None
    factors: list[FlowPropertyFactor] = []
    ref_unit = _text(payload.get("refUnit"))
    for item in payload.get("flowProperties") or ():
        if not isinstance(item, Mapping):
            continue
        prop = _parse_ref(item.get("flowProperty"))
        if prop is None:
            continue
        is_reference = bool(item.get("isRefFlowProperty"))
        raw_factor = item.get("conversionFactor")
        conversion_factor = 1.0 if raw_factor is None else coerce_float(raw_factor)
        if conversion_factor is None:
            return None
        factors.append(
            FlowPropertyFactor(
                flow_property=prop,
                conversion_factor=conversion_factor,
                is_reference=is_reference,
            )
        )
        if is_reference and ref_unit is None:
            ref_unit = _text(item["flowProperty"].get("refUnit"))
    return FlowRecord(
        id=flow_id,
        name=name,
        flow_type=flow_type,
        category_path=_category_path(payload.get("category")),
        flow_properties=tuple(factors),
        ref_unit=ref_unit,
        location=_parse_ref(payload.get("location")),
    )


__all__ = ["OlcaRestStore"]
