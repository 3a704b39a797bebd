import json

import httpx
import pytest

from lca_flow_mapping.core.models import FlowType, Ref
from lca_flow_mapping.store.client import OlcaRestStore

FLOWS = [
    {
        "@type": "Flow",
        "@id": "flow-co2",
        "name": "Carbon dioxide",
        "category": "Elementary flows/air/unspecified",
        "flowType": "ELEMENTARY_FLOW",
        "refUnit": "kg",
    },
    {
        "@type": "Flow",
        "@id": "flow-ch4",
        "name": "Methane",
        "category": "Elementary flows/water",
        "flowType": "ELEMENTARY_FLOW",
        "refUnit": "kg",
    },
    {
        "@type": "Flow",
        "@id": "flow-steel-de",
        "name": "Steel",
        "category": "metals",
        "flowType": "PRODUCT_FLOW",
        "refUnit": "kg",
        "location": {"@id": "loc-de", "name": "Germany", "code": "DE"},
    },
    {
        "@type": "Flow",
        "@id": "flow-steel-cn",
        "name": "Steel",
        "category": "metals",
        "flowType": "PRODUCT_FLOW",
        "refUnit": "kg",
        "location": "CN",
    },
]


def _store(settings, handler) -> OlcaRestStore:
    return OlcaRestStore(settings, transport=httpx.MockTransport(handler))


def test_find_flows_filters_by_type_name_and_category(settings):
    def handler(request):
        assert request.url.path == "/data/flows/all"
        return httpx.Response(200, json=FLOWS)

    with _store(settings, handler) as store:
        result = store.find_flows(FlowType.ELEMENTARY, "carbon", category="air/unspecified")

    assert result.ok
    assert [descriptor.id for descriptor in result.value] == ["flow-co2"]
    assert result.value[0].category_path == "Elementary flows/air/unspecified"
    assert result.value[0].ref_unit == "kg"


def test_find_flows_filters_products_by_location(settings):
    def handler(request):
        return httpx.Response(200, json={"data": FLOWS})

    with _store(settings, handler) as store:
        located = store.find_flows(FlowType.PRODUCT, "steel", location="DE")
        anywhere = store.find_flows(FlowType.PRODUCT, "steel")

    assert [descriptor.id for descriptor in located.value] == ["flow-steel-de"]
    assert [descriptor.id for descriptor in anywhere.value] == ["flow-steel-de", "flow-steel-cn"]


def test_get_flow_parses_flow_properties(settings):
    payload = {
        "@type": "Flow",
        "@id": "flow-gas",
        "name": "Natural gas",
        "flowType": "PRODUCT_FLOW",
        "category": {"categoryPath": ["fuels", "gaseous"]},
        "flowProperties": [
            {
                "isRefFlowProperty": True,
                "conversionFactor": 1.0,
                "flowProperty": {"@id": "fp-mass", "name": "Mass", "refUnit": "kg"},
            },
            {"conversionFactor": 50.0, "flowProperty": {"@id": "fp-energy", "name": "Energy"}},
        ],
    }

    def handler(request):
        assert request.url.path == "/data/flows/flow-gas"
        return httpx.Response(200, json=payload)

    with _store(settings, handler) as store:
        result = store.get_flow("flow-gas")

    record = result.value
    assert record.flow_type is FlowType.PRODUCT
    assert record.category_path == "fuels/gaseous"
    assert record.ref_unit == "kg"
    assert record.reference_property.flow_property.id == "fp-mass"
    assert record.property_factor("fp-energy").conversion_factor == 50.0


def test_missing_flow_is_not_found(settings):
    with _store(settings, lambda request: httpx.Response(404, text="not found")) as store:
        result = store.get_flow("nope")

    assert result.status == "not_found"


def test_server_error_is_reported_as_error(settings):
    with _store(settings, lambda request: httpx.Response(500, text="boom")) as store:
        result = store.get_flow("flow-co2")

    assert result.status == "error"
    assert "500" in result.error


def test_non_json_payload_is_an_error(settings):
    with _store(settings, lambda request: httpx.Response(200, text="<html>")) as store:
        result = store.get_flow("flow-co2")

    assert result.status == "error"


def test_timeout_is_unavailable_and_not_retried(settings):
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    settings.max_retries = 3
    with _store(settings, handler) as store:
        result = store.get_flow("flow-co2")

    assert result.status == "unavailable"
    assert len(attempts) == 1


def test_connection_errors_are_retried(settings):
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=FLOWS[0] | {"flowProperties": []})

    settings.max_retries = 2
    with _store(settings, handler) as store:
        result = store.get_flow("flow-co2")

    assert result.ok
    assert len(attempts) == 2


def test_exhausted_retries_are_unavailable(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with _store(settings, handler) as store:
        result = store.list_unit_groups()

    assert result.status == "unavailable"


def test_list_unit_groups_fetches_full_groups(settings):
    requested = []
    full_group = {
        "@id": "ug-mass",
        "name": "Units of mass",
        "defaultFlowProperty": {"@id": "fp-mass"},
        "units": [{"@id": "u-kg", "name": "kg", "conversionFactor": 1.0}],
    }

    def handler(request):
        requested.append(request.url.path)
        if request.url.path == "/data/unit-groups/all":
            return httpx.Response(200, json=[{"@id": "ug-mass", "name": "Units of mass"}])
        return httpx.Response(200, json=full_group)

    with _store(settings, handler) as store:
        result = store.list_unit_groups()

    assert result.value == [full_group]
    assert requested == ["/data/unit-groups/all", "/data/unit-groups/ug-mass"]


def test_create_flow_puts_record(settings):
    received = {}

    def handler(request):
        received["method"] = request.method
        received["path"] = request.url.path
        received["body"] = json.loads(request.content)
        return httpx.Response(200, json={"@type": "Flow", "@id": "flow-new"})

    record = {"@type": "Flow", "@id": "flow-new", "name": "SARS-CoV-2"}
    with _store(settings, handler) as store:
        result = store.create_flow(record)

    assert result.value == "flow-new"
    assert received == {"method": "PUT", "path": "/data/flows", "body": record}


def test_rejected_create_is_an_error(settings):
    with _store(settings, lambda request: httpx.Response(409, text="conflict")) as store:
        result = store.create_location({"@id": "loc", "name": "DE"})

    assert result.status == "error"


def test_get_location_by_name(settings):
    def handler(request):
        assert request.url.path == "/data/locations/name/DE"
        return httpx.Response(200, json={"@id": "loc-de", "name": "Germany"})

    with _store(settings, handler) as store:
        result = store.get_location("DE")

    assert result.value == Ref(id="loc-de", name="Germany")


def test_find_providers_reads_provider_refs(settings):
    def handler(request):
        assert request.url.path == "/data/providers/flow-steel"
        return httpx.Response(
            200,
            json=[
                {"provider": {"@id": "proc-1", "name": "steel production"}},
                {"@id": "proc-2", "name": "steel recycling"},
            ],
        )

    with _store(settings, handler) as store:
        result = store.find_providers("flow-steel")

    assert [ref.id for ref in result.value] == ["proc-1", "proc-2"]


def test_requests_carry_configured_headers(settings):
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json=[])

    settings.store_api_key = "secret"
    with _store(settings, handler) as store:
        store.list_unit_groups()

    assert seen["authorization"] == "Bearer secret"
    assert seen["accept"] == "application/json"


@pytest.mark.parametrize("payload", [{}, {"items": []}, []])
def test_empty_listings_find_nothing(settings, payload):
    with _store(settings, lambda request: httpx.Response(200, json=payload)) as store:
        result = store.find_flows(FlowType.ELEMENTARY, "carbon")

    assert result.ok
    assert result.value == []


def test_non_numeric_property_factor_is_a_malformed_payload(settings):
    payload = {
        "@id": "flow-gas",
        "name": "Natural gas",
        "flowType": "PRODUCT_FLOW",
        "flowProperties": [
            {"isRefFlowProperty": True, "conversionFactor": "n/a", "flowProperty": {"@id": "fp-mass"}},
        ],
    }

    with _store(settings, lambda request: httpx.Response(200, json=payload)) as store:
        result = store.get_flow("flow-gas")

    assert result.status == "error"
    assert "Malformed flow payload" in result.error


def test_missing_property_factor_defaults_to_one(settings):
    payload = {
        "@id": "flow-gas",
        "name": "Natural gas",
        "flowType": "PRODUCT_FLOW",
        "flowProperties": [{"isRefFlowProperty": True, "flowProperty": {"@id": "fp-mass"}}],
    }

    with _store(settings, lambda request: httpx.Response(200, json=payload)) as store:
        result = store.get_flow("flow-gas")

    assert result.value.reference_property.conversion_factor == 1.0
