from datetime import datetime, timezone

import httpx
import pytest

from brand_monitor.errors import ParseError
from brand_monitor.fallback import SyntheticFallback
from brand_monitor.models import MonitoredApplication
from brand_monitor.registry import parse_search_results, parse_trademark_details

from helpers import search_payload


def test_parse_search_results_flattens_list_fields():
    records = parse_search_results(search_payload(
        {"serialNumber": "97111111", "markDescription": "ZYNTHE", "applicationDate": "2024-04-01"},
        {"serialNumber": "97222222"},
    ))

    assert [r.serial_number for r in records] == ["97111111", "97222222"]
    assert records[0].mark_description == "ZYNTHE"
    assert records[0].filed_at == datetime(2024, 4, 1, tzinfo=timezone.utc)
    assert records[1].mark_description == "N/A"


def test_parse_search_results_without_docs_is_empty():
    assert parse_search_results({"response": {"numFound": 0}}) == []
    assert parse_search_results({}) == []


@pytest.mark.parametrize("body", [[], "oops", {"response": {"docs": ["x"]}}])
def test_parse_search_results_rejects_malformed_bodies(body):
    with pytest.raises(ParseError):
        parse_search_results(body)


def test_parse_trademark_details():
    record = parse_trademark_details({
        "trademark": {
            "serialNumber": "97000001",
            "markDescription": "ZYNTH",
            "applicant": [{"applicantName": "Zynth Labs"}],
            "prosecution": [{
                "statusCode": "6",
                "statusDescription": "Registered",
                "statusDate": "2024-05-01",
            }],
            "prosecutionEvent": [{"code": "NOA"}],
        }
    })

    assert record.serial_number == "97000001"
    assert record.applicant_name == "Zynth Labs"
    assert record.status == "6"
    assert record.status_description == "Registered"
    assert record.events == [{"code": "NOA"}]


@pytest.mark.asyncio
async def test_search_sends_query_parameters(make_registry):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=search_payload({"serialNumber": "1", "markDescription": "ACME"}))

    registry = make_registry(handler)
    records = await registry.search("acme", sort="applicationDate desc", limit=20)

    assert [r.mark_description for r in records] == ["ACME"]
    request = seen[0]
    assert request.url.path.endswith("/trademark/search")
    assert request.url.params["q"] == "acme"
    assert request.url.params["sort"] == "applicationDate desc"
    assert request.url.params["rows"] == "20"
    assert request.headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_search_error_status_falls_back_to_empty(make_registry):
    registry = make_registry(lambda request: httpx.Response(503, text="unavailable"))
    assert await registry.search("acme") == []


@pytest.mark.asyncio
async def test_search_malformed_json_falls_back(make_registry):
    registry = make_registry(lambda request: httpx.Response(200, text="<html>not json</html>"))
    assert await registry.search("acme") == []


@pytest.mark.asyncio
async def test_search_timeout_uses_synthetic_fallback(make_registry):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    registry = make_registry(handler, fallback=SyntheticFallback())
    records = await registry.search("acme")

    assert [r.serial_number for r in records] == ["97000001", "97000002"]
    assert records[0].mark_description == "ACME TECH"
    assert records[1].mark_description == "AcmePlus"


@pytest.mark.asyncio
async def test_monitor_new_applications_filters_by_date_and_dedupes(make_registry):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=search_payload(
            {"serialNumber": "1", "markDescription": "ZYNTH TECH", "applicationDate": "2024-04-01"},
            {"serialNumber": "2", "markDescription": "ZYNTH OLD", "applicationDate": "2024-01-01"},
            {"serialNumber": "3", "markDescription": "ZYNTH UNDATED"},
        ))

    registry = make_registry(handler)
    since = datetime(2024, 3, 1, tzinfo=timezone.utc)
    records = await registry.monitor_new_applications(["zynth", "zynthe"], since)

    assert [r.serial_number for r in records] == ["1"]


@pytest.mark.asyncio
async def test_find_similar_marks_excludes_target_and_low_scores(make_registry):
    queries = []

    def handler(request: httpx.Request) -> httpx.Response:
        queries.append(request.url.params["q"])
        return httpx.Response(200, json=search_payload(
            {"serialNumber": "1", "markDescription": "Zynth"},
            {"serialNumber": "2", "markDescription": "Zynthe"},
            {"serialNumber": "3", "markDescription": "Orbit"},
        ))

    registry = make_registry(handler)
    records = await registry.find_similar_marks("Zynth")

    assert queries == ["Zynth", "zynth", "sinth"]
    assert [r.serial_number for r in records] == ["2"]
    assert records[0].similarity == pytest.approx(5 / 6)


@pytest.mark.asyncio
async def test_find_similar_marks_without_variations(make_registry):
    queries = []

    def handler(request: httpx.Request) -> httpx.Response:
        queries.append(request.url.params["q"])
        return httpx.Response(200, json=search_payload())

    registry = make_registry(handler)
    assert await registry.find_similar_marks("Zynth", include_variations=False) == []
    assert queries == ["Zynth"]


@pytest.mark.asyncio
async def test_check_status_changes(make_registry):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/info")
        serial = request.url.path.split("/")[-2]
        return httpx.Response(200, json={
            "trademark": {"serialNumber": serial, "prosecution": [{"statusCode": "6"}]}
        })

    registry = make_registry(handler)
    changes = await registry.check_status_changes([
        MonitoredApplication(serial_number="97000001", last_known_status="1A"),
        MonitoredApplication(serial_number="97000002", last_known_status="6"),
    ])

    assert len(changes) == 1
    assert changes[0].record.serial_number == "97000001"
    assert changes[0].previous_status == "1A"
    assert changes[0].record.status == "6"


@pytest.mark.asyncio
async def test_details_failure_with_empty_fallback_skips_application(make_registry):
    registry = make_registry(lambda request: httpx.Response(404))
    changes = await registry.check_status_changes([
        MonitoredApplication(serial_number="97000001", last_known_status="1A"),
    ])
    assert changes == []


@pytest.mark.asyncio
async def test_every_request_passes_the_rate_limiter(make_registry):
    class CountingLimiter:
        calls = 0

        async def wait(self):
            CountingLimiter.calls += 1

    registry = make_registry(
        lambda request: httpx.Response(200, json=search_payload()),
        rate_limiter=CountingLimiter(),
    )
    await registry.find_similar_marks("Zynth")
    assert CountingLimiter.calls == 3


MALFORMED_DETAILS = {"trademark": {"serialNumber": "97000001", "prosecutionEvent": {"code": "NOA"}}}


def test_parse_trademark_details_rejects_wrong_field_types():
    with pytest.raises(ParseError):
        parse_trademark_details(MALFORMED_DETAILS)


@pytest.mark.asyncio
async def test_malformed_details_fall_back(make_registry):
    registry = make_registry(lambda request: httpx.Response(200, json=MALFORMED_DETAILS))

    assert await registry.get_details("97000001") is None
    assert await registry.check_status_changes([
        MonitoredApplication(serial_number="97000001", last_known_status="1A"),
    ]) == []


@pytest.mark.asyncio
async def test_malformed_details_use_synthetic_fallback(make_registry):
    registry = make_registry(
        lambda request: httpx.Response(200, json=MALFORMED_DETAILS),
        fallback=SyntheticFallback(),
    )

    record = await registry.get_details("97000001")

    assert record.serial_number == "97000001"
    assert record.mark_description == "SAMPLE TRADEMARK"
