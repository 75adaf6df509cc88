import json

import httpx
import pytest

from profileharvest.core.backends.base import BackendError
from profileharvest.core.backends.http_backend import HttpBackend
from profileharvest.core.config.models import SearchConfig
from profileharvest.core.fetch.retries import RetryConfig
from profileharvest.core.search.client import SearchClient
from profileharvest.core.search.models import Query


def make_people(start, count):
    return [
        {
            "PersonID": start + i,
            "DisplayName": f"Person {start + i}",
            "InstitutionName": "HMS",
            "DepartmentName": "Medicine",
            "FacultyRank": "Professor",
        }
        for i in range(count)
    ]


class FakeSearchEndpoint:
    """Serves scripted responses and records request bodies."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if not self.responses:
            return httpx.Response(200, json={"Count": None, "People": []})
        response = self.responses.pop(0)
        if isinstance(response, int):
            return httpx.Response(response, text="error")
        return httpx.Response(200, json=response)

    @property
    def offsets(self):
        return [body["Offset"] for body in self.requests]


def make_client(endpoint, **config_overrides):
    config = SearchConfig(request_delay_ms=0, **config_overrides)
    backend = HttpBackend(transport=httpx.MockTransport(endpoint))
    retry = RetryConfig(max_attempts=3, min_wait=0, max_wait=0, retry_exceptions=(BackendError,))
    return SearchClient(config, backend=backend, retry_config=retry)


@pytest.mark.asyncio
async def test_collect_stops_at_max_items_and_truncates():
    endpoint = FakeSearchEndpoint(
        [{"Count": 100, "People": make_people(i, 10)} for i in (1, 11, 21, 31)]
    )
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=25)

    assert len(summaries) == 25
    assert [s.id for s in summaries] == list(range(1, 26))
    assert endpoint.offsets == [1, 11, 21]
    assert client.truncated is False


@pytest.mark.asyncio
async def test_small_max_items_still_issues_one_request():
    endpoint = FakeSearchEndpoint([{"Count": 100, "People": make_people(1, 10)}])
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=3)

    assert len(summaries) == 3
    assert len(endpoint.requests) == 1
    assert endpoint.requests[0]["Count"] == 10


@pytest.mark.asyncio
async def test_zero_total_terminates_immediately():
    endpoint = FakeSearchEndpoint([{"Count": 0, "People": []}])
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="nothing"), max_items=50)

    assert summaries == []
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_five_empty_pages_with_unknown_total_stop_without_error():
    endpoint = FakeSearchEndpoint([{"People": []} for _ in range(10)])
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=50)

    assert summaries == []
    assert len(endpoint.requests) == 5
    assert client.truncated is False


@pytest.mark.asyncio
async def test_non_empty_page_resets_empty_counter():
    responses = [
        {"People": make_people(1, 10)},
        {"People": []},
        {"People": []},
        {"People": make_people(31, 10)},
        {"People": []},
        {"People": []},
        {"People": []},
        {"People": []},
        {"People": []},
    ]
    endpoint = FakeSearchEndpoint(responses)
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=100)

    assert len(summaries) == 20
    assert len(endpoint.requests) == 9
    assert endpoint.offsets == [1, 11, 21, 31, 41, 51, 61, 71, 81]


@pytest.mark.asyncio
async def test_stops_once_offset_passes_known_total():
    endpoint = FakeSearchEndpoint(
        [
            {"Count": 15, "People": make_people(1, 10)},
            {"Count": 15, "People": make_people(11, 5)},
        ]
    )
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=50)

    assert len(summaries) == 15
    assert len(endpoint.requests) == 2


@pytest.mark.asyncio
async def test_transport_failures_are_retried():
    endpoint = FakeSearchEndpoint([500, 503, {"Count": 3, "People": make_people(1, 3)}])
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=10)

    assert [s.id for s in summaries] == [1, 2, 3]
    assert len(endpoint.requests) == 3
    assert endpoint.offsets == [1, 1, 1]


@pytest.mark.asyncio
async def test_retry_exhaustion_returns_partial_result():
    endpoint = FakeSearchEndpoint([{"Count": 50, "People": make_people(1, 10)}, 500, 500, 500])
    async with make_client(endpoint) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=50)

    assert len(summaries) == 10
    assert client.truncated is True
    assert len(endpoint.requests) == 4


@pytest.mark.asyncio
async def test_fetch_page_raises_after_retries():
    endpoint = FakeSearchEndpoint([500, 500, 500])
    async with make_client(endpoint) as client:
        with pytest.raises(BackendError):
            await client.fetch_page(Query(keyword="x"), offset=1)

    assert len(endpoint.requests) == 3


@pytest.mark.asyncio
async def test_empty_successful_page_is_not_retried():
    endpoint = FakeSearchEndpoint([{"Count": 5, "People": []}])
    async with make_client(endpoint) as client:
        page = await client.fetch_page(Query(keyword="x"), offset=1)

    assert page.is_empty
    assert page.total_available == 5
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_invalid_json_is_a_transport_failure():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, text="<html>maintenance</html>")

    async with make_client(handler) as client:
        with pytest.raises(BackendError):
            await client.fetch_page(Query(keyword="x"), offset=1)

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_duplicate_ids_are_kept():
    endpoint = FakeSearchEndpoint(
        [
            {"Count": 4, "People": make_people(1, 2)},
            {"Count": 4, "People": make_people(2, 2)},
        ]
    )
    async with make_client(endpoint, page_size=2) as client:
        summaries = await client.collect(Query(keyword="x"), max_items=10)

    assert [s.id for s in summaries] == [1, 2, 2, 3]


@pytest.mark.asyncio
async def test_payload_fields_are_sanitized():
    endpoint = FakeSearchEndpoint([{"Count": 0, "People": []}])
    query = Query(keyword="<b>heart</b>; DROP", department="Surgery\x00", institution=" 'HMS' ")
    async with make_client(endpoint) as client:
        await client.collect(query, max_items=5)

    body = endpoint.requests[0]
    assert body["Keyword"] == "bheart/b DROP"
    assert body["DepartmentName"] == "Surgery"
    assert body["InstitutionName"] == "HMS"
    assert body["Offset"] == 1
    assert body["Sort"] == "relevance"
    assert set(body) == {
        "Keyword", "LastName", "FirstName", "InstitutionName", "DepartmentName",
        "FacultyTypeName", "OtherOptionsName", "KeywordExact", "DepartmentExcept",
        "InstitutionExcept", "Sort", "SearchType", "Count", "Offset",
    }


@pytest.mark.asyncio
async def test_summaries_carry_detail_url():
    endpoint = FakeSearchEndpoint([{"Count": 1, "People": make_people(42, 1)}])
    async with make_client(endpoint, base_url="https://profiles.example.org/profiles/") as client:
        summaries = await client.collect(Query(keyword="x"), max_items=5)

    summary = summaries[0]
    assert summary.id == 42
    assert summary.display_name == "Person 42"
    assert summary.rank == "Professor"
    assert summary.detail_url == "https://profiles.example.org/profiles/display/Person/42"
