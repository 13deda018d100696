import json
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from app.services.hubspot_service import HubSpotAPIError, HubSpotService

BASE = "https://api.hubapi.test"


def make_service(**kwargs) -> HubSpotService:
    kwargs.setdefault("retry_delay", 0)
    return HubSpotService(token="test-token", base_url=BASE, **kwargs)


def test_missing_token_raises(monkeypatch):
    monkeypatch.setattr("app.services.hubspot_service.HS_PRIVATE_APP_TOKEN", None)
    with pytest.raises(ValueError):
        HubSpotService()


@pytest.mark.asyncio
@respx.mock
async def test_rate_limited_call_is_retried_until_success():
    route = respx.get(f"{BASE}/crm/v3/objects/0-1/1").mock(
        side_effect=[
            httpx.Response(429, json={"message": "slow down"}),
            httpx.Response(429, json={"message": "slow down"}),
            httpx.Response(200, json={"id": "1", "properties": {}}),
        ]
    )

    result = await make_service().api_call("GET", "/crm/v3/objects/0-1/1")

    assert result["id"] == "1"
    assert route.call_count == 3
    assert route.calls[0].request.headers["Authorization"] == "Bearer test-token"


@pytest.mark.asyncio
@respx.mock
async def test_rate_limit_surfaces_after_three_attempts():
    route = respx.get(f"{BASE}/crm/v3/objects/0-1/1").respond(429, json={"message": "Too many"})

    with pytest.raises(HubSpotAPIError) as exc_info:
        await make_service().api_call("GET", "/crm/v3/objects/0-1/1")

    assert exc_info.value.status == 429
    assert exc_info.value.message == "Too many"
    assert route.call_count == 3


@pytest.mark.asyncio
@respx.mock
async def test_backoff_doubles_from_one_second(monkeypatch):
    sleep = AsyncMock()
    monkeypatch.setattr("app.services.hubspot_service.asyncio.sleep", sleep)
    respx.get(f"{BASE}/crm/v3/objects/0-1/1").respond(429)

    with pytest.raises(HubSpotAPIError):
        await make_service(retry_delay=1.0).api_call("GET", "/crm/v3/objects/0-1/1")

    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
@respx.mock
async def test_other_errors_are_not_retried():
    route = respx.patch(f"{BASE}/crm/v3/objects/0-1/1").respond(
        400, json={"message": "Property values were not valid"}
    )

    with pytest.raises(HubSpotAPIError) as exc_info:
        await make_service().update_object("0-1", "1", {"sj_credits": 2})

    assert exc_info.value.status == 400
    assert exc_info.value.message == "Property values were not valid"
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_transport_error_maps_to_500():
    respx.get(f"{BASE}/crm/v3/objects/0-1/1").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(HubSpotAPIError) as exc_info:
        await make_service().api_call("GET", "/crm/v3/objects/0-1/1")

    assert exc_info.value.status == 500


@pytest.mark.asyncio
@respx.mock
async def test_get_object_returns_none_when_missing():
    respx.get(f"{BASE}/crm/v3/objects/2-50158913/404404").respond(404, json={"message": "Not found"})

    assert await make_service().get_object("2-50158913", "404404", properties=["capacity"]) is None


@pytest.mark.asyncio
@respx.mock
async def test_get_object_sends_projection_and_associations():
    route = respx.get(f"{BASE}/crm/v3/objects/2-50158943/7").respond(200, json={"id": "7", "properties": {}})

    await make_service().get_object("2-50158943", "7", properties=["name", "email"], associations=["0-1"])

    params = route.calls[0].request.url.params
    assert params["properties"] == "name,email"
    assert params["associations"] == "0-1"


@pytest.mark.asyncio
@respx.mock
async def test_update_object_stringifies_properties():
    route = respx.patch(f"{BASE}/crm/v3/objects/2-50158943/7").respond(200, json={"id": "7"})

    await make_service().update_object("2-50158943", "7", {"total_bookings": 4, "dominant_hand": True})

    body = json.loads(route.calls[0].request.content)
    assert body == {"properties": {"total_bookings": "4", "dominant_hand": "true"}}


@pytest.mark.asyncio
@respx.mock
async def test_batch_read_is_chunked_by_100():
    def respond(request):
        inputs = json.loads(request.content)["inputs"]
        return httpx.Response(200, json={"results": [{"id": i["id"], "properties": {}} for i in inputs]})

    route = respx.post(f"{BASE}/crm/v3/objects/2-50158943/batch/read").mock(side_effect=respond)

    ids = [str(i) for i in range(250)]
    results = await make_service().batch_read_objects("2-50158943", ids, properties=["is_active"])

    assert route.call_count == 3
    assert sorted(r["id"] for r in results) == sorted(ids)


@pytest.mark.asyncio
async def test_batch_read_with_no_ids_makes_no_call():
    assert await make_service().batch_read_objects("2-50158943", []) == []


@pytest.mark.asyncio
@respx.mock
async def test_list_associations_follows_paging():
    url = f"{BASE}/crm/v4/objects/2-50158913/501/associations/2-50158943"
    route = respx.get(url).mock(
        side_effect=[
            httpx.Response(
                200,
                json={"results": [{"toObjectId": 1}, {"toObjectId": 2}], "paging": {"next": {"after": "abc"}}},
            ),
            httpx.Response(200, json={"results": [{"toObjectId": 3}]}),
        ]
    )

    ids = await make_service().list_associations("2-50158913", "501", "2-50158943")

    assert ids == ["1", "2", "3"]
    assert route.calls[1].request.url.params["after"] == "abc"


@pytest.mark.asyncio
@respx.mock
async def test_create_association_uses_configured_type_id():
    url = f"{BASE}/crm/v4/objects/2-50158943/9/associations/0-1/101"
    route = respx.put(url).respond(200, json={})

    await make_service().create_association("2-50158943", "9", "0-1", "101")

    assert json.loads(route.calls[0].request.content) == [
        {"associationCategory": "USER_DEFINED", "associationTypeId": 1289}
    ]


@pytest.mark.asyncio
@respx.mock
async def test_remove_association():
    url = f"{BASE}/crm/v4/objects/2-50158943/9/associations/2-50158913/501"
    route = respx.delete(url).respond(204)

    assert await make_service().remove_association("2-50158943", "9", "2-50158913", "501") is None
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_failing_chunk_raises_after_every_chunk_settles():
    def respond(request):
        inputs = json.loads(request.content)["inputs"]
        if inputs[0]["id"] == "100":
            return httpx.Response(502, json={"message": "Bad gateway"})
        return httpx.Response(200, json={"results": [{"id": i["id"]} for i in inputs]})

    route = respx.post(f"{BASE}/crm/v3/objects/2-50158943/batch/read").mock(side_effect=respond)

    with pytest.raises(HubSpotAPIError) as exc_info:
        await make_service().batch_read_objects("2-50158943", [str(i) for i in range(250)])

    assert exc_info.value.status == 502
    assert route.call_count == 3


@pytest.mark.asyncio
@respx.mock
async def test_batch_read_associations_maps_every_source_id():
    route = respx.post(f"{BASE}/crm/v4/associations/2-50158913/2-50158943/batch/read").respond(
        200,
        json={
            "results": [
                {"from": {"id": "501"}, "to": [{"toObjectId": 7}, {"toObjectId": 8}]},
                {"from": {"id": "502"}, "to": [{"toObjectId": 9}]},
            ]
        },
    )

    associated = await make_service().batch_read_associations("2-50158913", ["501", "502", "503"], "2-50158943")

    assert associated == {"501": ["7", "8"], "502": ["9"], "503": []}
    assert json.loads(route.calls[0].request.content) == {
        "inputs": [{"id": "501"}, {"id": "502"}, {"id": "503"}]
    }


@pytest.mark.asyncio
async def test_batch_read_associations_with_no_ids_makes_no_call():
    assert await make_service().batch_read_associations("2-50158913", [], "2-50158943") == {}


@pytest.mark.asyncio
@respx.mock
async def test_batch_update_objects_stringifies_and_chunks():
    route = respx.post(f"{BASE}/crm/v3/objects/2-50158913/batch/update").respond(200, json={"results": []})

    updates = [{"id": i, "properties": {"total_bookings": i}} for i in range(150)]
    await make_service().batch_update_objects("2-50158913", updates)

    assert route.call_count == 2
    chunks = sorted((json.loads(c.request.content)["inputs"] for c in route.calls), key=len, reverse=True)
    assert [len(c) for c in chunks] == [100, 50]
    assert chunks[0][3] == {"id": "3", "properties": {"total_bookings": "3"}}
