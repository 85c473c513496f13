import asyncio

import httpx
import pytest

from portal.app.api_client import (
    BackendAPIClient,
    BackendError,
    BackendUnauthorized,
    transform_response,
)


def _run(coro):
    return asyncio.run(coro)


def test_transform_response_unwraps_values():
    data = {"$id": "1", "$values": [{"$id": "2", "orderId": 5}, {"$id": "3", "orderId": 6}]}

    assert transform_response(data) == [{"id": "2", "orderId": 5}, {"id": "3", "orderId": 6}]


def test_transform_response_nested_collections():
    data = {
        "$id": "1",
        "orderId": 7,
        "services": {"$id": "2", "$values": [{"serviceName": "Oil change"}]},
    }

    result = transform_response(data)

    assert result["id"] == "1"
    assert result["services"] == [{"serviceName": "Oil change"}]


def test_transform_response_plain_values_untouched():
    assert transform_response("text") == "text"
    assert transform_response(None) is None
    assert transform_response({"a": 1}) == {"a": 1}


def _client(handler, token="tok"):
    return BackendAPIClient(
        base_url="http://backend.test",
        token=token,
        transport=httpx.MockTransport(handler),
    )


def test_request_sends_bearer_and_transforms():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"$id": "1", "$values": [{"vehicleId": 1}]})

    async def scenario():
        async with _client(handler) as client:
            return await client.list_vehicles()

    assert _run(scenario()) == [{"vehicleId": 1}]
    assert seen["auth"] == "Bearer tok"


def test_request_without_token_has_no_authorization():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json=[])

    async def scenario():
        async with _client(handler, token=None) as client:
            return await client.list_services()

    assert _run(scenario()) == []
    assert seen["auth"] is None


def test_error_message_taken_from_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "Vehicle already exists"})

    async def scenario():
        async with _client(handler) as client:
            await client.create_vehicle({"make": "Honda"})

    with pytest.raises(BackendError) as exc:
        _run(scenario())

    assert exc.value.status_code == 400
    assert exc.value.message == "Vehicle already exists"


def test_error_without_message_gets_default():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    async def scenario():
        async with _client(handler) as client:
            await client.list_orders()

    with pytest.raises(BackendError) as exc:
        _run(scenario())

    assert exc.value.message == "An error occurred"


def test_401_raises_unauthorized():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Token expired"})

    async def scenario():
        async with _client(handler) as client:
            await client.get_current_user()

    with pytest.raises(BackendUnauthorized):
        _run(scenario())


def test_transport_failure_becomes_502():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async def scenario():
        async with _client(handler) as client:
            await client.list_users()

    with pytest.raises(BackendError) as exc:
        _run(scenario())

    assert exc.value.status_code == 502
    assert exc.value.message == "Backend is unavailable"


def test_empty_body_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    async def scenario():
        async with _client(handler) as client:
            return await client.delete_vehicle(3)

    assert _run(scenario()) is None


def test_params_without_none():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["query"] = dict(request.url.params)
        return httpx.Response(200, json={"months": []})

    async def scenario():
        async with _client(handler) as client:
            await client.finance_monthly_report(None)
            await client.list_reports(page=2, page_size=10)

    _run(scenario())

    assert seen["query"] == {"page": "2", "pageSize": "10"}
