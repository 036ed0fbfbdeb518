import asyncio
import time

import httpx
import pytest

from pickup_engine.config import settings
from pickup_engine.errors import UpstreamError
from pickup_engine.models.domain import PickupRecord
from pickup_engine.services.upstream import RezdyClient


def _client(handler, **kwargs) -> RezdyClient:
    kwargs.setdefault("max_retries", 2)
    kwargs.setdefault("backoff_seconds", 0.0)
    kwargs.setdefault("min_request_interval", 0.0)
    return RezdyClient(
        base_url="https://rezdy.test/v1/",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _run(client: RezdyClient, product_code: str = "PH1FEA"):
    async def scenario():
        try:
            return await client(product_code)
        finally:
            await client.aclose()

    return asyncio.run(scenario())


def test_fetch_parses_pickup_locations() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "requestStatus": {"success": True},
                "pickupLocations": [
                    {
                        "locationName": "Brisbane Marriott Hotel",
                        "address": {"addressLine": "1 Howard St", "city": "Brisbane", "state": "QLD"},
                        "latitude": -27.4634,
                        "longitude": 153.0335,
                        "minutesPrior": 15,
                        "additionalInstructions": "Meet in the lobby",
                    },
                    {"address": "Missing a name"},
                ],
            },
        )

    pickups = _run(_client(handler))

    assert pickups == [
        PickupRecord(
            location_name="Brisbane Marriott Hotel",
            address="1 Howard St, Brisbane, QLD",
            latitude=-27.4634,
            longitude=153.0335,
            minutes_prior=15,
            additional_instructions="Meet in the lobby",
        )
    ]
    assert len(seen) == 1
    assert seen[0].url.path == "/v1/products/PH1FEA/pickups"
    assert seen[0].url.params["apiKey"] == "secret"


def test_missing_pickup_list_means_no_pickups() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"requestStatus": {"success": True}})

    assert _run(_client(handler)) == []


def test_server_errors_are_retried() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(503)
        if len(calls) == 2:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"pickupLocations": [{"locationName": "Royal on the Park"}]})

    pickups = _run(_client(handler))

    assert len(calls) == 3
    assert [pickup.location_name for pickup in pickups] == ["Royal on the Park"]


def test_gives_up_after_max_retries() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(500)

    with pytest.raises(UpstreamError):
        _run(_client(handler, max_retries=2))

    assert len(calls) == 3


@pytest.mark.parametrize("status_code", [400, 401, 404])
def test_client_errors_fail_immediately(status_code: int) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(status_code)

    with pytest.raises(UpstreamError) as excinfo:
        _run(_client(handler))

    assert len(calls) == 1
    assert excinfo.value.product_code == "PH1FEA"


def test_rate_limited_responses_are_retried() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        if len(calls) == 1:
            return httpx.Response(429)
        return httpx.Response(200, json={"pickupLocations": []})

    assert _run(_client(handler)) == []
    assert len(calls) == 2


def test_invalid_payload_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>maintenance</html>")

    with pytest.raises(UpstreamError):
        _run(_client(handler))


def test_requests_are_spaced_out() -> None:
    stamps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        stamps.append(time.monotonic())
        return httpx.Response(200, json={"pickupLocations": []})

    client = _client(handler, min_request_interval=0.1)

    async def scenario():
        try:
            await asyncio.gather(client("A"), client("B"))
        finally:
            await client.aclose()

    asyncio.run(scenario())

    assert len(stamps) == 2
    assert stamps[1] - stamps[0] >= 0.09


def test_api_key_is_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "rezdy_api_key", None)

    with pytest.raises(ValueError):
        RezdyClient(api_key=None)
