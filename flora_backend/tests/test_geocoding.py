"""
Geocoding tests.

Covers the Nominatim client, pacing and circuit breaking of provider calls,
batch and single-order geocoding, and manual coordinates.
"""

import httpx
import pytest
from sqlalchemy import select

from flora_backend.app.core.exceptions import (
    InvalidPositionError,
    MissingAddressError,
    ResourceNotFoundError,
    UpstreamGeocodeError,
)
from flora_backend.app.core.reliability import (
    CircuitBreaker,
    CircuitOpenError,
    FixedDelayRateLimiter,
    rate_limited,
)
from flora_backend.app.models.order import Order
from flora_backend.app.models.order_enums import GeoStatus, OrderStatus
from flora_backend.app.services.geocoding import GeoPoint, GeocodingService, NominatimGeocoder


class FakeTime:
    """Clock and sleep pair: sleeping advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def make_nominatim(handler, circuit_breaker=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://nominatim.test")
    return NominatimGeocoder(
        base_url="https://nominatim.test",
        user_agent="FloraOrders/1.0",
        circuit_breaker=circuit_breaker,
        client=client,
    )


# Provider client

@pytest.mark.asyncio
async def test_nominatim_parses_first_result():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[{"lat": "55.7558", "lon": "37.6173"}, {"lat": "0", "lon": "0"}])

    geocoder = make_nominatim(handler)
    point = await geocoder.geocode("Moscow, Red Square")

    assert point == GeoPoint(lat=55.7558, lon=37.6173)
    assert seen["params"] == {"q": "Moscow, Red Square", "format": "json", "limit": "1"}
    await geocoder.aclose()


@pytest.mark.asyncio
async def test_nominatim_not_found_returns_none():
    geocoder = make_nominatim(lambda request: httpx.Response(200, json=[]))
    assert await geocoder.geocode("Nowhere 0") is None


@pytest.mark.asyncio
async def test_nominatim_http_error_is_upstream_error():
    geocoder = make_nominatim(lambda request: httpx.Response(503))
    with pytest.raises(UpstreamGeocodeError):
        await geocoder.geocode("Tverskaya 1")


@pytest.mark.asyncio
async def test_nominatim_malformed_result_is_upstream_error():
    geocoder = make_nominatim(lambda request: httpx.Response(200, json=[{"display_name": "x"}]))
    with pytest.raises(UpstreamGeocodeError):
        await geocoder.geocode("Tverskaya 1")


@pytest.mark.asyncio
async def test_nominatim_stops_calling_when_circuit_opens():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    geocoder = make_nominatim(handler, CircuitBreaker(failure_threshold=2, reset_timeout=60))
    for _ in range(3):
        with pytest.raises(UpstreamGeocodeError):
            await geocoder.geocode("Tverskaya 1")

    assert len(calls) == 2


# Reliability primitives

@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Circuit opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=1)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_half_open_trial():
    fake = FakeTime()
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=10, clock=fake.clock)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    fake.now += 11
    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    fake.now += 11
    assert await cb.call(ok_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


@pytest.mark.asyncio
async def test_rate_limiter_spaces_acquisitions():
    fake = FakeTime()
    limiter = FixedDelayRateLimiter(1.1, clock=fake.clock, sleep=fake.sleep)

    assert await limiter.acquire() == 0.0
    await limiter.acquire()
    fake.now += 5
    assert await limiter.acquire() == 0.0
    await limiter.acquire()

    assert fake.sleeps == [pytest.approx(1.1), pytest.approx(1.1)]


@pytest.mark.asyncio
async def test_rate_limited_yields_every_item_in_order():
    fake = FakeTime()
    limiter = FixedDelayRateLimiter(1.1, clock=fake.clock, sleep=fake.sleep)

    items = [item async for item in rate_limited(["a", "b", "c"], limiter)]

    assert items == ["a", "b", "c"]
    assert len(fake.sleeps) == 2
    assert fake.now == pytest.approx(2.2)


# Geocoding service

@pytest.mark.asyncio
async def test_batch_counts_success_and_failure(db_session, organization, fake_geocoder, make_order):
    fake_geocoder.known = {"Tverskaya 1": (55.76, 37.60)}
    fake_geocoder.failing = {"Arbat 10"}
    ok = await make_order(organization, address="Tverskaya 1", status=OrderStatus.NEW)
    upstream = await make_order(organization, address="Arbat 10", status=OrderStatus.IN_WORK)
    unknown = await make_order(organization, address="Nowhere 0")
    await make_order(organization, address="   ")
    await make_order(organization, address="Delivered 5", status=OrderStatus.DELIVERED)
    await make_order(organization, address="Done 7", lat=55.7, lon=37.5)

    fake = FakeTime()
    service = GeocodingService(db_session, fake_geocoder, FixedDelayRateLimiter(1.1, fake.clock, fake.sleep))
    batch = await service.geocode_pending(organization.id)

    assert (batch.success, batch.failed, batch.processed, batch.total) == (1, 2, 3, 3)
    assert fake_geocoder.calls == ["Tverskaya 1", "Arbat 10", "Nowhere 0"]
    assert len(fake.sleeps) == 2

    assert (ok.latitude, ok.longitude, ok.geo_status) == (55.76, 37.60, GeoStatus.SUCCESS)
    assert upstream.geo_status == GeoStatus.FAILED
    assert unknown.geo_status == GeoStatus.FAILED
    assert unknown.latitude is None


@pytest.mark.asyncio
async def test_geocode_order_success(db_session, organization, fake_geocoder, make_order):
    fake_geocoder.known = {"Tverskaya 1": (55.76, 37.60)}
    order = await make_order(organization, address="Tverskaya 1")

    service = GeocodingService(db_session, fake_geocoder, FixedDelayRateLimiter(0))
    result = await service.geocode_order(organization.id, order.id)

    assert result.geo_status == GeoStatus.SUCCESS
    assert (result.latitude, result.longitude) == (55.76, 37.60)
    assert result.geo_updated_at is not None


@pytest.mark.asyncio
async def test_geocode_order_waits_for_rate_limiter(db_session, organization, fake_geocoder, make_order, mocker):
    order = await make_order(organization, address="Tverskaya 1")
    limiter = FixedDelayRateLimiter(0)
    acquire = mocker.spy(limiter, "acquire")

    await GeocodingService(db_session, fake_geocoder, limiter).geocode_order(organization.id, order.id)

    assert acquire.call_count == 1
    assert fake_geocoder.calls == ["Tverskaya 1"]


@pytest.mark.asyncio
async def test_geocode_order_errors(db_session, organization, fake_geocoder, make_order):
    fake_geocoder.failing = {"Arbat 10"}
    no_address = await make_order(organization, address="")
    failing = await make_order(organization, address="Arbat 10")
    service = GeocodingService(db_session, fake_geocoder, FixedDelayRateLimiter(0))

    with pytest.raises(ResourceNotFoundError):
        await service.geocode_order(organization.id, 987654)
    with pytest.raises(MissingAddressError):
        await service.geocode_order(organization.id, no_address.id)
    with pytest.raises(UpstreamGeocodeError):
        await service.geocode_order(organization.id, failing.id)

    assert failing.geo_status == GeoStatus.FAILED


@pytest.mark.asyncio
async def test_set_coordinates_validates_and_stores(db_session, organization, fake_geocoder, make_order):
    order = await make_order(organization, address="Tverskaya 1")
    service = GeocodingService(db_session, fake_geocoder, FixedDelayRateLimiter(0))

    with pytest.raises(InvalidPositionError):
        await service.set_coordinates(organization.id, order.id, 123.0, 37.6)

    updated = await service.set_coordinates(organization.id, order.id, 55.76, 37.60)
    assert updated.geo_status == GeoStatus.SUCCESS
    assert fake_geocoder.calls == []


# HTTP

@pytest.mark.asyncio
async def test_geocode_all_endpoint(client, organization, manager, auth_headers, fake_geocoder, make_order):
    fake_geocoder.known = {"Tverskaya 1": (55.76, 37.60)}
    await make_order(organization, address="Tverskaya 1")
    await make_order(organization, address="Nowhere 0")

    response = await client.post("/v1/orders/geocode-all", headers=auth_headers(manager))

    assert response.status_code == 200
    assert response.json() == {"success": 1, "failed": 1, "processed": 2, "total": 2}


@pytest.mark.asyncio
async def test_geocode_order_endpoint_errors(client, db_session, organization, owner, auth_headers,
                                             fake_geocoder, make_order):
    fake_geocoder.failing = {"Arbat 10"}
    headers = auth_headers(owner)
    no_address = await make_order(organization, address="")
    failing = await make_order(organization, address="Arbat 10")

    missing = await client.post("/v1/orders/987654/geocode", headers=headers)
    assert missing.status_code == 404

    empty = await client.post(f"/v1/orders/{no_address.id}/geocode", headers=headers)
    assert empty.status_code == 400
    assert empty.json()["error_code"] == "ERR_GEOCODE_NO_ADDRESS"

    upstream = await client.post(f"/v1/orders/{failing.id}/geocode", headers=headers)
    assert upstream.status_code == 502
    assert upstream.json()["error_code"] == "ERR_GEOCODE_UPSTREAM"

    stored = (await db_session.execute(
        select(Order.geo_status).where(Order.id == failing.id)
    )).scalar_one()
    assert stored == GeoStatus.FAILED


@pytest.mark.asyncio
async def test_manual_coordinates_endpoint(client, organization, manager, auth_headers, make_order):
    order = await make_order(organization, address="Tverskaya 1")
    headers = auth_headers(manager)

    bad = await client.post(f"/v1/orders/{order.id}/coordinates", json={"lat": "x", "lon": 37.6}, headers=headers)
    assert bad.status_code == 400

    response = await client.post(
        f"/v1/orders/{order.id}/coordinates", json={"lat": 55.76, "lon": 37.60}, headers=headers
    )
    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "order_id": order.id,
        "geo_status": "SUCCESS",
        "lat": 55.76,
        "lon": 37.60,
    }


@pytest.mark.asyncio
async def test_couriers_cannot_geocode(client, courier, auth_headers):
    response = await client.post("/v1/orders/geocode-all", headers=auth_headers(courier))
    assert response.status_code == 403
