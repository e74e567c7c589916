"""Unit tests for placelink.services.geocoding — Nominatim client and rate limiter."""

from unittest.mock import patch

import httpx
import pytest

from placelink.schemas.place import Coordinates
from placelink.services import geocoding
from placelink.services.geocoding import (
    RateLimiter,
    format_address,
    forward_geocode,
    reverse_geocode,
)

BIG_BEN = Coordinates(lat=51.5007292, lng=-0.1246254)

REVERSE_PAYLOAD = {
    "lat": "51.50072919999999",
    "lon": "-0.12462540000000001",
    "type": "attraction",
    "display_name": "Big Ben, Bridge Street, Westminster, London, SW1A 0AA, United Kingdom",
    "address": {
        "tourism": "Big Ben",
        "road": "Bridge Street",
        "suburb": "Westminster",
        "city": "London",
        "postcode": "SW1A 0AA",
        "country": "United Kingdom",
    },
}

SEARCH_PAYLOAD = [
    {
        "lat": "51.5136",
        "lon": "-0.1325",
        "name": "Lina Stores",
        "type": "restaurant",
        "display_name": "Lina Stores, 51, Greek Street, Soho, London, W1D 4EH, United Kingdom",
        "address": {
            "house_number": "51",
            "road": "Greek Street",
            "suburb": "Soho",
            "city": "London",
            "postcode": "W1D 4EH",
            "country": "United Kingdom",
        },
    }
]


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    with patch("placelink.services.geocoding._rate_limiter", limiter):
        yield clock


def _client_for(handler):
    def build():
        return httpx.AsyncClient(
            base_url="https://nominatim.test",
            transport=httpx.MockTransport(handler),
            headers=geocoding._headers(),
        )

    return build


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_first_call_does_not_wait(self):
        clock = FakeClock()
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
        assert await limiter.wait() == 0.0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_back_to_back_calls_are_spaced(self):
        clock = FakeClock()
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
        starts = []
        for _ in range(3):
            await limiter.wait()
            starts.append(clock.now)
            clock.now += 0.2  # request takes 200ms

        assert all(b - a >= 1.0 - 1e-9 for a, b in zip(starts, starts[1:]))
        assert clock.sleeps == pytest.approx([0.8, 0.8])

    @pytest.mark.asyncio
    async def test_no_wait_after_long_gap(self):
        clock = FakeClock()
        limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
        await limiter.wait()
        clock.now += 5
        assert await limiter.wait() == 0.0


class TestReverseGeocode:
    @pytest.mark.asyncio
    async def test_parses_result(self, fake_clock):
        captured = {}

        def handler(request: httpx.Request):
            captured["path"] = request.url.path
            captured["params"] = dict(request.url.params)
            captured["ua"] = request.headers.get("user-agent")
            return httpx.Response(200, json=REVERSE_PAYLOAD)

        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            place = await reverse_geocode(BIG_BEN)

        assert captured["path"] == "/reverse"
        assert captured["params"]["zoom"] == "18"
        assert captured["params"]["addressdetails"] == "1"
        assert captured["params"]["format"] == "json"
        assert captured["ua"]
        assert place.name == "Big Ben"
        assert place.address == "Bridge Street, Westminster, London, SW1A 0AA, United Kingdom"
        assert place.city == "London"
        assert place.place_type == "attraction"
        assert place.lat == pytest.approx(51.5007292)

    @pytest.mark.asyncio
    async def test_unnamed_place(self, fake_clock):
        payload = {"lat": "1", "lon": "2", "display_name": "Somewhere", "address": {"road": "A Road"}}
        handler = lambda request: httpx.Response(200, json=payload)  # noqa: E731

        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            place = await reverse_geocode(Coordinates(lat=1, lng=2))

        assert place.name == "Unnamed Place"
        assert place.address == "A Road"

    @pytest.mark.asyncio
    async def test_error_payload(self, fake_clock):
        handler = lambda request: httpx.Response(200, json={"error": "Unable to geocode"})  # noqa: E731
        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            assert await reverse_geocode(BIG_BEN) is None

    @pytest.mark.asyncio
    async def test_http_error_status(self, fake_clock):
        handler = lambda request: httpx.Response(503)  # noqa: E731
        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            assert await reverse_geocode(BIG_BEN) is None

    @pytest.mark.asyncio
    async def test_network_failure(self, fake_clock):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            assert await reverse_geocode(BIG_BEN) is None

    @pytest.mark.asyncio
    async def test_malformed_json(self, fake_clock):
        handler = lambda request: httpx.Response(200, content=b"<html>busy</html>")  # noqa: E731
        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            assert await reverse_geocode(BIG_BEN) is None


class TestForwardGeocode:
    @pytest.mark.asyncio
    async def test_parses_first_result(self, fake_clock):
        captured = {}

        def handler(request: httpx.Request):
            captured["path"] = request.url.path
            captured["params"] = dict(request.url.params)
            return httpx.Response(200, json=SEARCH_PAYLOAD)

        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            place = await forward_geocode("Lina Stores Soho")

        assert captured["path"] == "/search"
        assert captured["params"]["q"] == "Lina Stores Soho"
        assert captured["params"]["limit"] == "1"
        assert place.name == "Lina Stores"
        assert place.address == "51 Greek Street, Soho, London, W1D 4EH, United Kingdom"
        assert (place.lat, place.lng) == (51.5136, -0.1325)

    @pytest.mark.asyncio
    async def test_name_falls_back_to_query(self, fake_clock):
        payload = [{"lat": "1", "lon": "2", "display_name": "X", "address": {}}]
        handler = lambda request: httpx.Response(200, json=payload)  # noqa: E731
        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            place = await forward_geocode("10 Downing St, London")

        assert place.name == "10 Downing St"
        assert place.address == "X"

    @pytest.mark.asyncio
    async def test_no_results(self, fake_clock):
        handler = lambda request: httpx.Response(200, json=[])  # noqa: E731
        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            assert await forward_geocode("nowhere at all") is None

    @pytest.mark.asyncio
    async def test_blank_query_skips_request(self, fake_clock):
        with patch("placelink.services.geocoding._build_client") as build:
            assert await forward_geocode("   ") is None
        build.assert_not_called()

    @pytest.mark.asyncio
    async def test_sequential_calls_respect_rate_limit(self, fake_clock):
        starts = []

        def handler(request):
            starts.append(fake_clock.now)
            return httpx.Response(200, json=SEARCH_PAYLOAD)

        with patch("placelink.services.geocoding._build_client", _client_for(handler)):
            await forward_geocode("Lina Stores")
            await reverse_geocode(BIG_BEN)
            await forward_geocode("Lina Stores Soho")

        assert len(starts) == 3
        assert all(b - a >= 1.0 - 1e-9 for a, b in zip(starts, starts[1:]))


class TestFormatAddress:
    def test_town_used_when_no_city(self):
        assert format_address({"road": "High St", "town": "Ely"}, "fallback") == "High St, Ely"

    def test_house_number_needs_road(self):
        assert format_address({"house_number": "5", "village": "Grantchester"}, "fb") == "Grantchester"

    def test_display_name_fallback(self):
        assert format_address({}, "Somewhere, Earth") == "Somewhere, Earth"
        assert format_address(None, "Somewhere, Earth") == "Somewhere, Earth"
