"""Geocoding client tests over a mocked HTTP transport."""

import httpx
import pytest

from src.domain.entities import Location
from src.infrastructure.geocoding import GeocodingError, NominatimGeocoder


def _geocoder(handler) -> NominatimGeocoder:
    return NominatimGeocoder(
        base_url="https://geo.test/",
        user_agent="tricycle-tests",
        transport=httpx.MockTransport(handler),
    )


class TestForward:
    @pytest.mark.asyncio
    async def test_first_hit_is_used(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["agent"] = request.headers["user-agent"]
            return httpx.Response(
                200,
                json=[
                    {"lat": "13.8844", "lon": "122.2603", "display_name": "Lopez"},
                    {"lat": "14.0", "lon": "122.0", "display_name": "Elsewhere"},
                ],
            )

        location = await _geocoder(handler).forward("Lopez public market")

        assert location == Location(13.8844, 122.2603)
        assert seen["path"] == "/search"
        assert seen["params"]["q"] == "Lopez public market"
        assert seen["params"]["format"] == "json"
        assert seen["agent"] == "tricycle-tests"

    @pytest.mark.asyncio
    async def test_no_match(self):
        location = await _geocoder(lambda r: httpx.Response(200, json=[])).forward("x")
        assert location is None

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        handler = lambda r: httpx.Response(200, json=[{"name": "no coords"}])  # noqa: E731
        with pytest.raises(GeocodingError):
            await _geocoder(handler).forward("x")

    @pytest.mark.asyncio
    async def test_http_error(self):
        handler = lambda r: httpx.Response(503, json={"error": "busy"})  # noqa: E731
        with pytest.raises(GeocodingError):
            await _geocoder(handler).forward("x")


class TestReverse:
    @pytest.mark.asyncio
    async def test_display_name(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/reverse"
            assert request.url.params["lat"] == "13.92"
            assert request.url.params["lon"] == "122.28"
            return httpx.Response(200, json={"display_name": "Talolong, Lopez"})

        label = await _geocoder(handler).reverse(Location(13.92, 122.28))
        assert label == "Talolong, Lopez"

    @pytest.mark.asyncio
    async def test_unable_to_geocode(self):
        handler = lambda r: httpx.Response(200, json={"error": "Unable to geocode"})  # noqa: E731
        assert await _geocoder(handler).reverse(Location(0, 0)) is None
