"""
Geocoding client (Nominatim-compatible HTTP API).

Only used to fill in whichever half of a place is missing on booking
creation: coordinates for a typed address, or a label for a dropped pin.
Fare and dispatch never call it.

Coordinates are ``(lat, lng)`` internally; Nominatim takes and returns them
as separate ``lat`` / ``lon`` fields.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from src.config import settings
from src.domain.entities import Location

logger = logging.getLogger(__name__)


class GeocodingError(Exception):
    """The geocoding service failed or returned something unusable."""


class Geocoder(Protocol):
    async def forward(self, text: str) -> Optional[Location]: ...

    async def reverse(self, location: Location) -> Optional[str]: ...


class NominatimGeocoder:
    def __init__(
        self,
        base_url: str = settings.geocoder_url,
        user_agent: str = settings.geocoder_user_agent,
        timeout: float = settings.geocoder_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {"User-Agent": user_agent}
        self.timeout = timeout
        self.transport = transport

    async def _get(self, path: str, params: dict) -> object:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                response = await client.get(path, params={**params, "format": "json"})
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise GeocodingError(f"geocoder request to {path} failed: {exc}") from exc
        return response.json()

    async def forward(self, text: str) -> Optional[Location]:
        """Address text -> first matching coordinate, or None."""
        data = await self._get("/search", {"q": text, "limit": 1})
        if not data:
            logger.info("No geocoding match for %r", text)
            return None
        try:
            hit = data[0]
            return Location(latitude=float(hit["lat"]), longitude=float(hit["lon"]))
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise GeocodingError(f"unexpected geocoder payload: {data!r}") from exc

    async def reverse(self, location: Location) -> Optional[str]:
        """Coordinate -> display address, or None."""
        data = await self._get(
            "/reverse", {"lat": location.latitude, "lon": location.longitude}
        )
        if not isinstance(data, dict) or "error" in data:
            return None
        return data.get("display_name")
