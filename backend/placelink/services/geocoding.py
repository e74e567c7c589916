"""Forward and reverse geocoding via OpenStreetMap Nominatim.

Nominatim is free and keyless but its usage policy is strict:
  - at most 1 request per second
  - a User-Agent identifying the application
https://operations.osmfoundation.org/policies/nominatim/

Every request goes through one shared RateLimiter, so any sequence of calls
(e.g. a forward lookup retried with a cleaned name) is spaced out without
callers having to remember to wait.
"""

import asyncio
import logging
import time
from typing import Any

import httpx

from placelink.config import settings
from placelink.core.metrics import geocode_requests_total, geocode_throttle_seconds
from placelink.schemas.place import Coordinates, PlaceInfo

logger = logging.getLogger(__name__)

UNNAMED_PLACE = "Unnamed Place"

# Address keys that name the feature itself, in preference order
_REVERSE_NAME_KEYS = ("amenity", "building", "shop", "tourism", "restaurant", "cafe", "pub")
_FORWARD_NAME_KEYS = ("amenity", "building")


async def delay(seconds: float):
    """Pause between geocoding calls."""
    await asyncio.sleep(seconds)


class RateLimiter:
    """Spaces calls at least min_interval seconds apart.

    clock and sleep are injectable so tests can run on a fake timeline.
    """

    def __init__(self, min_interval: float, clock=time.monotonic, sleep=delay):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_started: float | None = None
        self._lock: asyncio.Lock | None = None
        self._loop = None

    def _get_lock(self) -> asyncio.Lock:
        current_loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not current_loop:
            self._lock = asyncio.Lock()
            self._loop = current_loop
        return self._lock

    async def wait(self) -> float:
        """Block until the next call may start; returns seconds waited."""
        async with self._get_lock():
            waited = 0.0
            if self._last_started is not None:
                remaining = self.min_interval - (self._clock() - self._last_started)
                if remaining > 0:
                    await self._sleep(remaining)
                    waited = remaining
            self._last_started = self._clock()
            return waited


_rate_limiter = RateLimiter(settings.NOMINATIM_MIN_INTERVAL)


def _headers() -> dict[str, str]:
    headers = {"User-Agent": settings.NOMINATIM_USER_AGENT}
    if settings.NOMINATIM_REFERER:
        headers["Referer"] = settings.NOMINATIM_REFERER
    return headers


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.NOMINATIM_BASE_URL,
        timeout=settings.NOMINATIM_TIMEOUT,
        headers=_headers(),
    )


async def _throttled_get(kind: str, path: str, params: dict[str, Any]) -> Any | None:
    """GET a Nominatim endpoint under the global rate limit.

    Returns the decoded JSON, or None on any failure (logged).
    """
    waited = await _rate_limiter.wait()
    geocode_throttle_seconds.observe(waited)

    try:
        async with _build_client() as client:
            resp = await client.get(path, params=params)
    except Exception as e:
        logger.warning("Nominatim %s request failed: %s", kind, e)
        geocode_requests_total.labels(kind=kind, status="error").inc()
        return None

    if not resp.is_success:
        logger.error("Nominatim API error: %s %s", resp.status_code, resp.reason_phrase)
        geocode_requests_total.labels(kind=kind, status=str(resp.status_code)).inc()
        return None

    try:
        data = resp.json()
    except ValueError as e:
        logger.warning("Nominatim %s returned invalid JSON: %s", kind, e)
        geocode_requests_total.labels(kind=kind, status="invalid_json").inc()
        return None

    geocode_requests_total.labels(kind=kind, status="ok").inc()
    return data


def format_address(address: dict[str, Any] | None, display_name: str) -> str:
    """Assemble 'house road, suburb, city, postcode, country' from parts present.

    Falls back to Nominatim's display_name when no structured part exists.
    """
    parts: list[str] = []
    if address:
        road = address.get("road")
        house_number = address.get("house_number")
        if house_number and road:
            parts.append(f"{house_number} {road}")
        elif road:
            parts.append(road)

        if address.get("suburb"):
            parts.append(address["suburb"])

        locality = _locality(address)
        if locality:
            parts.append(locality)

        if address.get("postcode"):
            parts.append(address["postcode"])

        if address.get("country"):
            parts.append(address["country"])

    return ", ".join(parts) if parts else display_name


def _locality(address: dict[str, Any] | None) -> str | None:
    if not address:
        return None
    return address.get("city") or address.get("town") or address.get("village")


def _place_from_result(result: dict[str, Any], name: str) -> PlaceInfo | None:
    try:
        lat = float(result["lat"])
        lng = float(result["lon"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Nominatim result without usable coordinates: %r", result)
        return None

    address = result.get("address") or {}
    display_name = result.get("display_name") or ""
    return PlaceInfo(
        name=name,
        address=format_address(address, display_name),
        display_name=display_name,
        lat=lat,
        lng=lng,
        place_type=result.get("type"),
        city=_locality(address),
        country=address.get("country"),
    )


def _pick_name(result: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    if result.get("name"):
        return result["name"]
    address = result.get("address") or {}
    for key in keys:
        if address.get(key):
            return address[key]
    return None


async def reverse_geocode(coordinates: Coordinates) -> PlaceInfo | None:
    """Look up the address and name at a coordinate (deepest zoom)."""
    data = await _throttled_get(
        "reverse",
        "/reverse",
        {
            "lat": str(coordinates.lat),
            "lon": str(coordinates.lng),
            "format": "json",
            "addressdetails": "1",
            "zoom": "18",
        },
    )
    if not isinstance(data, dict) or not data:
        return None
    if "error" in data:
        logger.info(
            "Nominatim reverse found nothing at %s,%s: %s",
            coordinates.lat,
            coordinates.lng,
            data["error"],
        )
        return None

    name = _pick_name(data, _REVERSE_NAME_KEYS) or UNNAMED_PLACE
    return _place_from_result(data, name)


async def forward_geocode(query: str) -> PlaceInfo | None:
    """Resolve a free-text address or place name to its best match."""
    if not query or not query.strip():
        return None

    data = await _throttled_get(
        "forward",
        "/search",
        {"q": query, "format": "json", "addressdetails": "1", "limit": "1"},
    )
    if not isinstance(data, list) or not data:
        logger.warning("No geocoding results found for: %s", query)
        return None

    result = data[0]
    name = _pick_name(result, _FORWARD_NAME_KEYS) or query.split(",")[0].strip()
    return _place_from_result(result, name)
