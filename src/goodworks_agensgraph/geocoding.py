"""Google Geocoding API adapter."""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .exceptions import ExternalDependencyError
from .models import LocationDetails

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

# Google address component type -> LocationDetails field
COMPONENT_FIELDS = {
    "locality": "city",
    "administrative_area_level_1": "state",
    "country": "country",
    "postal_code": "zip",
}

UNKNOWN = "Unknown"


def _check_status(payload: Dict[str, Any]) -> None:
    status = payload.get("status")
    if status != "OK":
        raise ExternalDependencyError(
            f"Google Maps API failed to retrieve valid location data. Status: {status}"
        )


def parse_location_details(payload: Dict[str, Any]) -> LocationDetails:
    """Extract city, state, country and zip from a reverse-geocoding response.

    Results are scanned in order and the first value seen for each component
    wins. Scanning stops once all four are known; anything never seen stays
    ``"Unknown"``.
    """
    _check_status(payload)

    found = {name: UNKNOWN for name in COMPONENT_FIELDS.values()}
    for result in payload.get("results", []):
        for component in result.get("address_components", []):
            for component_type in component.get("types", []):
                name = COMPONENT_FIELDS.get(component_type)
                if name and found[name] == UNKNOWN:
                    found[name] = component.get("long_name") or UNKNOWN
        if UNKNOWN not in found.values():
            break

    return LocationDetails(**found)


def parse_coordinates(payload: Dict[str, Any]) -> Tuple[float, float]:
    """Latitude and longitude of the first forward-geocoding result."""
    _check_status(payload)
    results = payload.get("results") or []
    if not results:
        raise ExternalDependencyError("Unable to geocode the address: no results")
    location = results[0]["geometry"]["location"]
    return float(location["lat"]), float(location["lng"])


class GoogleGeocoder:
    """Reverse and forward geocoding against the Google Geocoding API.

    Transport failures are retried a few times; an error status from the API
    is not. Both surface as ``ExternalDependencyError``.

    Args:
        api_key: Google Maps API key.
        session: Optional shared ``aiohttp.ClientSession``. When omitted a
            session is opened per request.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ):
        if not api_key:
            raise ValueError("Google API key not configured.")
        self.api_key = api_key
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
        reraise=True,
    )
    async def _get(self, params: Dict[str, str]) -> Dict[str, Any]:
        params = {**params, "key": self.api_key}
        if self.session is not None:
            async with self.session.get(GEOCODE_URL, params=params, timeout=self.timeout) as response:
                return await self._read(response)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(GEOCODE_URL, params=params) as response:
                return await self._read(response)

    @staticmethod
    async def _read(response: aiohttp.ClientResponse) -> Dict[str, Any]:
        if response.status != 200:
            raise ExternalDependencyError(
                f"Failed to retrieve location data. Status: {response.status}"
            )
        return await response.json(content_type=None)

    async def _request(self, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            return await self._get(params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Geocoding request failed: {e}")
            raise ExternalDependencyError(f"Geocoding request failed: {e}") from e

    async def resolve(self, latitude: float, longitude: float) -> LocationDetails:
        """Reverse-geocode a point into city, state, country and zip."""
        logger.info(f"Reverse geocoding ({latitude}, {longitude})")
        payload = await self._request({"latlng": f"{latitude},{longitude}"})
        return parse_location_details(payload)

    async def coordinates(self, address: str) -> Tuple[float, float]:
        """Forward-geocode an address into (latitude, longitude)."""
        logger.info(f"Geocoding address '{address}'")
        payload = await self._request({"address": address})
        return parse_coordinates(payload)
