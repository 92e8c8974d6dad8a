"""
Place name lookup through the Open-Meteo geocoding API, and parsing of
user supplied coordinates.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any, Tuple

import aiohttp

from ..database.models import Location
from ..errors import FetchFailure, GeocodingError, InvalidCoordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodingResult:
    """One geocoding match (see https://open-meteo.com/en/docs/geocoding-api)."""
    name: str
    latitude: float
    longitude: float
    feature_code: str
    country: Optional[str] = None
    country_code: Optional[str] = None
    population: Optional[int] = None
    elevation: Optional[float] = None

    def to_location(self) -> Location:
        return Location(
            latitude=self.latitude,
            longitude=self.longitude,
            place_name=self.name,
            country=self.country,
            feature_code=self.feature_code,
        )


class GeocodingClient:
    """Client for the Open-Meteo geocoding API."""

    BASE_URL = "https://geocoding-api.open-meteo.com/v1"

    def __init__(self, timeout_seconds: float = 15.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def search(self, place_name: str) -> GeocodingResult:
        """
        Resolve a place name to its best match.

        Args:
            place_name: Free text place name, e.g. "Paris"

        Returns:
            The first geocoding result

        Raises:
            GeocodingError: If nothing matched
            FetchFailure: On network errors or malformed responses
        """
        place_name = place_name.strip()
        if not place_name:
            raise GeocodingError("Please provide a place name.")

        session = await self._get_session()
        params = {"name": place_name, "count": 1, "format": "json"}
        try:
            async with session.get(f"{self.BASE_URL}/search", params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(f"Geocoding API error: {response.status} - {error_text}")
                    raise FetchFailure("Could not look up that place right now. Please try again later.")
                data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Geocoding request failed: {e}")
            raise FetchFailure("Could not look up that place right now. Please try again later.") from e

        return self._parse_search_response(data, place_name)

    def _parse_search_response(self, data: Dict[str, Any], place_name: str) -> GeocodingResult:
        results = data.get("results") or []
        if not results:
            raise GeocodingError(f"No geocoding results for \"{place_name}\".")
        first = results[0]
        try:
            return GeocodingResult(
                name=first["name"],
                latitude=float(first["latitude"]),
                longitude=float(first["longitude"]),
                feature_code=first.get("feature_code") or "",
                country=first.get("country"),
                country_code=first.get("country_code"),
                population=first.get("population"),
                elevation=first.get("elevation"),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected geocoding payload: {e}")
            raise FetchFailure("Could not look up that place right now. Please try again later.") from e


_DECIMAL_RE = re.compile(
    r"^\s*([+-]?\d+(?:\.\d+)?)\s*[,;\s]\s*([+-]?\d+(?:\.\d+)?)\s*$"
)
_DMS_PART = r"(\d+(?:\.\d+)?)\s*°\s*(?:(\d+(?:\.\d+)?)\s*['′]\s*)?(?:(\d+(?:\.\d+)?)\s*(?:\"|″|'')\s*)?([NSEW])"
_DMS_RE = re.compile(rf"^\s*{_DMS_PART}\s*,?\s*{_DMS_PART}\s*$", re.IGNORECASE)


def _dms_to_decimal(degrees: str, minutes: Optional[str], seconds: Optional[str], hemisphere: str) -> Tuple[float, str]:
    value = float(degrees) + float(minutes or 0) / 60 + float(seconds or 0) / 3600
    hemisphere = hemisphere.upper()
    if hemisphere in ("S", "W"):
        value = -value
    return value, hemisphere


def parse_coordinates(text: str) -> Tuple[float, float]:
    """
    Parse "latitude, longitude" in decimal or degree/minute/second form.

    Examples:
        "48.85, 2.35"
        "48°51'N 2°21'E"
        "1°2'3\"N 4°5'6\"E"

    Returns:
        (latitude, longitude)

    Raises:
        InvalidCoordinates: If the text cannot be parsed or is out of range
    """
    match = _DECIMAL_RE.match(text or "")
    if match:
        latitude, longitude = float(match.group(1)), float(match.group(2))
    else:
        match = _DMS_RE.match(text or "")
        if not match:
            raise InvalidCoordinates(
                "Could not read coordinates. Use e.g. \"48.85, 2.35\" or \"48°51'N 2°21'E\"."
            )
        first, first_hemisphere = _dms_to_decimal(*match.group(1, 2, 3, 4))
        second, second_hemisphere = _dms_to_decimal(*match.group(5, 6, 7, 8))
        if first_hemisphere in ("N", "S") and second_hemisphere in ("E", "W"):
            latitude, longitude = first, second
        elif first_hemisphere in ("E", "W") and second_hemisphere in ("N", "S"):
            latitude, longitude = second, first
        else:
            raise InvalidCoordinates("Coordinates need one of N/S and one of E/W.")

    if not -90 <= latitude <= 90:
        raise InvalidCoordinates(f"Latitude must be between -90 and 90, got {latitude}.")
    if not -180 <= longitude <= 180:
        raise InvalidCoordinates(f"Longitude must be between -180 and 180, got {longitude}.")
    return latitude, longitude
