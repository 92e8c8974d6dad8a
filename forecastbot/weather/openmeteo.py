"""
Open-Meteo API client.
Fetches hourly and daily weather forecasts and sun times for specified coordinates.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional, List, Dict, Any, Tuple

import aiohttp

from .series import (
    ForecastSeries,
    TEMPERATURE,
    APPARENT_TEMPERATURE,
    WET_BULB_TEMPERATURE,
    RELATIVE_HUMIDITY,
    PRECIPITATION_PROBABILITY,
    PRECIPITATION,
    WIND_SPEED,
    WIND_GUSTS,
    UV_INDEX,
    UV_INDEX_CLEAR_SKY,
    ABSOLUTE_HUMIDITY,
    TEMPERATURE_MIN,
    TEMPERATURE_MAX,
    APPARENT_TEMPERATURE_MIN,
    APPARENT_TEMPERATURE_MAX,
    PRECIPITATION_SUM,
    PRECIPITATION_PROBABILITY_MIN,
    PRECIPITATION_PROBABILITY_MEAN,
    PRECIPITATION_PROBABILITY_MAX,
    WIND_SPEED_MAX,
    WIND_GUSTS_MAX,
    UV_INDEX_MAX,
    UV_INDEX_CLEAR_SKY_MAX,
    absolute_humidity,
    wet_bulb_temperature,
)
from ..errors import FetchFailure

logger = logging.getLogger(__name__)

# Open-Meteo hourly variable -> channel name
HOURLY_VARIABLES = {
    "temperature_2m": TEMPERATURE,
    "apparent_temperature": APPARENT_TEMPERATURE,
    "relative_humidity_2m": RELATIVE_HUMIDITY,
    "precipitation_probability": PRECIPITATION_PROBABILITY,
    "precipitation": PRECIPITATION,
    "wind_speed_10m": WIND_SPEED,
    "wind_gusts_10m": WIND_GUSTS,
    "uv_index": UV_INDEX,
    "uv_index_clear_sky": UV_INDEX_CLEAR_SKY,
}

# Open-Meteo daily variable -> channel name
DAILY_VARIABLES = {
    "temperature_2m_min": TEMPERATURE_MIN,
    "temperature_2m_max": TEMPERATURE_MAX,
    "apparent_temperature_min": APPARENT_TEMPERATURE_MIN,
    "apparent_temperature_max": APPARENT_TEMPERATURE_MAX,
    "precipitation_sum": PRECIPITATION_SUM,
    "precipitation_probability_min": PRECIPITATION_PROBABILITY_MIN,
    "precipitation_probability_mean": PRECIPITATION_PROBABILITY_MEAN,
    "precipitation_probability_max": PRECIPITATION_PROBABILITY_MAX,
    "wind_speed_10m_max": WIND_SPEED_MAX,
    "wind_gusts_10m_max": WIND_GUSTS_MAX,
    "uv_index_max": UV_INDEX_MAX,
    "uv_index_clear_sky_max": UV_INDEX_CLEAR_SKY_MAX,
}


def _channel_values(values: List[Optional[float]]) -> List[float]:
    return [math.nan if v is None else float(v) for v in values]


class OpenMeteoClient:
    """Client for the Open-Meteo forecast API. No API key is required."""

    BASE_URL = "https://api.open-meteo.com/v1"

    def __init__(self, timeout_seconds: float = 15.0, session: Optional[aiohttp.ClientSession] = None):
        """
        Initialize Open-Meteo client.

        Args:
            timeout_seconds: Total timeout for one request
            session: Existing session to use instead of creating one
        """
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

    async def _get_forecast(
        self,
        latitude: float,
        longitude: float,
        params: List[Tuple[str, Any]],
    ) -> Dict[str, Any]:
        """
        Query the forecast endpoint.

        Raises:
            FetchFailure: On network errors or non-200 responses
        """
        session = await self._get_session()
        url = f"{self.BASE_URL}/forecast"
        params = params + [
            ("timeformat", "unixtime"),
            ("timezone", "auto"),
            ("latitude", latitude),
            ("longitude", longitude),
        ]

        try:
            async with session.get(url, params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error(
                        f"Open-Meteo API error: {response.status} - {error_text}"
                    )
                    raise FetchFailure()
                return await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Open-Meteo request failed: {e}")
            raise FetchFailure() from e

    async def get_hourly_forecast(
        self,
        latitude: float,
        longitude: float,
        hours: int = 48
    ) -> ForecastSeries:
        """
        Get hourly weather forecast for a location.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            hours: Length of the forecast horizon in hours

        Returns:
            Forecast series covering the requested horizon

        Raises:
            FetchFailure: On network errors, non-200 responses or malformed payloads
        """
        params = [("hourly", name) for name in HOURLY_VARIABLES]
        params += [("wind_speed_unit", "ms"), ("forecast_hours", hours)]
        data = await self._get_forecast(latitude, longitude, params)

        try:
            return self._parse_forecast_response(data, hours)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Open-Meteo response could not be parsed: {e}")
            raise FetchFailure() from e

    async def get_daily_forecast(
        self,
        latitude: float,
        longitude: float,
        days: int = 14
    ) -> ForecastSeries:
        """
        Get daily aggregates (minimum, maximum, sums) for a location.

        Args:
            latitude: Location latitude
            longitude: Location longitude
            days: Number of days, today included

        Returns:
            Forecast series with one sample per local day

        Raises:
            FetchFailure: On network errors, non-200 responses or malformed payloads
        """
        params = [("daily", name) for name in DAILY_VARIABLES]
        params += [("wind_speed_unit", "ms"), ("forecast_days", days)]
        data = await self._get_forecast(latitude, longitude, params)

        try:
            return self._parse_daily_response(data, days)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Open-Meteo daily response could not be parsed: {e}")
            raise FetchFailure() from e

    async def get_sun_times(
        self,
        latitude: float,
        longitude: float,
        now: Optional[datetime] = None
    ) -> Tuple[datetime, datetime]:
        """
        Get the next sunrise and the next sunset for a location.

        Returns:
            (sunrise, sunset) in the location's local time

        Raises:
            FetchFailure: On network errors, malformed payloads, or when the sun
                neither rises nor sets in the next two days (polar day or night)
        """
        params = [("daily", "sunrise"), ("daily", "sunset"), ("forecast_days", 2)]
        data = await self._get_forecast(latitude, longitude, params)

        try:
            return self._parse_sun_response(data, now or datetime.now(timezone.utc))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Open-Meteo sun response could not be parsed: {e}")
            raise FetchFailure() from e

    def _parse_forecast_response(self, data: Dict[str, Any], hours: int) -> ForecastSeries:
        """
        Parse an Open-Meteo hourly response into a forecast series.

        Args:
            data: Raw API response
            hours: Requested horizon in hours

        Returns:
            Forecast series with one channel per hourly variable, plus wet bulb
            temperature and absolute humidity
        """
        hourly = data["hourly"]
        times: List[int] = hourly["time"]
        offset = int(data.get("utc_offset_seconds", 0))

        channels: Dict[str, List[float]] = {}
        for variable, channel in HOURLY_VARIABLES.items():
            values = hourly.get(variable)
            if values is None:
                continue
            channels[channel] = _channel_values(values)

        temps = channels.get(TEMPERATURE)
        humidity = channels.get(RELATIVE_HUMIDITY)
        if temps is not None and humidity is not None:
            pairs = [
                (t, h) if not (math.isnan(t) or math.isnan(h)) else None
                for t, h in zip(temps, humidity)
            ]
            channels[WET_BULB_TEMPERATURE] = [
                wet_bulb_temperature(*pair) if pair else math.nan for pair in pairs
            ]
            channels[ABSOLUTE_HUMIDITY] = [
                absolute_humidity(*pair) if pair else math.nan for pair in pairs
            ]

        timestamps = tuple(datetime.fromtimestamp(t, tz=timezone.utc) for t in times)
        start = timestamps[0] if timestamps else datetime.now(timezone.utc).replace(
            minute=0, second=0, microsecond=0
        )
        series = ForecastSeries.from_hourly(
            start=start,
            channels=channels,
            utc_offset_seconds=offset,
            horizon_hours=hours,
        )
        if series.timestamps != timestamps:
            raise ValueError("hourly timestamps are not evenly spaced")
        logger.debug(f"Parsed {len(series)} hourly samples, offset {offset}s")
        return series

    def _parse_daily_response(self, data: Dict[str, Any], days: int) -> ForecastSeries:
        """
        Parse an Open-Meteo daily response.

        Daily times are local midnights, so they are not evenly spaced in UTC
        across a daylight saving change.
        """
        daily = data["daily"]
        offset = int(data.get("utc_offset_seconds", 0))
        timestamps = tuple(datetime.fromtimestamp(t, tz=timezone.utc) for t in daily["time"])
        if not timestamps:
            raise ValueError("daily response has no days")

        channels = {
            channel: _channel_values(daily[variable])
            for variable, channel in DAILY_VARIABLES.items()
            if daily.get(variable) is not None
        }
        series = ForecastSeries(
            start=timestamps[0],
            interval=timedelta(days=1),
            timestamps=timestamps,
            channels=channels,
            horizon=timedelta(days=days),
            utc_offset_seconds=offset,
        )
        logger.debug(f"Parsed {len(series)} daily samples, offset {offset}s")
        return series

    def _parse_sun_response(self, data: Dict[str, Any], now: datetime) -> Tuple[datetime, datetime]:
        daily = data["daily"]
        local = timezone(timedelta(seconds=int(data.get("utc_offset_seconds", 0))))
        cutoff = now.timestamp()

        def next_event(name: str) -> datetime:
            upcoming = [t for t in daily[name] if t is not None and t > cutoff]
            if not upcoming:
                raise ValueError(f"no upcoming {name}")
            return datetime.fromtimestamp(min(upcoming), tz=local)

        return next_event("sunrise"), next_event("sunset")
