"""Weather API clients and forecast series."""

from .openmeteo import OpenMeteoClient
from .geocoding import GeocodingClient, GeocodingResult, parse_coordinates
from .series import ForecastSeries, absolute_humidity, wet_bulb_temperature

__all__ = [
    "OpenMeteoClient",
    "GeocodingClient",
    "GeocodingResult",
    "parse_coordinates",
    "ForecastSeries",
    "absolute_humidity",
    "wet_bulb_temperature",
]
