from __future__ import annotations

import asyncio
import math
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from forecastbot.errors import FetchFailure, GeocodingError, InvalidCoordinates
from forecastbot.weather import (
    GeocodingClient,
    OpenMeteoClient,
    absolute_humidity,
    parse_coordinates,
    wet_bulb_temperature,
)

START = int(datetime(2024, 5, 1, tzinfo=timezone.utc).timestamp())


class FakeResponse:
    def __init__(self, status=200, payload=None):
        self.status = status
        self.payload = payload

    async def text(self):
        return "error"

    async def json(self):
        return self.payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FailingRequest:
    async def __aenter__(self):
        raise aiohttp.ClientConnectionError("connection refused")

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    closed = False

    def __init__(self, response=None):
        self.response = response
        self.requests = []

    def get(self, url, params=None):
        self.requests.append((url, params))
        if self.response is None:
            return FailingRequest()
        return self.response


def forecast_payload(hours: int = 3):
    return {
        "utc_offset_seconds": 7200,
        "hourly": {
            "time": [START + 3600 * i for i in range(hours)],
            "temperature_2m": [20.0, 21.0, None][:hours],
            "relative_humidity_2m": [50.0, 55.0, 60.0][:hours],
            "uv_index": [0.0, 1.5, 3.0][:hours],
        },
    }


# ----------------------------------------------------------------------------
# coordinates
# ----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "text, expected",
    [
        ("48.85, 2.35", (48.85, 2.35)),
        ("-33.9 18.4", (-33.9, 18.4)),
        ("48°51'N 2°21'E", (48.85, 2.35)),
        ("2°21'E, 48°51'N", (48.85, 2.35)),
        ("33°54'S 18°24'W", (-33.9, -18.4)),
    ],
)
def test_parse_coordinates(text, expected) -> None:
    latitude, longitude = parse_coordinates(text)

    assert latitude == pytest.approx(expected[0])
    assert longitude == pytest.approx(expected[1])


@pytest.mark.parametrize("text", ["", "Paris", "91, 0", "10, 200", "48°N 2°N"])
def test_parse_coordinates_rejects(text) -> None:
    with pytest.raises(InvalidCoordinates):
        parse_coordinates(text)


# ----------------------------------------------------------------------------
# Open-Meteo forecast
# ----------------------------------------------------------------------------

def test_parse_forecast_response() -> None:
    client = OpenMeteoClient()

    series = client._parse_forecast_response(forecast_payload(), hours=48)

    assert series.start == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert len(series) == 3
    assert series.horizon == timedelta(hours=48)
    assert series.utc_offset_seconds == 7200
    assert series.channel("temperature")[:2] == (20.0, 21.0)
    assert math.isnan(series.channel("temperature")[2])
    assert all(math.isnan(v) for v in series.channel("wind_speed"))


def test_wet_bulb_is_derived() -> None:
    client = OpenMeteoClient()

    series = client._parse_forecast_response(forecast_payload(), hours=3)

    wet_bulb = series.channel("wet_bulb_temperature")
    assert wet_bulb[0] == pytest.approx(wet_bulb_temperature(20.0, 50.0))
    assert wet_bulb[0] < 20.0
    assert math.isnan(wet_bulb[2])


def test_wet_bulb_reference_value() -> None:
    # Stull (2011): 20 °C at 50 % is about 13.7 °C wet bulb
    assert wet_bulb_temperature(20.0, 50.0) == pytest.approx(13.7, abs=0.1)


def test_uneven_timestamps_are_rejected() -> None:
    payload = forecast_payload()
    payload["hourly"]["time"][2] += 1800

    with pytest.raises(ValueError):
        OpenMeteoClient()._parse_forecast_response(payload, hours=3)


def test_forecast_request() -> None:
    session = FakeSession(FakeResponse(payload=forecast_payload()))
    client = OpenMeteoClient(session=session)

    series = asyncio.run(client.get_hourly_forecast(48.85, 2.35, hours=24))

    assert len(series) == 3
    url, params = session.requests[0]
    assert url.endswith("/forecast")
    assert ("forecast_hours", 24) in params
    assert ("hourly", "temperature_2m") in params


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(),
        FakeSession(FakeResponse(status=500)),
        FakeSession(FakeResponse(payload={"error": True})),
    ],
)
def test_forecast_failures_become_fetch_failure(session) -> None:
    client = OpenMeteoClient(session=session)

    with pytest.raises(FetchFailure):
        asyncio.run(client.get_hourly_forecast(48.85, 2.35))


def test_absolute_humidity_is_derived() -> None:
    series = OpenMeteoClient()._parse_forecast_response(forecast_payload(), hours=3)

    values = series.channel("absolute_humidity")
    assert values[0] == pytest.approx(absolute_humidity(20.0, 50.0))
    assert values[1] > values[0]
    assert math.isnan(values[2])


def test_absolute_humidity_reference_value() -> None:
    # saturated air at 30 °C holds about 30.4 g/m³
    assert absolute_humidity(30.0, 100.0) == pytest.approx(30.4, abs=0.1)
    assert absolute_humidity(30.0, 50.0) == pytest.approx(15.2, abs=0.1)


# Local midnights in Paris around the switch to summer time
DAILY_TIMES = [
    int(datetime(2024, 3, 29, 23, tzinfo=timezone.utc).timestamp()),
    int(datetime(2024, 3, 30, 23, tzinfo=timezone.utc).timestamp()),
    int(datetime(2024, 3, 31, 22, tzinfo=timezone.utc).timestamp()),
]


def daily_payload():
    return {
        "utc_offset_seconds": 7200,
        "daily": {
            "time": DAILY_TIMES,
            "temperature_2m_min": [3.1, 4.0, None],
            "temperature_2m_max": [11.5, 14.2, 16.0],
            "precipitation_sum": [0.0, 1.2, 4.8],
            "uv_index_clear_sky_max": [3.5, 3.6, 3.8],
        },
    }


def test_parse_daily_response() -> None:
    series = OpenMeteoClient()._parse_daily_response(daily_payload(), days=3)

    assert series.start == datetime(2024, 3, 29, 23, tzinfo=timezone.utc)
    assert series.interval == timedelta(days=1)
    assert series.horizon == timedelta(days=3)
    assert [t - series.start for t in series.timestamps] == [
        timedelta(0), timedelta(hours=24), timedelta(hours=47)
    ]
    assert series.channel("temperature_max") == (11.5, 14.2, 16.0)
    assert math.isnan(series.channel("temperature_min")[2])
    assert all(math.isnan(v) for v in series.channel("wind_gusts_max"))


def test_daily_request() -> None:
    session = FakeSession(FakeResponse(payload=daily_payload()))
    client = OpenMeteoClient(session=session)

    series = asyncio.run(client.get_daily_forecast(48.85, 2.35))

    assert len(series) == 3
    _, params = session.requests[0]
    assert ("forecast_days", 14) in params
    assert ("daily", "temperature_2m_min") in params
    assert ("daily", "uv_index_clear_sky_max") in params
    assert ("wind_speed_unit", "ms") in params
    assert ("timezone", "auto") in params


def test_daily_response_without_days_is_a_fetch_failure() -> None:
    payload = {"daily": {"time": []}}
    client = OpenMeteoClient(session=FakeSession(FakeResponse(payload=payload)))

    with pytest.raises(FetchFailure):
        asyncio.run(client.get_daily_forecast(48.85, 2.35))


def sun_payload():
    day = int(datetime(2024, 5, 1, tzinfo=timezone.utc).timestamp())
    return {
        "utc_offset_seconds": 7200,
        "daily": {
            "time": [day, day + 86400],
            "sunrise": [day + 4 * 3600 + 30 * 60, day + 86400 + 4 * 3600 + 28 * 60],
            "sunset": [day + 19 * 3600 + 10 * 60, day + 86400 + 19 * 3600 + 12 * 60],
        },
    }


def test_sun_times_pick_next_events() -> None:
    session = FakeSession(FakeResponse(payload=sun_payload()))
    client = OpenMeteoClient(session=session)
    # after today's sunrise, before today's sunset
    now = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)

    sunrise, sunset = asyncio.run(client.get_sun_times(48.85, 2.35, now=now))

    assert (sunrise.day, sunrise.hour, sunrise.minute) == (2, 6, 28)
    assert (sunset.day, sunset.hour, sunset.minute) == (1, 21, 10)
    assert sunrise.utcoffset() == timedelta(hours=2)
    assert ("forecast_days", 2) in session.requests[0][1]


def test_sun_times_polar_night() -> None:
    payload = sun_payload()
    payload["daily"]["sunrise"] = [None, None]
    client = OpenMeteoClient(session=FakeSession(FakeResponse(payload=payload)))

    with pytest.raises(FetchFailure):
        asyncio.run(client.get_sun_times(78.2, 15.6))


# ----------------------------------------------------------------------------
# geocoding
# ----------------------------------------------------------------------------

def test_geocoding_search() -> None:
    payload = {
        "results": [
            {
                "name": "Paris",
                "latitude": 48.85341,
                "longitude": 2.3488,
                "feature_code": "PPLC",
                "country": "France",
                "country_code": "FR",
                "population": 2138551,
            }
        ]
    }
    client = GeocodingClient(session=FakeSession(FakeResponse(payload=payload)))

    result = asyncio.run(client.search("  Paris "))

    assert result.name == "Paris"
    assert result.population == 2138551
    location = result.to_location()
    assert location.label == "Paris, France"
    assert location.feature_code == "PPLC"


def test_geocoding_no_results() -> None:
    client = GeocodingClient(session=FakeSession(FakeResponse(payload={})))

    with pytest.raises(GeocodingError, match="Atlantis"):
        asyncio.run(client.search("Atlantis"))


def test_geocoding_empty_name() -> None:
    with pytest.raises(GeocodingError):
        asyncio.run(GeocodingClient(session=FakeSession()).search("   "))


def test_geocoding_network_error() -> None:
    with pytest.raises(FetchFailure):
        asyncio.run(GeocodingClient(session=FakeSession()).search("Paris"))
