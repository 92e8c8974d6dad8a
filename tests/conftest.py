from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from forecastbot.charts import FontResource
from forecastbot.database import Database
from forecastbot.weather import ForecastSeries


@pytest.fixture(scope="session")
def font() -> FontResource:
    return FontResource.load(size=13)


@pytest.fixture
def with_db(tmp_path):
    """Run an async scenario against a fresh, connected database."""

    def runner(scenario):
        async def main():
            db = Database(str(tmp_path / "test.db"))
            await db.connect()
            try:
                return await scenario(db)
            finally:
                await db.close()

        return asyncio.run(main())

    return runner


@pytest.fixture
def paris_series() -> ForecastSeries:
    """48 hourly temperatures rising from 5 to 15 °C and back."""
    temps = [5 + 10 * (1 - abs(i - 24) / 24) for i in range(48)]
    return ForecastSeries.from_hourly(
        start=datetime(2024, 5, 1, 0, tzinfo=timezone.utc),
        channels={"temperature": temps},
        utc_offset_seconds=7200,
    )


@pytest.fixture
def daily_series() -> ForecastSeries:
    """Fourteen days starting Wednesday 1 May 2024 at local midnight (UTC+2)."""
    start = datetime(2024, 4, 30, 22, tzinfo=timezone.utc)
    lows = [8.0 + i % 4 for i in range(14)]
    highs = [low + 9.0 for low in lows]
    return ForecastSeries(
        start=start,
        interval=timedelta(days=1),
        timestamps=[start + timedelta(days=i) for i in range(14)],
        channels={
            "temperature_min": lows,
            "temperature_max": highs,
            "apparent_temperature_min": [low - 2.0 for low in lows],
            "apparent_temperature_max": [high + 1.0 for high in highs],
            "precipitation_probability_max": [80.0] * 14,
            "precipitation_probability_mean": [40.0] * 14,
            "precipitation_probability_min": [10.0] * 14,
            "precipitation_sum": [0.0, 2.5, 7.0, 0.4] * 3 + [0.0, 1.0],
            "wind_speed_max": [4.0] * 14,
            "wind_gusts_max": [9.0] * 14,
            "uv_index_max": [4.0] * 14,
            "uv_index_clear_sky_max": [6.5] * 14,
        },
        horizon=timedelta(days=14),
        utc_offset_seconds=7200,
    )
