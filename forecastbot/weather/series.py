"""
Forecast time series shared by the fetcher and the chart pipeline.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple


# Channel names as produced by the Open-Meteo client
TEMPERATURE = "temperature"
APPARENT_TEMPERATURE = "apparent_temperature"
WET_BULB_TEMPERATURE = "wet_bulb_temperature"
RELATIVE_HUMIDITY = "relative_humidity"
PRECIPITATION_PROBABILITY = "precipitation_probability"
PRECIPITATION = "precipitation"
WIND_SPEED = "wind_speed"
WIND_GUSTS = "wind_gusts"
UV_INDEX = "uv_index"
UV_INDEX_CLEAR_SKY = "uv_index_clear_sky"
ABSOLUTE_HUMIDITY = "absolute_humidity"

# Daily aggregates
TEMPERATURE_MIN = "temperature_min"
TEMPERATURE_MAX = "temperature_max"
APPARENT_TEMPERATURE_MIN = "apparent_temperature_min"
APPARENT_TEMPERATURE_MAX = "apparent_temperature_max"
PRECIPITATION_SUM = "precipitation_sum"
PRECIPITATION_PROBABILITY_MIN = "precipitation_probability_min"
PRECIPITATION_PROBABILITY_MEAN = "precipitation_probability_mean"
PRECIPITATION_PROBABILITY_MAX = "precipitation_probability_max"
WIND_SPEED_MAX = "wind_speed_max"
WIND_GUSTS_MAX = "wind_gusts_max"
UV_INDEX_MAX = "uv_index_max"
UV_INDEX_CLEAR_SKY_MAX = "uv_index_clear_sky_max"


@dataclass(frozen=True)
class ForecastSeries:
    """
    Forecast time series for one place.

    Attributes:
        start: Beginning of the forecast horizon (aware datetime)
        interval: Sampling interval, one hour for hourly data or one day for daily aggregates
        timestamps: Sample times, ascending
        channels: Channel name -> values, one per timestamp
        horizon: Full requested span; defaults to interval * len(timestamps)
        utc_offset_seconds: Offset of the forecast location's local time
    """
    start: datetime
    interval: timedelta
    timestamps: Tuple[datetime, ...] = ()
    channels: Mapping[str, Tuple[float, ...]] = field(default_factory=dict)
    horizon: Optional[timedelta] = None
    utc_offset_seconds: int = 0

    def __post_init__(self):
        if self.start.tzinfo is None:
            raise ValueError("start must be timezone aware")
        if self.interval <= timedelta(0):
            raise ValueError("interval must be positive")
        timestamps = tuple(self.timestamps)
        if any(b < a for a, b in zip(timestamps, timestamps[1:])):
            raise ValueError("timestamps must be ascending")
        channels = {}
        for name, values in self.channels.items():
            values = tuple(float("nan") if v is None else float(v) for v in values)
            if len(values) != len(timestamps):
                raise ValueError(
                    f"channel {name!r} has {len(values)} values for {len(timestamps)} timestamps"
                )
            channels[name] = values
        object.__setattr__(self, "timestamps", timestamps)
        object.__setattr__(self, "channels", MappingProxyType(channels))
        if self.horizon is None:
            object.__setattr__(self, "horizon", self.interval * len(timestamps))

    @classmethod
    def from_hourly(
        cls,
        start: datetime,
        channels: Dict[str, Sequence[float]],
        utc_offset_seconds: int = 0,
        horizon_hours: Optional[int] = None,
    ) -> "ForecastSeries":
        """Build an evenly spaced hourly series starting at start."""
        length = max((len(v) for v in channels.values()), default=0)
        timestamps = tuple(start + timedelta(hours=i) for i in range(length))
        return cls(
            start=start,
            interval=timedelta(hours=1),
            timestamps=timestamps,
            channels=channels,
            horizon=timedelta(hours=horizon_hours) if horizon_hours is not None else None,
            utc_offset_seconds=utc_offset_seconds,
        )

    @property
    def end(self) -> datetime:
        return self.start + self.horizon

    @property
    def local_timezone(self) -> timezone:
        return timezone(timedelta(seconds=self.utc_offset_seconds))

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def is_empty(self) -> bool:
        return len(self.timestamps) == 0

    def channel(self, name: str) -> Tuple[float, ...]:
        """Values of a channel; an absent channel reads as all-NaN."""
        if name in self.channels:
            return self.channels[name]
        return tuple(float("nan") for _ in self.timestamps)

    def values(self, names: Iterable[str]) -> Tuple[float, ...]:
        """All finite values across several channels."""
        return tuple(
            v for name in names for v in self.channel(name) if not math.isnan(v)
        )


def wet_bulb_temperature(temperature: float, humidity: float) -> float:
    """
    Wet bulb temperature in °C from dry bulb temperature in °C and relative
    humidity in percent (Stull, 2011).

    Only accurate for temperatures between -20 °C and 50 °C and humidities
    between 5 and 99 percent.
    """
    return (
        temperature * math.atan(0.151977 * math.sqrt(humidity + 8.313659))
        + math.atan(temperature + humidity)
        - math.atan(humidity - 1.676331)
        + 0.00391838 * humidity ** 1.5 * math.atan(0.023101 * humidity)
        - 4.686035
    )


def absolute_humidity(temperature: float, humidity: float) -> float:
    """
    Absolute humidity in g/m³ from temperature in °C and relative humidity in
    percent, using the Magnus approximation of saturation vapour pressure.
    """
    saturation_hpa = 6.112 * math.exp(17.67 * temperature / (temperature + 243.5))
    return saturation_hpa * humidity * 2.1674 / (temperature + 273.15)
