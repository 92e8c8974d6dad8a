"""
Turns a forecast series into drawable plot series: column mapping for the
time axis, value axis scaling with "nice" ticks, and per-column averaging
when there are more samples than pixel columns.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from ..weather.series import ForecastSeries

# Hour intervals tried for time axis ticks, smallest first
TIME_TICK_HOURS = (1, 2, 3, 6, 12, 24, 48, 72, 168)

# Day start labels, indexed by datetime.weekday(); independent of the process locale
WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_EPSILON = 1e-9
_ONE_MICROSECOND = timedelta(microseconds=1)


@dataclass(frozen=True)
class PlotPoint:
    """Average of `count` samples that fall into pixel column `column`."""
    column: int
    value: float
    count: int


@dataclass(frozen=True)
class ValueAxis:
    low: float
    high: float
    step: float
    ticks: Tuple[float, ...]

    @property
    def span(self) -> float:
        return self.high - self.low


@dataclass(frozen=True)
class TimeTick:
    time: datetime
    column: int
    label: str
    is_day_start: bool


@dataclass(frozen=True)
class TimeAxis:
    start: datetime
    end: datetime
    width: int
    interval_hours: int
    ticks: Tuple[TimeTick, ...]

    @property
    def span(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class PlotSeries:
    """Render-ready data for one chart panel."""
    channels: Mapping[str, Tuple[PlotPoint, ...]]
    value_axis: ValueAxis
    time_axis: TimeAxis

    @property
    def is_empty(self) -> bool:
        return not any(self.channels.values())


def column_for_time(t: datetime, start: datetime, horizon: timedelta, width: int) -> int:
    """
    Map a time onto one of `width` pixel columns spanning [start, start + horizon).

    Exact integer arithmetic on microseconds, so sample i of n evenly spaced
    samples always lands in column floor(i * width / n).
    """
    if width <= 0:
        raise ValueError("width must be positive")
    total = horizon // _ONE_MICROSECOND
    if total <= 0:
        return 0
    offset = (t - start) // _ONE_MICROSECOND
    column = offset * width // total
    return min(max(column, 0), width - 1)


def downsample(
    timestamps: Sequence[datetime],
    values: Sequence[float],
    start: datetime,
    horizon: timedelta,
    width: int,
) -> Tuple[PlotPoint, ...]:
    """
    Average samples that share a pixel column.

    Each finite sample is added to exactly one column; missing (NaN) samples
    are skipped. The result is ordered by column.

    Args:
        timestamps: Sample times
        values: Sample values, same length as timestamps
        start: Start of the time axis
        horizon: Length of the time axis
        width: Number of pixel columns available

    Returns:
        One point per non-empty column
    """
    if len(timestamps) != len(values):
        raise ValueError("timestamps and values differ in length")

    buckets: Dict[int, list] = {}
    for t, v in zip(timestamps, values):
        if v is None or math.isnan(v):
            continue
        column = column_for_time(t, start, horizon, width)
        bucket = buckets.setdefault(column, [0.0, 0])
        bucket[0] += v
        bucket[1] += 1

    return tuple(
        PlotPoint(column=column, value=total / count, count=count)
        for column, (total, count) in sorted(buckets.items())
    )


def nice_step(span: float, max_ticks: int) -> float:
    """
    Smallest step of the form {1, 2, 5} * 10^k that splits `span` into at
    most `max_ticks` intervals.
    """
    if span <= 0 or max_ticks < 1:
        return 1.0
    raw = span / max_ticks
    exponent = math.floor(math.log10(raw))
    for multiplier in (1, 2, 5, 10):
        step = multiplier * 10.0 ** exponent
        if span / step <= max_ticks + _EPSILON:
            return step
    return 10.0 ** (exponent + 1)


def _snap(value: float) -> float:
    return round(value, 9) + 0.0


def value_ticks(low: float, high: float, step: float) -> Tuple[float, ...]:
    """Multiples of step between low and high, inclusive."""
    if step <= 0:
        return ()
    ticks = []
    index = math.ceil(low / step - _EPSILON)
    while index * step <= high + _EPSILON:
        ticks.append(_snap(index * step))
        index += 1
    return tuple(ticks)


def scale_values(
    values: Iterable[float],
    min_span: float,
    max_ticks: int = 4,
    include_zero: bool = False,
    fixed_range: Optional[Tuple[float, float]] = None,
) -> ValueAxis:
    """
    Choose value axis bounds and ticks for a set of values.

    Spans narrower than `min_span` are widened to exactly `min_span`, so a
    flat forecast does not blow up into a chart of noise. Wider spans are
    rounded outwards to the tick step.

    Args:
        values: Values from every channel drawn against the axis
        min_span: Smallest allowed axis span
        max_ticks: Most tick intervals the axis may show
        include_zero: Whether the axis must reach zero (amounts, speeds)
        fixed_range: Bounds to use regardless of the data (percentages)

    Returns:
        The value axis
    """
    max_ticks = max(1, max_ticks)

    if fixed_range is not None:
        low, high = fixed_range
        step = nice_step(high - low, max_ticks)
        return ValueAxis(low, high, step, value_ticks(low, high, step))

    finite = [v for v in values if v is not None and not math.isnan(v)]
    if finite:
        lo, hi = min(finite), max(finite)
    else:
        lo = hi = 0.0
    if include_zero:
        lo, hi = min(lo, 0.0), max(hi, 0.0)

    if hi - lo < min_span:
        step = nice_step(min_span, max_ticks)
        if include_zero and lo == 0.0:
            low = 0.0
        elif include_zero and hi == 0.0:
            low = -min_span
        else:
            low = (lo + hi) / 2 - min_span / 2
            aligned = math.floor(low / step + _EPSILON) * step
            if aligned + min_span >= hi:
                low = aligned
        low = _snap(low)
        high = _snap(low + min_span)
        return ValueAxis(low, high, step, value_ticks(low, high, step))

    step = nice_step(hi - lo, max_ticks)
    while True:
        low = _snap(math.floor(lo / step + _EPSILON) * step)
        high = _snap(math.ceil(hi / step - _EPSILON) * step)
        if high <= low:
            high = _snap(low + step)
        if round((high - low) / step) <= max_ticks:
            break
        step = nice_step(high - low, max_ticks)
    return ValueAxis(low, high, step, value_ticks(low, high, step))


def row_for_value(value: float, axis: ValueAxis, top: int, height: int) -> float:
    """
    Map a value onto a pixel row inside [top, top + height - 1].

    Rows grow downwards, so the axis maximum maps to `top`.
    """
    if axis.span <= 0 or height <= 1:
        return float(top)
    fraction = (value - axis.low) / axis.span
    fraction = min(max(fraction, 0.0), 1.0)
    return top + (1.0 - fraction) * (height - 1)


def time_ticks(
    start: datetime,
    horizon: timedelta,
    width: int,
    utc_offset_seconds: int = 0,
    min_spacing_px: float = 24.0,
) -> Tuple[int, Tuple[TimeTick, ...]]:
    """
    Evenly spaced ticks on whole local hours.

    The interval is the smallest of TIME_TICK_HOURS that keeps ticks at least
    `min_spacing_px` apart, so labels never collide. Midnight ticks are
    flagged as day starts and labeled with the weekday.

    Returns:
        (interval in hours, ticks)
    """
    hours = horizon.total_seconds() / 3600
    if hours <= 0 or width <= 0:
        return 0, ()

    px_per_hour = width / hours
    interval = next(
        (h for h in TIME_TICK_HOURS if h * px_per_hour >= min_spacing_px),
        None,
    )
    if interval is None:
        return 0, ()

    local = timezone(timedelta(seconds=utc_offset_seconds))
    local_start = start.astimezone(local)
    end = start + horizon
    step = timedelta(hours=interval)

    if interval < 24:
        t = local_start.replace(hour=0, minute=0, second=0, microsecond=0)
    else:
        # whole days counted from the epoch so multi-day ticks stay put
        days = interval // 24
        midnight = local_start.replace(hour=0, minute=0, second=0, microsecond=0)
        epoch_day = (midnight.replace(tzinfo=timezone.utc) - datetime(1970, 1, 1, tzinfo=timezone.utc)).days
        t = midnight - timedelta(days=epoch_day % days)
    while t < local_start:
        t += step

    ticks = []
    while t < end:
        is_day_start = t.hour == 0 and t.minute == 0
        ticks.append(TimeTick(
            time=t,
            column=column_for_time(t, start, horizon, width),
            label=WEEKDAY_LABELS[t.weekday()] if is_day_start else f"{t.hour:02d}",
            is_day_start=is_day_start,
        ))
        t += step
    return interval, tuple(ticks)


def build_plot(
    series: ForecastSeries,
    channels: Sequence[str],
    width: int,
    min_span: float = 1.0,
    max_value_ticks: int = 4,
    include_zero: bool = False,
    fixed_range: Optional[Tuple[float, float]] = None,
    min_time_spacing_px: float = 24.0,
) -> PlotSeries:
    """
    Build the plot series for a group of channels sharing one value axis.

    The time axis always covers the whole series horizon, even when some
    channels have missing values.
    """
    points = {
        name: downsample(series.timestamps, series.channel(name), series.start, series.horizon, width)
        for name in channels
    }
    value_axis = scale_values(
        series.values(channels),
        min_span=min_span,
        max_ticks=max_value_ticks,
        include_zero=include_zero,
        fixed_range=fixed_range,
    )
    interval, ticks = time_ticks(
        series.start,
        series.horizon,
        width,
        series.utc_offset_seconds,
        min_time_spacing_px,
    )
    time_axis = TimeAxis(
        start=series.start,
        end=series.end,
        width=width,
        interval_hours=interval,
        ticks=ticks,
    )
    return PlotSeries(channels=points, value_axis=value_axis, time_axis=time_axis)
