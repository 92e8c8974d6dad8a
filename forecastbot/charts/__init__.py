"""Forecast chart rendering: series transform, canvas, fonts and renderer."""

from .canvas import Canvas
from .fonts import FontResource
from .renderer import (
    ABSOLUTE_HUMIDITY_PANELS,
    DAILY_PANELS,
    HOURLY_PANELS,
    ChartConfig,
    ChartRenderer,
    ChannelStyle,
    PanelSpec,
    render_forecast_chart,
)
from .transform import PlotPoint, PlotSeries, TimeAxis, ValueAxis, build_plot

__all__ = [
    "Canvas",
    "FontResource",
    "ABSOLUTE_HUMIDITY_PANELS",
    "DAILY_PANELS",
    "HOURLY_PANELS",
    "ChartConfig",
    "ChartRenderer",
    "ChannelStyle",
    "PanelSpec",
    "render_forecast_chart",
    "PlotPoint",
    "PlotSeries",
    "TimeAxis",
    "ValueAxis",
    "build_plot",
]
