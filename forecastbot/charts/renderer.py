"""
Forecast chart renderer.

Draws one panel per channel group (temperatures, humidity, precipitation,
wind, UV) stacked vertically on a single canvas and encodes it as PNG.
Layers are drawn strictly in order across the whole canvas: background,
gridlines, curves, then tick labels and legends.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .canvas import Canvas, Color
from .fonts import FontResource
from .transform import WEEKDAY_LABELS, PlotPoint, PlotSeries, ValueAxis, build_plot, row_for_value
from ..errors import RenderError
from ..weather import series as channels
from ..weather.series import ForecastSeries

logger = logging.getLogger(__name__)

BAND_ALPHA = 0.35


@dataclass(frozen=True)
class ChannelStyle:
    """
    How one channel is drawn.

    style is one of:
        "line": anti-aliased polyline through the points
        "bars": one bar per point, from zero to the value
        "steps": one horizontal stroke per point, as wide as a bar
        "band": translucent area between this channel and `upper`
    """
    name: str
    label: str
    color: Color
    style: str = "line"
    upper: Optional[str] = None


@dataclass(frozen=True)
class PanelSpec:
    """
    One chart panel: channels drawn against a shared value axis.

    Attributes:
        title: Legend title, drawn before the channel labels
        channels: Channels in drawing order (later ones on top)
        min_span: Smallest value axis span
        include_zero: Axis always reaches zero
        fixed_range: Axis bounds independent of the data
    """
    title: str
    channels: Tuple[ChannelStyle, ...]
    min_span: float = 1.0
    include_zero: bool = False
    fixed_range: Optional[Tuple[float, float]] = None

    @property
    def channel_names(self) -> Tuple[str, ...]:
        names = []
        for style in self.channels:
            names.append(style.name)
            if style.upper:
                names.append(style.upper)
        return tuple(names)


HOURLY_PANELS: Tuple[PanelSpec, ...] = (
    PanelSpec(
        title="Temperature (°C):",
        channels=(
            ChannelStyle(channels.APPARENT_TEMPERATURE, "apparent", (0, 255, 33)),
            ChannelStyle(channels.WET_BULB_TEMPERATURE, "wet bulb", (0, 148, 255)),
            ChannelStyle(channels.TEMPERATURE, "dry bulb", (255, 0, 0)),
        ),
        min_span=8.0,
    ),
    PanelSpec(
        title="Relative humidity (%)",
        channels=(ChannelStyle(channels.RELATIVE_HUMIDITY, "", (0, 148, 255)),),
        fixed_range=(0.0, 100.0),
    ),
    PanelSpec(
        title="Probability of precipitation (%)",
        channels=(ChannelStyle(channels.PRECIPITATION_PROBABILITY, "", (0, 180, 255), "bars"),),
        fixed_range=(0.0, 100.0),
    ),
    PanelSpec(
        title="Precipitation (mm)",
        channels=(ChannelStyle(channels.PRECIPITATION, "", (0, 148, 255), "bars"),),
        min_span=1.0,
        include_zero=True,
    ),
    PanelSpec(
        title="Wind (m/s):",
        channels=(
            ChannelStyle(channels.WIND_GUSTS, "gusts", (70, 119, 67)),
            ChannelStyle(channels.WIND_SPEED, "speed", (0, 255, 33)),
        ),
        min_span=5.0,
        include_zero=True,
    ),
    PanelSpec(
        title="UV index:",
        channels=(
            ChannelStyle(channels.UV_INDEX_CLEAR_SKY, "clear sky", (118, 215, 234)),
            ChannelStyle(channels.UV_INDEX, "forecast", (255, 200, 33)),
        ),
        min_span=3.0,
        include_zero=True,
    ),
)

ABSOLUTE_HUMIDITY_PANELS: Tuple[PanelSpec, ...] = (
    PanelSpec(
        title="Absolute humidity (g/m³)",
        channels=(ChannelStyle(channels.ABSOLUTE_HUMIDITY, "", (0, 148, 255)),),
        min_span=4.0,
        include_zero=True,
    ),
)

DAILY_PANELS: Tuple[PanelSpec, ...] = (
    PanelSpec(
        title="Temperature (°C):",
        channels=(
            ChannelStyle(
                channels.APPARENT_TEMPERATURE_MIN, "apparent", (0, 170, 33), "band",
                upper=channels.APPARENT_TEMPERATURE_MAX,
            ),
            ChannelStyle(channels.TEMPERATURE_MIN, "min", (0, 148, 255)),
            ChannelStyle(channels.TEMPERATURE_MAX, "max", (255, 0, 0)),
        ),
        min_span=8.0,
    ),
    PanelSpec(
        title="Probability of precipitation (%):",
        channels=(
            ChannelStyle(channels.PRECIPITATION_PROBABILITY_MAX, "max", (0, 90, 255), "bars"),
            ChannelStyle(channels.PRECIPITATION_PROBABILITY_MEAN, "mean", (0, 180, 255), "bars"),
            ChannelStyle(channels.PRECIPITATION_PROBABILITY_MIN, "min", (100, 200, 255), "bars"),
        ),
        fixed_range=(0.0, 100.0),
    ),
    PanelSpec(
        title="Precipitation sum (mm)",
        channels=(ChannelStyle(channels.PRECIPITATION_SUM, "", (0, 148, 255), "bars"),),
        min_span=1.0,
        include_zero=True,
    ),
    PanelSpec(
        title="Max wind (m/s):",
        channels=(
            ChannelStyle(channels.WIND_GUSTS_MAX, "gusts", (70, 119, 67), "bars"),
            ChannelStyle(channels.WIND_SPEED_MAX, "speed", (0, 255, 33), "bars"),
        ),
        min_span=5.0,
        include_zero=True,
    ),
    PanelSpec(
        title="Max UV index:",
        channels=(
            ChannelStyle(channels.UV_INDEX_MAX, "forecast", (255, 200, 33), "bars"),
            ChannelStyle(channels.UV_INDEX_CLEAR_SKY_MAX, "clear sky", (118, 215, 234), "steps"),
        ),
        min_span=3.0,
        include_zero=True,
    ),
)


@dataclass(frozen=True)
class ChartConfig:
    """Layout and colours of a forecast chart."""
    width: int = 800
    panel_height: int = 170
    padding_left: int = 40
    padding_right: int = 14
    padding_top: int = 4
    padding_bottom: int = 20
    title_gap: int = 4
    max_value_ticks: int = 4
    background: Color = (24, 24, 28)
    grid_color: Color = (60, 60, 68)
    day_grid_color: Color = (120, 120, 132)
    axis_color: Color = (170, 170, 180)
    text_color: Color = (235, 235, 235)
    panels: Tuple[PanelSpec, ...] = field(default=HOURLY_PANELS)

    @property
    def plot_width(self) -> int:
        return self.width - self.padding_left - self.padding_right

    @property
    def height(self) -> int:
        return self.panel_height * len(self.panels)


@dataclass(frozen=True)
class PanelLayout:
    """Pixel geometry of one panel on the canvas."""
    top: int
    title_row: int
    plot_left: int
    plot_top: int
    plot_width: int
    plot_height: int

    @property
    def plot_bottom(self) -> int:
        return self.plot_top + self.plot_height - 1

    @property
    def plot_right(self) -> int:
        return self.plot_left + self.plot_width - 1


@dataclass(frozen=True)
class LegendWord:
    """One word of a panel legend, placed relative to the plot's left edge."""
    x: int
    line: int
    text: str
    color: Color


PanelPlot = Tuple[PanelSpec, PanelLayout, PlotSeries]


class ChartRenderer:
    """
    Renders forecast series to PNG bytes.

    The font is shared and never modified; every render call gets its own
    canvas.
    """

    def __init__(self, font: FontResource, config: Optional[ChartConfig] = None):
        self.font = font
        self.config = config or ChartConfig()

    def legend(self, panel: PanelSpec) -> Tuple[LegendWord, ...]:
        """
        Lay out the panel title and channel labels, wrapping at word
        boundaries so no line is wider than the plot.

        Raises:
            RenderError: If a single word is wider than the plot
        """
        config = self.config
        space = int(self.font.font.getlength(" "))
        gap = int(self.font.font.getlength("  "))
        segments = [(panel.title, config.text_color)]
        segments += [(style.label, style.color) for style in panel.channels if style.label]

        words = []
        x = line = 0
        for text, color in segments:
            for position, word in enumerate(text.split()):
                width = self.font.measure(word)[0]
                if width > config.plot_width:
                    raise RenderError(f"Legend word {word!r} does not fit a {config.plot_width}px wide plot")
                if x > 0:
                    x += space if position else gap
                    if x + width > config.plot_width:
                        x, line = 0, line + 1
                words.append(LegendWord(x=x, line=line, text=word, color=color))
                x += width
        return tuple(words)

    def layout(self, index: int) -> PanelLayout:
        config = self.config
        legend = self.legend(config.panels[index])
        lines = max((word.line for word in legend), default=0) + 1
        top = index * config.panel_height
        title_row = top + config.padding_top
        plot_top = title_row + lines * self.font.line_height + config.title_gap
        plot_height = top + config.panel_height - config.padding_bottom - plot_top
        if plot_height < 2 or config.plot_width < 2:
            raise RenderError("Chart panels are too small for the configured font")
        return PanelLayout(
            top=top,
            title_row=title_row,
            plot_left=config.padding_left,
            plot_top=plot_top,
            plot_width=config.plot_width,
            plot_height=plot_height,
        )

    def max_value_ticks(self, layout: PanelLayout) -> int:
        """Tick count that keeps value labels from overlapping."""
        fits = layout.plot_height // (self.font.line_height * 2)
        return max(1, min(self.config.max_value_ticks, fits))

    def min_time_spacing(self) -> float:
        """Tick spacing wide enough for any hour or weekday label."""
        labels = WEEKDAY_LABELS + tuple(f"{hour:02d}" for hour in range(24))
        widest = max(self.font.measure(label)[0] for label in labels)
        return widest + 8

    def build_plots(self, series: ForecastSeries) -> List[PanelPlot]:
        """Transform the series into one plot per panel."""
        plots = []
        for index, panel in enumerate(self.config.panels):
            layout = self.layout(index)
            plot = build_plot(
                series,
                panel.channel_names,
                layout.plot_width,
                min_span=panel.min_span,
                max_value_ticks=self.max_value_ticks(layout),
                include_zero=panel.include_zero,
                fixed_range=panel.fixed_range,
                min_time_spacing_px=self.min_time_spacing(),
            )
            plots.append((panel, layout, plot))
        return plots

    def draw(self, plots: Sequence[PanelPlot]) -> bytes:
        """
        Draw transformed plots and encode the canvas as PNG.

        Raises:
            RenderError: If a label has characters the font cannot draw, or
                does not fit the canvas
        """
        config = self.config
        canvas = Canvas(config.width, config.height, config.background)

        canvas.advance("gridlines")
        for _, layout, plot in plots:
            self._draw_grid(canvas, layout, plot)

        canvas.advance("curves")
        for panel, layout, plot in plots:
            for style in panel.channels:
                points = plot.channels.get(style.name, ())
                if style.style == "bars":
                    self._draw_bars(canvas, layout, plot, points, style.color)
                elif style.style == "steps":
                    self._draw_steps(canvas, layout, plot, points, style.color)
                elif style.style == "band":
                    upper = plot.channels.get(style.upper, ())
                    self._draw_band(canvas, layout, plot, points, upper, style.color)
                else:
                    self._draw_curve(canvas, layout, plot, points, style.color)

        canvas.advance("labels")
        for panel, layout, plot in plots:
            self._draw_value_labels(canvas, layout, plot)
            self._draw_time_labels(canvas, layout, plot)
            self._draw_legend(canvas, layout, panel)

        image = canvas.to_png()
        logger.debug(f"Rendered {len(plots)} panels")
        return image

    def render(self, series: ForecastSeries) -> bytes:
        """
        Render a forecast to PNG bytes.

        An empty series produces panels with axes and legends only.

        Raises:
            RenderError: If a label has characters the font cannot draw, or
                the layout does not fit the canvas
        """
        return self.draw(self.build_plots(series))

    # =========================================================================
    # Layers
    # =========================================================================

    def _draw_grid(self, canvas: Canvas, layout: PanelLayout, plot: PlotSeries) -> None:
        config = self.config
        for tick in plot.value_axis.ticks:
            row = round(row_for_value(tick, plot.value_axis, layout.plot_top, layout.plot_height))
            canvas.hline(row, layout.plot_left, layout.plot_right, config.grid_color)
        for tick in plot.time_axis.ticks:
            color = config.day_grid_color if tick.is_day_start else config.grid_color
            canvas.vline(layout.plot_left + tick.column, layout.plot_top, layout.plot_bottom, color)
        canvas.vline(layout.plot_left - 1, layout.plot_top, layout.plot_bottom + 1, config.axis_color)
        canvas.hline(layout.plot_bottom + 1, layout.plot_left - 1, layout.plot_right, config.axis_color)

    def _draw_curve(
        self,
        canvas: Canvas,
        layout: PanelLayout,
        plot: PlotSeries,
        points: Sequence[PlotPoint],
        color: Color,
    ) -> None:
        if not points:
            return
        canvas.draw_polyline(
            [
                (
                    layout.plot_left + p.column,
                    row_for_value(p.value, plot.value_axis, layout.plot_top, layout.plot_height),
                )
                for p in points
            ],
            color,
        )

    def _draw_bars(
        self,
        canvas: Canvas,
        layout: PanelLayout,
        plot: PlotSeries,
        points: Sequence[PlotPoint],
        color: Color,
    ) -> None:
        if not points:
            return
        axis = plot.value_axis
        baseline = row_for_value(
            max(axis.low, min(0.0, axis.high)), axis, layout.plot_top, layout.plot_height
        )
        for index, point in enumerate(points):
            width = bar_width(points, index, layout.plot_width)
            # leave a one pixel gap between bars when there is room
            if width >= 3:
                width -= 1
            top = row_for_value(point.value, axis, layout.plot_top, layout.plot_height)
            x0 = layout.plot_left + point.column
            y0, y1 = sorted((math.floor(top), math.ceil(baseline) + 1))
            canvas.fill_rect(x0, y0, x0 + width, y1, color)

    def _draw_steps(
        self,
        canvas: Canvas,
        layout: PanelLayout,
        plot: PlotSeries,
        points: Sequence[PlotPoint],
        color: Color,
    ) -> None:
        for index, point in enumerate(points):
            width = bar_width(points, index, layout.plot_width)
            if width >= 3:
                width -= 1
            row = round(row_for_value(point.value, plot.value_axis, layout.plot_top, layout.plot_height))
            x0 = layout.plot_left + point.column
            canvas.hline(row, x0, x0 + width - 1, color)

    def _draw_band(
        self,
        canvas: Canvas,
        layout: PanelLayout,
        plot: PlotSeries,
        lower: Sequence[PlotPoint],
        upper: Sequence[PlotPoint],
        color: Color,
    ) -> None:
        """Fill between two channels, interpolating linearly between columns where both have a value."""
        upper_values = {p.column: p.value for p in upper}
        pairs = [(p.column, p.value, upper_values[p.column]) for p in lower if p.column in upper_values]
        for (c0, low0, high0), (c1, low1, high1) in zip(pairs, pairs[1:]):
            for column in range(c0, c1):
                f = (column - c0) / (c1 - c0)
                self._band_column(
                    canvas, layout, plot.value_axis, column,
                    low0 + (low1 - low0) * f, high0 + (high1 - high0) * f, color,
                )
        if pairs:
            self._band_column(canvas, layout, plot.value_axis, *pairs[-1], color)

    def _band_column(
        self,
        canvas: Canvas,
        layout: PanelLayout,
        axis: ValueAxis,
        column: int,
        low: float,
        high: float,
        color: Color,
    ) -> None:
        y0 = round(row_for_value(high, axis, layout.plot_top, layout.plot_height))
        y1 = round(row_for_value(low, axis, layout.plot_top, layout.plot_height))
        canvas.vline(layout.plot_left + column, y0, y1, color, BAND_ALPHA)

    def _draw_value_labels(self, canvas: Canvas, layout: PanelLayout, plot: PlotSeries) -> None:
        axis = plot.value_axis
        decimals = 0 if axis.step >= 1 else math.ceil(-math.log10(axis.step) - 1e-9)
        for tick in axis.ticks:
            mask = self.font.rasterize(f"{tick:.{decimals}f}")
            row = row_for_value(tick, axis, layout.plot_top, layout.plot_height)
            height, width = mask.shape
            canvas.draw_mask(layout.plot_left - 4 - width, round(row - height / 2), mask, self.config.text_color)

    def _draw_time_labels(self, canvas: Canvas, layout: PanelLayout, plot: PlotSeries) -> None:
        for tick in plot.time_axis.ticks:
            mask = self.font.rasterize(tick.label)
            width = mask.shape[1]
            canvas.draw_mask(
                layout.plot_left + tick.column - width // 2,
                layout.plot_bottom + 3,
                mask,
                self.config.text_color,
            )

    def _draw_legend(self, canvas: Canvas, layout: PanelLayout, panel: PanelSpec) -> None:
        for word in self.legend(panel):
            canvas.draw_mask(
                layout.plot_left + word.x,
                layout.title_row + word.line * self.font.line_height,
                self.font.rasterize(word.text),
                word.color,
            )


def bar_width(points: Sequence[PlotPoint], index: int, plot_width: int) -> int:
    """
    Columns covered by the bar of points[index]: up to the next point, or for
    the last point the same width as the previous bar, never past the plot.
    """
    column = points[index].column
    if index + 1 < len(points):
        width = points[index + 1].column - column
    elif index > 0:
        width = column - points[index - 1].column
    else:
        width = 1
    return max(1, min(width, plot_width - column))


def render_forecast_chart(
    series: ForecastSeries,
    font: FontResource,
    config: Optional[ChartConfig] = None,
) -> bytes:
    """Render a forecast series to PNG bytes with a shared, preloaded font."""
    return ChartRenderer(font, config).render(series)
