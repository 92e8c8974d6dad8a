"""
Forecast delivery: resolve an identity's location, fetch the forecast,
render the chart and hand it to the chat.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import TelegramError

from .templates import MessageTemplates
from ..charts import ABSOLUTE_HUMIDITY_PANELS, DAILY_PANELS, ChartConfig, ChartRenderer, FontResource
from ..charts.renderer import PanelPlot
from ..database import Database, Location, Subscription
from ..errors import NoLocationSet, UserFacingError, WeatherBotError
from ..weather import ForecastSeries, OpenMeteoClient

logger = logging.getLogger(__name__)

# Coroutine that posts a PNG with a caption somewhere
SendFunc = Callable[[bytes, str], Awaitable[None]]


class DeliveryState(Enum):
    RESOLVE_LOCATION = "resolve_location"
    FETCH_FORECAST = "fetch_forecast"
    TRANSFORM = "transform"
    RENDER = "render"
    DELIVER = "deliver"


class ChartKind(Enum):
    """Which chart a request asks for."""
    HOURLY = "hourly"
    DAILY = "daily"
    ABSOLUTE_HUMIDITY = "absolute_humidity"


@dataclass(frozen=True)
class DeliveryResult:
    """A rendered chart ready to be posted."""
    location: Location
    image: bytes
    caption: str
    samples: int


class DeliveryOrchestrator:
    """
    Runs the forecast pipeline for one request at a time.

    Each request goes ResolveLocation -> FetchForecast -> Transform -> Render
    -> Deliver. A failing state ends the request; nothing is retried here and
    nothing is persisted, so an abandoned request leaves no trace. Concurrent
    requests for the same identity are not coalesced.
    """

    def __init__(
        self,
        db: Database,
        forecasts: OpenMeteoClient,
        font: FontResource,
        chart_config: Optional[ChartConfig] = None,
        forecast_hours: int = 48,
        bot: Optional[Bot] = None,
        api_delay: float = 0.0,
        forecast_days: int = 14,
    ):
        """
        Initialize the orchestrator.

        Args:
            db: Location registry
            forecasts: Forecast API client
            font: Font loaded once at startup, shared by every render
            chart_config: Layout of the hourly chart; the other charts share
                everything but its panels. Defaults to ChartConfig()
            forecast_hours: Horizon of hourly charts
            bot: Telegram bot used for scheduled deliveries
            api_delay: Pause between scheduled deliveries, in seconds
            forecast_days: Days shown on the daily chart
        """
        self.db = db
        self.forecasts = forecasts
        chart_config = chart_config or ChartConfig()
        self.renderers = {
            ChartKind.HOURLY: ChartRenderer(font, chart_config),
            ChartKind.DAILY: ChartRenderer(font, replace(chart_config, panels=DAILY_PANELS)),
            ChartKind.ABSOLUTE_HUMIDITY: ChartRenderer(
                font, replace(chart_config, panels=ABSOLUTE_HUMIDITY_PANELS)
            ),
        }
        self.forecast_hours = forecast_hours
        self.forecast_days = forecast_days
        self.bot = bot
        self.api_delay = api_delay

    async def deliver_forecast(
        self,
        domain: str,
        owner: str,
        send: SendFunc,
        kind: ChartKind = ChartKind.HOURLY,
    ) -> DeliveryResult:
        """
        Deliver a forecast chart for an identity's registered location.

        Args:
            domain: Chat or community of the identity
            owner: User name within the domain
            send: Coroutine that posts the image and caption
            kind: Chart to deliver

        Returns:
            The delivered chart

        Raises:
            NoLocationSet: If the identity has no location; nothing is fetched
            FetchFailure: If the forecast could not be fetched
            StorageError, RenderError: On internal failures
            TelegramError: If send fails
        """
        state = DeliveryState.RESOLVE_LOCATION
        try:
            location = await self.db.get_location(domain, owner)
            if location is None:
                raise NoLocationSet()

            state = DeliveryState.FETCH_FORECAST
            series = await self.fetch(location, kind)

            state = DeliveryState.TRANSFORM
            plots = await self.transform(series, kind)

            state = DeliveryState.RENDER
            result = await self.draw(location, series, plots, kind)

            state = DeliveryState.DELIVER
            await send(result.image, result.caption)
        except (WeatherBotError, TelegramError) as e:
            logger.info(f"{kind.value} forecast for {domain}/{owner} stopped at {state.value}: {e}")
            raise

        logger.info(f"Delivered {kind.value} forecast for {domain}/{owner} ({result.location.label})")
        return result

    async def fetch(self, location: Location, kind: ChartKind = ChartKind.HOURLY) -> ForecastSeries:
        if kind is ChartKind.DAILY:
            return await self.forecasts.get_daily_forecast(
                location.latitude, location.longitude, days=self.forecast_days
            )
        return await self.forecasts.get_hourly_forecast(
            location.latitude, location.longitude, hours=self.forecast_hours
        )

    async def transform(self, series: ForecastSeries, kind: ChartKind = ChartKind.HOURLY) -> List[PanelPlot]:
        """Scale and downsample the series for each panel, in a worker thread."""
        return await asyncio.to_thread(self.renderers[kind].build_plots, series)

    async def draw(
        self,
        location: Location,
        series: ForecastSeries,
        plots: List[PanelPlot],
        kind: ChartKind = ChartKind.HOURLY,
    ) -> DeliveryResult:
        """Draw in a worker thread; drawing is CPU bound."""
        image = await asyncio.to_thread(self.renderers[kind].draw, plots)
        return DeliveryResult(
            location=location,
            image=image,
            caption=self.caption(location, series, kind),
            samples=len(series),
        )

    def caption(self, location: Location, series: ForecastSeries, kind: ChartKind) -> str:
        if kind is ChartKind.DAILY:
            return MessageTemplates.format_daily_caption(location, series)
        if kind is ChartKind.ABSOLUTE_HUMIDITY:
            return MessageTemplates.format_forecast_caption(location, series, title="Absolute humidity")
        return MessageTemplates.format_forecast_caption(location, series)

    async def render(
        self,
        location: Location,
        series: ForecastSeries,
        kind: ChartKind = ChartKind.HOURLY,
    ) -> DeliveryResult:
        plots = await self.transform(series, kind)
        return await self.draw(location, series, plots, kind)

    async def render_for_location(
        self,
        location: Location,
        kind: ChartKind = ChartKind.HOURLY,
    ) -> DeliveryResult:
        """Fetch and render a chart for a location, e.g. one given by name."""
        series = await self.fetch(location, kind)
        return await self.render(location, series, kind)

    async def sun_times(self, location: Location) -> Tuple[datetime, datetime]:
        """Next sunrise and sunset at a location, in its local time."""
        return await self.forecasts.get_sun_times(location.latitude, location.longitude)

    # =========================================================================
    # Scheduled deliveries
    # =========================================================================

    def chat_sender(self, chat_id: int) -> SendFunc:
        """SendFunc posting a photo to a Telegram chat."""
        if self.bot is None:
            raise RuntimeError("No Telegram bot configured for scheduled deliveries")

        async def send(image: bytes, caption: str) -> None:
            await self.bot.send_photo(
                chat_id=chat_id,
                photo=image,
                caption=caption,
                parse_mode=ParseMode.MARKDOWN_V2,
            )

        return send

    async def run_scheduled(self, hour: int) -> int:
        """
        Deliver to every subscription due at the given local hour.

        A failure for one subscription is logged and does not stop the others.

        Returns:
            Number of charts delivered
        """
        subscriptions = await self.db.get_subscriptions_for_hour(hour)
        logger.info(f"Found {len(subscriptions)} subscriptions for {hour:02d}:00")

        delivered = 0
        for subscription in subscriptions:
            if await self._deliver_subscription(subscription):
                delivered += 1
            if self.api_delay:
                # Delay between API calls to avoid rate limiting
                await asyncio.sleep(self.api_delay)
        return delivered

    async def _deliver_subscription(self, subscription: Subscription) -> bool:
        try:
            await self.deliver_forecast(
                subscription.domain,
                subscription.owner,
                self.chat_sender(subscription.chat_id),
            )
            return True
        except UserFacingError as e:
            await self._notify(subscription.chat_id, e.message)
        except WeatherBotError as e:
            logger.error(f"Scheduled forecast for {subscription.domain}/{subscription.owner} failed: {e}")
        except TelegramError as e:
            logger.error(f"Failed to send scheduled forecast to chat {subscription.chat_id}: {e}")
        return False

    async def _notify(self, chat_id: int, text: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=MessageTemplates.escape_markdown(text),
                parse_mode=ParseMode.MARKDOWN_V2,
            )
        except TelegramError as e:
            logger.error(f"Failed to notify chat {chat_id}: {e}")
