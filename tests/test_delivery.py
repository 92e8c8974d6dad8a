from __future__ import annotations

import logging

import pytest

from forecastbot.charts import ChannelStyle, ChartConfig, PanelSpec
from forecastbot.database import Location, Subscription
from forecastbot.errors import FetchFailure, NoLocationSet, RenderError
from forecastbot.notifications import ChartKind, DeliveryOrchestrator

PARIS = Location(
    latitude=48.85,
    longitude=2.35,
    place_name="Paris",
    country="France",
    feature_code="PPLC",
)


class FakeForecasts:
    def __init__(self, series=None, error=None):
        self.series = series
        self.error = error
        self.calls = []

    async def get_hourly_forecast(self, latitude, longitude, hours=48):
        self.calls.append((latitude, longitude, hours))
        if self.error is not None:
            raise self.error
        return self.series

    async def get_daily_forecast(self, latitude, longitude, days=14):
        self.calls.append((latitude, longitude, days))
        return self.series


class FakeBot:
    def __init__(self):
        self.photos = []
        self.messages = []

    async def send_photo(self, chat_id, photo, caption, parse_mode):
        self.photos.append((chat_id, photo, caption))

    async def send_message(self, chat_id, text, parse_mode):
        self.messages.append((chat_id, text))


class Recorder:
    def __init__(self):
        self.sent = []

    async def __call__(self, image: bytes, caption: str) -> None:
        self.sent.append((image, caption))


def test_no_location_fails_before_fetch(with_db, font) -> None:
    forecasts = FakeForecasts()
    send = Recorder()

    async def scenario(db):
        orchestrator = DeliveryOrchestrator(db, forecasts, font)
        try:
            await orchestrator.deliver_forecast("guildA", "Alice", send)
        except NoLocationSet as e:
            return e

    error = with_db(scenario)

    assert isinstance(error, NoLocationSet)
    assert "/set_location" in error.message
    assert forecasts.calls == []
    assert send.sent == []


def test_delivers_chart_for_registered_location(with_db, font, paris_series) -> None:
    forecasts = FakeForecasts(series=paris_series)
    send = Recorder()

    async def scenario(db):
        await db.set_location("guildA", "Alice", PARIS)
        orchestrator = DeliveryOrchestrator(db, forecasts, font, forecast_hours=48)
        return await orchestrator.deliver_forecast("GUILDA", "alice", send)

    result = with_db(scenario)

    assert forecasts.calls == [(48.85, 2.35, 48)]
    assert len(send.sent) == 1
    image, caption = send.sent[0]
    assert image.startswith(b"\x89PNG")
    assert image == result.image
    assert "Paris, France" in caption
    assert "2 days" in caption
    assert result.samples == 48


def test_fetch_failure_is_reported_and_nothing_sent(with_db, font) -> None:
    forecasts = FakeForecasts(error=FetchFailure())
    send = Recorder()

    async def scenario(db):
        await db.set_location("guildA", "Alice", PARIS)
        orchestrator = DeliveryOrchestrator(db, forecasts, font)
        try:
            await orchestrator.deliver_forecast("guildA", "Alice", send)
        except FetchFailure as e:
            return e

    error = with_db(scenario)

    assert isinstance(error, FetchFailure)
    assert error.message.startswith("Could not fetch the forecast")
    assert len(forecasts.calls) == 1
    assert send.sent == []


def test_render_for_location(with_db, font, paris_series) -> None:
    forecasts = FakeForecasts(series=paris_series)

    async def scenario(db):
        orchestrator = DeliveryOrchestrator(db, forecasts, font)
        return await orchestrator.render_for_location(PARIS)

    result = with_db(scenario)

    assert result.location == PARIS
    assert result.image.startswith(b"\x89PNG")


def test_scheduled_run_delivers_and_notifies(with_db, font, paris_series) -> None:
    forecasts = FakeForecasts(series=paris_series)
    bot = FakeBot()

    async def scenario(db):
        await db.set_location("guildA", "Alice", PARIS)
        await db.set_subscription(Subscription("guildA", "Alice", chat_id=111, hour=7))
        # Bob subscribed but never set a location
        await db.set_subscription(Subscription("guildA", "Bob", chat_id=222, hour=7))
        await db.set_subscription(Subscription("guildA", "Carol", chat_id=333, hour=8))
        orchestrator = DeliveryOrchestrator(db, forecasts, font, bot=bot)
        return await orchestrator.run_scheduled(7)

    delivered = with_db(scenario)

    assert delivered == 1
    assert [chat_id for chat_id, _, _ in bot.photos] == [111]
    assert [chat_id for chat_id, _ in bot.messages] == [222]
    assert "location" in bot.messages[0][1]


@pytest.mark.parametrize(
    "chart_config, state",
    [
        # panels too short for the font fail while laying out the plots
        (ChartConfig(panel_height=20), "transform"),
        # a glyph the font lacks only fails once labels are drawn
        (ChartConfig(panels=(PanelSpec("気温", (ChannelStyle("temperature", "", (255, 0, 0)),)),)), "render"),
    ],
)
def test_render_failures_report_their_state(with_db, font, paris_series, caplog, chart_config, state) -> None:
    send = Recorder()
    caplog.set_level(logging.INFO, logger="forecastbot.notifications.delivery")

    async def scenario(db):
        await db.set_location("guildA", "Alice", PARIS)
        orchestrator = DeliveryOrchestrator(db, FakeForecasts(series=paris_series), font, chart_config)
        try:
            await orchestrator.deliver_forecast("guildA", "Alice", send)
        except RenderError as e:
            return e

    assert isinstance(with_db(scenario), RenderError)
    assert f"stopped at {state}" in caplog.text
    assert send.sent == []


def test_delivers_daily_chart(with_db, font, daily_series) -> None:
    forecasts = FakeForecasts(series=daily_series)
    send = Recorder()

    async def scenario(db):
        await db.set_location("guildA", "Alice", PARIS)
        orchestrator = DeliveryOrchestrator(db, forecasts, font, forecast_days=14)
        return await orchestrator.deliver_forecast("guildA", "Alice", send, ChartKind.DAILY)

    result = with_db(scenario)

    assert forecasts.calls == [(48.85, 2.35, 14)]
    assert result.samples == 14
    assert send.sent[0][1].startswith("📅 *Daily forecast for Paris, France*")


def test_chart_kinds_share_layout_but_not_panels(with_db, font) -> None:
    async def scenario(db):
        return DeliveryOrchestrator(db, FakeForecasts(), font, ChartConfig(width=640))

    orchestrator = with_db(scenario)

    widths = {kind: renderer.config.width for kind, renderer in orchestrator.renderers.items()}
    assert set(widths.values()) == {640}
    assert len(orchestrator.renderers[ChartKind.DAILY].config.panels) == 5
    assert len(orchestrator.renderers[ChartKind.ABSOLUTE_HUMIDITY].config.panels) == 1
