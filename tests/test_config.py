from __future__ import annotations

import pytest
import pytz

from forecastbot.config import MIN_CHART_WIDTH, Config

SETTINGS = (
    "BOT_TOKEN",
    "TIMEZONE",
    "LOG_LEVEL",
    "DATABASE_PATH",
    "FORECAST_HOURS",
    "CHART_WIDTH",
    "FONT_PATH",
    "FONT_SIZE",
    "HTTP_TIMEOUT_SECONDS",
    "API_REQUEST_DELAY_SECONDS",
)


@pytest.fixture(autouse=True)
def restore_config(monkeypatch):
    # monkeypatch puts every setting back after the test
    for name in SETTINGS:
        monkeypatch.setattr(Config, name, getattr(Config, name))


def test_load_toml_overrides_settings(tmp_path) -> None:
    path = tmp_path / "bot.toml"
    path.write_text(
        'bot_token = "123:abc"\n'
        'timezone = "Europe/Paris"\n'
        "forecast_hours = 72\n"
        "chart_width = 1024\n"
    )

    loaded = Config.load_toml(str(path))

    assert loaded["forecast_hours"] == 72
    assert Config.BOT_TOKEN == "123:abc"
    assert Config.FORECAST_HOURS == 72
    assert Config.CHART_WIDTH == 1024
    assert Config.get_timezone() == pytz.timezone("Europe/Paris")


def test_missing_toml_is_ignored(tmp_path) -> None:
    assert Config.load_toml(str(tmp_path / "absent.toml")) == {}


def test_unknown_timezone_falls_back_to_utc() -> None:
    Config.TIMEZONE = "Mars/Olympus_Mons"

    assert Config.get_timezone() is pytz.UTC


def test_validate() -> None:
    Config.BOT_TOKEN = "123:abc"
    Config.FORECAST_HOURS = 48
    Config.CHART_WIDTH = 800
    Config.FONT_SIZE = 13
    Config.FONT_PATH = None
    Config.HTTP_TIMEOUT_SECONDS = 15
    Config.API_REQUEST_DELAY_SECONDS = 1
    assert Config.validate() == []

    Config.BOT_TOKEN = ""
    Config.FORECAST_HOURS = 0
    Config.CHART_WIDTH = 100
    Config.FONT_PATH = "/nonexistent/font.ttf"
    errors = Config.validate()

    assert len(errors) == 4
    assert "BOT_TOKEN is required" in errors


def test_narrowest_chart_width() -> None:
    Config.BOT_TOKEN = "123:abc"
    Config.FORECAST_HOURS = 48
    Config.FONT_SIZE = 13
    Config.HTTP_TIMEOUT_SECONDS = 15
    Config.API_REQUEST_DELAY_SECONDS = 1
    Config.FONT_PATH = None
    Config.CHART_WIDTH = MIN_CHART_WIDTH
    assert Config.validate() == []

    Config.CHART_WIDTH = MIN_CHART_WIDTH - 1
    assert Config.validate() == [f"CHART_WIDTH must be at least {MIN_CHART_WIDTH}"]
