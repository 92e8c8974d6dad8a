from __future__ import annotations

from datetime import timedelta

import pytest

from forecastbot.database import Location, Subscription
from forecastbot.notifications import MessageTemplates, describe_interval


@pytest.mark.parametrize(
    "span, expected",
    [
        (timedelta(hours=48), "2 days"),
        (timedelta(hours=36), "1 day and 12 hours"),
        (timedelta(minutes=90), "1 hour and 30 minutes"),
        (timedelta(days=1, hours=1, minutes=1), "1 day, 1 hour and 1 minute"),
        (timedelta(hours=1), "1 hour"),
        (timedelta(0), "0 minutes"),
    ],
)
def test_describe_interval(span, expected) -> None:
    assert describe_interval(span) == expected


def test_escape_markdown() -> None:
    assert MessageTemplates.escape_markdown("48.85, 2.35 (x)") == "48\\.85, 2\\.35 \\(x\\)"
    assert MessageTemplates.escape_markdown("") == ""


def test_caption_uses_local_time(paris_series) -> None:
    location = Location(48.85, 2.35, "Paris", "France", "PPLC")

    caption = MessageTemplates.format_forecast_caption(location, paris_series)

    assert caption.startswith("🌤 *Forecast for Paris, France*")
    assert "Next 2 days from Wed 01 May 02:00 local time" in caption


def test_location_set_messages() -> None:
    named = MessageTemplates.format_location_set(Location(48.85, 2.35, "Paris", "France", "PPLC"))
    bare = MessageTemplates.format_location_set(Location.from_coordinates(1.5, -2.0))

    assert "*Paris*" in named
    assert "PPLC" in named
    assert "1\\.5, \\-2\\.0" in bare


def test_location_reply_without_location() -> None:
    assert "no location set" in MessageTemplates.format_location(None)


def test_geocoding_result() -> None:
    text = MessageTemplates.format_geocoding_result(
        Location(48.85, 2.35, "Paris", "France", "PPLC"), population=2138551
    )

    assert "population: 2,138,551" in text
    assert "feature code: PPLC" in text


def test_subscription_reply() -> None:
    assert "*07:00*" in MessageTemplates.format_subscription(Subscription("a", "b", 1, 7))
    assert "not subscribed" in MessageTemplates.format_subscription(None)


def test_help_lists_commands() -> None:
    text = MessageTemplates.format_help_message()

    for command in ("set\\_location", "forecast", "subscribe", "unset\\_location"):
        assert command in text
