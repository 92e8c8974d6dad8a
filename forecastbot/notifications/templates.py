"""
Message templates for bot replies and chart captions.
Uses MarkdownV2 format for Telegram.
"""

import re
from datetime import datetime, timedelta
from typing import Optional

from ..database.models import Location, Subscription
from ..weather.series import ForecastSeries


def describe_interval(span: timedelta) -> str:
    """
    Human readable length of a time span.

    Examples:
        48 hours -> "2 days"
        36 hours -> "1 day and 12 hours"
        90 minutes -> "1 hour and 30 minutes"
    """
    total_minutes = int(span.total_seconds() // 60)
    if total_minutes <= 0:
        return "0 minutes"
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    parts = []
    for amount, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if amount:
            parts.append(f"{amount} {unit}{'' if amount == 1 else 's'}")
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]


class MessageTemplates:
    """
    Message formatter for Telegram replies.

    All templates use MarkdownV2 format which requires escaping special characters.
    """

    @classmethod
    def escape_markdown(cls, text: str) -> str:
        """
        Escape special characters for MarkdownV2.

        Args:
            text: Raw text to escape

        Returns:
            Escaped text safe for MarkdownV2
        """
        if not text:
            return ""
        return re.sub(r'([_*\[\]()~`>#+=|{}.!\\-])', r'\\\1', str(text))

    @classmethod
    def format_forecast_caption(cls, location: Location, series: ForecastSeries, title: str = "Forecast") -> str:
        """
        Caption for an hourly forecast chart.

        Args:
            location: Place the forecast is for
            series: The rendered forecast
            title: What the chart shows

        Returns:
            Formatted MarkdownV2 caption
        """
        start = series.start.astimezone(series.local_timezone)
        window = describe_interval(series.horizon)
        return (
            f"🌤 *{cls.escape_markdown(title)} for {cls.escape_markdown(location.label)}*\n"
            f"Next {cls.escape_markdown(window)} from "
            f"{cls.escape_markdown(start.strftime('%a %d %b %H:%M'))} local time"
        )

    @classmethod
    def format_daily_caption(cls, location: Location, series: ForecastSeries) -> str:
        """Caption for a daily forecast chart; days start at local midnight."""
        start = series.start.astimezone(series.local_timezone)
        return (
            f"📅 *Daily forecast for {cls.escape_markdown(location.label)}*\n"
            f"{len(series)} days from {cls.escape_markdown(start.strftime('%a %d %b'))}"
        )

    @classmethod
    def format_sun_times(cls, location: Location, sunrise: datetime, sunset: datetime) -> str:
        """Reply to /sun: next sunrise and sunset, whichever comes first on the left."""
        events = sorted([(sunrise, "🌅"), (sunset, "🌃")])
        times = " ".join(f"{icon}{moment.strftime('%H:%M')}" for moment, icon in events)
        return f"*{cls.escape_markdown(location.label)}*\n{cls.escape_markdown(times)}"

    @classmethod
    def format_location_set(cls, location: Location) -> str:
        """Confirmation after /set_location or /set_coords."""
        if location.is_named:
            return (
                f"📍 Location set to *{cls.escape_markdown(location.name)}* "
                f"\\({cls.escape_markdown(location.coordinates)}\\)\n"
                f"Country: {cls.escape_markdown(location.country_name)}, "
                f"feature code: {cls.escape_markdown(location.feature)}"
            )
        return f"📍 Location set to coordinates *{cls.escape_markdown(location.coordinates)}*"

    @classmethod
    def format_location(cls, location: Optional[Location]) -> str:
        """Reply to /location."""
        if location is None:
            return cls.escape_markdown("You have no location set. Use /set_location <place> or /set_coords <lat, lon>.")
        lines = [f"📍 *{cls.escape_markdown(location.label)}*"]
        lines.append(f"Coordinates: {cls.escape_markdown(location.coordinates)}")
        if location.is_named:
            lines.append(f"Feature code: {cls.escape_markdown(location.feature)}")
        return "\n".join(lines)

    @classmethod
    def format_geocoding_result(cls, location: Location, population: Optional[int] = None) -> str:
        """Reply to /find_coordinates."""
        population_text = f"{population:,}" if population is not None else "unknown"
        return cls.escape_markdown(
            f"Name: {location.name}, population: {population_text}, "
            f"latitude: {location.latitude}, longitude: {location.longitude}, "
            f"feature code: {location.feature}, country: {location.country_name}"
        )

    @classmethod
    def format_subscription(cls, subscription: Optional[Subscription]) -> str:
        if subscription is None:
            return cls.escape_markdown("You are not subscribed to daily forecasts.")
        return (
            f"⏰ Daily forecast at *{subscription.hour:02d}:00*\\. "
            f"Use /unsubscribe to stop\\."
        )

    @classmethod
    def format_welcome_message(cls, user_name: str) -> str:
        return (
            f"👋 Hi, {cls.escape_markdown(user_name)}\\!\n\n"
            f"I draw hourly weather forecast charts\\. "
            f"Set your location with /set\\_location and ask for a /forecast\\.\n\n"
            f"Use /help to see all commands\\."
        )

    @classmethod
    def format_help_message(cls) -> str:
        commands = [
            ("/set_location <place>", "Set your location by place name"),
            ("/set_coords <lat, lon>", "Set your location by coordinates"),
            ("/unset_location", "Forget your location"),
            ("/location", "Show your location"),
            ("/forecast [place]", "Hourly forecast chart for your location or a place"),
            ("/daily [place]", "Daily forecast chart for the next 14 days"),
            ("/absolute_humidity [place]", "Hourly absolute humidity chart"),
            ("/sun [place]", "Next sunrise and sunset"),
            ("/find_coordinates <place>", "Look up the coordinates of a place"),
            ("/subscribe <hour>", "Get the forecast chart every day at that hour"),
            ("/unsubscribe", "Stop daily forecasts"),
        ]
        lines = ["*Commands:*"]
        lines += [f"{cls.escape_markdown(c)} \\- {cls.escape_markdown(d)}" for c, d in commands]
        return "\n".join(lines)
