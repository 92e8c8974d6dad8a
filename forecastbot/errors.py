"""
Error types for the Forecast Bot.

Errors derived from UserFacingError carry a message that is safe to show
to the chat user as-is. Everything else is reported as a generic failure.
"""


class WeatherBotError(Exception):
    """Base class for all bot errors."""


class UserFacingError(WeatherBotError):
    """An error whose message is meant for the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoLocationSet(UserFacingError):
    """The identity has no registered location."""

    def __init__(self, message: str = "You have no location set. Use /set_location <place> or /set_coords <lat, lon> first."):
        super().__init__(message)


class FetchFailure(UserFacingError):
    """The forecast service could not be reached or returned garbage."""

    def __init__(self, message: str = "Could not fetch the forecast right now. Please try again later."):
        super().__init__(message)


class GeocodingError(UserFacingError):
    """A place name could not be resolved to coordinates."""


class InvalidCoordinates(UserFacingError):
    """User supplied coordinates could not be parsed."""


class StorageError(WeatherBotError):
    """Persistence layer failure."""


class RenderError(WeatherBotError):
    """The chart could not be rendered at all."""
