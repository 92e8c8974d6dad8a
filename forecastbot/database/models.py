"""
Database models for the Forecast Bot.
These dataclasses represent the structure of data stored in SQLite.
"""

from dataclasses import dataclass
from typing import Optional


def fold_identity(value: str) -> str:
    """Case-folded form of a domain or owner used for storage and lookup."""
    return str(value).casefold()


@dataclass(frozen=True)
class Location:
    """
    A place a user has registered for forecasts.

    A location is either "named" (resolved through geocoding, so it has both
    a place name and a feature code) or "coordinates only" (neither).

    Attributes:
        latitude: Geographic latitude
            Example: 48.85
        longitude: Geographic longitude
            Example: 2.35
        place_name: Name of the place returned by geocoding
            Example: "Paris"
        country: Country name, when known
            Example: "France"
        feature_code: GeoNames feature code
            Example: "PPLC" (capital city)
    """
    latitude: float
    longitude: float
    place_name: Optional[str] = None
    country: Optional[str] = None
    feature_code: Optional[str] = None

    def __post_init__(self):
        if (self.place_name is None) != (self.feature_code is None):
            raise ValueError("place_name and feature_code must be both set or both empty")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    @classmethod
    def from_coordinates(cls, latitude: float, longitude: float) -> "Location":
        """Create a coordinates-only location."""
        return cls(latitude=latitude, longitude=longitude)

    @property
    def is_named(self) -> bool:
        return self.place_name is not None

    @property
    def name(self) -> str:
        return self.place_name or "unspecified"

    @property
    def country_name(self) -> str:
        return self.country or "unspecified"

    @property
    def feature(self) -> str:
        return self.feature_code or "unspecified"

    @property
    def coordinates(self) -> str:
        return f"{self.latitude}, {self.longitude}"

    @property
    def label(self) -> str:
        """Short human readable name: place name or coordinates."""
        if self.place_name and self.country:
            return f"{self.place_name}, {self.country}"
        return self.place_name or self.coordinates


@dataclass(frozen=True)
class Subscription:
    """
    A daily forecast delivery.

    Attributes:
        domain: Chat the identity belongs to (case-insensitive)
        owner: User within the chat (case-insensitive)
        chat_id: Telegram chat the chart is posted to
        hour: Local hour of day (0-23) at which the chart is delivered
    """
    domain: str
    owner: str
    chat_id: int
    hour: int

    def __post_init__(self):
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be between 0 and 23, got {self.hour}")
