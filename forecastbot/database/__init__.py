"""Database module for the Forecast Bot."""

from .db import Database
from .models import Location, Subscription, fold_identity

__all__ = [
    "Database",
    "Location",
    "Subscription",
    "fold_identity",
]
