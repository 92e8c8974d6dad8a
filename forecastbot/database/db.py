"""
Database operations for the Forecast Bot.
Uses SQLite with async support via aiosqlite.
"""

import sqlite3
import logging
from functools import wraps
from pathlib import Path
from typing import Optional, List

import aiosqlite

from .models import Location, Subscription, fold_identity
from ..errors import StorageError

logger = logging.getLogger(__name__)


def _storage_errors(func):
    """Re-raise sqlite failures as StorageError."""
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        if self._connection is None:
            raise StorageError("Database is not connected")
        try:
            return await func(self, *args, **kwargs)
        except sqlite3.Error as e:
            logger.error(f"{func.__name__} failed: {e}")
            raise StorageError(str(e)) from e
    return wrapper


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        """
        Initialize database manager.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Connect to the database and create tables if needed."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
            await self._create_tables()
        except sqlite3.Error as e:
            raise StorageError(f"Could not open database {self.db_path}: {e}") from e
        logger.info(f"Connected to database: {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    async def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        async with self._connection.cursor() as cursor:
            # One location per (domain, user), replaced on conflict
            await cursor.execute("""
                CREATE TABLE IF NOT EXISTS user_locations (
                    domain       TEXT NOT NULL,
                    user         TEXT NOT NULL,
                    place_name   TEXT,
                    country      TEXT,
                    feature_code TEXT,
                    longitude    REAL NOT NULL,
                    latitude     REAL NOT NULL,
                    PRIMARY KEY (
                        domain COLLATE NOCASE,
                        user COLLATE NOCASE
                    ) ON CONFLICT REPLACE,
                    CHECK ((place_name IS NULL) = (feature_code IS NULL))
                )
            """)

            await cursor.execute("""
                CREATE TABLE IF NOT EXISTS subscriptions (
                    domain     TEXT NOT NULL,
                    user       TEXT NOT NULL,
                    chat_id    INTEGER NOT NULL,
                    hour       INTEGER NOT NULL CHECK (hour BETWEEN 0 AND 23),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (
                        domain COLLATE NOCASE,
                        user COLLATE NOCASE
                    ) ON CONFLICT REPLACE
                )
            """)

            await cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_subscriptions_hour
                ON subscriptions(hour)
            """)

            await self._connection.commit()

    # =========================================================================
    # Location operations
    # =========================================================================

    @_storage_errors
    async def set_location(self, domain: str, owner: str, location: Location) -> None:
        """
        Register a location for an identity, fully replacing any previous one.

        Args:
            domain: Chat or community the owner belongs to
            owner: User name within the domain
            location: Location to store
        """
        async with self._connection.cursor() as cursor:
            await cursor.execute("""
                INSERT INTO user_locations (
                    domain, user, place_name, country, feature_code, longitude, latitude
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                fold_identity(domain), fold_identity(owner),
                location.place_name, location.country, location.feature_code,
                location.longitude, location.latitude
            ))
            await self._connection.commit()
        logger.info(f"Set location for {domain}/{owner}: {location.label}")

    @_storage_errors
    async def get_location(self, domain: str, owner: str) -> Optional[Location]:
        """Get the location registered for an identity, or None."""
        async with self._connection.cursor() as cursor:
            await cursor.execute("""
                SELECT place_name, country, feature_code, longitude, latitude
                FROM user_locations
                WHERE domain = ? AND user = ?
            """, (fold_identity(domain), fold_identity(owner)))
            row = await cursor.fetchone()
            if row:
                return self._row_to_location(row)
            return None

    @_storage_errors
    async def delete_location(self, domain: str, owner: str) -> bool:
        """
        Remove the location registered for an identity.

        Returns:
            True if a location was removed
        """
        async with self._connection.cursor() as cursor:
            await cursor.execute(
                "DELETE FROM user_locations WHERE domain = ? AND user = ?",
                (fold_identity(domain), fold_identity(owner))
            )
            await self._connection.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted location for {domain}/{owner}")
        return deleted

    @_storage_errors
    async def count_locations(self) -> int:
        async with self._connection.cursor() as cursor:
            await cursor.execute("SELECT COUNT(*) FROM user_locations")
            row = await cursor.fetchone()
            return row[0]

    def _row_to_location(self, row: aiosqlite.Row) -> Location:
        """Convert a database row to a Location object."""
        return Location(
            latitude=row["latitude"],
            longitude=row["longitude"],
            place_name=row["place_name"],
            country=row["country"],
            feature_code=row["feature_code"],
        )

    # =========================================================================
    # Subscription operations
    # =========================================================================

    @_storage_errors
    async def set_subscription(self, subscription: Subscription) -> None:
        """Create or replace the daily delivery for an identity."""
        async with self._connection.cursor() as cursor:
            await cursor.execute("""
                INSERT INTO subscriptions (domain, user, chat_id, hour)
                VALUES (?, ?, ?, ?)
            """, (
                fold_identity(subscription.domain), fold_identity(subscription.owner),
                subscription.chat_id, subscription.hour
            ))
            await self._connection.commit()
        logger.info(
            f"Subscribed {subscription.domain}/{subscription.owner} at {subscription.hour:02d}:00"
        )

    @_storage_errors
    async def get_subscription(self, domain: str, owner: str) -> Optional[Subscription]:
        async with self._connection.cursor() as cursor:
            await cursor.execute(
                "SELECT * FROM subscriptions WHERE domain = ? AND user = ?",
                (fold_identity(domain), fold_identity(owner))
            )
            row = await cursor.fetchone()
            if row:
                return self._row_to_subscription(row)
            return None

    @_storage_errors
    async def delete_subscription(self, domain: str, owner: str) -> bool:
        """Remove the daily delivery for an identity. Returns True if one existed."""
        async with self._connection.cursor() as cursor:
            await cursor.execute(
                "DELETE FROM subscriptions WHERE domain = ? AND user = ?",
                (fold_identity(domain), fold_identity(owner))
            )
            await self._connection.commit()
            return cursor.rowcount > 0

    @_storage_errors
    async def get_subscriptions_for_hour(self, hour: int) -> List[Subscription]:
        """Get all subscriptions due at the given local hour."""
        async with self._connection.cursor() as cursor:
            await cursor.execute(
                "SELECT * FROM subscriptions WHERE hour = ? ORDER BY domain, user",
                (hour,)
            )
            rows = await cursor.fetchall()
            return [self._row_to_subscription(row) for row in rows]

    def _row_to_subscription(self, row: aiosqlite.Row) -> Subscription:
        """Convert a database row to a Subscription object."""
        return Subscription(
            domain=row["domain"],
            owner=row["user"],
            chat_id=row["chat_id"],
            hour=row["hour"],
        )
