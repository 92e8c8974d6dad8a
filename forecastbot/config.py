"""
Configuration management for the Forecast Bot.
Settings come from the environment (.env is loaded on import) and can be
overridden by an optional TOML file pointed to by CONFIG_PATH.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
import pytz
import toml

load_dotenv()

DEFAULT_DATABASE_PATH = "database/forecast_bot.db"

# Narrowest chart whose legends and tick labels still fit with the default font
MIN_CHART_WIDTH = 200


class Config:
    """
    Application configuration.
    Class attributes are read from the environment at import time and may be
    replaced at startup with set_runtime_config (from the TOML file).
    """

    BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")
    CONFIG_PATH: str = os.getenv("CONFIG_PATH", "")
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")
    LOG_LEVEL: str = (os.getenv("LOG_LEVEL", "INFO") or "INFO").upper()
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", DEFAULT_DATABASE_PATH)
    FORECAST_HOURS: int = int(os.getenv("FORECAST_HOURS", "48"))
    CHART_WIDTH: int = int(os.getenv("CHART_WIDTH", "800"))
    FONT_PATH: Optional[str] = os.getenv("FONT_PATH") or None
    FONT_SIZE: int = int(os.getenv("FONT_SIZE", "13"))
    HTTP_TIMEOUT_SECONDS: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))
    API_REQUEST_DELAY_SECONDS: float = float(os.getenv("API_REQUEST_DELAY_SECONDS", "1"))

    @classmethod
    def load_toml(cls, path: Optional[str] = None) -> dict:
        """
        Load overrides from a TOML file and apply them.

        Args:
            path: File to read; defaults to CONFIG_PATH. A missing file is not an error.

        Returns:
            The parsed mapping (empty if nothing was loaded)
        """
        path = path or cls.CONFIG_PATH
        if not path or not Path(path).is_file():
            return {}
        config = toml.load(path)
        cls.set_runtime_config(config)
        return config

    @classmethod
    def set_runtime_config(cls, config: dict) -> None:
        """Overwrite settings from a parsed TOML mapping."""
        if "bot_token" in config:
            cls.BOT_TOKEN = str(config["bot_token"] or "")
        if "timezone" in config:
            cls.TIMEZONE = str(config["timezone"] or "UTC")
        if "log_level" in config:
            cls.LOG_LEVEL = (str(config["log_level"] or "INFO")).upper()
        if "database_path" in config:
            cls.DATABASE_PATH = str(config["database_path"] or DEFAULT_DATABASE_PATH)
        if "forecast_hours" in config:
            cls.FORECAST_HOURS = int(config["forecast_hours"] or 48)
        if "chart_width" in config:
            cls.CHART_WIDTH = int(config["chart_width"] or 800)
        if "font_path" in config:
            cls.FONT_PATH = str(config["font_path"]) if config["font_path"] else None
        if "font_size" in config:
            cls.FONT_SIZE = int(config["font_size"] or 13)
        if "http_timeout_seconds" in config:
            cls.HTTP_TIMEOUT_SECONDS = float(config["http_timeout_seconds"] or 15)
        if "api_request_delay_seconds" in config:
            cls.API_REQUEST_DELAY_SECONDS = float(config["api_request_delay_seconds"] or 0)

    @classmethod
    def get_timezone(cls) -> pytz.BaseTzInfo:
        """Get the configured timezone object."""
        try:
            return pytz.timezone(cls.TIMEZONE)
        except pytz.exceptions.UnknownTimeZoneError:
            logging.warning(f"Unknown timezone '{cls.TIMEZONE}', using UTC")
            return pytz.UTC

    @classmethod
    def validate(cls) -> List[str]:
        """
        Validate configuration and return list of errors.
        Returns empty list if configuration is valid.
        """
        errors = []

        if not cls.BOT_TOKEN:
            errors.append("BOT_TOKEN is required")

        if not 1 <= cls.FORECAST_HOURS <= 384:
            errors.append("FORECAST_HOURS must be between 1 and 384")

        if cls.CHART_WIDTH < MIN_CHART_WIDTH:
            errors.append(f"CHART_WIDTH must be at least {MIN_CHART_WIDTH}")

        if cls.FONT_SIZE < 6:
            errors.append("FONT_SIZE must be at least 6")

        if cls.FONT_PATH and not Path(cls.FONT_PATH).is_file():
            errors.append(f"FONT_PATH does not exist: {cls.FONT_PATH}")

        if cls.HTTP_TIMEOUT_SECONDS <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be positive")

        if cls.API_REQUEST_DELAY_SECONDS < 0:
            errors.append("API_REQUEST_DELAY_SECONDS cannot be negative")

        return errors

    @classmethod
    def setup_logging(cls) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, cls.LOG_LEVEL, logging.INFO)

        logging.basicConfig(
            level=log_level,
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            handlers=[logging.StreamHandler()]
        )

        # Reduce noise from external libraries
        for name in ("httpx", "httpcore", "telegram", "apscheduler", "aiosqlite", "PIL", "matplotlib"):
            logging.getLogger(name).setLevel(logging.WARNING)

    @classmethod
    def ensure_data_dir(cls) -> None:
        """Ensure the data directory exists."""
        db_path = Path(cls.DATABASE_PATH)
        db_path.parent.mkdir(parents=True, exist_ok=True)
