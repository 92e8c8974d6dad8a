"""
Main entry point for the Forecast Bot.
Initializes all components and starts the bot.
"""

import asyncio
import logging
import signal
from datetime import datetime

from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    filters
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import pytz

from .config import Config
from .charts import ChartConfig, FontResource
from .database import Database
from .weather import GeocodingClient, OpenMeteoClient
from .notifications import DeliveryOrchestrator
from .handlers import CommandHandlers

logger = logging.getLogger(__name__)


class ForecastBot:
    """
    Main bot class that coordinates all components.
    """

    def __init__(self):
        """Initialize the bot."""
        self.db: Database = None
        self.font: FontResource = None
        self.forecasts: OpenMeteoClient = None
        self.geocoder: GeocodingClient = None
        self.delivery: DeliveryOrchestrator = None
        self.scheduler: AsyncIOScheduler = None
        self.application: Application = None
        self.timezone = pytz.UTC
        self._running = False

    async def initialize(self) -> None:
        """
        Initialize all bot components.
        Settings come from the environment, optionally overridden by the TOML file at CONFIG_PATH.
        """
        Config.load_toml()
        Config.setup_logging()
        errors = Config.validate()
        if errors:
            for error in errors:
                logger.error(f"Config error: {error}")
            raise ValueError("Invalid configuration. Check .env or the TOML config file.")

        logger.debug("Initializing Forecast Bot...")
        Config.ensure_data_dir()
        self.timezone = Config.get_timezone()

        self.db = Database(Config.DATABASE_PATH)
        await self.db.connect()

        # Loaded once; every render shares it
        self.font = FontResource.load(Config.FONT_PATH, Config.FONT_SIZE)

        self.forecasts = OpenMeteoClient(timeout_seconds=Config.HTTP_TIMEOUT_SECONDS)
        self.geocoder = GeocodingClient(timeout_seconds=Config.HTTP_TIMEOUT_SECONDS)

        self.application = (
            Application.builder()
            .token(Config.BOT_TOKEN)
            .build()
        )

        self.delivery = DeliveryOrchestrator(
            db=self.db,
            forecasts=self.forecasts,
            font=self.font,
            chart_config=ChartConfig(width=Config.CHART_WIDTH),
            forecast_hours=Config.FORECAST_HOURS,
            bot=self.application.bot,
            api_delay=Config.API_REQUEST_DELAY_SECONDS,
        )

        self._setup_handlers()
        self._setup_scheduler()

        logger.debug("Forecast Bot initialized successfully")

    def _setup_handlers(self) -> None:
        """Setup Telegram command handlers."""
        cmd_handlers = CommandHandlers(self.db, self.delivery, self.geocoder)

        commands = {
            "start": cmd_handlers.start_command,
            "help": cmd_handlers.help_command,
            "set_location": cmd_handlers.set_location_command,
            "set_coords": cmd_handlers.set_coords_command,
            "unset_location": cmd_handlers.unset_location_command,
            "location": cmd_handlers.location_command,
            "find_coordinates": cmd_handlers.find_coordinates_command,
            "forecast": cmd_handlers.forecast_command,
            "daily": cmd_handlers.daily_command,
            "absolute_humidity": cmd_handlers.absolute_humidity_command,
            "sun": cmd_handlers.sun_command,
            "subscribe": cmd_handlers.subscribe_command,
            "unsubscribe": cmd_handlers.unsubscribe_command,
        }
        for name, callback in commands.items():
            self.application.add_handler(CommandHandler(name, callback))

        # Handle unknown commands
        self.application.add_handler(
            MessageHandler(filters.COMMAND, cmd_handlers.unknown_command)
        )

        self.application.add_error_handler(cmd_handlers.error_handler)

        logger.debug("Command handlers registered")

    def _setup_scheduler(self) -> None:
        """Setup the hourly subscription delivery job."""
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)

        self.scheduler.add_job(
            self._scheduled_delivery,
            trigger=CronTrigger(minute=0, timezone=self.timezone),
            id="forecast_delivery",
            name="Scheduled forecast delivery",
            replace_existing=True,
        )

        logger.debug(f"Scheduler configured: hourly deliveries in {self.timezone}")

    async def _scheduled_delivery(self) -> None:
        """Scheduled job delivering charts to subscriptions due this hour."""
        hour = datetime.now(self.timezone).hour
        logger.debug(f"Running scheduled delivery for {hour:02d}:00")
        try:
            delivered = await self.delivery.run_scheduled(hour)
            logger.debug(f"Scheduled delivery completed: {delivered} charts sent")
        except Exception as e:
            logger.error(f"Error in scheduled delivery: {e}")

    async def start(self) -> None:
        """Start the bot."""
        if self._running:
            logger.warning("Bot is already running")
            return

        self._running = True
        logger.debug("Starting Forecast Bot...")

        self.scheduler.start()

        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling(
            allowed_updates=Update.ALL_TYPES
        )

        logger.info("Forecast Bot is running")

        # Keep running until stopped
        while self._running:
            await asyncio.sleep(1)

    async def stop(self) -> None:
        """Stop the bot gracefully."""
        logger.debug("Stopping Forecast Bot...")
        self._running = False

        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        # Updater may already be stopped
        if self.application and self.application.running:
            if self.application.updater and self.application.updater.running:
                await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

        if self.forecasts:
            await self.forecasts.close()
        if self.geocoder:
            await self.geocoder.close()

        if self.db:
            await self.db.close()

        logger.debug("Forecast Bot stopped")


async def main() -> None:
    """Main entry point."""
    bot = ForecastBot()

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.debug("Received shutdown signal")
        bot._running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await bot.initialize()
        await bot.start()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await bot.stop()


def run() -> None:
    """Run the bot (blocking)."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
