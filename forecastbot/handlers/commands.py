"""
Telegram bot command handlers.
Handles all bot commands from users.
"""

import logging
from functools import wraps
from typing import Tuple

from telegram import Update
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from ..database import Database, Location, Subscription
from ..errors import NoLocationSet, UserFacingError
from ..notifications import ChartKind, DeliveryOrchestrator, MessageTemplates
from ..weather import GeocodingClient, parse_coordinates

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "❌ Something went wrong\\. Please try again later\\."


def identity_of(update: Update) -> Tuple[str, str]:
    """
    (domain, owner) of the user issuing a command.

    The domain is the chat, the owner the user's @username, or the numeric
    user id for users without one.
    """
    user = update.effective_user
    chat = update.effective_chat
    return str(chat.id), user.username or str(user.id)


async def reply_safely(update: Update, text: str) -> None:
    """Reply in MarkdownV2; a failing reply is logged, never raised."""
    try:
        await update.effective_message.reply_text(text, parse_mode=ParseMode.MARKDOWN_V2)
    except TelegramError as e:
        logger.error(f"Failed to reply in chat {update.effective_chat.id}: {e}")


def reports_errors(handler):
    """
    Reply with the message of user-facing errors and a generic failure
    otherwise, instead of letting the exception reach the dispatcher.
    """
    @wraps(handler)
    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        command = handler.__name__.removesuffix("_command")
        try:
            await handler(self, update, context)
        except UserFacingError as e:
            await reply_safely(update, MessageTemplates.escape_markdown(e.message))
        except TelegramError as e:
            logger.error(f"/{command} failed talking to Telegram: {e}")
            await reply_safely(update, GENERIC_FAILURE)
        except Exception:
            logger.exception(f"/{command} failed")
            await reply_safely(update, GENERIC_FAILURE)
    return wrapper


class CommandHandlers:
    """Handles all Telegram bot commands."""

    def __init__(self, db: Database, delivery: DeliveryOrchestrator, geocoder: GeocodingClient):
        """
        Initialize command handlers.

        Args:
            db: Database instance
            delivery: Forecast delivery orchestrator
            geocoder: Geocoding client for place names
        """
        self.db = db
        self.delivery = delivery
        self.geocoder = geocoder

    async def start_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /start command.
        Sends welcome message.
        """
        user = update.effective_user
        message = MessageTemplates.format_welcome_message(user.first_name or "there")

        await update.message.reply_text(
            message,
            parse_mode=ParseMode.MARKDOWN_V2
        )

        logger.info(f"User {user.id} started bot in chat {update.effective_chat.id}")

    async def help_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /help command.
        Sends help message with command list.
        """
        await update.message.reply_text(
            MessageTemplates.format_help_message(),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    @reports_errors
    async def set_location_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /set_location command.
        Usage: /set_location <place name>
        """
        place = " ".join(context.args or [])
        if not place:
            raise UserFacingError("Usage: /set_location <place name>")

        result = await self.geocoder.search(place)
        location = result.to_location()
        domain, owner = identity_of(update)
        await self.db.set_location(domain, owner, location)

        await update.message.reply_text(
            MessageTemplates.format_location_set(location),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    @reports_errors
    async def set_coords_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /set_coords command.
        Usage: /set_coords <latitude, longitude>
        """
        text = " ".join(context.args or [])
        if not text:
            raise UserFacingError("Usage: /set_coords <latitude, longitude>")

        latitude, longitude = parse_coordinates(text)
        location = Location.from_coordinates(latitude, longitude)
        domain, owner = identity_of(update)
        await self.db.set_location(domain, owner, location)

        await update.message.reply_text(
            MessageTemplates.format_location_set(location),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    @reports_errors
    async def unset_location_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /unset_location command."""
        domain, owner = identity_of(update)
        if await self.db.delete_location(domain, owner):
            text = "Successfully unset location\\."
        else:
            text = "You had no location set\\."
        await update.message.reply_text(text, parse_mode=ParseMode.MARKDOWN_V2)

    @reports_errors
    async def location_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /location command. Shows the registered location."""
        domain, owner = identity_of(update)
        location = await self.db.get_location(domain, owner)
        await update.message.reply_text(
            MessageTemplates.format_location(location),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    @reports_errors
    async def find_coordinates_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /find_coordinates command.
        Usage: /find_coordinates <place name>
        """
        place = " ".join(context.args or [])
        if not place:
            raise UserFacingError("Usage: /find_coordinates <place name>")

        result = await self.geocoder.search(place)
        await update.message.reply_text(
            MessageTemplates.format_geocoding_result(result.to_location(), result.population),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    async def _resolve_location(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> Location:
        """The place named in the arguments, else the identity's registered location."""
        place = " ".join(context.args or [])
        if place:
            result = await self.geocoder.search(place)
            return result.to_location()
        domain, owner = identity_of(update)
        location = await self.db.get_location(domain, owner)
        if location is None:
            raise NoLocationSet()
        return location

    async def _send_chart(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
        kind: ChartKind
    ) -> None:
        chat_id = update.effective_chat.id

        async def send(image: bytes, caption: str) -> None:
            await context.bot.send_photo(
                chat_id=chat_id,
                photo=image,
                caption=caption,
                parse_mode=ParseMode.MARKDOWN_V2
            )

        place = " ".join(context.args or [])
        if place:
            result = await self.geocoder.search(place)
            chart = await self.delivery.render_for_location(result.to_location(), kind)
            await send(chart.image, chart.caption)
            return

        domain, owner = identity_of(update)
        await self.delivery.deliver_forecast(domain, owner, send, kind)

    @reports_errors
    async def forecast_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /forecast command.
        Usage: /forecast for the registered location, /forecast <place> for any place.
        """
        await self._send_chart(update, context, ChartKind.HOURLY)

    @reports_errors
    async def daily_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /daily command.
        Usage: /daily [place]
        """
        await self._send_chart(update, context, ChartKind.DAILY)

    @reports_errors
    async def absolute_humidity_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /absolute_humidity command.
        Usage: /absolute_humidity [place]
        """
        await self._send_chart(update, context, ChartKind.ABSOLUTE_HUMIDITY)

    @reports_errors
    async def sun_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /sun command.
        Usage: /sun [place]
        """
        location = await self._resolve_location(update, context)
        sunrise, sunset = await self.delivery.sun_times(location)
        await update.message.reply_text(
            MessageTemplates.format_sun_times(location, sunrise, sunset),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    @reports_errors
    async def subscribe_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """
        Handle /subscribe command.
        Usage: /subscribe <hour 0-23>
        """
        args = context.args or []
        if len(args) != 1 or not args[0].isdigit() or not 0 <= int(args[0]) <= 23:
            raise UserFacingError("Usage: /subscribe <hour from 0 to 23>")

        domain, owner = identity_of(update)
        subscription = Subscription(
            domain=domain,
            owner=owner,
            chat_id=update.effective_chat.id,
            hour=int(args[0]),
        )
        await self.db.set_subscription(subscription)
        await update.message.reply_text(
            MessageTemplates.format_subscription(subscription),
            parse_mode=ParseMode.MARKDOWN_V2
        )

    @reports_errors
    async def unsubscribe_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /unsubscribe command."""
        domain, owner = identity_of(update)
        if await self.db.delete_subscription(domain, owner):
            text = "Daily forecasts stopped\\."
        else:
            text = "You were not subscribed\\."
        await update.message.reply_text(text, parse_mode=ParseMode.MARKDOWN_V2)

    async def unknown_command(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle unknown commands."""
        await update.message.reply_text(
            "❓ Unknown command\\. Use /help for the list of commands\\.",
            parse_mode=ParseMode.MARKDOWN_V2
        )

    async def error_handler(
        self,
        update: object,
        context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Log errors raised outside the command handlers and tell the user."""
        logger.error("Error while handling an update", exc_info=context.error)
        if isinstance(update, Update) and update.effective_message:
            await reply_safely(update, GENERIC_FAILURE)
