"""Telegram command handlers."""

from .commands import CommandHandlers, identity_of

__all__ = ["CommandHandlers", "identity_of"]
