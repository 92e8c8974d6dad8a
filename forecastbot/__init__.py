"""
Forecast Chart Bot
==================
A Telegram bot that remembers each user's location and posts rendered
hourly weather forecast charts, on demand or every day at a chosen hour.
"""

__version__ = "1.0.0"
__author__ = "Forecast Chart Bot"
