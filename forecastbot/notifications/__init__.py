"""Forecast delivery and message templates."""

from .delivery import ChartKind, DeliveryOrchestrator, DeliveryResult, DeliveryState
from .templates import MessageTemplates, describe_interval

__all__ = [
    "ChartKind",
    "DeliveryOrchestrator",
    "DeliveryResult",
    "DeliveryState",
    "MessageTemplates",
    "describe_interval",
]
