"""
Shared infrastructure: settings, logging, clock and transport retry.
"""

from .clock import UTC, Clock, FixedClock, SystemClock, delivery_hour, is_weekend
from .config import FactsSettings, get_settings, reset_settings
from .logging import get_logger, reset_logging
from .retry import PermanentSendError, TransientSendError, transport_retrying

__all__ = [
    "UTC",
    "Clock",
    "FixedClock",
    "SystemClock",
    "delivery_hour",
    "is_weekend",
    "FactsSettings",
    "get_settings",
    "reset_settings",
    "get_logger",
    "reset_logging",
    "PermanentSendError",
    "TransientSendError",
    "transport_retrying",
]
