"""Event handlers for the EventBus.

Each handler processes events and performs side effects like logging.
"""

from .logging_handler import LoggingEventHandler

__all__ = [
    "LoggingEventHandler",
]
