"""Utility helpers for the plugin."""

from .logging import configure_logging, redact_token
from .tasks import BackgroundTasks, RetryTimer
from .timecode import UNSPECIFIED, seconds_to_text, text_to_seconds

__all__ = [
    "BackgroundTasks",
    "RetryTimer",
    "UNSPECIFIED",
    "configure_logging",
    "redact_token",
    "seconds_to_text",
    "text_to_seconds",
]
