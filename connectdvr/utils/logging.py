"""
Logging helpers for the Connect DVR plugin.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Transport libraries that log every websocket frame at INFO.
NOISY_LOGGERS = ("socketio", "engineio", "httpx", "httpcore")


def resolve_level(level: Union[int, str, None]) -> int:
    if level is None or level == "":
        return logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level '{level}'")
    return resolved


def configure_logging(level: Union[int, str, None] = None) -> int:
    """
    Configure the root logger for the plugin process and return the level used.

    A handler installed by the embedding process is kept; only levels change.
    """

    resolved = resolve_level(level)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(resolved)

    library_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
    return resolved


def redact_token(token: Optional[str]) -> str:
    """Shorten a session token so it can be logged without leaking it."""

    if not token:
        return "<none>"
    if len(token) <= 6:
        return "***"
    return f"{token[:4]}..."
