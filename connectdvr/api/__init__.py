"""
HTTP control API exposing the plugin's actions, feedbacks and variables.
"""

from __future__ import annotations

from .server import create_app

__all__ = ["create_app"]
