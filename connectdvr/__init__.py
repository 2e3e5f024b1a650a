"""
Connect DVR control plugin package.

The plugin logs into a Haivision Connect DVR appliance, keeps a realtime
Socket.IO session open, mirrors the device state locally and exposes playback
commands and feedbacks to an automation host.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "DeviceConfig",
]

DEFAULT_USERNAME = "haioperator"


class DeviceConfig:
    """Connection settings and timing knobs for a single device."""

    def __init__(
        self,
        host: str = "",
        username: str = DEFAULT_USERNAME,
        password: str = "",
        *,
        verify_tls: bool = False,
        login_timeout: float = 5.0,
        reconnect_timeout: float = 10.0,
        reboot_wait: float = 210.0,
        preview_refresh: float = 1.5,
        live_window: float = 15.0,
        min_buffer: float = 25.0,
    ) -> None:
        self.host = (host or "").strip()
        self.username = username or ""
        self.password = password or ""
        self.verify_tls = bool(verify_tls)
        self.login_timeout = float(login_timeout)
        self.reconnect_timeout = float(reconnect_timeout)
        # Devices are usually reachable again within three and a half minutes.
        self.reboot_wait = float(reboot_wait)
        self.preview_refresh = float(preview_refresh)
        self.live_window = float(live_window)
        self.min_buffer = float(min_buffer)

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"

    def is_complete(self) -> bool:
        return bool(self.host and self.username and self.password)

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "DeviceConfig":
        data = dict(data or {})
        known = {
            "host",
            "username",
            "password",
            "verify_tls",
            "login_timeout",
            "reconnect_timeout",
            "reboot_wait",
            "preview_refresh",
            "live_window",
            "min_buffer",
        }
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "username": self.username,
            "verify_tls": self.verify_tls,
            "login_timeout": self.login_timeout,
            "reconnect_timeout": self.reconnect_timeout,
            "reboot_wait": self.reboot_wait,
            "preview_refresh": self.preview_refresh,
            "live_window": self.live_window,
            "min_buffer": self.min_buffer,
        }
