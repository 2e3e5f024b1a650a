"""
In-memory mirror of the device state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .utils.timecode import UNSPECIFIED, TimeValue, seconds_to_text

LOG = logging.getLogger(__name__)

CUEPOINT_SLOTS = ("1", "2", "3", "4", "5")
DEFAULT_LIVE_WINDOW = 15.0
DEFAULT_MIN_BUFFER = 25.0
PLAYER_SCOPE = "player"

Clock = Callable[[], float]


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value if value is not None else default)
    except (TypeError, ValueError):
        return default


@dataclass
class ChannelMerge:
    channel_id: str
    duration_changed: bool = False
    cloud_duration_reported: bool = False


@dataclass
class PlayerMerge:
    time_changed: bool = False
    channel_changed: bool = False
    playing_changed: bool = False


@dataclass
class Channel:
    id: str
    name: str = ""
    duration: float = 0.0
    cloud_duration: Optional[float] = None
    error: Optional[dict] = None
    last_duration_change: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, channel_id: str, payload: Optional[dict]) -> "Channel":
        channel = cls(id=str(channel_id))
        data = dict(payload or {})
        # Deltas are scoped by the snapshot key, so a differing payload id is ignored.
        data.pop("id", None)
        channel.name = str(data.pop("name", "") or channel.id)
        channel.duration = _as_float(data.pop("duration", 0.0))
        if "cloud_duration" in data:
            channel.cloud_duration = _as_float(data.pop("cloud_duration"))
        error = data.pop("error", None)
        channel.error = error if isinstance(error, dict) else None
        channel.extra = data
        return channel

    @property
    def has_error(self) -> bool:
        return bool(self.error and self.error.get("message"))

    def apply(self, payload: dict, now: float) -> ChannelMerge:
        result = ChannelMerge(channel_id=self.id)
        for key, value in payload.items():
            if key == "id":
                continue
            if key == "name":
                self.name = str(value or self.id)
            elif key == "duration":
                next_duration = _as_float(value, self.duration)
                if next_duration != self.duration:
                    self.last_duration_change = now
                    result.duration_changed = True
                self.duration = next_duration
            elif key == "cloud_duration":
                self.cloud_duration = _as_float(value)
                result.cloud_duration_reported = self.cloud_duration > 0
            elif key == "error":
                self.error = value if isinstance(value, dict) else None
            else:
                self.extra[key] = value
        return result

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(
            {
                "id": self.id,
                "name": self.name,
                "duration": self.duration,
                "cloud_duration": self.cloud_duration,
                "error": self.error,
            }
        )
        return data


@dataclass
class PlayerStatus:
    playing: bool = False
    time: Optional[float] = None
    active_channel_id: Optional[str] = None
    image_primary: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> "PlayerStatus":
        status = cls()
        status.apply(payload or {})
        return status

    def apply(self, payload: dict) -> PlayerMerge:
        result = PlayerMerge()
        for key, value in payload.items():
            if key == "playing":
                self.playing = bool(value)
                result.playing_changed = True
            elif key == "time":
                self.time = _as_float(value)
                result.time_changed = True
            elif key == "active_channel_id":
                self.active_channel_id = str(value) if value is not None else None
                result.channel_changed = True
            elif key == "image_primary":
                self.image_primary = str(value) if value else None
            else:
                self.extra[key] = value
        return result

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update(
            {
                "playing": self.playing,
                "time": self.time,
                "active_channel_id": self.active_channel_id,
                "image_primary": self.image_primary,
            }
        )
        return data


@dataclass
class Cuepoint:
    channel_id: str
    time: float
    image: Optional[bytes] = None


@dataclass
class DeviceState:
    """
    Everything the plugin knows about the device.

    Owned by the plugin core; the preview fetcher and feedback evaluator read
    and write it by reference.
    """

    channels: Dict[str, Channel] = field(default_factory=dict)
    player: PlayerStatus = field(default_factory=PlayerStatus)
    current_channel: Optional[str] = None
    current_time: Optional[float] = None
    cuepoints: Dict[str, Cuepoint] = field(default_factory=dict)
    preview_image: Optional[bytes] = None
    live_window: float = DEFAULT_LIVE_WINDOW
    min_buffer: float = DEFAULT_MIN_BUFFER
    clock: Clock = field(default=time.monotonic, repr=False)

    # ------------------------------------------------------------------ merges

    def load_snapshot(self, data: Optional[dict]) -> None:
        """Replace channels and player status with the device's initial payload."""

        data = data or {}
        channels: Dict[str, Channel] = {}
        for channel_id in data.get("channel") or []:
            key = str(channel_id)
            payload = data.get(channel_id)
            if payload is None:
                payload = data.get(key)
            channel = Channel.from_payload(key, payload if isinstance(payload, dict) else {})
            channels[key] = channel
        self.channels = channels

        player_payload = data.get("player")
        self.player = PlayerStatus.from_payload(player_payload if isinstance(player_payload, dict) else {})
        if self.player.active_channel_id is not None:
            self.current_channel = self.player.active_channel_id
        if self.player.time is not None:
            self.current_time = self.player.time
        LOG.debug("Snapshot loaded with %d channel(s)", len(self.channels))

    def merge_player(self, payload: Optional[dict]) -> PlayerMerge:
        if not payload:
            return PlayerMerge()
        result = self.player.apply(payload)
        if result.time_changed:
            self.current_time = self.player.time
        if result.channel_changed:
            self.current_channel = self.player.active_channel_id
        return result

    def merge_channel(self, channel_id: str, payload: Optional[dict]) -> Optional[ChannelMerge]:
        channel = self.channels.get(channel_id)
        if channel is None:
            return None
        return channel.apply(payload or {}, self.clock())

    # ------------------------------------------------------------------ queries

    def is_valid_channel(self, channel_id: Optional[str]) -> bool:
        channel = self.channels.get(channel_id) if channel_id is not None else None
        return channel is not None and not channel.has_error

    def is_live(self, channel_id: Optional[str]) -> bool:
        if not self.is_valid_channel(channel_id):
            return False
        changed_at = self.channels[channel_id].last_duration_change
        if changed_at is None:
            return False
        return (self.clock() - changed_at) <= self.live_window

    def is_playing(self) -> bool:
        return bool(self.player.playing)

    def is_currently_active(self) -> bool:
        return bool(self.current_channel) and bool(self.current_time)

    def channel_choices(self, blank: bool = False) -> List[dict]:
        choices = [{"id": "", "label": ""}] if blank else []
        for channel in self.channels.values():
            choices.append({"id": channel.id, "label": channel.name})
        return choices

    def time_variables(self) -> Dict[str, str]:
        values = {"time": seconds_to_text(self.current_time or 0.0)}
        channel = self.channels.get(self.current_channel) if self.current_channel else None
        if channel is not None:
            values["duration"] = seconds_to_text(channel.duration)
            if self.player.time is not None:
                values["remaining"] = seconds_to_text(max(0.0, channel.duration - self.player.time))
            else:
                values["remaining"] = seconds_to_text(0)
        return values

    # ------------------------------------------------------------------ seeking

    def set_current_time(self, value: float) -> float:
        self.current_time = _as_float(value)
        return self.current_time

    def resolve_start_time(self, channel_id: str, requested: TimeValue, commit: bool = True) -> float:
        """
        Pick the start time for loading ``channel_id``.

        A blank request means the live edge for live channels and the start
        otherwise. Anything closer than ``min_buffer`` to the end is pulled
        back. With ``commit`` the result becomes :attr:`current_time`.
        """

        channel = self.channels[channel_id]
        if requested == UNSPECIFIED:
            target = channel.duration if self.is_live(channel_id) else 0.0
        else:
            target = _as_float(requested)

        limit = channel.duration - self.min_buffer
        if target > limit:
            target = max(0.0, limit)

        if commit:
            self.set_current_time(target)
        return target

    # ------------------------------------------------------------------ cuepoints

    def save_cuepoint(self, slot: str) -> Cuepoint:
        cuepoint = Cuepoint(
            channel_id=str(self.current_channel),
            time=float(self.current_time or 0.0),
            image=self.preview_image,
        )
        self.cuepoints[str(slot)] = cuepoint
        return cuepoint

    def snapshot(self) -> dict:
        return {
            "channels": {key: channel.to_dict() for key, channel in self.channels.items()},
            "player": self.player.to_dict(),
            "currentChannel": self.current_channel,
            "currentTime": self.current_time,
            "cuepoints": {
                slot: {"channel": cue.channel_id, "time": cue.time, "hasImage": cue.image is not None}
                for slot, cue in self.cuepoints.items()
            },
            "liveChannels": [key for key in self.channels if self.is_live(key)],
        }
