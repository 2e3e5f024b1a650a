"""
Playback commands issued on behalf of the host.

Every command validates against the local state first and returns ``False``
(with a log line) instead of raising when it cannot be carried out.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .host import HostAdapter
from .realtime import LOAD_CHANNEL, TOGGLE_PLAY_STATE, RealtimeChannel
from .session import SessionManager
from .state import CUEPOINT_SLOTS, DeviceState
from .utils.timecode import TimeValue, seconds_to_text, text_to_seconds

LOG = logging.getLogger(__name__)

PLAY_STATES = {"play", "pause"}

AckCallback = Callable[[], Union[None, Awaitable[Any]]]


class CommandDispatcher:
    def __init__(
        self,
        state: DeviceState,
        session: SessionManager,
        channel: RealtimeChannel,
        host: HostAdapter,
    ) -> None:
        self.state = state
        self.session = session
        self.channel = channel
        self.host = host

    def _is_connected(self) -> bool:
        if not self.session.is_connected or not self.channel.is_open:
            LOG.warning("Attempted to send command when not connected.")
            return False
        return True

    def _publish_time(self) -> None:
        self.host.set_variable_values(self.state.time_variables())

    # ------------------------------------------------------------------ transport

    async def play_pause(self) -> bool:
        if not self._is_connected():
            return False
        LOG.info("Sending pause/play command.")
        return await self.channel.send_command(TOGGLE_PLAY_STATE)

    async def play(self) -> bool:
        if self.state.is_playing() or self.state.current_channel is None:
            return False
        return await self.play_pause()

    async def pause(self) -> bool:
        if not self.state.is_playing() or self.state.current_channel is None:
            return False
        return await self.play_pause()

    async def load_channel(
        self,
        channel_id: Optional[str],
        requested_time: TimeValue,
        callback: Optional[AckCallback] = None,
    ) -> bool:
        if not self._is_connected():
            return False
        if not self.state.is_valid_channel(channel_id):
            LOG.warning("Cannot load invalid channel %s", channel_id)
            return False

        start_time = self.state.resolve_start_time(channel_id, requested_time, commit=False)
        LOG.info("Loading channel %s at %s.", channel_id, start_time)

        sent = await self.channel.send_command(
            LOAD_CHANNEL, channel_id, start_time, False, -1, False, None, callback=callback
        )
        if not sent:
            return False

        self.state.set_current_time(start_time)
        self.state.current_channel = channel_id
        self._publish_time()
        self.host.check_feedbacks("active")
        return True

    async def skip(self, delta_seconds: Any) -> bool:
        if not self.state.is_currently_active():
            LOG.info("No active channel to skip within.")
            return False
        try:
            delta = float(delta_seconds)
        except (TypeError, ValueError):
            LOG.warning("Invalid skip time %r", delta_seconds)
            return False

        current = float(self.state.current_time or 0.0)
        LOG.info("Skipping time by %s. From %s -> %s.", delta, current, current + delta)
        return await self.load_channel(self.state.current_channel, current + delta)

    async def go_to_time(self, requested: Any) -> bool:
        if self.state.current_channel is None:
            LOG.warning("Cannot go to time when channel not loaded.")
            return False
        try:
            target = text_to_seconds(requested)
        except ValueError as exc:
            LOG.warning("%s", exc)
            return False
        return await self.load_channel(self.state.current_channel, target)

    async def load_channel_at(self, channel_id: Optional[str], requested: Any) -> bool:
        try:
            target = text_to_seconds(requested)
        except ValueError as exc:
            LOG.warning("%s", exc)
            return False
        return await self.load_channel(channel_id, target)

    # ------------------------------------------------------------------ cuepoints

    def set_cuepoint(self, slot: Any) -> bool:
        slot = str(slot)
        if slot not in CUEPOINT_SLOTS:
            LOG.warning("Unknown cuepoint slot %s", slot)
            return False
        if not self.state.is_currently_active():
            LOG.info("No active channel to save cuepoint.")
            return False

        cuepoint = self.state.save_cuepoint(slot)
        LOG.info(
            "Setting cuepoint for slot %s (%s at %s)",
            slot,
            cuepoint.channel_id,
            seconds_to_text(cuepoint.time),
        )
        self.host.check_feedbacks("cuepoint")
        return True

    async def recall_cuepoint(self, slot: Any, play_state: str = "pause") -> bool:
        slot = str(slot)
        cuepoint = self.state.cuepoints.get(slot)
        if cuepoint is None:
            LOG.info("No cuepoint saved in slot %s", slot)
            return False
        if play_state not in PLAY_STATES:
            LOG.warning("Unknown play state %r; defaulting to pause", play_state)
            play_state = "pause"

        LOG.info("Recalling cuepoint for slot %s", slot)
        # Loading always starts playback, so a pause has to be sent once the device acknowledges.
        callback = self.play_pause if play_state == "pause" else None
        return await self.load_channel(cuepoint.channel_id, cuepoint.time, callback)

    # ------------------------------------------------------------------ device

    async def reboot(self) -> bool:
        return await self.session.reboot()
