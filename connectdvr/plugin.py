"""
Plugin core: lifecycle, wiring and reconciliation of device events.

The host drives the plugin through three calls, :meth:`ConnectDvrPlugin.start`,
:meth:`ConnectDvrPlugin.update_config` and :meth:`ConnectDvrPlugin.stop`.
Inbound realtime events are merged into :class:`DeviceState` synchronously,
so each merge (store update, derived values, feedback re-checks) completes
before the loop processes the next event.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from . import DeviceConfig
from .catalog import (
    VARIABLES,
    build_action_definitions,
    build_feedback_definitions,
    initial_variable_values,
)
from .commands import CommandDispatcher
from .host import ConnectionStatus, HostAdapter
from .preview import PreviewFetcher
from .realtime import RealtimeChannel, SocketFactory, default_socket_factory
from .session import SessionManager
from .state import PLAYER_SCOPE, Clock, DeviceState
from .utils.tasks import BackgroundTasks

LOG = logging.getLogger(__name__)


class ConnectDvrPlugin:
    def __init__(
        self,
        host: HostAdapter,
        *,
        socket_factory: Optional[SocketFactory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.host = host
        self.config = DeviceConfig()
        self.state = DeviceState(clock=clock)
        self._transport = transport
        self._socket_factory = socket_factory
        self._tasks = BackgroundTasks("plugin")
        self._client = self._make_client(self.config)

        self.channel = RealtimeChannel(
            on_connect=self._on_connect,
            on_disconnect=self._on_disconnect,
            on_delta=self.handle_delta,
            on_snapshot=self.handle_snapshot,
            socket_factory=self._create_socket,
            tasks=self._tasks,
        )
        self.session = SessionManager(
            self.config,
            host,
            self._client,
            on_session_started=self._open_channel,
            on_teardown=self._teardown_connection,
            tasks=self._tasks,
        )
        self.preview = PreviewFetcher(
            self.state,
            lambda: self._client,
            base_url=lambda: self.config.base_url,
            is_connected=lambda: self.channel.is_open,
            on_image=lambda: self.host.check_feedbacks("previewpic"),
        )
        self.commands = CommandDispatcher(self.state, self.session, self.channel, host)

    # ------------------------------------------------------------------ wiring

    def _make_client(self, config: DeviceConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(verify=config.verify_tls, transport=self._transport)

    def _create_socket(self) -> Any:
        factory = self._socket_factory or default_socket_factory(self.config.verify_tls)
        return factory()

    async def _apply_config(self, config: DeviceConfig) -> None:
        previous = self.config
        self.config = config
        self.session.config = config
        self.state.live_window = config.live_window
        self.state.min_buffer = config.min_buffer
        self.preview.refresh_interval = config.preview_refresh
        self.preview.timeout = config.login_timeout
        self.channel.connect_timeout = config.login_timeout

        if config.verify_tls != previous.verify_tls:
            await self.session.drain(timeout=previous.login_timeout)
            old_client = self._client
            self._client = self._make_client(config)
            self.session.client = self._client
            await old_client.aclose()

    async def _open_channel(self, token: str) -> bool:
        return await self.channel.open(self.config.base_url, token)

    async def _teardown_connection(self) -> None:
        await self.preview.cancel()
        await self.channel.close()

    def _on_connect(self) -> None:
        self.session.mark_connected()

    async def _on_disconnect(self, reason: Any, *, retry_immediately: bool = False) -> None:
        await self.session.handle_disconnect(reason, retry_immediately=retry_immediately)

    # ------------------------------------------------------------------ lifecycle

    async def start(self, config: DeviceConfig) -> None:
        await self._apply_config(config)
        self.host.set_variable_definitions(VARIABLES)
        self.host.set_variable_values(initial_variable_values())
        self._publish_catalogs()

        if config.is_complete():
            await self.session.login(auto_retry=True)
        else:
            self.host.update_status(ConnectionStatus.WARNING, "Missing host or credentials")

    async def update_config(self, config: DeviceConfig) -> None:
        self.session.abort_pending()
        if self.session.session_token:
            await self.session.logout()
        await self._apply_config(config)

        if config.is_complete():
            await self.session.login(auto_retry=True)
        else:
            self.host.update_status(ConnectionStatus.WARNING, "Missing host or credentials")

    async def stop(self) -> None:
        await self.session.close()
        await self.session.drain(timeout=self.config.login_timeout)
        await self._tasks.cancel_all()
        await self._client.aclose()
        LOG.info("Plugin stopped.")

    # ------------------------------------------------------------------ reconciliation

    def _publish_catalogs(self) -> None:
        self.host.set_action_definitions(build_action_definitions(self.commands, self.state))
        self.host.set_feedback_definitions(build_feedback_definitions(self.state))

    def handle_snapshot(self, data: Any) -> None:
        if not isinstance(data, dict):
            LOG.warning("Ignoring malformed device snapshot of type %s", type(data).__name__)
            return

        self.state.load_snapshot(data)
        if self.state.current_channel is not None:
            LOG.debug("Setting active channel to %s", self.state.current_channel)
        self.host.set_variable_values(self.state.time_variables())
        self._publish_catalogs()
        self.host.check_feedbacks()
        self.preview.request_refresh()

    def handle_delta(self, scope: str, payload: Any) -> None:
        if not isinstance(payload, dict) or not payload:
            return
        if scope == PLAYER_SCOPE:
            self._apply_player_delta(payload)
        elif scope in self.state.channels:
            self._apply_channel_delta(scope, payload)
        else:
            LOG.debug("Ignoring delta for unknown scope %s", scope)

    def _apply_player_delta(self, payload: dict) -> None:
        result = self.state.merge_player(payload)
        if result.time_changed:
            self.host.set_variable_values(self.state.time_variables())
        if result.channel_changed:
            LOG.debug("Setting active channel to %s", self.state.current_channel)
            self.host.check_feedbacks("active")
        if result.playing_changed:
            self.preview.request_refresh()
            self.host.check_feedbacks("playing", "stopped")

    def _apply_channel_delta(self, channel_id: str, payload: dict) -> None:
        result = self.state.merge_channel(channel_id, payload)
        if result is None:
            return
        if channel_id == self.state.current_channel:
            self.host.set_variable_values(self.state.time_variables())
        # cloud_duration arrives every few seconds for every channel; it drives liveness re-checks.
        if result.cloud_duration_reported:
            self.host.check_feedbacks("streaming")
