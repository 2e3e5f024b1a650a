"""
Socket.IO connection to the device's realtime transport.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

import socketio
from socketio import exceptions as socketio_exceptions

from .utils.tasks import BackgroundTasks

LOG = logging.getLogger(__name__)

SOCKET_PATH = "/transport/socket.io/"
COMMAND_EVENT = "sendAndCallback2"
TOGGLE_PLAY_STATE = "playback:togglePlayState"
LOAD_CHANNEL = "playback:loadChannel"
# The device ignores the io cookie value but expects the key to be present.
IO_COOKIE = "rj-zrxObRlXCYjP7AACx"

SocketFactory = Callable[[], Any]
DisconnectHandler = Callable[..., Awaitable[None]]


def default_socket_factory(ssl_verify: bool = False) -> SocketFactory:
    def factory() -> socketio.AsyncClient:
        return socketio.AsyncClient(reconnection=False, ssl_verify=ssl_verify, logger=False)

    return factory


class RealtimeChannel:
    """
    Wrap a single Socket.IO client and route its events to the plugin core.

    Only one socket is alive at a time; :meth:`open` closes the previous one
    first and events from a replaced socket are dropped.
    """

    def __init__(
        self,
        *,
        on_connect: Callable[[], None],
        on_disconnect: DisconnectHandler,
        on_delta: Callable[[str, Any], None],
        on_snapshot: Callable[[Any], None],
        socket_factory: Optional[SocketFactory] = None,
        tasks: Optional[BackgroundTasks] = None,
        connect_timeout: float = 5.0,
    ) -> None:
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_delta = on_delta
        self._on_snapshot = on_snapshot
        self._socket_factory = socket_factory or default_socket_factory()
        self._tasks = tasks or BackgroundTasks("realtime")
        self.connect_timeout = connect_timeout
        self._socket: Optional[Any] = None
        self._failed = False

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    def _bind(self, sio: Any) -> None:
        def current() -> bool:
            return sio is self._socket

        async def on_connect() -> None:
            if current():
                LOG.info("Realtime channel connected.")
                self._on_connect()

        async def on_connect_error(data: Any = None) -> None:
            self._fail(sio, data or "connect_error", retry_immediately=False)

        async def on_disconnect(*args: Any) -> None:
            self._fail(sio, args[0] if args else "disconnected", retry_immediately=False)

        async def on_logout(*args: Any) -> None:
            self._fail(sio, "logged out by device", retry_immediately=True)

        async def on_delta(scope: Any = None, payload: Any = None, *args: Any) -> None:
            if not current() or scope is None:
                return
            try:
                self._on_delta(str(scope), payload)
            except Exception:
                LOG.exception("Failed to apply delta for scope %s", scope)

        async def on_init(data: Any = None) -> None:
            if not current():
                return
            try:
                self._on_snapshot(data)
            except Exception:
                LOG.exception("Failed to apply device snapshot")

        sio.on("connect", on_connect)
        sio.on("connect_error", on_connect_error)
        sio.on("disconnect", on_disconnect)
        sio.on("logout", on_logout)
        sio.on("model:delta", on_delta)
        sio.on("data:init", on_init)

    def _fail(self, sio: Any, reason: Any, *, retry_immediately: bool) -> None:
        if sio is not self._socket or self._failed:
            return
        self._failed = True
        self._tasks.spawn(self._on_disconnect(reason, retry_immediately=retry_immediately))

    async def open(self, base_url: str, token: str) -> bool:
        await self.close()

        sio = self._socket_factory()
        self._socket = sio
        self._failed = False
        self._bind(sio)

        try:
            await sio.connect(
                base_url,
                headers={"Cookie": f"io={IO_COOKIE}; sessionID={token}"},
                transports=["websocket"],
                socketio_path=SOCKET_PATH,
                wait_timeout=self.connect_timeout,
            )
        except (socketio_exceptions.SocketIOError, OSError, asyncio.TimeoutError) as exc:
            LOG.warning("Realtime connection failed: %s", exc)
            self._fail(sio, exc, retry_immediately=False)
            return False
        return True

    async def close(self) -> None:
        sio = self._socket
        self._socket = None
        if sio is None:
            return
        try:
            await sio.disconnect()
        except Exception:  # pragma: no cover - closing a dead socket is best effort
            LOG.debug("Ignoring error while closing realtime socket", exc_info=True)

    async def send_command(
        self,
        command: str,
        *args: Any,
        callback: Optional[Callable[..., Any]] = None,
    ) -> bool:
        sio = self._socket
        if sio is None:
            LOG.warning("Attempted to send command when not connected.")
            return False

        ack = None
        if callback is not None:

            async def ack(*_response: Any) -> None:
                try:
                    result = callback()
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    LOG.exception("Acknowledgement handler for %s failed", command)

        try:
            await sio.emit(COMMAND_EVENT, (command, *args), callback=ack)
        except socketio_exceptions.SocketIOError as exc:
            LOG.warning("Failed to send %s: %s", command, exc)
            return False
        return True
