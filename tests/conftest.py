"""Shared fakes: a clock, a Socket.IO client double and an HTTP device double."""

from __future__ import annotations

import asyncio
import copy
import io
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from PIL import Image
from socketio import exceptions as socketio_exceptions

from connectdvr import DeviceConfig
from connectdvr.host import LocalHost
from connectdvr.plugin import ConnectDvrPlugin

TOKEN = "f3a9c2d4e5b6"

SNAPSHOT = {
    "player": {
        "playing": False,
        "time": 12.0,
        "active_channel_id": "A",
        "image_primary": "img/primary.jpg",
    },
    "channel": ["A", "B"],
    "A": {"id": "A", "name": "Channel A", "duration": 100},
    "B": {"id": "B", "name": "Channel B", "duration": 3600, "error": {"message": "offline"}},
}


class FakeClock:
    def __init__(self) -> None:
        self.value = 1_000.0

    def now(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += float(seconds)


class FakeSocket:
    """Stand-in for ``socketio.AsyncClient`` that records everything."""

    def __init__(self, *, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.emitted: List[tuple] = []
        self.connected = False
        self.disconnect_calls = 0
        self.url: Optional[str] = None
        self.connect_kwargs: Dict[str, Any] = {}

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.url = url
        self.connect_kwargs = kwargs
        if self.fail_connect:
            await self.trigger("connect_error", "handshake refused")
            raise socketio_exceptions.ConnectionError("handshake refused")
        self.connected = True
        await self.trigger("connect")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        await self.trigger("disconnect", "client disconnect")

    async def emit(self, event: str, data: Any = None, callback: Any = None) -> None:
        self.emitted.append((event, data, callback))

    async def trigger(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)

    @property
    def commands(self) -> List[tuple]:
        return [data for _event, data, _callback in self.emitted]


class SocketFactory:
    def __init__(self) -> None:
        self.sockets: List[FakeSocket] = []
        self.fail_next = False

    def __call__(self) -> FakeSocket:
        sock = FakeSocket(fail_connect=self.fail_next)
        self.fail_next = False
        self.sockets.append(sock)
        return sock

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


def make_image_bytes(size=(320, 180)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (10, 120, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()


class FakeDevice:
    """HTTP side of the appliance, served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.login_status = 200
        self.login_error = False
        self.token = TOKEN
        self.image: Optional[bytes] = make_image_bytes()
        self.transport = httpx.MockTransport(self.handle)

    def requests_for(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/api/session" and request.method == "POST":
            if self.login_error:
                raise httpx.ConnectError("device unreachable", request=request)
            return httpx.Response(self.login_status, json={"response": {"sessionID": self.token}})
        if path == "/api/session" and request.method == "DELETE":
            return httpx.Response(200, json={})
        if path == "/api/settings/reboot" and request.method == "PUT":
            return httpx.Response(200, json={})
        if request.method == "GET" and self.image is not None:
            return httpx.Response(200, content=self.image, headers={"Content-Type": "image/jpeg"})
        return httpx.Response(404)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sockets() -> SocketFactory:
    return SocketFactory()


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def config() -> DeviceConfig:
    return DeviceConfig("dvr.local", "haioperator", "secret")


@pytest.fixture
def snapshot() -> dict:
    return copy.deepcopy(SNAPSHOT)


@pytest.fixture
def make_plugin(clock, sockets, device):
    def factory() -> ConnectDvrPlugin:
        return ConnectDvrPlugin(
            LocalHost(), socket_factory=sockets, transport=device.transport, clock=clock.now
        )

    return factory


@pytest.fixture
def connect(make_plugin, sockets, config):
    """Return a coroutine that starts a plugin and delivers the device snapshot."""

    async def run(snapshot_data: Optional[dict] = None) -> ConnectDvrPlugin:
        plugin = make_plugin()
        await plugin.start(config)
        await sockets.last.trigger("data:init", copy.deepcopy(snapshot_data or SNAPSHOT))
        await settle()
        return plugin

    return run


async def settle(rounds: int = 5) -> None:
    """Let spawned tasks run a few loop iterations."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle_loop():
    return settle
