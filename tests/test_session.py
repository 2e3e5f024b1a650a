"""Tests covering login, logout, reboot and the reconnect policy."""

from __future__ import annotations

import asyncio
import json

import httpx

from conftest import TOKEN, settle
from connectdvr import DeviceConfig
from connectdvr.host import ConnectionStatus, LocalHost
from connectdvr.plugin import ConnectDvrPlugin
from connectdvr.session import SessionPhase


def test_login_opens_realtime_channel(make_plugin, sockets, device, config) -> None:
    async def scenario() -> None:
        plugin = make_plugin()
        await plugin.start(config)

        sock = sockets.last
        assert plugin.session.session_token == TOKEN
        assert plugin.session.phase is SessionPhase.CONNECTED
        assert plugin.host.status is ConnectionStatus.OK
        assert sock.url == "https://dvr.local"
        assert sock.connect_kwargs["socketio_path"] == "/transport/socket.io/"
        assert sock.connect_kwargs["transports"] == ["websocket"]
        assert f"sessionID={TOKEN}" in sock.connect_kwargs["headers"]["Cookie"]

        (login,) = device.requests_for("POST", "/api/session")
        assert json.loads(login.content) == {"username": "haioperator", "password": "secret"}
        await plugin.stop()

    asyncio.run(scenario())


def test_failed_login_schedules_one_retry(make_plugin, sockets, device, config) -> None:
    async def scenario() -> None:
        device.login_status = 401
        plugin = make_plugin()
        await plugin.start(config)

        assert plugin.session.session_token is None
        assert plugin.session.phase is SessionPhase.DISCONNECTED
        assert plugin.host.status is ConnectionStatus.ERROR
        assert plugin.session.retry_timer.pending
        assert plugin.session.retry_timer.delay == config.reconnect_timeout
        assert sockets.sockets == []

        # A manual login without auto retry cancels the pending timer and does not re-arm it.
        assert await plugin.session.login(auto_retry=False) is False
        assert not plugin.session.retry_timer.pending
        await plugin.stop()

    asyncio.run(scenario())


def test_network_errors_count_as_login_failures(make_plugin, device, config) -> None:
    async def scenario() -> None:
        device.login_error = True
        plugin = make_plugin()
        await plugin.start(config)

        assert plugin.host.status is ConnectionStatus.ERROR
        assert "unreachable" in (plugin.host.status_message or "")
        assert plugin.session.retry_timer.pending
        await plugin.stop()

    asyncio.run(scenario())


def test_retry_timer_logs_in_again(make_plugin, device) -> None:
    async def scenario() -> None:
        device.login_error = True
        plugin = make_plugin()
        await plugin.start(DeviceConfig("dvr.local", "haioperator", "secret", reconnect_timeout=0.01))
        assert plugin.session.retry_timer.pending

        device.login_error = False
        await asyncio.sleep(0.1)
        await settle(10)

        assert plugin.session.phase is SessionPhase.CONNECTED
        assert len(device.requests_for("POST", "/api/session")) == 2
        await plugin.stop()

    asyncio.run(scenario())


def test_repeated_disconnects_keep_a_single_retry_timer(connect, sockets) -> None:
    async def scenario() -> None:
        plugin = await connect()
        for _ in range(5):
            await plugin.session.handle_disconnect("socket error")

        timer = plugin.session.retry_timer
        assert timer.pending
        assert timer.delay == plugin.config.reconnect_timeout
        assert plugin.session.session_token is None
        assert plugin.host.status is ConnectionStatus.DISCONNECTED
        await plugin.stop()

    asyncio.run(scenario())


def test_socket_error_tears_down_and_waits(connect, sockets) -> None:
    async def scenario() -> None:
        plugin = await connect()
        sock = sockets.last

        await sock.trigger("connect_error", "transport closed")
        await settle(20)
        # Later events from the dead socket are ignored.
        await sock.trigger("connect_error", "again")
        await settle(20)

        assert sock.disconnect_calls == 1
        assert not plugin.channel.is_open
        assert plugin.session.retry_timer.pending
        assert len(sockets.sockets) == 1
        await plugin.stop()

    asyncio.run(scenario())


def test_server_logout_triggers_immediate_relogin(connect, sockets, device) -> None:
    async def scenario() -> None:
        plugin = await connect()
        first = sockets.last

        await first.trigger("logout")
        await settle(50)

        assert first.disconnect_calls == 1
        assert len(sockets.sockets) == 2
        assert len(device.requests_for("POST", "/api/session")) == 2
        assert not plugin.session.retry_timer.pending
        assert plugin.session.phase is SessionPhase.CONNECTED
        await plugin.stop()

    asyncio.run(scenario())


def test_failed_socket_handshake_reports_once(make_plugin, sockets, config) -> None:
    async def scenario() -> None:
        sockets.fail_next = True
        plugin = make_plugin()
        await plugin.start(config)
        await settle(20)

        assert plugin.session.session_token is None
        assert plugin.session.retry_timer.pending
        assert sockets.last.disconnect_calls == 1
        await plugin.stop()

    asyncio.run(scenario())


def test_logout_clears_token_immediately_and_deletes_session(connect, sockets, device) -> None:
    async def scenario() -> None:
        plugin = await connect()
        sock = sockets.last

        await plugin.session.logout()
        assert plugin.session.session_token is None
        assert plugin.host.status is ConnectionStatus.DISCONNECTED
        assert sock.disconnect_calls == 1

        await plugin.session.drain(timeout=1.0)
        (delete,) = device.requests_for("DELETE", "/api/session")
        assert delete.headers["Cookie"] == f"sessionID={TOKEN}"

        await plugin.session.logout()
        await plugin.session.drain(timeout=1.0)
        assert len(device.requests_for("DELETE", "/api/session")) == 1
        await plugin.stop()

    asyncio.run(scenario())


def test_superseded_login_response_is_discarded(clock, sockets, device) -> None:
    gate = asyncio.Event()
    login_calls = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/api/session":
            login_calls.append(request)
            if len(login_calls) == 1:
                await gate.wait()
                return httpx.Response(200, json={"response": {"sessionID": "stale-token"}})
        return device.handle(request)

    async def scenario() -> None:
        plugin = ConnectDvrPlugin(
            LocalHost(),
            socket_factory=sockets,
            transport=httpx.MockTransport(handler),
            clock=clock.now,
        )
        await plugin.start(DeviceConfig("dvr.local", "haioperator", ""))
        assert plugin.host.status is ConnectionStatus.WARNING

        first = asyncio.ensure_future(plugin.session.login())
        await settle()
        assert len(login_calls) == 1

        assert await plugin.session.login() is True
        gate.set()
        assert await first is False

        assert plugin.session.session_token == TOKEN
        assert len(sockets.sockets) == 1
        await plugin.stop()

    asyncio.run(scenario())


def test_login_response_after_stop_is_ignored(clock, sockets, device) -> None:
    gate = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            await gate.wait()
        return device.handle(request)

    async def scenario() -> None:
        plugin = ConnectDvrPlugin(
            LocalHost(), socket_factory=sockets, transport=httpx.MockTransport(handler), clock=clock.now
        )
        await plugin.start(DeviceConfig("dvr.local", "haioperator", ""))

        pending = asyncio.ensure_future(plugin.session.login(auto_retry=True))
        await settle()
        await plugin.stop()
        gate.set()

        assert await pending is False
        assert plugin.session.session_token is None
        assert plugin.session.phase is SessionPhase.STOPPED
        assert sockets.sockets == []

    asyncio.run(scenario())


def test_reboot_requires_connection(make_plugin, device, config) -> None:
    async def scenario() -> None:
        device.login_status = 500
        plugin = make_plugin()
        await plugin.start(config)

        assert await plugin.commands.reboot() is False
        assert device.requests_for("PUT", "/api/settings/reboot") == []
        await plugin.stop()

    asyncio.run(scenario())


def test_reboot_tears_down_and_waits_for_device(connect, sockets, device) -> None:
    async def scenario() -> None:
        plugin = await connect()
        sock = sockets.last

        assert await plugin.commands.reboot() is True

        (put,) = device.requests_for("PUT", "/api/settings/reboot")
        assert json.loads(put.content) == {"id": 0}
        assert put.headers["Cookie"] == f"sessionID={TOKEN}"
        assert plugin.session.session_token is None
        assert plugin.session.phase is SessionPhase.REBOOTING
        assert plugin.host.status is ConnectionStatus.DISCONNECTED
        assert sock.disconnect_calls == 1
        assert plugin.session.retry_timer.delay == plugin.config.reboot_wait
        await plugin.stop()

    asyncio.run(scenario())


def test_stop_is_terminal(connect, device) -> None:
    async def scenario() -> None:
        plugin = await connect()
        await plugin.stop()

        assert plugin.session.phase is SessionPhase.STOPPED
        assert not plugin.session.retry_timer.pending
        assert len(device.requests_for("DELETE", "/api/session")) == 1

        await plugin.session.handle_disconnect("late socket error")
        assert not plugin.session.retry_timer.pending
        assert await plugin.session.login() is False

    asyncio.run(scenario())


def test_update_config_logs_out_and_reconnects(connect, sockets, device) -> None:
    async def scenario() -> None:
        plugin = await connect()

        await plugin.update_config(DeviceConfig("dvr2.local", "haiadmin", "other"))
        await plugin.session.drain(timeout=1.0)

        assert len(device.requests_for("DELETE", "/api/session")) == 1
        assert sockets.sockets[0].disconnect_calls == 1
        assert sockets.last.url == "https://dvr2.local"
        assert plugin.session.phase is SessionPhase.CONNECTED
        await plugin.stop()

    asyncio.run(scenario())


def test_relogin_started_during_reboot_is_discarded(clock, sockets, device) -> None:
    put_gate = asyncio.Event()
    login_gate = asyncio.Event()
    logins = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            await put_gate.wait()
        if request.method == "POST" and request.url.path == "/api/session":
            logins.append(request)
            if len(logins) > 1:
                await login_gate.wait()
        return device.handle(request)

    async def scenario() -> None:
        plugin = ConnectDvrPlugin(
            LocalHost(), socket_factory=sockets, transport=httpx.MockTransport(handler), clock=clock.now
        )
        await plugin.start(DeviceConfig("dvr.local", "haioperator", "secret"))
        first = sockets.last

        reboot = asyncio.ensure_future(plugin.commands.reboot())
        await settle()
        # The device drops the session while the reboot request is still pending.
        await first.trigger("logout")
        await settle(20)
        assert len(logins) == 2

        put_gate.set()
        assert await reboot is True
        login_gate.set()
        await settle(20)

        assert plugin.session.session_token is None
        assert plugin.session.phase is SessionPhase.REBOOTING
        assert plugin.session.retry_timer.delay == plugin.config.reboot_wait
        assert len(sockets.sockets) == 1
        await plugin.stop()

    asyncio.run(scenario())
