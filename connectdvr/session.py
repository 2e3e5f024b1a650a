"""
Session lifecycle against the device's HTTP API.

The manager owns the session token, the single retry timer and the in-flight
login request. Opening and closing the realtime channel is delegated to the
``on_session_started``/``on_teardown`` hooks supplied by the plugin core.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from . import DeviceConfig
from .host import ConnectionStatus, HostAdapter
from .utils.logging import redact_token
from .utils.tasks import BackgroundTasks, RetryTimer

LOG = logging.getLogger(__name__)

SESSION_PATH = "/api/session"
REBOOT_PATH = "/api/settings/reboot"


class SessionError(RuntimeError):
    """Base class for session related errors."""


class LoginError(SessionError):
    """Raised when the device refuses or fails a login request."""


class SessionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    LOGGING_IN = "logging_in"
    SOCKET_CONNECTING = "socket_connecting"
    CONNECTED = "connected"
    REBOOTING = "rebooting"
    STOPPED = "stopped"


def session_cookie(token: str) -> dict:
    return {"Cookie": f"sessionID={token}"}


class SessionManager:
    def __init__(
        self,
        config: DeviceConfig,
        host: HostAdapter,
        client: httpx.AsyncClient,
        *,
        on_session_started: Callable[[str], Awaitable[Any]],
        on_teardown: Callable[[], Awaitable[None]],
        tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        self.config = config
        self.host = host
        self.client = client
        self.session_token: Optional[str] = None
        self.phase = SessionPhase.DISCONNECTED
        self._on_session_started = on_session_started
        self._on_teardown = on_teardown
        self._tasks = tasks or BackgroundTasks("session")
        self.retry_timer = RetryTimer("login-retry", self._tasks)
        self._login_request: Optional[asyncio.Task] = None
        self._generation = 0

    # ------------------------------------------------------------------ helpers

    @property
    def is_connected(self) -> bool:
        return self.phase == SessionPhase.CONNECTED

    @property
    def is_stopped(self) -> bool:
        return self.phase == SessionPhase.STOPPED

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    def _abort_login_request(self) -> None:
        request = self._login_request
        self._login_request = None
        if request is not None and not request.done():
            request.cancel()

    async def _request_session(self) -> str:
        try:
            response = await self.client.post(
                self._url(SESSION_PATH),
                json={"username": self.config.username, "password": self.config.password},
                timeout=self.config.login_timeout,
            )
        except httpx.HTTPError as exc:
            raise LoginError(f"Could not connect to {self.config.host}: {exc}") from exc

        if response.status_code != 200:
            raise LoginError(f"Login rejected with HTTP {response.status_code}")

        try:
            token = response.json()["response"]["sessionID"]
        except (ValueError, KeyError, TypeError) as exc:
            raise LoginError("Login response did not contain a session id") from exc
        if not token:
            raise LoginError("Login response contained an empty session id")
        return str(token)

    async def _teardown(self) -> None:
        try:
            await self._on_teardown()
        except Exception:  # pragma: no cover - teardown hooks must not stop a state change
            LOG.exception("Connection teardown failed.")

    # ------------------------------------------------------------------ public API

    def schedule_retry(self, delay: float) -> bool:
        """Arm the retry timer unless a retry is already pending."""

        if self.is_stopped:
            return False
        if not self.retry_timer.start(delay, lambda: self.login(auto_retry=True)):
            return False
        LOG.info("Attempting to reconnect in %s seconds.", delay)
        return True

    async def login(self, auto_retry: bool = False) -> bool:
        if self.is_stopped:
            return False

        self.retry_timer.cancel()
        self._abort_login_request()
        self._generation += 1
        generation = self._generation

        self.phase = SessionPhase.LOGGING_IN
        self.host.update_status(ConnectionStatus.CONNECTING, "Logging in")

        request = asyncio.ensure_future(self._request_session())
        self._login_request = request
        await asyncio.wait({request})

        if generation != self._generation or self.is_stopped or request.cancelled():
            LOG.debug("Discarding superseded login attempt #%d", generation)
            return False
        self._login_request = None

        exc = request.exception()
        if exc is not None:
            LOG.warning("Login to %s failed: %s", self.config.host, exc)
            self.phase = SessionPhase.DISCONNECTED
            self.host.update_status(ConnectionStatus.ERROR, str(exc))
            if auto_retry:
                self.schedule_retry(self.config.reconnect_timeout)
            return False

        self.session_token = request.result()
        self.phase = SessionPhase.SOCKET_CONNECTING
        LOG.info("Successfully connected. Session ID is %s.", redact_token(self.session_token))
        self.host.update_status(ConnectionStatus.CONNECTING, "Connecting to socket")
        await self._on_session_started(self.session_token)
        return True

    def mark_connected(self) -> None:
        if self.is_stopped or self.session_token is None:
            return
        self.phase = SessionPhase.CONNECTED
        self.host.update_status(ConnectionStatus.OK)

    async def handle_disconnect(self, reason: Any = None, *, retry_immediately: bool = False) -> None:
        """React to an unsolicited socket failure or a server-side logout."""

        if self.is_stopped:
            return
        LOG.warning("Connection to server ended. Will attempt to reconnect. Error: %s", reason)
        self.host.update_status(
            ConnectionStatus.DISCONNECTED, "Disconnected and will attempt to reconnect..."
        )
        await self._teardown()
        self.session_token = None
        self.phase = SessionPhase.DISCONNECTED

        if retry_immediately:
            self._tasks.spawn(self.login(auto_retry=True))
        else:
            self.schedule_retry(self.config.reconnect_timeout)

    async def logout(self) -> None:
        await self._teardown()

        token = self.session_token
        if not token:
            return

        self.session_token = None
        if not self.is_stopped:
            self.phase = SessionPhase.DISCONNECTED
        self.host.update_status(ConnectionStatus.DISCONNECTED)
        self._tasks.spawn(self._delete_session(self._url(SESSION_PATH), token))

    async def _delete_session(self, url: str, token: str) -> None:
        try:
            response = await self.client.request(
                "DELETE",
                url,
                headers=session_cookie(token),
                json={},
                timeout=self.config.login_timeout,
            )
        except httpx.HTTPError as exc:
            LOG.warning("Could not logout: %s", exc)
            return
        if response.status_code >= 400:
            LOG.warning("Could not logout: HTTP %s", response.status_code)
            return
        LOG.info("Session logged out.")

    async def reboot(self) -> bool:
        if not self.is_connected or not self.session_token:
            LOG.warning("Attempted to reboot when not connected.")
            return False

        token = self.session_token
        self.phase = SessionPhase.REBOOTING
        self.host.update_status(ConnectionStatus.DISCONNECTED, "Rebooting...")
        LOG.info("Ending connection and rebooting...")

        try:
            await self.client.put(
                self._url(REBOOT_PATH),
                json={"id": 0},
                headers=session_cookie(token),
                timeout=self.config.login_timeout,
            )
        except httpx.HTTPError as exc:
            LOG.warning("Reboot request failed: %s", exc)

        if self.is_stopped:
            return True

        await self._teardown()
        self.session_token = None
        self.phase = SessionPhase.REBOOTING
        # A relogin started while the reboot request was pending must not land.
        self.abort_pending()
        self.schedule_retry(self.config.reboot_wait)
        return True

    def abort_pending(self) -> None:
        """Drop the pending retry and make any in-flight login result stale."""

        self.retry_timer.cancel()
        self._abort_login_request()
        self._generation += 1

    async def close(self) -> None:
        """Terminal teardown: nothing is retried afterwards."""

        self.abort_pending()
        self.phase = SessionPhase.STOPPED
        await self.logout()

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Give fire-and-forget requests a bounded chance to finish."""

        await self._tasks.drain(timeout=timeout)

    async def cancel_background(self) -> None:
        await self._tasks.cancel_all()
