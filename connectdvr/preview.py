"""
Thumbnail of the device's current output.
"""

from __future__ import annotations

import asyncio
import contextlib
import io
import logging
from typing import Callable, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from .state import DeviceState
from .utils.tasks import BackgroundTasks, RetryTimer

LOG = logging.getLogger(__name__)

DEFAULT_IMAGE_PATH = "assets/img/live_screenshot_primary.jpg"
THUMBNAIL_SIZE = (72, 48)


class PreviewError(RuntimeError):
    """Raised when the screenshot cannot be fetched or decoded."""


def make_thumbnail(data: bytes, size: Tuple[int, int] = THUMBNAIL_SIZE) -> bytes:
    try:
        with Image.open(io.BytesIO(data)) as source:
            thumbnail = source.convert("RGB").resize(size)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise PreviewError(f"Could not decode preview image: {exc}") from exc
    buffer = io.BytesIO()
    thumbnail.save(buffer, format="PNG")
    return buffer.getvalue()


class PreviewFetcher:
    """
    Poll the device screenshot while the player is running.

    Only one fetch is in flight and only one refresh is scheduled at a time.
    """

    def __init__(
        self,
        state: DeviceState,
        client_provider: Callable[[], httpx.AsyncClient],
        *,
        base_url: Callable[[], str],
        is_connected: Callable[[], bool],
        on_image: Callable[[], None],
        refresh_interval: float = 1.5,
        timeout: float = 5.0,
        size: Tuple[int, int] = THUMBNAIL_SIZE,
    ) -> None:
        self.state = state
        self._client_provider = client_provider
        self._base_url = base_url
        self._is_connected = is_connected
        self._on_image = on_image
        self.refresh_interval = refresh_interval
        self.timeout = timeout
        self.size = size
        self._tasks = BackgroundTasks("preview")
        self.timer = RetryTimer("preview-refresh", self._tasks)
        self._fetch: Optional[asyncio.Task] = None

    def image_url(self) -> str:
        location = self.state.player.image_primary or DEFAULT_IMAGE_PATH
        return f"{self._base_url()}/{location.lstrip('/')}"

    def request_refresh(self) -> None:
        """Replace any pending or running refresh with a new one."""

        self.timer.cancel()
        if self._fetch is not None and not self._fetch.done():
            self._fetch.cancel()
        self._fetch = self._tasks.spawn(self.refresh())

    async def refresh(self) -> Optional[bytes]:
        self.timer.cancel()
        if not self._is_connected():
            return None

        try:
            image = await self._download()
        except asyncio.CancelledError:
            raise
        except PreviewError as exc:
            LOG.warning("Error processing preview image: %s", exc)
            image = None

        self.state.preview_image = image
        if image is not None:
            self._on_image()
        if self.state.is_playing():
            self.timer.start(self.refresh_interval, self.request_refresh)
        return image

    async def _download(self) -> bytes:
        url = self.image_url()
        try:
            response = await self._client_provider().get(url, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise PreviewError(f"Could not fetch {url}: {exc}") from exc
        if response.status_code != 200:
            raise PreviewError(f"Fetching {url} returned HTTP {response.status_code}")
        return await asyncio.to_thread(make_thumbnail, response.content, self.size)

    async def cancel(self) -> None:
        self.timer.cancel()
        fetch = self._fetch
        self._fetch = None
        if fetch is not None and not fetch.done():
            fetch.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await fetch
