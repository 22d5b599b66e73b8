"""Best-effort push notifications through the Bark API."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set
from urllib.parse import quote

import aiohttp

from .config import NotifyConfig
from .health import HealthReporter

LOGGER = logging.getLogger(__name__)


class PushNotifier:
    """Sends short notifications to a phone; failures never propagate.

    ``notify`` schedules the push in the background and returns at once, so a
    slow or failing push service cannot delay a command.
    """

    def __init__(
        self,
        config: NotifyConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._health = health
        self._tasks: Set[asyncio.Task[bool]] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._config.bark_device_key)

    def build_url(self, message: str, title: Optional[str] = None) -> str:
        key = self._config.bark_device_key or ""
        return "/".join(
            (
                self._config.base_url.rstrip("/"),
                quote(key, safe=""),
                quote(title or self._config.title, safe=""),
                quote(message, safe=""),
            )
        )

    def notify(self, message: str, title: Optional[str] = None) -> None:
        """Schedule a push without waiting for it."""

        if not self.enabled:
            return
        task = asyncio.create_task(self.send(message, title))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def send(self, message: str, title: Optional[str] = None) -> bool:
        if not self.enabled:
            return False

        url = self.build_url(message, title)
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)
        try:
            session = self._ensure_session()
            async with session.get(
                url, params={"group": "home", "sound": "minuet"}, timeout=timeout
            ) as response:
                body = await response.text()
                if response.status >= 400:
                    LOGGER.warning("Push rejected (%s): %s", response.status, body)
                    await self._report(False, f"last push failed: http {response.status}")
                    return False
                LOGGER.debug("Push accepted: %s", body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Push failed: %s", exc)
            await self._report(
                False, f"last push failed: {str(exc) or exc.__class__.__name__}"
            )
            return False

        await self._report(True, None)
        return True

    async def close(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _report(self, healthy: bool, detail: Optional[str]) -> None:
        if self._health is not None:
            await self._health.update("notifier", healthy, detail, critical=False)
