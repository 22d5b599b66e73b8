"""Main application entry-point for homebase-relay."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Optional

from aiohttp import web

from .auth import CommandAuthorizer, DeviceTokenAuth, PasswordValidator
from .config import RelayAppConfig, load_config
from .health import HealthReporter
from .logging import access_log_options, configure_logging
from .notify import PushNotifier
from .relay import CommandRelay
from .sensors import SensorStore
from .server import RelayHttpApi

LOGGER = logging.getLogger(__name__)


class AppState(str, Enum):
    COLD_START = "cold_start"
    ACTIVE = "active"
    STOPPING = "stopping"


class RelayApp:
    """Coordinates application startup and shutdown.

    Owns the single :class:`CommandRelay` for the process and hands it to the
    HTTP layer. Shutting down cancels every pending relay timer before the
    HTTP runner is torn down, so suspended requests fail fast instead of
    holding the server open.
    """

    def __init__(
        self,
        config: Optional[RelayAppConfig] = None,
        *,
        password_validator: Optional[PasswordValidator] = None,
    ) -> None:
        self._config = config or load_config()
        self._health = HealthReporter()
        self._relay = CommandRelay.from_config(self._config.relay)
        self._sensors = SensorStore()
        self._notifier = PushNotifier(self._config.notify, health=self._health)
        self._api = RelayHttpApi(
            self._relay,
            authorizer=CommandAuthorizer(
                self._config.auth.admin_secret,
                password_validator=password_validator,
            ),
            device_auth=DeviceTokenAuth(self._config.auth.device_token),
            sensors=self._sensors,
            default_device_id=self._config.relay.default_device_id,
            notifier=self._notifier,
            health=self._health,
            notify_title=self._config.notify.title,
        )
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state: Optional[AppState] = None

    @property
    def relay(self) -> CommandRelay:
        return self._relay

    @property
    def sensors(self) -> SensorStore:
        return self._sensors

    @property
    def state(self) -> AppState:
        return self._state or AppState.COLD_START

    def build_web_app(self) -> web.Application:
        return self._api.build_app()

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()

        LOGGER.info("homebase-relay starting with config: %s", self._config.path)
        await self.start_services()
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("homebase-relay received shutdown signal")
            raise
        finally:
            await self.stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def start_services(self) -> None:
        await self._transition_state(AppState.COLD_START)
        server = self._config.server

        self._runner = web.AppRunner(
            self.build_web_app(),
            **access_log_options(self._config.logging.log_network),
        )
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, server.host, server.port)
        await self._site.start()
        LOGGER.info(
            "Relay listening on http://%s:%s (command timeout %.0fs, long poll %.0fs, policy %s)",
            server.host,
            server.port,
            self._relay.command_timeout,
            self._relay.long_poll_max,
            self._relay.overwrite_policy.value,
        )

        await self._health.update("http", True)
        await self._health.update(
            "notifier",
            True,
            "enabled" if self._notifier.enabled else "disabled",
            critical=False,
        )
        await self._transition_state(AppState.ACTIVE)

    async def stop_services(self) -> None:
        await self._transition_state(AppState.STOPPING)
        self._relay.shutdown()

        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

        await self._notifier.close()
        await self._health.update("http", False, "stopped")

    async def _transition_state(self, state: AppState) -> None:
        if state == self._state:
            return
        previous = self.state
        self._state = state
        LOGGER.info("App state transition %s -> %s", previous.value, state.value)
        await self._health.set_app_state(
            state.value, healthy=state == AppState.ACTIVE
        )

    @classmethod
    def start(cls, config: Optional[RelayAppConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("homebase-relay received shutdown signal")
