"""Health reporting for the relay service.

The overall status served on ``/healthz`` is driven by the relay itself (is it
still accepting commands?) and by critical components such as the HTTP
listener. Advisory components, like the push notifier, are listed with their
last known state but never degrade the service.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

StatsProvider = Callable[[], Mapping[str, object]]
AvailabilityCheck = Callable[[], bool]


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    critical: bool = True
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "critical": self.critical,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


@dataclass(slots=True)
class _LiveSource:
    stats: StatsProvider
    available: AvailabilityCheck


class HealthReporter:
    """Combines pushed component statuses with live sources polled on each snapshot."""

    def __init__(self) -> None:
        self._status: Dict[str, ComponentStatus] = {}
        self._sources: Dict[str, _LiveSource] = {}
        self._app_state: Optional[ComponentStatus] = None
        self._lock = asyncio.Lock()

    async def update(
        self,
        name: str,
        healthy: bool,
        detail: Optional[str] = None,
        *,
        critical: bool = True,
    ) -> None:
        async with self._lock:
            self._status[name] = ComponentStatus(
                name=name, healthy=healthy, detail=detail, critical=critical
            )

    async def set_app_state(self, state: str, *, healthy: bool) -> None:
        async with self._lock:
            self._app_state = ComponentStatus(name="app", healthy=healthy, detail=state)

    def register_source(
        self, name: str, *, stats: StatsProvider, available: AvailabilityCheck
    ) -> None:
        """Poll ``stats`` and ``available`` whenever a snapshot is taken.

        The source's stats are published under ``name``; an unavailable
        source degrades the overall status.
        """

        self._sources[name] = _LiveSource(stats=stats, available=available)

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            entries = list(self._status.values())
            app_state = self._app_state

        components = [status.as_dict() for status in entries]
        degraded = any(
            status.critical and not status.healthy for status in entries
        )

        payload: Dict[str, object] = {}
        for name, source in self._sources.items():
            available = source.available()
            payload[name] = dict(source.stats())
            components.append(
                ComponentStatus(
                    name=name,
                    healthy=available,
                    detail="accepting" if available else "closed",
                ).as_dict()
            )
            degraded = degraded or not available

        if app_state is not None:
            degraded = degraded or not app_state.healthy
            payload["appState"] = {
                "state": app_state.detail,
                "healthy": app_state.healthy,
                "updatedAt": app_state.updated_at.isoformat(timespec="seconds"),
            }

        payload["status"] = "degraded" if degraded else "ok"
        payload["components"] = components
        return payload
