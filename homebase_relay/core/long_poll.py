"""Registry of device-side long-poll calls waiting for a command."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import RelayClosedError
from .models import Command

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class LongPollWaiter:
    device_id: str
    future: asyncio.Future[Optional[Command]]
    timer: Optional[asyncio.TimerHandle] = None

    def wake(self, command: Optional[Command]) -> bool:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.future.done():
            return False
        self.future.set_result(command)
        return True


class LongPollRegistry:
    """Holds suspended fetch calls per device until a command or their deadline arrives."""

    def __init__(self) -> None:
        self._waiters: Dict[str, List[LongPollWaiter]] = {}

    def register(self, device_id: str, max_wait: float) -> LongPollWaiter:
        loop = asyncio.get_running_loop()
        waiter = LongPollWaiter(device_id=device_id, future=loop.create_future())
        waiter.timer = loop.call_later(max_wait, self._expire, waiter)
        self._waiters.setdefault(device_id, []).append(waiter)
        return waiter

    def wake_all(self, device_id: str, command: Command) -> int:
        """Drain every waiter for ``device_id`` and hand each the same command."""

        waiters = self._waiters.pop(device_id, [])
        woken = 0
        for waiter in waiters:
            if waiter.wake(command):
                woken += 1
        return woken

    def remove(self, waiter: LongPollWaiter) -> None:
        waiters = self._waiters.get(waiter.device_id)
        if waiters is not None:
            try:
                waiters.remove(waiter)
            except ValueError:
                pass
            if not waiters:
                del self._waiters[waiter.device_id]
        if waiter.timer is not None:
            waiter.timer.cancel()
            waiter.timer = None

    def close(self) -> None:
        waiters = [waiter for group in self._waiters.values() for waiter in group]
        self._waiters.clear()
        for waiter in waiters:
            if waiter.timer is not None:
                waiter.timer.cancel()
                waiter.timer = None
            if not waiter.future.done():
                waiter.future.set_exception(RelayClosedError("relay is shutting down"))

    def count(self, device_id: Optional[str] = None) -> int:
        if device_id is not None:
            return len(self._waiters.get(device_id, ()))
        return sum(len(group) for group in self._waiters.values())

    def __len__(self) -> int:
        return self.count()

    def _expire(self, waiter: LongPollWaiter) -> None:
        waiter.timer = None
        self.remove(waiter)
        if waiter.wake(None):
            LOGGER.debug("Long poll for %s elapsed without a command", waiter.device_id)
