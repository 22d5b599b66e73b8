"""Command relay between interactive callers and polling devices.

A caller submits a command and is suspended until the target device, which
cannot be addressed directly, polls for the command and reports an outcome.
The relay owns three tables:

- a :class:`~homebase_relay.core.Mailbox` holding the next command per device,
- a :class:`~homebase_relay.core.LongPollRegistry` of device fetches parked
  until a command is posted,
- a :class:`~homebase_relay.core.CorrelationTable` of callers parked until
  the device reports (or their deadline elapses).

Every public operation touches these tables without awaiting in between, so
on a single event loop each operation is atomic with respect to the others.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional

from . import constants
from .config import DEFAULT_OVERWRITE_POLICY, OverwritePolicy, RelayConfig
from .core import (
    Command,
    CommandOutcome,
    CommandState,
    CorrelationTable,
    LongPollRegistry,
    Mailbox,
    RelayClosedError,
    new_command_id,
)

LOGGER = logging.getLogger(__name__)


class CommandRelay:
    """Relays commands to polling devices and their outcomes back to callers."""

    def __init__(
        self,
        *,
        command_timeout: float = constants.DEFAULT_COMMAND_TIMEOUT_SECONDS,
        long_poll_max: float = constants.DEFAULT_LONG_POLL_MAX_SECONDS,
        overwrite_policy: OverwritePolicy = DEFAULT_OVERWRITE_POLICY,
        id_factory: Callable[[], str] = new_command_id,
    ) -> None:
        if command_timeout <= 0:
            raise ValueError("command_timeout must be positive")
        if long_poll_max <= 0:
            raise ValueError("long_poll_max must be positive")
        self._command_timeout = command_timeout
        self._long_poll_max = long_poll_max
        self._overwrite_policy = OverwritePolicy(overwrite_policy)
        self._id_factory = id_factory
        self._mailbox = Mailbox()
        self._long_polls = LongPollRegistry()
        self._correlation = CorrelationTable()
        self._closed = False

    @classmethod
    def from_config(cls, config: RelayConfig) -> "CommandRelay":
        return cls(
            command_timeout=config.command_timeout_seconds,
            long_poll_max=config.long_poll_max_seconds,
            overwrite_policy=config.overwrite_policy,
        )

    @property
    def command_timeout(self) -> float:
        return self._command_timeout

    @property
    def long_poll_max(self) -> float:
        return self._long_poll_max

    @property
    def overwrite_policy(self) -> OverwritePolicy:
        return self._overwrite_policy

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(
        self,
        device_id: str,
        action: str,
        *,
        on_queued: Optional[Callable[[Command], None]] = None,
    ) -> CommandOutcome:
        """Queue ``action`` for ``device_id`` and wait for the device's outcome.

        Always returns within ``command_timeout`` seconds. A missing report is
        returned as a timeout outcome rather than raised. ``on_queued`` runs
        once the command is in the mailbox; it is skipped for submissions the
        relay refuses, and its failures never change the outcome.
        """

        self._ensure_open()
        if not device_id:
            raise ValueError("device_id is required")

        previous = self._mailbox.peek(device_id)
        if previous is not None and previous.command_id not in self._correlation:
            # Nobody is waiting on the old entry any more; overwrite silently.
            previous = None

        if previous is not None and self._overwrite_policy is OverwritePolicy.REJECT:
            LOGGER.info(
                "Rejected %s for %s: command %s still outstanding",
                action,
                device_id,
                previous.command_id,
            )
            return CommandOutcome.rejected_busy(previous.command_id)

        command = Command(
            command_id=self._id_factory(), device_id=device_id, action=action
        )
        self._mailbox.put(command)
        woken = self._long_polls.wake_all(device_id, command)
        entry = self._correlation.open(command, timeout=self._command_timeout)

        if previous is not None and self._overwrite_policy is OverwritePolicy.SUPERSEDE:
            if self._correlation.resolve(
                previous.command_id,
                CommandOutcome.superseded_by(previous.command_id),
                state=CommandState.SUPERSEDED,
            ):
                LOGGER.info(
                    "Command %s for %s superseded by %s",
                    previous.command_id,
                    device_id,
                    command.command_id,
                )

        LOGGER.info(
            "Queued %s for %s as %s (woke %d long poll(s))",
            action,
            device_id,
            command.command_id,
            woken,
        )

        if on_queued is not None:
            try:
                on_queued(command)
            except Exception:
                LOGGER.exception("on_queued hook failed for %s", command.command_id)

        try:
            return await entry.future
        except asyncio.CancelledError:
            self._correlation.discard(command.command_id)
            raise

    def fetch_next(self, device_id: str) -> Optional[Command]:
        """Return the pending command for ``device_id`` without waiting."""

        return self._mailbox.peek(device_id)

    async def await_next(
        self, device_id: str, max_wait: Optional[float] = None
    ) -> Optional[Command]:
        """Return the pending command, waiting up to ``max_wait`` seconds for one.

        The wait is capped at ``long_poll_max``. ``None`` means the window
        elapsed with nothing posted and the device should poll again.
        """

        self._ensure_open()
        pending = self._mailbox.peek(device_id)
        if pending is not None:
            return pending

        wait = self._bound_wait(max_wait)
        if wait <= 0:
            return None

        waiter = self._long_polls.register(device_id, wait)
        try:
            return await waiter.future
        except asyncio.CancelledError:
            self._long_polls.remove(waiter)
            raise

    def report_result(
        self,
        device_id: str,
        command_id: str,
        ok: object,
        message: Optional[str] = None,
    ) -> bool:
        """Record the device's outcome for ``command_id``.

        Late, duplicate and unknown reports are accepted and ignored. Returns
        True only when a waiting caller was released by this report.
        """

        if not device_id or not command_id:
            raise ValueError("device_id and command_id are required")

        cleared = self._mailbox.clear_if_matches(device_id, command_id)
        released = self._correlation.resolve(
            command_id,
            CommandOutcome.reported(ok, message, command_id=command_id),
        )
        if released:
            LOGGER.info(
                "Device %s reported %s for %s: %s",
                device_id,
                "success" if ok else "failure",
                command_id,
                message or "",
            )
        else:
            LOGGER.debug(
                "Stale report from %s for %s (mailbox cleared=%s)",
                device_id,
                command_id,
                cleared,
            )
        return released

    def shutdown(self) -> None:
        """Cancel all timers and fail every suspended caller and long poll."""

        if self._closed:
            return
        self._closed = True
        self._correlation.close()
        self._long_polls.close()
        self._mailbox.clear()
        LOGGER.info("Command relay stopped")

    def stats(self) -> Dict[str, int]:
        return {
            "pendingCommands": len(self._mailbox),
            "waitingCallers": len(self._correlation),
            "longPollWaiters": len(self._long_polls),
        }

    def _bound_wait(self, max_wait: Optional[float]) -> float:
        if max_wait is None:
            return self._long_poll_max
        return max(0.0, min(float(max_wait), self._long_poll_max))

    def _ensure_open(self) -> None:
        if self._closed:
            raise RelayClosedError("relay is shut down")
