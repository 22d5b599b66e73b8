"""Correlation table linking command identifiers to suspended callers.

Each entry pairs an ``asyncio.Future`` with a deadline timer. The future is a
single-assignment cell: whichever of a matching report or the deadline settles
it first wins, and the other path becomes a no-op. All mutations happen on the
event loop thread without an intervening ``await``, so insert, settle and
remove are atomic per command identifier.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from .errors import RelayClosedError
from .models import Command, CommandOutcome, CommandState

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CorrelationEntry:
    command: Command
    future: asyncio.Future[CommandOutcome]
    timer: Optional[asyncio.TimerHandle] = None
    state: CommandState = CommandState.CREATED

    def settle(self, outcome: CommandOutcome, state: CommandState) -> bool:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.future.done():
            return False
        self.state = state
        self.future.set_result(outcome)
        return True


class CorrelationTable:
    """Tracks callers awaiting the outcome of a submitted command."""

    def __init__(self) -> None:
        self._entries: Dict[str, CorrelationEntry] = {}

    def open(self, command: Command, *, timeout: float) -> CorrelationEntry:
        """Create an entry for ``command`` whose deadline fires after ``timeout`` seconds."""

        loop = asyncio.get_running_loop()
        entry = CorrelationEntry(command=command, future=loop.create_future())
        entry.timer = loop.call_later(timeout, self._expire, command.command_id)
        self._entries[command.command_id] = entry
        return entry

    def resolve(
        self,
        command_id: str,
        outcome: CommandOutcome,
        *,
        state: CommandState = CommandState.RESOLVED,
    ) -> bool:
        """Release the caller waiting on ``command_id``.

        Returns False when no live entry exists (already settled or unknown).
        """

        entry = self._entries.pop(command_id, None)
        if entry is None:
            return False
        return entry.settle(outcome, state)

    def discard(self, command_id: str) -> None:
        """Drop an entry whose caller went away without settling it."""

        entry = self._entries.pop(command_id, None)
        if entry is None:
            return
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None
        LOGGER.debug("Caller for command %s left before an outcome", command_id)

    def close(self) -> None:
        """Cancel every deadline and fail every waiting caller."""

        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if entry.timer is not None:
                entry.timer.cancel()
                entry.timer = None
            if not entry.future.done():
                entry.future.set_exception(RelayClosedError("relay is shutting down"))
        if entries:
            LOGGER.info("Released %d waiting caller(s) on shutdown", len(entries))

    def get(self, command_id: str) -> Optional[CorrelationEntry]:
        return self._entries.get(command_id)

    def __contains__(self, command_id: object) -> bool:
        return command_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CorrelationEntry]:
        return iter(list(self._entries.values()))

    def _expire(self, command_id: str) -> None:
        entry = self._entries.get(command_id)
        if entry is None:
            return
        entry.timer = None
        if self.resolve(
            command_id,
            CommandOutcome.timed_out(command_id),
            state=CommandState.TIMED_OUT,
        ):
            LOGGER.warning(
                "Command %s (%s) for %s timed out without a device report",
                command_id,
                entry.command.action,
                entry.command.device_id,
            )
