"""Single-slot mailbox holding the next command for each device."""

from __future__ import annotations

from typing import Dict, Optional

from .models import Command


class Mailbox:
    """Maps a device identifier to at most one pending command.

    A later write for the same device overwrites the earlier one.
    """

    def __init__(self) -> None:
        self._slots: Dict[str, Command] = {}

    def put(self, command: Command) -> Optional[Command]:
        """Store ``command`` and return whatever it replaced."""

        previous = self._slots.get(command.device_id)
        self._slots[command.device_id] = command
        return previous

    def peek(self, device_id: str) -> Optional[Command]:
        return self._slots.get(device_id)

    def clear_if_matches(self, device_id: str, command_id: str) -> bool:
        pending = self._slots.get(device_id)
        if pending is None or pending.command_id != command_id:
            return False
        del self._slots[device_id]
        return True

    def clear(self) -> None:
        self._slots.clear()

    def __len__(self) -> int:
        return len(self._slots)
