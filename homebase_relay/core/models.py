"""Domain models for relayed commands and their outcomes."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

TIMEOUT_MESSAGE = "Device did not respond in time."
SUPERSEDED_MESSAGE = "Command was replaced by a newer command before the device answered."
BUSY_MESSAGE = "Device already has a command awaiting its result."


def new_command_id() -> str:
    """Return an unguessable command identifier."""

    return secrets.token_urlsafe(16)


class CommandState(str, Enum):
    CREATED = "created"
    RESOLVED = "resolved"
    TIMED_OUT = "timed_out"
    SUPERSEDED = "superseded"


@dataclass(slots=True, frozen=True)
class Command:
    command_id: str
    device_id: str
    action: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        """Wire form handed to the polling device."""
        return {"cmd": self.action, "cmdId": self.command_id}


@dataclass(slots=True, frozen=True)
class CommandOutcome:
    """Result delivered to the caller that submitted a command.

    Exactly one of the flags ``timeout``, ``superseded`` and ``busy`` may be set,
    and only when ``ok`` is false. A plain ``ok``/``message`` pair comes from the
    device's own report.
    """

    ok: bool
    message: str = ""
    timeout: bool = False
    superseded: bool = False
    busy: bool = False
    command_id: Optional[str] = None

    @classmethod
    def reported(
        cls, ok: object, message: Optional[str], *, command_id: Optional[str] = None
    ) -> "CommandOutcome":
        return cls(ok=bool(ok), message=message or "", command_id=command_id)

    @classmethod
    def timed_out(cls, command_id: Optional[str] = None) -> "CommandOutcome":
        return cls(ok=False, message=TIMEOUT_MESSAGE, timeout=True, command_id=command_id)

    @classmethod
    def superseded_by(cls, command_id: Optional[str] = None) -> "CommandOutcome":
        return cls(
            ok=False, message=SUPERSEDED_MESSAGE, superseded=True, command_id=command_id
        )

    @classmethod
    def rejected_busy(cls, command_id: Optional[str] = None) -> "CommandOutcome":
        return cls(ok=False, message=BUSY_MESSAGE, busy=True, command_id=command_id)

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"ok": self.ok, "message": self.message}
        if self.timeout:
            payload["timeout"] = True
        if self.superseded:
            payload["superseded"] = True
        if self.busy:
            payload["busy"] = True
        return payload
