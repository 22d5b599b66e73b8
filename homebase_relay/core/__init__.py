"""Core primitives for homebase-relay."""

from .correlation import CorrelationEntry, CorrelationTable
from .errors import RelayClosedError, RelayError
from .long_poll import LongPollRegistry, LongPollWaiter
from .mailbox import Mailbox
from .models import Command, CommandOutcome, CommandState, new_command_id

__all__ = [
    "Command",
    "CommandOutcome",
    "CommandState",
    "CorrelationEntry",
    "CorrelationTable",
    "LongPollRegistry",
    "LongPollWaiter",
    "Mailbox",
    "RelayClosedError",
    "RelayError",
    "new_command_id",
]
