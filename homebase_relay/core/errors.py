"""Exceptions raised by the relay primitives."""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for relay failures that callers must observe."""


class RelayClosedError(RelayError):
    """Raised when the relay is shut down while, or before, a caller waits on it."""
