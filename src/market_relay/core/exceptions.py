"""Shared error taxonomy.

Transient errors may succeed if tried again later; permanent errors will not.
The relay never retries on its own, the split only informs logging and the
status code reported back to callers.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base error for the relay."""

    recoverable: bool = True
    severity: str = "error"

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message


class TransientError(RelayError):
    """Failure that may clear up on its own (rate limits, network hiccups)."""

    recoverable = True
    severity = "warning"


class PermanentError(RelayError):
    """Failure that will repeat until something is reconfigured."""

    recoverable = False
    severity = "error"


class ConfigError(PermanentError):
    """Invalid or incomplete configuration."""


class EventRejected(PermanentError):
    """Inbound event failed validation and was not dispatched."""

    def __init__(self, message: str, *, event_type: Optional[str] = None) -> None:
        super().__init__(message, user_message=message)
        self.event_type = event_type


__all__ = [
    "ConfigError",
    "EventRejected",
    "PermanentError",
    "RelayError",
    "TransientError",
]
