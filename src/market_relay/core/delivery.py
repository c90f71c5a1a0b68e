"""Delivery gateway boundary.

The dispatcher only knows this protocol; the Discord adapter implements it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .exceptions import PermanentError, RelayError, TransientError
from .formatting import ChatMessage

DISCORD_CHANNEL_URL = "https://discord.com/channels"


class DeliveryError(RelayError):
    """A chat platform refused or failed a delivery operation."""


class DeliveryRejected(DeliveryError, PermanentError):
    """Platform rejected the operation (missing access, unknown channel)."""

    recoverable = PermanentError.recoverable
    severity = PermanentError.severity


class DeliveryRateLimited(DeliveryError, TransientError):
    """Platform rate limit hit; reported as a failure, never retried here."""

    recoverable = TransientError.recoverable
    severity = TransientError.severity

    def __init__(self, message: str, *, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


@dataclass(frozen=True)
class DeliveryReceipt:
    destination_id: str
    message_id: Optional[str] = None


@dataclass(frozen=True)
class ThreadHandle:
    thread_id: str
    channel_id: str
    guild_id: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        if not self.guild_id:
            return None
        return f"{DISCORD_CHANNEL_URL}/{self.guild_id}/{self.thread_id}"

    def as_result(self) -> dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "channel_id": self.channel_id,
            "guild_id": self.guild_id,
            "thread_url": self.url,
        }


class DeliveryGateway(Protocol):
    async def send_message(
        self,
        destination_id: str,
        message: ChatMessage,
        *,
        content: Optional[str] = None,
    ) -> DeliveryReceipt: ...

    async def create_thread(
        self,
        channel_id: str,
        name: str,
        *,
        private: bool = True,
        reason: Optional[str] = None,
    ) -> ThreadHandle: ...

    async def add_member(
        self, thread_id: str, user_id: str, *, reason: Optional[str] = None
    ) -> None: ...

    async def get_thread(self, destination_id: str) -> Optional[ThreadHandle]: ...

    async def admin_mention(self, guild_id: Optional[str]) -> Optional[str]: ...


__all__ = [
    "DeliveryError",
    "DeliveryGateway",
    "DeliveryRateLimited",
    "DeliveryReceipt",
    "DeliveryRejected",
    "ThreadHandle",
]
