"""Discord implementation of the delivery gateway."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from ...core.coercion import optional_id
from ...core.delivery import (
    DeliveryError,
    DeliveryRateLimited,
    DeliveryReceipt,
    DeliveryRejected,
    ThreadHandle,
)
from ...core.formatting import ChatMessage
from ...core.logging_utils import log_event
from .constants import DISCORD_THREAD_CHANNEL_TYPES
from .embeds import build_message_payload
from .errors import DiscordAPIError, DiscordPermanentError, DiscordRateLimitError
from .rest import DiscordRestClient
from .roles import AdminRoleResolver


@contextmanager
def translate_discord_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except DiscordRateLimitError as exc:
        raise DeliveryRateLimited(
            f"{operation}: {exc}", retry_after=exc.retry_after
        ) from exc
    except DiscordPermanentError as exc:
        raise DeliveryRejected(f"{operation}: {exc}") from exc
    except DiscordAPIError as exc:
        raise DeliveryError(f"{operation}: {exc}") from exc


class DiscordDeliveryGateway:
    def __init__(
        self,
        rest: DiscordRestClient,
        *,
        admin_roles: Optional[AdminRoleResolver] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._rest = rest
        self._admin_roles = admin_roles
        self._logger = logger or logging.getLogger(__name__)

    async def close(self) -> None:
        await self._rest.close()

    async def send_message(
        self,
        destination_id: str,
        message: ChatMessage,
        *,
        content: Optional[str] = None,
    ) -> DeliveryReceipt:
        payload = build_message_payload(message, content=content)
        with translate_discord_errors(f"send message to {destination_id}"):
            response = await self._rest.create_channel_message(
                channel_id=destination_id, payload=payload
            )
        message_id = optional_id(response.get("id"))
        log_event(
            self._logger,
            logging.INFO,
            "discord.message.sent",
            channel_id=destination_id,
            message_id=message_id,
        )
        return DeliveryReceipt(destination_id=destination_id, message_id=message_id)

    async def create_thread(
        self,
        channel_id: str,
        name: str,
        *,
        private: bool = True,
        reason: Optional[str] = None,
    ) -> ThreadHandle:
        with translate_discord_errors(f"create thread in {channel_id}"):
            response = await self._rest.start_thread(
                channel_id=channel_id, name=name, private=private, reason=reason
            )
        thread_id = optional_id(response.get("id"))
        if thread_id is None:
            raise DeliveryError(
                f"create thread in {channel_id}: response carried no thread id"
            )
        return ThreadHandle(
            thread_id=thread_id,
            channel_id=optional_id(response.get("parent_id")) or channel_id,
            guild_id=optional_id(response.get("guild_id")),
        )

    async def add_member(
        self, thread_id: str, user_id: str, *, reason: Optional[str] = None
    ) -> None:
        with translate_discord_errors(f"add {user_id} to thread {thread_id}"):
            await self._rest.add_thread_member(
                thread_id=thread_id, user_id=user_id, reason=reason
            )

    async def get_thread(self, destination_id: str) -> Optional[ThreadHandle]:
        with translate_discord_errors(f"fetch channel {destination_id}"):
            channel = await self._rest.get_channel(channel_id=destination_id)
        if channel.get("type") not in DISCORD_THREAD_CHANNEL_TYPES:
            return None
        return ThreadHandle(
            thread_id=optional_id(channel.get("id")) or destination_id,
            channel_id=optional_id(channel.get("parent_id")) or destination_id,
            guild_id=optional_id(channel.get("guild_id")),
        )

    async def admin_mention(self, guild_id: Optional[str]) -> Optional[str]:
        if self._admin_roles is None:
            return None
        with translate_discord_errors(f"list roles for guild {guild_id}"):
            return await self._admin_roles.mention(guild_id)


__all__ = ["DiscordDeliveryGateway", "translate_discord_errors"]
