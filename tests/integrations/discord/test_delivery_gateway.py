from __future__ import annotations

from typing import Any, Optional

import pytest

from market_relay.core.delivery import (
    DeliveryError,
    DeliveryRateLimited,
    DeliveryRejected,
    ThreadHandle,
)
from market_relay.core.formatting import ChatMessage
from market_relay.integrations.discord.errors import (
    DiscordAPIError,
    DiscordPermanentError,
    DiscordRateLimitError,
)
from market_relay.integrations.discord.gateway import DiscordDeliveryGateway


class _FakeRest:
    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.threads: list[dict[str, Any]] = []
        self.members: list[tuple[str, str, Optional[str]]] = []
        self.channels: dict[str, dict[str, Any]] = {}
        self.error: Optional[Exception] = None

    async def create_channel_message(self, *, channel_id, payload):
        if self.error is not None:
            raise self.error
        self.messages.append({"channel_id": channel_id, "payload": payload})
        return {"id": "m-1", "channel_id": channel_id}

    async def start_thread(self, *, channel_id, name, private=True, reason=None):
        self.threads.append(
            {
                "channel_id": channel_id,
                "name": name,
                "private": private,
                "reason": reason,
            }
        )
        return {"id": "t-1", "parent_id": channel_id, "guild_id": "g-1", "type": 12}

    async def add_thread_member(self, *, thread_id, user_id, reason=None):
        if self.error is not None:
            raise self.error
        self.members.append((thread_id, user_id, reason))

    async def get_channel(self, *, channel_id):
        if self.error is not None:
            raise self.error
        return self.channels[channel_id]

    async def close(self) -> None:
        return None


@pytest.mark.anyio
async def test_send_message_renders_embed_and_content() -> None:
    rest = _FakeRest()
    gateway = DiscordDeliveryGateway(rest)

    receipt = await gateway.send_message(
        "c-1", ChatMessage(title="Hello"), content="<@1>"
    )

    assert receipt.destination_id == "c-1"
    assert receipt.message_id == "m-1"
    payload = rest.messages[0]["payload"]
    assert payload["content"] == "<@1>"
    assert payload["embeds"][0]["title"] == "Hello"


@pytest.mark.anyio
async def test_create_thread_returns_handle() -> None:
    rest = _FakeRest()
    gateway = DiscordDeliveryGateway(rest)

    thread = await gateway.create_thread("c-1", "Dispute #1", reason="why")

    assert thread == ThreadHandle(thread_id="t-1", channel_id="c-1", guild_id="g-1")
    assert thread.url == "https://discord.com/channels/g-1/t-1"
    assert rest.threads[0]["private"] is True


@pytest.mark.anyio
async def test_get_thread_distinguishes_threads_from_channels() -> None:
    rest = _FakeRest()
    rest.channels = {
        "t-1": {"id": "t-1", "type": 12, "parent_id": "c-1", "guild_id": "g-1"},
        "c-1": {"id": "c-1", "type": 0, "guild_id": "g-1"},
    }
    gateway = DiscordDeliveryGateway(rest)

    assert await gateway.get_thread("t-1") == ThreadHandle("t-1", "c-1", "g-1")
    assert await gateway.get_thread("c-1") is None


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (DiscordRateLimitError("slow down", retry_after=3.0), DeliveryRateLimited),
        (DiscordPermanentError("Missing Access", status_code=403), DeliveryRejected),
        (DiscordAPIError("server error", status_code=500), DeliveryError),
    ],
)
async def test_discord_errors_become_delivery_errors(error, expected) -> None:
    rest = _FakeRest()
    rest.error = error
    gateway = DiscordDeliveryGateway(rest)

    with pytest.raises(expected) as excinfo:
        await gateway.send_message("c-1", ChatMessage(title="t"))

    assert excinfo.value.__cause__ is error
    if expected is DeliveryRateLimited:
        assert excinfo.value.retry_after == 3.0


@pytest.mark.anyio
async def test_admin_mention_without_resolver_is_none() -> None:
    gateway = DiscordDeliveryGateway(_FakeRest())
    assert await gateway.admin_mention("g-1") is None
