from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from market_relay.integrations.discord.errors import (
    DiscordAPIError,
    DiscordPermanentError,
    DiscordRateLimitError,
)
from market_relay.integrations.discord.rest import DiscordRestClient


async def _configure_mock_client(
    client: DiscordRestClient, transport: httpx.MockTransport
) -> None:
    await client._client.aclose()
    client._client = httpx.AsyncClient(
        base_url="https://discord.test/api/v10",
        transport=transport,
        timeout=10.0,
    )


def _client() -> DiscordRestClient:
    return DiscordRestClient(
        bot_token="abc123", base_url="https://discord.test/api/v10"
    )


@pytest.mark.anyio
async def test_create_channel_message_sets_authorization_header() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["authorization"] = request.headers.get("Authorization")
        observed["path"] = request.url.path
        observed["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "m-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        payload = await client.create_channel_message(
            channel_id="c-1", payload={"content": "hi"}
        )
    finally:
        await client.close()

    assert payload == {"id": "m-1"}
    assert observed["authorization"] == "Bot abc123"
    assert observed["path"] == "/api/v10/channels/c-1/messages"
    assert observed["body"] == {"content": "hi"}


@pytest.mark.anyio
async def test_start_thread_creates_private_thread_with_reason() -> None:
    observed: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        observed["path"] = request.url.path
        observed["reason"] = request.headers.get("X-Audit-Log-Reason")
        observed["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "t-1", "guild_id": "g-1"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        thread = await client.start_thread(
            channel_id="c-1", name="Dispute #1", reason="New dispute"
        )
    finally:
        await client.close()

    assert thread["id"] == "t-1"
    assert observed["path"] == "/api/v10/channels/c-1/threads"
    assert observed["reason"] == "New dispute"
    assert observed["body"] == {
        "name": "Dispute #1",
        "type": 12,
        "auto_archive_duration": 1440,
        "invitable": False,
    }


@pytest.mark.anyio
async def test_add_thread_member_accepts_empty_response() -> None:
    observed: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed.append((request.method, request.url.path))
        return httpx.Response(204)

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        result = await client.add_thread_member(thread_id="t-1", user_id="u-1")
    finally:
        await client.close()

    assert result is None
    assert observed == [("PUT", "/api/v10/channels/t-1/thread-members/u-1")]


@pytest.mark.anyio
async def test_rate_limit_is_raised_without_retry() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(
            429, headers={"Retry-After": "2.5"}, json={"retry_after": 2.5}
        )

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordRateLimitError) as excinfo:
            await client.create_channel_message(channel_id="c-1", payload={})
    finally:
        await client.close()

    assert calls == 1
    assert excinfo.value.retry_after == 2.5
    assert excinfo.value.status_code == 429


@pytest.mark.anyio
@pytest.mark.parametrize("status_code", [401, 403, 404])
async def test_access_errors_are_permanent(status_code: int) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json={"message": "Missing Access"})

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordPermanentError) as excinfo:
            await client.get_channel(channel_id="c-1")
    finally:
        await client.close()

    assert excinfo.value.status_code == status_code
    assert "Missing Access" in str(excinfo.value)


@pytest.mark.anyio
async def test_server_error_is_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(503, text="unavailable")

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordAPIError) as excinfo:
            await client.list_guild_roles(guild_id="g-1")
    finally:
        await client.close()

    assert calls == 1
    assert not isinstance(excinfo.value, DiscordPermanentError)


@pytest.mark.anyio
async def test_network_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        with pytest.raises(DiscordAPIError, match="network error"):
            await client.list_guild_roles(guild_id="g-1")
    finally:
        await client.close()


@pytest.mark.anyio
async def test_command_overwrite_routes_global_and_guild() -> None:
    observed_paths: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        observed_paths.append((request.method, request.url.path))
        return httpx.Response(200, json=[{"id": "cmd-1"}])

    client = _client()
    await _configure_mock_client(client, httpx.MockTransport(handler))
    try:
        await client.bulk_overwrite_application_commands(
            application_id="app-1", commands=[{"name": "relay-routes"}]
        )
        await client.bulk_overwrite_application_commands(
            application_id="app-1",
            guild_id="guild-2",
            commands=[{"name": "relay-routes"}],
        )
    finally:
        await client.close()

    assert observed_paths == [
        ("PUT", "/api/v10/applications/app-1/commands"),
        ("PUT", "/api/v10/applications/app-1/guilds/guild-2/commands"),
    ]
