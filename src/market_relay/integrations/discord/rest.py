from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .constants import (
    DISCORD_API_BASE_URL,
    DISCORD_CHANNEL_PRIVATE_THREAD,
    DISCORD_CHANNEL_PUBLIC_THREAD,
    DISCORD_THREAD_AUTO_ARCHIVE_MINUTES,
)
from .errors import DiscordAPIError, DiscordPermanentError, DiscordRateLimitError

logger = logging.getLogger(__name__)

_PERMANENT_STATUS_CODES = frozenset({401, 403, 404})


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if raw is None:
        try:
            body = response.json()
        except ValueError:
            return None
        raw = body.get("retry_after") if isinstance(body, dict) else None
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except (TypeError, ValueError):
        return None


class DiscordRestClient:
    """Thin Discord REST client.

    Every call is a single attempt. Rate limits and server errors are raised
    to the caller as-is; nothing here sleeps or retries.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        timeout_seconds: float = 10.0,
        base_url: str = DISCORD_API_BASE_URL,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout_seconds)
        self._authorization_header = f"Bot {bot_token}"

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DiscordRestClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: dict[str, Any] | list[dict[str, Any]] | None = None,
        expect_json: bool = True,
        reason: Optional[str] = None,
    ) -> Any:
        headers = {"Authorization": self._authorization_header}
        if reason:
            headers["X-Audit-Log-Reason"] = quote(reason, safe=" ")
        try:
            response = await self._client.request(
                method, path, json=payload, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            body_preview = (exc.response.text or "").strip().replace("\n", " ")[:200]
            if status_code == 429:
                retry_after = _parse_retry_after(exc.response)
                logger.info(
                    "Discord rate limited on %s %s (retry_after=%s)",
                    method,
                    path,
                    retry_after,
                )
                raise DiscordRateLimitError(
                    f"Discord API rate limit exceeded for {method} {path}",
                    status_code=status_code,
                    retry_after=retry_after,
                ) from exc
            if status_code in _PERMANENT_STATUS_CODES:
                raise DiscordPermanentError(
                    f"Discord API request rejected for {method} {path}: "
                    f"status={status_code} body={body_preview!r}",
                    status_code=status_code,
                ) from exc
            raise DiscordAPIError(
                f"Discord API request failed for {method} {path}: "
                f"status={status_code} body={body_preview!r}",
                status_code=status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise DiscordAPIError(
                f"Discord API network error for {method} {path}: {exc}"
            ) from exc

        if not expect_json or not response.content:
            return {} if expect_json else None
        try:
            return response.json()
        except ValueError as exc:
            raise DiscordAPIError(
                f"Discord API returned non-JSON success response for {method} {path}"
            ) from exc

    async def get_channel(self, *, channel_id: str) -> dict[str, Any]:
        payload = await self._request("GET", f"/channels/{channel_id}")
        return payload if isinstance(payload, dict) else {}

    async def create_channel_message(
        self,
        *,
        channel_id: str,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            payload=payload,
        )
        return response if isinstance(response, dict) else {}

    async def start_thread(
        self,
        *,
        channel_id: str,
        name: str,
        private: bool = True,
        reason: Optional[str] = None,
        auto_archive_duration: int = DISCORD_THREAD_AUTO_ARCHIVE_MINUTES,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": name,
            "type": (
                DISCORD_CHANNEL_PRIVATE_THREAD
                if private
                else DISCORD_CHANNEL_PUBLIC_THREAD
            ),
            "auto_archive_duration": auto_archive_duration,
        }
        if private:
            payload["invitable"] = False
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/threads",
            payload=payload,
            reason=reason,
        )
        return response if isinstance(response, dict) else {}

    async def add_thread_member(
        self,
        *,
        thread_id: str,
        user_id: str,
        reason: Optional[str] = None,
    ) -> None:
        await self._request(
            "PUT",
            f"/channels/{thread_id}/thread-members/{user_id}",
            expect_json=False,
            reason=reason,
        )

    async def list_guild_roles(self, *, guild_id: str) -> list[dict[str, Any]]:
        payload = await self._request("GET", f"/guilds/{guild_id}/roles")
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def bulk_overwrite_application_commands(
        self,
        *,
        application_id: str,
        commands: list[dict[str, Any]],
        guild_id: str | None = None,
    ) -> list[dict[str, Any]]:
        path = (
            f"/applications/{application_id}/commands"
            if guild_id is None
            else f"/applications/{application_id}/guilds/{guild_id}/commands"
        )
        payload = await self._request("PUT", path, payload=commands)
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]
