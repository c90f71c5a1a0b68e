"""Render ``ChatMessage`` values as Discord message payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ...core.formatting import ChatMessage
from ...core.time_utils import now_utc, parse_timestamp
from .constants import (
    DISCORD_EMBED_DESCRIPTION_LIMIT,
    DISCORD_EMBED_FIELD_NAME_LIMIT,
    DISCORD_EMBED_FIELD_VALUE_LIMIT,
    DISCORD_EMBED_FOOTER_LIMIT,
    DISCORD_EMBED_MAX_FIELDS,
    DISCORD_EMBED_TITLE_LIMIT,
    DISCORD_MAX_MESSAGE_LENGTH,
)

_ELLIPSIS = "..."


def clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(_ELLIPSIS)] + _ELLIPSIS


def build_embed(
    message: ChatMessage, *, now: Optional[datetime] = None
) -> dict[str, Any]:
    timestamp = parse_timestamp(message.timestamp_source) or now or now_utc()
    embed: dict[str, Any] = {
        "title": clip(message.title, DISCORD_EMBED_TITLE_LIMIT),
        "color": message.color,
        "timestamp": timestamp.isoformat(),
    }
    if message.description:
        embed["description"] = clip(
            message.description, DISCORD_EMBED_DESCRIPTION_LIMIT
        )
    if message.fields:
        embed["fields"] = [
            {
                "name": clip(field.name, DISCORD_EMBED_FIELD_NAME_LIMIT),
                "value": clip(field.value, DISCORD_EMBED_FIELD_VALUE_LIMIT),
                "inline": field.inline,
            }
            for field in message.fields[:DISCORD_EMBED_MAX_FIELDS]
        ]
    if message.footer:
        embed["footer"] = {"text": clip(message.footer, DISCORD_EMBED_FOOTER_LIMIT)}
    if message.link:
        embed["url"] = message.link
    if message.image_url:
        embed["image"] = {"url": message.image_url}
    return embed


def build_message_payload(
    message: ChatMessage,
    *,
    content: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"embeds": [build_embed(message, now=now)]}
    if content:
        payload["content"] = clip(content, DISCORD_MAX_MESSAGE_LENGTH)
    return payload


__all__ = ["build_embed", "build_message_payload", "clip"]
