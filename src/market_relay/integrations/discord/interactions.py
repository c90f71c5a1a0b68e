from __future__ import annotations

from typing import Any, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .constants import (
    DISCORD_CALLBACK_CHANNEL_MESSAGE,
    DISCORD_CALLBACK_PONG,
    DISCORD_INTERACTION_APPLICATION_COMMAND,
    DISCORD_INTERACTION_PING,
    DISCORD_MAX_MESSAGE_LENGTH,
    DISCORD_MESSAGE_FLAG_EPHEMERAL,
)


def verify_interaction_signature(
    public_key_hex: str, signature_hex: str, timestamp: str, body: bytes
) -> bool:
    """Check Discord's Ed25519 signature over ``timestamp + body``."""
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        signature = bytes.fromhex(signature_hex)
    except ValueError:
        return False
    if len(signature) != 64:
        return False
    try:
        public_key.verify(signature, timestamp.encode("utf-8") + body)
    except InvalidSignature:
        return False
    return True


def _as_id(value: object) -> str | None:
    if value is None:
        return None
    token = str(value).strip()
    return token or None


def is_ping(interaction_payload: dict[str, Any]) -> bool:
    return interaction_payload.get("type") == DISCORD_INTERACTION_PING


def is_application_command(interaction_payload: dict[str, Any]) -> bool:
    return interaction_payload.get("type") == DISCORD_INTERACTION_APPLICATION_COMMAND


def extract_command_path_and_options(
    interaction_payload: dict[str, Any],
) -> tuple[tuple[str, ...], dict[str, Any]]:
    data = interaction_payload.get("data")
    if not isinstance(data, dict):
        return (), {}

    root_name = data.get("name")
    if not isinstance(root_name, str) or not root_name:
        return (), {}

    path: list[str] = [root_name]
    options = data.get("options")
    current_options = options if isinstance(options, list) else []

    while current_options:
        first = current_options[0]
        if not isinstance(first, dict):
            break
        if first.get("type") not in (1, 2):
            break
        name = first.get("name")
        if isinstance(name, str) and name:
            path.append(name)
        nested = first.get("options")
        current_options = nested if isinstance(nested, list) else []

    parsed_options: dict[str, Any] = {}
    for item in current_options:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name:
            continue
        parsed_options[name] = item.get("value")

    return tuple(path), parsed_options


def extract_guild_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    return _as_id(interaction_payload.get("guild_id"))


def extract_user_id(interaction_payload: dict[str, Any]) -> Optional[str]:
    member = interaction_payload.get("member")
    if isinstance(member, dict):
        member_user = member.get("user")
        if isinstance(member_user, dict):
            user_id = _as_id(member_user.get("id"))
            if user_id:
                return user_id
    user = interaction_payload.get("user")
    if isinstance(user, dict):
        return _as_id(user.get("id"))
    return None


def pong_response() -> dict[str, Any]:
    return {"type": DISCORD_CALLBACK_PONG}


def ephemeral_response(text: str) -> dict[str, Any]:
    return {
        "type": DISCORD_CALLBACK_CHANNEL_MESSAGE,
        "data": {
            "content": text[:DISCORD_MAX_MESSAGE_LENGTH],
            "flags": DISCORD_MESSAGE_FLAG_EPHEMERAL,
        },
    }


__all__ = [
    "ephemeral_response",
    "extract_command_path_and_options",
    "extract_guild_id",
    "extract_user_id",
    "is_application_command",
    "is_ping",
    "pong_response",
    "verify_interaction_signature",
]
