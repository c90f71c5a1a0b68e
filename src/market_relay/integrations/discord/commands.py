from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ...core.categories import CATEGORY_CATALOG, category_display_name
from ...core.coercion import optional_id
from ...core.logging_utils import log_event
from ...core.routing import RouteKind, RoutingTable
from .rest import DiscordRestClient

# Discord application command option types.
SUB_COMMAND = 1
STRING = 3
CHANNEL = 7

ROUTES_COMMAND_NAME = "relay-routes"
ROUTES_ACTIONS = ("show", "set", "remove")
NOT_CONFIGURED = "Not configured"


def _kind_option() -> dict[str, Any]:
    return {
        "type": STRING,
        "name": "kind",
        "description": "Route kind (default: listings)",
        "required": False,
        "choices": [{"name": kind.value, "value": kind.value} for kind in RouteKind],
    }


def _category_option() -> dict[str, Any]:
    return {
        "type": STRING,
        "name": "category",
        "description": "Marketplace category (omit for the general channel)",
        "required": False,
        "choices": [
            {"name": name, "value": code} for code, name in CATEGORY_CATALOG.items()
        ],
    }


def build_application_commands() -> list[dict[str, Any]]:
    return [
        {
            "type": 1,
            "name": ROUTES_COMMAND_NAME,
            "description": "Manage marketplace notification channels",
            "default_member_permissions": "32",
            "dm_permission": False,
            "options": [
                {
                    "type": SUB_COMMAND,
                    "name": "show",
                    "description": "Show configured channels for this server",
                },
                {
                    "type": SUB_COMMAND,
                    "name": "set",
                    "description": "Route a category to a channel",
                    "options": [
                        {
                            "type": CHANNEL,
                            "name": "channel",
                            "description": "Channel that receives the notifications",
                            "required": True,
                        },
                        _kind_option(),
                        _category_option(),
                    ],
                },
                {
                    "type": SUB_COMMAND,
                    "name": "remove",
                    "description": "Remove a channel route",
                    "options": [_kind_option(), _category_option()],
                },
            ],
        }
    ]


async def sync_commands(
    rest: DiscordRestClient,
    *,
    application_id: str,
    commands: list[dict[str, Any]],
    guild_ids: tuple[str, ...] = (),
    logger: logging.Logger,
) -> int:
    """Overwrite application commands globally, or per guild when given."""
    normalized_guild_ids = tuple(
        sorted({guild_id.strip() for guild_id in guild_ids if guild_id.strip()})
    )
    if not normalized_guild_ids:
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            commands=commands,
        )
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="global",
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
        return len(updated)

    total = 0
    for guild_id in normalized_guild_ids:
        updated = await rest.bulk_overwrite_application_commands(
            application_id=application_id,
            guild_id=guild_id,
            commands=commands,
        )
        total += len(updated)
        log_event(
            logger,
            logging.INFO,
            "discord.commands.sync.overwrite",
            scope="guild",
            guild_id=guild_id,
            application_id=application_id,
            command_count=len(commands),
            updated_count=len(updated),
        )
    return total


def _route_label(kind: RouteKind, category: Optional[str]) -> str:
    target = category_display_name(category) if category else "general"
    return f"{kind.value} / {target}"


class RoutesCommandHandler:
    """Operator commands over the routing table, shared by Discord and the CLI."""

    def __init__(
        self, table: RoutingTable, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self._table = table
        self._logger = logger or logging.getLogger(__name__)

    def handle(
        self, scope: Optional[str], action: str, options: Mapping[str, Any]
    ) -> str:
        scope_key = optional_id(scope)
        if scope_key is None:
            return "This command can only be used inside a server."
        action = action.strip().lower()
        if action not in ROUTES_ACTIONS:
            return (
                f"Unknown action `{action}`. "
                f"Use one of: {', '.join(ROUTES_ACTIONS)}."
            )
        try:
            kind = RouteKind.parse(options.get("kind") or RouteKind.LISTINGS)
        except ValueError as exc:
            return str(exc)
        category = optional_id(options.get("category"))

        if action == "show":
            return self.show(scope_key)
        if action == "set":
            channel = optional_id(options.get("channel"))
            if channel is None:
                return "A channel is required."
            try:
                self._table.configure(scope_key, channel, category, kind=kind)
            except ValueError as exc:
                return str(exc)
            log_event(
                self._logger,
                logging.INFO,
                "relay.routes.configured",
                scope=scope_key,
                route_kind=kind.value,
                category=category,
                destination_id=channel,
            )
            return f"Routed {_route_label(kind, category)} to <#{channel}>."
        removed = self._table.remove(scope_key, category, kind=kind)
        if not removed:
            return f"No route for {_route_label(kind, category)}."
        log_event(
            self._logger,
            logging.INFO,
            "relay.routes.removed",
            scope=scope_key,
            route_kind=kind.value,
            category=category,
        )
        return f"Removed route for {_route_label(kind, category)}."

    def show(self, scope: str) -> str:
        lines = [f"**Routes for {scope}**"]
        for kind in RouteKind:
            lines.append(f"__{kind.value}__")
            general = self._table.resolve(scope, kind=kind)
            lines.append(f"general: {f'<#{general}>' if general else NOT_CONFIGURED}")
            for code, name in CATEGORY_CATALOG.items():
                destination = self._table.resolve(scope, code, kind=kind)
                lines.append(
                    f"{name}: {f'<#{destination}>' if destination else NOT_CONFIGURED}"
                )
            known = set(CATEGORY_CATALOG)
            for entry_scope, entry_kind, code, destination in self._table.entries():
                if entry_scope != scope or entry_kind is not kind:
                    continue
                if code is None or code in known:
                    continue
                lines.append(f"{code}: <#{destination}>")
        return "\n".join(lines)


__all__ = [
    "ROUTES_COMMAND_NAME",
    "RoutesCommandHandler",
    "build_application_commands",
    "sync_commands",
]
