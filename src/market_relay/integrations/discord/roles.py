from __future__ import annotations

import logging
from typing import Any, Optional

from ...core.config import AdminRoleConfig
from ...core.formatting import mention_role
from ...core.logging_utils import log_event
from .rest import DiscordRestClient


def match_admin_role(
    roles: list[dict[str, Any]],
    names: tuple[str, ...],
    *,
    match: str = "exact",
) -> Optional[str]:
    """Return the id of the first role matching ``names`` in priority order.

    Names are compared case-insensitively; ``contains`` also accepts role
    names that merely include a candidate.
    """
    normalized = [
        (str(role.get("id")), str(role.get("name") or "").strip().casefold())
        for role in roles
        if role.get("id") is not None
    ]
    for candidate in names:
        wanted = candidate.strip().casefold()
        if not wanted:
            continue
        for role_id, role_name in normalized:
            if role_name == wanted:
                return role_id
            if match == "contains" and wanted in role_name:
                return role_id
    return None


class AdminRoleResolver:
    def __init__(
        self,
        rest: DiscordRestClient,
        config: Optional[AdminRoleConfig] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._rest = rest
        self._config = config or AdminRoleConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._cache: dict[str, str] = {}

    async def resolve_role_id(self, guild_id: Optional[str]) -> Optional[str]:
        if self._config.role_id:
            return self._config.role_id
        if not guild_id:
            return None
        if guild_id in self._cache:
            return self._cache[guild_id]
        roles = await self._rest.list_guild_roles(guild_id=guild_id)
        role_id = match_admin_role(
            roles, self._config.names, match=self._config.match
        )
        log_event(
            self._logger,
            logging.INFO if role_id else logging.WARNING,
            "discord.admin_role.resolved" if role_id else "discord.admin_role.missing",
            guild_id=guild_id,
            role_id=role_id,
            candidates=list(self._config.names),
        )
        if role_id:
            self._cache[guild_id] = role_id
        return role_id

    async def mention(self, guild_id: Optional[str]) -> Optional[str]:
        role_id = await self.resolve_role_id(guild_id)
        return mention_role(role_id) if role_id else None


__all__ = ["AdminRoleResolver", "match_admin_role"]
