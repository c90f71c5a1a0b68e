from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, assert_never

from .categories import category_display_name
from .events import (
    DisputeCreated,
    DisputeResolved,
    DisputeUpdated,
    ListingCreated,
    ListingUpdated,
    MarketplaceEvent,
    event_category,
    event_scope,
)
from .logging_utils import log_event
from .routing import RouteKind, RoutingTable, category_env_var


@dataclass(frozen=True)
class ResolvedTarget:
    scope: str
    destination_id: str
    kind: RouteKind = RouteKind.LISTINGS
    is_thread: bool = False


def route_kind_for(event: MarketplaceEvent) -> RouteKind:
    if isinstance(event, (ListingCreated, ListingUpdated)):
        return RouteKind.LISTINGS
    if isinstance(event, (DisputeCreated, DisputeUpdated, DisputeResolved)):
        return RouteKind.DISPUTES
    assert_never(event)


class DestinationResolver:
    """Maps an event to the channels that should receive it.

    Events with a category only ever go to that category's channel. Each
    category needs its own operator configuration, so an unconfigured category
    is dropped (and logged) instead of leaking into the general channel.
    """

    def __init__(
        self, table: RoutingTable, *, logger: Optional[logging.Logger] = None
    ) -> None:
        self._table = table
        self._logger = logger or logging.getLogger(__name__)

    @property
    def table(self) -> RoutingTable:
        return self._table

    def resolve_targets(self, event: MarketplaceEvent) -> list[ResolvedTarget]:
        kind = route_kind_for(event)
        category = event_category(event)
        explicit_scope = event_scope(event)
        scopes = [explicit_scope] if explicit_scope else self._table.scopes()

        targets: list[ResolvedTarget] = []
        seen: set[str] = set()
        for scope in scopes:
            destination = self._table.resolve(scope, category, kind=kind)
            if destination is None:
                continue
            if destination in seen:
                continue
            seen.add(destination)
            targets.append(
                ResolvedTarget(scope=scope, destination_id=destination, kind=kind)
            )

        if not targets:
            if not self._table.has_destinations():
                log_event(
                    self._logger,
                    logging.WARNING,
                    "relay.route.none_configured",
                    event_type=event.kind.value,
                    route_kind=kind.value,
                )
                return targets
            log_event(
                self._logger,
                logging.WARNING,
                "relay.route.unconfigured",
                event_type=event.kind.value,
                route_kind=kind.value,
                category=category,
                category_name=(
                    category_display_name(category) if category else "general"
                ),
                scope=explicit_scope,
                configure_env=category_env_var(kind, category),
            )
        return targets


__all__ = ["DestinationResolver", "ResolvedTarget", "route_kind_for"]
