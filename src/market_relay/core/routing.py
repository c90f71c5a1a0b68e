"""Persisted routing table: (scope, kind, category) -> destination id.

Each scope (a Discord guild, or a tenant label) carries one route set per
``RouteKind``. A route set has an optional general destination and a map of
category-specific destinations. Category lookups never fall back to the
general destination.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Protocol

from .categories import CATEGORY_CATALOG, category_env_suffix, normalize_category
from .coercion import optional_id
from .logging_utils import log_event
from .time_utils import now_iso
from .utils import atomic_write

ROUTING_STATE_VERSION = 1
GENERAL_LISTING_ENV = "DISCORD_LISTING_CHANNEL_ID"
GENERAL_DISPUTE_ENV = "DISCORD_DISPUTE_CHANNEL_ID"

logger = logging.getLogger(__name__)

ScopeRoutes = dict[str, dict[str, Any]]
RoutingState = dict[str, ScopeRoutes]


class RouteKind(str, Enum):
    LISTINGS = "listings"
    DISPUTES = "disputes"

    @classmethod
    def parse(cls, value: "RouteKind | str") -> "RouteKind":
        if isinstance(value, RouteKind):
            return value
        normalized = str(value).strip().lower()
        aliases = {"listing": "listings", "dispute": "disputes"}
        try:
            return cls(aliases.get(normalized, normalized))
        except ValueError as exc:
            raise ValueError(
                f"route kind must be one of: {', '.join(k.value for k in cls)}"
            ) from exc


def category_env_var(kind: RouteKind, category: Optional[str]) -> str:
    if category is None:
        if kind is RouteKind.LISTINGS:
            return GENERAL_LISTING_ENV
        return GENERAL_DISPUTE_ENV
    prefix = (
        "DISCORD_LISTING_CHANNEL_"
        if kind is RouteKind.LISTINGS
        else "DISCORD_DISPUTE_CHANNEL_"
    )
    return prefix + category_env_suffix(category)


def _empty_route_set() -> dict[str, Any]:
    return {"general": None, "categories": {}}


def _normalize_route_set(raw: Any) -> dict[str, Any]:
    route_set = _empty_route_set()
    if not isinstance(raw, Mapping):
        return route_set
    route_set["general"] = optional_id(raw.get("general"))
    categories_raw = raw.get("categories")
    if isinstance(categories_raw, Mapping):
        for category, destination in categories_raw.items():
            code = normalize_category(category)
            destination_id = optional_id(destination)
            if code and destination_id:
                route_set["categories"][code] = destination_id
    return route_set


def normalize_routing_state(raw: Any) -> RoutingState:
    """Coerce a decoded routes file into the in-memory shape, dropping junk."""
    if not isinstance(raw, Mapping):
        return {}
    scopes_raw = raw.get("scopes")
    if not isinstance(scopes_raw, Mapping):
        return {}
    scopes: RoutingState = {}
    for scope, routes_raw in scopes_raw.items():
        scope_key = optional_id(scope)
        if scope_key is None or not isinstance(routes_raw, Mapping):
            continue
        scopes[scope_key] = {
            kind.value: _normalize_route_set(routes_raw.get(kind.value))
            for kind in RouteKind
        }
    return scopes


def _route_set_is_empty(route_set: Mapping[str, Any]) -> bool:
    return route_set.get("general") is None and not route_set.get("categories")


class RoutingStore(Protocol):
    def load(self) -> RoutingState: ...

    def save(self, scopes: RoutingState) -> None: ...


class JsonRoutingStore:
    """Flat JSON file, one entry per scope. Unreadable files load as empty."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> RoutingState:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log_event(
                logger,
                logging.WARNING,
                "relay.routes.store_corrupt",
                path=str(self._path),
                exc=exc,
            )
            return {}
        if not isinstance(raw, dict):
            log_event(
                logger,
                logging.WARNING,
                "relay.routes.store_corrupt",
                path=str(self._path),
                reason="root is not an object",
            )
            return {}
        return normalize_routing_state(raw)

    def save(self, scopes: RoutingState) -> None:
        payload = {
            "version": ROUTING_STATE_VERSION,
            "updated_at": now_iso(),
            "scopes": scopes,
        }
        atomic_write(
            self._path, json.dumps(payload, indent=2, sort_keys=True) + "\n"
        )


def _require_text(value: Any, name: str) -> str:
    text = optional_id(value)
    if text is None:
        raise ValueError(f"{name} must be a non-empty string")
    return text


class RoutingTable:
    """Cached view over a ``RoutingStore``.

    Reads hit the in-memory snapshot. Writes reload the store, apply the
    change and save under a single lock, then swap the snapshot, so
    concurrent writers never lose each other's updates.
    """

    def __init__(self, store: RoutingStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._scopes: RoutingState = store.load()

    def resolve(
        self,
        scope: str,
        category: Optional[str] = None,
        *,
        kind: RouteKind | str = RouteKind.LISTINGS,
    ) -> Optional[str]:
        scope_key = optional_id(scope)
        if scope_key is None:
            return None
        routes = self._scopes.get(scope_key)
        if routes is None:
            return None
        route_set = routes.get(RouteKind.parse(kind).value) or {}
        code = normalize_category(category)
        if code is None:
            return route_set.get("general")
        return (route_set.get("categories") or {}).get(code)

    def configure(
        self,
        scope: str,
        destination_id: str,
        category: Optional[str] = None,
        *,
        kind: RouteKind | str = RouteKind.LISTINGS,
    ) -> None:
        scope_key = _require_text(scope, "scope")
        destination = _require_text(destination_id, "destination_id")
        route_kind = RouteKind.parse(kind)
        code = None
        if category is not None:
            code = normalize_category(category)
            if code is None:
                raise ValueError("category must be a non-empty string")

        with self._lock:
            scopes = self._store.load()
            routes = scopes.setdefault(
                scope_key, {k.value: _empty_route_set() for k in RouteKind}
            )
            route_set = routes.setdefault(route_kind.value, _empty_route_set())
            if code is None:
                route_set["general"] = destination
            else:
                route_set["categories"][code] = destination
            self._store.save(scopes)
            self._scopes = scopes

    def remove(
        self,
        scope: str,
        category: Optional[str] = None,
        *,
        kind: RouteKind | str = RouteKind.LISTINGS,
    ) -> bool:
        scope_key = optional_id(scope)
        if scope_key is None:
            return False
        route_kind = RouteKind.parse(kind)
        code = normalize_category(category)

        with self._lock:
            scopes = self._store.load()
            routes = scopes.get(scope_key)
            if routes is None:
                self._scopes = scopes
                return False
            route_set = routes.get(route_kind.value) or _empty_route_set()
            if code is None:
                removed = route_set.get("general") is not None
                route_set["general"] = None
            else:
                removed = route_set["categories"].pop(code, None) is not None
            if not removed:
                self._scopes = scopes
                return False
            if all(_route_set_is_empty(rs) for rs in routes.values()):
                scopes.pop(scope_key, None)
            self._store.save(scopes)
            self._scopes = scopes
            return True

    def scopes(self) -> list[str]:
        return sorted(self._scopes)

    def has_destinations(self) -> bool:
        return any(True for _ in self.entries())

    def entries(self) -> Iterator[tuple[str, RouteKind, Optional[str], str]]:
        scopes = self._scopes
        for scope in sorted(scopes):
            for kind in RouteKind:
                route_set = scopes[scope].get(kind.value) or {}
                general = route_set.get("general")
                if general:
                    yield scope, kind, None, general
                for code, destination in sorted(
                    (route_set.get("categories") or {}).items()
                ):
                    yield scope, kind, code, destination


def bootstrap_routes_from_env(
    table: RoutingTable,
    *,
    scope: str,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Upsert channel ids found in the environment into ``scope``."""
    source = env if env is not None else os.environ
    written = 0
    for kind in RouteKind:
        for category in (None, *CATEGORY_CATALOG):
            destination = optional_id(source.get(category_env_var(kind, category)))
            if destination is None:
                continue
            if table.resolve(scope, category, kind=kind) == destination:
                continue
            table.configure(scope, destination, category, kind=kind)
            written += 1
    if written:
        log_event(
            logger,
            logging.INFO,
            "relay.routes.bootstrapped",
            scope=scope,
            entries=written,
        )
    return written


__all__ = [
    "GENERAL_DISPUTE_ENV",
    "GENERAL_LISTING_ENV",
    "JsonRoutingStore",
    "RouteKind",
    "RoutingState",
    "RoutingStore",
    "RoutingTable",
    "bootstrap_routes_from_env",
    "category_env_var",
    "normalize_routing_state",
]
