"""Typed marketplace events and envelope parsing.

The backend posts ``{"event_type": ..., "data": {...}}``. Parsing turns that
into one variant of ``MarketplaceEvent`` or raises ``EventRejected``; nothing
downstream ever sees an unknown kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional, Union

from .categories import normalize_category
from .coercion import optional_id, optional_text, raw_text
from .exceptions import EventRejected


class EventKind(str, Enum):
    LISTING_CREATED = "listing.created"
    LISTING_UPDATED = "listing.updated"
    DISPUTE_CREATED = "dispute.created"
    DISPUTE_UPDATED = "dispute.updated"
    DISPUTE_RESOLVED = "dispute.resolved"


EVENT_TYPE_ALIASES: Mapping[str, EventKind] = {
    "listing.status_changed": EventKind.LISTING_UPDATED,
}


def parse_event_kind(value: Any) -> Optional[EventKind]:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    alias = EVENT_TYPE_ALIASES.get(normalized)
    if alias is not None:
        return alias
    try:
        return EventKind(normalized)
    except ValueError:
        return None


def _images(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(
        item.strip() for item in value if isinstance(item, str) and item.strip()
    )


@dataclass(frozen=True)
class ListingPayload:
    listing_id: Optional[str]
    title: str
    price: Any = None
    category: Optional[str] = None
    description: Optional[str] = None
    images: tuple[str, ...] = field(default_factory=tuple)
    created_at: Any = None
    status: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "ListingPayload":
        listing_id = optional_id(data.get("listing_id"))
        if listing_id is None:
            listing_id = optional_id(data.get("id"))
        return cls(
            listing_id=listing_id,
            title=optional_text(data.get("title")) or "Untitled",
            price=data.get("price"),
            category=normalize_category(data.get("category")),
            description=raw_text(data.get("description")),
            images=_images(data.get("images")),
            created_at=data.get("created_at"),
            status=optional_text(data.get("status")),
            scope=optional_id(data.get("guild_id")),
        )


@dataclass(frozen=True)
class DisputePayload:
    dispute_id: Optional[str]
    order_id: Optional[str]
    party: Optional[str] = None
    category: Optional[str] = None
    reason: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    buyer_discord_id: Optional[str] = None
    seller_discord_id: Optional[str] = None
    created_at: Any = None
    scope: Optional[str] = None

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "DisputePayload":
        return cls(**_dispute_fields(data))

    def participant_ids(self) -> tuple[str, ...]:
        return tuple(
            user_id
            for user_id in (self.buyer_discord_id, self.seller_discord_id)
            if user_id
        )


def _dispute_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    party = optional_text(data.get("party"))
    return {
        "dispute_id": optional_id(data.get("dispute_id")),
        "order_id": optional_id(data.get("order_id")),
        "party": party.lower() if party else None,
        "category": normalize_category(data.get("category")),
        "reason": optional_text(data.get("reason")),
        "description": optional_text(data.get("description")),
        "status": optional_text(data.get("status")),
        "buyer_discord_id": optional_id(data.get("buyer_discord_id")),
        "seller_discord_id": optional_id(data.get("seller_discord_id")),
        "created_at": data.get("created_at"),
        "scope": optional_id(data.get("guild_id")),
    }


@dataclass(frozen=True)
class DisputeResolution(DisputePayload):
    resolution: Optional[str] = None
    resolver_username: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_at: Any = None
    discord_thread_id: Optional[str] = None
    discord_channel_id: Optional[str] = None

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "DisputeResolution":
        resolution = optional_text(data.get("resolution"))
        return cls(
            **_dispute_fields(data),
            resolution=resolution.lower() if resolution else None,
            resolver_username=optional_text(data.get("resolver_username")),
            resolution_notes=optional_text(data.get("resolution_notes")),
            resolved_at=data.get("resolved_at"),
            discord_thread_id=optional_id(data.get("discord_thread_id")),
            discord_channel_id=optional_id(data.get("discord_channel_id")),
        )


@dataclass(frozen=True)
class ListingCreated:
    kind: ClassVar[EventKind] = EventKind.LISTING_CREATED
    listing: ListingPayload


@dataclass(frozen=True)
class ListingUpdated:
    kind: ClassVar[EventKind] = EventKind.LISTING_UPDATED
    listing: ListingPayload


@dataclass(frozen=True)
class DisputeCreated:
    kind: ClassVar[EventKind] = EventKind.DISPUTE_CREATED
    dispute: DisputePayload


@dataclass(frozen=True)
class DisputeUpdated:
    kind: ClassVar[EventKind] = EventKind.DISPUTE_UPDATED
    dispute: DisputePayload


@dataclass(frozen=True)
class DisputeResolved:
    kind: ClassVar[EventKind] = EventKind.DISPUTE_RESOLVED
    dispute: DisputeResolution


MarketplaceEvent = Union[
    ListingCreated, ListingUpdated, DisputeCreated, DisputeUpdated, DisputeResolved
]


def event_category(event: MarketplaceEvent) -> Optional[str]:
    if isinstance(event, (ListingCreated, ListingUpdated)):
        return event.listing.category
    return event.dispute.category


def event_scope(event: MarketplaceEvent) -> Optional[str]:
    if isinstance(event, (ListingCreated, ListingUpdated)):
        return event.listing.scope
    return event.dispute.scope


def build_event(kind: EventKind, data: Mapping[str, Any]) -> MarketplaceEvent:
    if kind is EventKind.LISTING_CREATED or kind is EventKind.LISTING_UPDATED:
        listing = ListingPayload.from_raw(data)
        if listing.listing_id is None:
            raise EventRejected(
                "Invalid listing data: listing_id is required", event_type=kind.value
            )
        if kind is EventKind.LISTING_CREATED:
            return ListingCreated(listing=listing)
        return ListingUpdated(listing=listing)
    if kind is EventKind.DISPUTE_CREATED:
        return DisputeCreated(dispute=DisputePayload.from_raw(data))
    if kind is EventKind.DISPUTE_UPDATED:
        return DisputeUpdated(dispute=DisputePayload.from_raw(data))
    return DisputeResolved(dispute=DisputeResolution.from_raw(data))


def _looks_like_legacy_listing(body: Mapping[str, Any]) -> bool:
    has_id = optional_id(body.get("listing_id")) or optional_id(body.get("id"))
    return bool(has_id) and optional_text(body.get("title")) is not None


def parse_envelope(body: Any) -> MarketplaceEvent:
    if not isinstance(body, Mapping):
        raise EventRejected("Invalid event format. Expected event_type and data")

    if "event_type" not in body and _looks_like_legacy_listing(body):
        return build_event(EventKind.LISTING_CREATED, body)

    raw_type = body.get("event_type")
    data = body.get("data")
    if not raw_type or not isinstance(data, Mapping):
        raise EventRejected(
            "Invalid event format. Expected event_type and data",
            event_type=raw_type if isinstance(raw_type, str) else None,
        )
    kind = parse_event_kind(raw_type)
    if kind is None:
        raise EventRejected(
            f"Unknown event type: {raw_type}",
            event_type=raw_type if isinstance(raw_type, str) else None,
        )
    return build_event(kind, data)


def parse_legacy_listing(body: Any) -> ListingCreated:
    """Parse the pre-envelope ``/webhook/listing`` body.

    That contract always required ``id``, ``title`` and ``price``.
    """
    if not isinstance(body, Mapping):
        raise EventRejected("Invalid listing data")
    if not body.get("id") or not body.get("title") or not body.get("price"):
        raise EventRejected("Invalid listing data", event_type="listing.created")
    return ListingCreated(listing=ListingPayload.from_raw(body))


__all__ = [
    "DisputeCreated",
    "DisputePayload",
    "DisputeResolution",
    "DisputeResolved",
    "DisputeUpdated",
    "EVENT_TYPE_ALIASES",
    "EventKind",
    "ListingCreated",
    "ListingPayload",
    "ListingUpdated",
    "MarketplaceEvent",
    "build_event",
    "event_category",
    "event_scope",
    "parse_envelope",
    "parse_event_kind",
    "parse_legacy_listing",
]
