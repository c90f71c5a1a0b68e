"""Core relay primitives: events, routing, formatting and dispatch."""

from .categories import CATEGORY_CATALOG, category_display_name
from .delivery import (
    DeliveryError,
    DeliveryGateway,
    DeliveryRateLimited,
    DeliveryReceipt,
    DeliveryRejected,
    ThreadHandle,
)
from .dispatcher import DispatchResult, DispatchState, EventDispatcher
from .events import EventKind, MarketplaceEvent, parse_envelope
from .formatting import ChatMessage, MessageField, MessageFormatter
from .resolver import DestinationResolver, ResolvedTarget
from .routing import JsonRoutingStore, RouteKind, RoutingTable

__all__ = [
    "CATEGORY_CATALOG",
    "category_display_name",
    "ChatMessage",
    "DeliveryError",
    "DeliveryGateway",
    "DeliveryRateLimited",
    "DeliveryReceipt",
    "DeliveryRejected",
    "DestinationResolver",
    "DispatchResult",
    "DispatchState",
    "EventDispatcher",
    "EventKind",
    "JsonRoutingStore",
    "MarketplaceEvent",
    "MessageField",
    "MessageFormatter",
    "parse_envelope",
    "ResolvedTarget",
    "RouteKind",
    "RoutingTable",
    "ThreadHandle",
]
