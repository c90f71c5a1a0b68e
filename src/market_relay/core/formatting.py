"""Event -> chat message construction.

Everything here is pure: no clock, network or storage access. A missing
timestamp stays ``None`` on the message and is filled in when the message is
rendered for a platform.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, assert_never

from .categories import category_display_name
from .coercion import coerce_float
from .events import (
    DisputeCreated,
    DisputePayload,
    DisputeResolution,
    DisputeResolved,
    DisputeUpdated,
    ListingCreated,
    ListingPayload,
    ListingUpdated,
    MarketplaceEvent,
)

DEFAULT_FRONTEND_URL = "http://localhost:5173"
DEFAULT_BRAND_NAME = "NXOLand"

LISTING_COLOR = 0x00AE86
DISPUTE_COLOR = 0xFF6B6B
DISPUTE_UPDATE_COLOR = 0xFFD43B
RESOLUTION_BUYER_COLOR = 0x4A90E2
RESOLUTION_SELLER_COLOR = 0xFFA500
RESOLUTION_REFUND_COLOR = 0x51CF66
RESOLUTION_DEFAULT_COLOR = 0x51CF66

DESCRIPTION_FIELD_LIMIT = 1000
DESCRIPTION_TRUNCATE_AT = 997
ELLIPSIS = "..."
THREAD_NAME_LIMIT = 100

DISPUTE_THREAD_NOTICE = (
    "💬 **This is a PRIVATE thread for buyer and seller communication. "
    "Only you, the other party, and admins can see this thread.**\n\n"
    "🔒 **Privacy:** This thread is private and will not be visible to other "
    "server members."
)


@dataclass(frozen=True)
class MessageField:
    name: str
    value: str
    inline: bool = False


@dataclass(frozen=True)
class ChatMessage:
    title: str
    description: Optional[str] = None
    body_lines: tuple[str, ...] = field(default_factory=tuple)
    fields: tuple[MessageField, ...] = field(default_factory=tuple)
    color: int = LISTING_COLOR
    timestamp_source: Any = None
    footer: Optional[str] = None
    link: Optional[str] = None
    image_url: Optional[str] = None

    def content(self, mentions: tuple[str, ...] = ()) -> Optional[str]:
        """Plain-text part sent alongside the embed."""
        parts: list[str] = []
        if mentions:
            parts.append(" ".join(mentions))
        parts.extend(line for line in self.body_lines if line)
        if not parts:
            return None
        return "\n\n".join(parts)


def format_price(value: Any) -> str:
    amount = coerce_float(value, default=0.0)
    return f"${amount:.2f}"


def truncate_description(text: str) -> str:
    if len(text) > DESCRIPTION_FIELD_LIMIT:
        return text[:DESCRIPTION_TRUNCATE_AT] + ELLIPSIS
    return text


def mention_user(user_id: str) -> str:
    return f"<@{user_id}>"


def mention_role(role_id: str) -> str:
    return f"<@&{role_id}>"


def resolution_summary(resolution: Optional[str]) -> tuple[str, int]:
    if resolution == "buyer":
        return "✅ **Resolved in favor of BUYER**", RESOLUTION_BUYER_COLOR
    if resolution == "seller":
        return "✅ **Resolved in favor of SELLER**", RESOLUTION_SELLER_COLOR
    if resolution == "refund":
        return "✅ **Resolved: REFUND**", RESOLUTION_REFUND_COLOR
    return "✅ **Dispute Resolved**", RESOLUTION_DEFAULT_COLOR


def dispute_thread_name(dispute: DisputePayload) -> str:
    name = f"Dispute #{dispute.dispute_id} - Order #{dispute.order_id}"
    if dispute.category:
        name += f" ({category_display_name(dispute.category)})"
    return name[:THREAD_NAME_LIMIT]


class MessageFormatter:
    def __init__(
        self,
        *,
        frontend_url: str = DEFAULT_FRONTEND_URL,
        brand_name: str = DEFAULT_BRAND_NAME,
    ) -> None:
        self._frontend_url = frontend_url.rstrip("/")
        self._brand_name = brand_name

    @property
    def marketplace_footer(self) -> str:
        return f"{self._brand_name} Marketplace"

    @property
    def dispute_footer(self) -> str:
        return f"{self._brand_name} Dispute System"

    def listing_url(self, listing_id: Optional[str]) -> str:
        return f"{self._frontend_url}/product/{listing_id}"

    def format(self, event: MarketplaceEvent) -> ChatMessage:
        if isinstance(event, ListingCreated):
            return self._listing(event.listing, title="🆕 New Listing Available!")
        if isinstance(event, ListingUpdated):
            return self._listing(
                event.listing, title="📝 Listing Updated", include_status=True
            )
        if isinstance(event, DisputeCreated):
            return self._dispute_created(event.dispute)
        if isinstance(event, DisputeUpdated):
            return self._dispute_updated(event.dispute)
        if isinstance(event, DisputeResolved):
            return self._dispute_resolved(event.dispute)
        assert_never(event)

    def _listing(
        self, listing: ListingPayload, *, title: str, include_status: bool = False
    ) -> ChatMessage:
        fields = [
            MessageField("💰 Price", format_price(listing.price), inline=True),
            MessageField("📂 Category", listing.category or "N/A", inline=True),
        ]
        if include_status and listing.status:
            fields.append(MessageField("📌 Status", listing.status, inline=True))
        if listing.description:
            fields.append(
                MessageField(
                    "📝 Description", truncate_description(listing.description)
                )
            )
        url = self.listing_url(listing.listing_id)
        fields.append(MessageField("🔗 View Listing", f"[Click here to view]({url})"))
        return ChatMessage(
            title=title,
            description=f"**{listing.title}**",
            fields=tuple(fields),
            color=LISTING_COLOR,
            timestamp_source=listing.created_at,
            footer=self.marketplace_footer,
            link=url,
            image_url=listing.images[0] if listing.images else None,
        )

    def _dispute_created(self, dispute: DisputePayload) -> ChatMessage:
        buyer = dispute.buyer_discord_id
        seller = dispute.seller_discord_id
        fields = (
            MessageField("📦 Order ID", f"#{dispute.order_id}", inline=True),
            MessageField(
                "👤 Initiated By",
                "Buyer" if dispute.party == "buyer" else "Seller",
                inline=True,
            ),
            MessageField(
                "📂 Category", category_display_name(dispute.category), inline=True
            ),
            MessageField("📋 Reason", dispute.reason or "N/A"),
            MessageField(
                "📝 Description", dispute.description or "No description provided"
            ),
            MessageField(
                "🆔 Buyer Discord",
                mention_user(buyer) if buyer else "Not connected",
                inline=True,
            ),
            MessageField(
                "🆔 Seller Discord",
                mention_user(seller) if seller else "Not connected",
                inline=True,
            ),
        )
        return ChatMessage(
            title="⚠️ New Dispute Created",
            description=f"**Dispute #{dispute.dispute_id}**",
            body_lines=(DISPUTE_THREAD_NOTICE,),
            fields=fields,
            color=DISPUTE_COLOR,
            timestamp_source=dispute.created_at,
            footer=self.dispute_footer,
        )

    def _dispute_updated(self, dispute: DisputePayload) -> ChatMessage:
        return ChatMessage(
            title="📝 Dispute Updated",
            description=f"**Dispute #{dispute.dispute_id}**",
            fields=(
                MessageField("📦 Order ID", f"#{dispute.order_id}", inline=True),
                MessageField("📌 Status", dispute.status or "N/A", inline=True),
            ),
            color=DISPUTE_UPDATE_COLOR,
            timestamp_source=dispute.created_at,
            footer=self.dispute_footer,
        )

    def _dispute_resolved(self, dispute: DisputeResolution) -> ChatMessage:
        resolution_text, color = resolution_summary(dispute.resolution)
        return ChatMessage(
            title="✅ Dispute Resolved",
            description=f"**Dispute #{dispute.dispute_id}** has been resolved",
            body_lines=(resolution_text,),
            fields=(
                MessageField("📦 Order ID", f"#{dispute.order_id}", inline=True),
                MessageField("⚖️ Resolution", resolution_text),
                MessageField(
                    "👤 Resolved By",
                    dispute.resolver_username or "Admin",
                    inline=True,
                ),
                MessageField(
                    "📝 Resolution Notes",
                    dispute.resolution_notes or "No notes provided",
                ),
            ),
            color=color,
            timestamp_source=dispute.resolved_at,
            footer=self.dispute_footer,
        )


__all__ = [
    "ChatMessage",
    "DISPUTE_THREAD_NOTICE",
    "MessageField",
    "MessageFormatter",
    "dispute_thread_name",
    "format_price",
    "mention_role",
    "mention_user",
    "resolution_summary",
    "truncate_description",
]
