from __future__ import annotations

from pathlib import Path

import pytest

from market_relay.core.delivery import DeliveryError, ThreadHandle
from market_relay.core.dispatcher import DispatchState, EventDispatcher
from market_relay.core.formatting import DISPUTE_THREAD_NOTICE, MessageFormatter
from market_relay.core.resolver import DestinationResolver
from market_relay.core.routing import JsonRoutingStore, RoutingTable


class _SpyTable:
    def __init__(self) -> None:
        self.calls = 0

    def scopes(self) -> list[str]:
        self.calls += 1
        return []

    def resolve(self, *args, **kwargs):
        self.calls += 1
        return None


@pytest.fixture
def table(tmp_path: Path) -> RoutingTable:
    return RoutingTable(JsonRoutingStore(tmp_path / "routes.json"))


def _dispatcher(table, gateway, **kwargs) -> EventDispatcher:
    return EventDispatcher(
        DestinationResolver(table),
        MessageFormatter(frontend_url="https://shop.test"),
        gateway,
        **kwargs,
    )


def _listing_envelope(category="wos_accounts", **extra) -> dict:
    return {
        "event_type": "listing.created",
        "data": {
            "listing_id": "42",
            "title": "Account",
            "price": 10,
            "category": category,
            **extra,
        },
    }


@pytest.mark.anyio
async def test_partial_delivery_still_succeeds(
    table: RoutingTable, recording_gateway_cls
) -> None:
    for scope, channel in (("g1", "C1"), ("g2", "C2"), ("g3", "C3")):
        table.configure(scope, channel, "wos_accounts")
    gateway = recording_gateway_cls(fail_destinations=("C2",))

    result = await _dispatcher(table, gateway).dispatch_envelope(_listing_envelope())

    assert result.state is DispatchState.COMPLETED
    assert result.attempted == 3
    assert result.succeeded == 2
    assert result.ok is True
    assert result.status == "partial"
    assert len(result.errors) == 1
    assert "C2" in result.errors[0]


@pytest.mark.anyio
async def test_single_failed_target_fails_the_dispatch(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "C1", "wos_accounts")
    gateway = recording_gateway_cls(fail_destinations=("C1",))

    result = await _dispatcher(table, gateway).dispatch_envelope(_listing_envelope())

    assert result.attempted == 1
    assert result.succeeded == 0
    assert result.ok is False
    assert result.status == "failed"
    assert result.error and "DeliveryRejected" in result.error


@pytest.mark.anyio
async def test_unknown_event_type_never_touches_routing(recording_gateway_cls) -> None:
    spy = _SpyTable()
    gateway = recording_gateway_cls()

    result = await _dispatcher(spy, gateway).dispatch_envelope(
        {"event_type": "order.shipped", "data": {"id": "1"}}
    )

    assert result.state is DispatchState.REJECTED
    assert result.ok is False
    assert result.error == "Unknown event type: order.shipped"
    assert spy.calls == 0
    assert gateway.sent == []


@pytest.mark.anyio
async def test_category_listing_is_posted_once_to_its_channel(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "G1")
    table.configure("g1", "C1", "wos_accounts")
    gateway = recording_gateway_cls()

    result = await _dispatcher(table, gateway).dispatch_envelope(_listing_envelope())

    assert result.status == "ok"
    assert [sent["destination_id"] for sent in gateway.sent] == ["C1"]
    fields = {field.name: field.value for field in gateway.sent[0]["message"].fields}
    assert fields["💰 Price"] == "$10.00"


@pytest.mark.anyio
async def test_no_destination_is_a_successful_noop(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "G1")
    gateway = recording_gateway_cls()

    result = await _dispatcher(table, gateway).dispatch_envelope(
        _listing_envelope(category="fortnite_accounts")
    )

    assert result.attempted == 0
    assert result.ok is True
    assert result.status == "noop"
    assert gateway.sent == []


@pytest.mark.anyio
async def test_updates_are_logged_unless_enabled(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "C1", "wos_accounts")
    envelope = {
        "event_type": "listing.updated",
        "data": {"listing_id": "42", "category": "wos_accounts", "status": "sold"},
    }

    quiet = recording_gateway_cls()
    result = await _dispatcher(table, quiet).dispatch_envelope(envelope)
    assert result.status == "noop"
    assert quiet.sent == []

    loud = recording_gateway_cls()
    result = await _dispatcher(table, loud, notify_updates=True).dispatch_envelope(
        envelope
    )
    assert result.status == "ok"
    assert loud.sent[0]["message"].title == "📝 Listing Updated"


def _dispute_envelope(**extra) -> dict:
    return {
        "event_type": "dispute.created",
        "data": {
            "dispute_id": "5",
            "order_id": "11",
            "party": "buyer",
            "category": "wos_accounts",
            "buyer_discord_id": "111",
            "seller_discord_id": "222",
            **extra,
        },
    }


@pytest.mark.anyio
async def test_dispute_created_opens_private_thread(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "D1", "wos_accounts", kind="disputes")
    gateway = recording_gateway_cls(admin="<@&999>")

    result = await _dispatcher(table, gateway).dispatch_envelope(_dispute_envelope())

    assert result.ok is True
    assert gateway.threads == [
        {
            "channel_id": "D1",
            "name": "Dispute #5 - Order #11 (Whiteout Survival)",
            "private": True,
            "reason": (
                "New dispute created - private communication between buyer and seller"
            ),
        }
    ]
    assert [(user, reason) for _, user, reason in gateway.members] == [
        ("111", "Buyer added to dispute thread"),
        ("222", "Seller added to dispute thread"),
    ]
    sent = gateway.sent[0]
    assert sent["destination_id"] == "thread-D1"
    assert sent["content"] == f"<@111> <@222> <@&999>\n\n{DISPUTE_THREAD_NOTICE}"
    assert result.result == {
        "thread_id": "thread-D1",
        "channel_id": "D1",
        "guild_id": "guild-1",
        "thread_url": "https://discord.com/channels/guild-1/thread-D1",
    }


@pytest.mark.anyio
async def test_member_add_failure_does_not_fail_dispute(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "D1", "wos_accounts", kind="disputes")
    gateway = recording_gateway_cls(fail_members=("222",))

    result = await _dispatcher(table, gateway).dispatch_envelope(_dispute_envelope())

    assert result.ok is True
    assert result.status == "ok"
    members = result.outcomes[0].members
    assert [(m.user_id, m.success) for m in members] == [("111", True), ("222", False)]
    assert gateway.sent[0]["content"].startswith("<@111> <@222> @everyone")


@pytest.mark.anyio
async def test_dispute_without_route_is_noop(
    table: RoutingTable, recording_gateway_cls
) -> None:
    gateway = recording_gateway_cls()

    result = await _dispatcher(table, gateway).dispatch_envelope(_dispute_envelope())

    assert result.status == "noop"
    assert gateway.threads == []
    assert result.result is None


def _resolved_envelope(**extra) -> dict:
    return {
        "event_type": "dispute.resolved",
        "data": {
            "dispute_id": "5",
            "order_id": "11",
            "category": "wos_accounts",
            "resolution": "seller",
            "buyer_discord_id": "111",
            "seller_discord_id": "222",
            **extra,
        },
    }


@pytest.mark.anyio
async def test_resolution_goes_to_thread_first(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "D1", "wos_accounts", kind="disputes")
    gateway = recording_gateway_cls(
        thread_lookup={"T1": ThreadHandle("T1", "D1", "guild-1")}
    )

    result = await _dispatcher(table, gateway).dispatch_envelope(
        _resolved_envelope(discord_thread_id="T1")
    )

    assert result.status == "ok"
    assert [sent["destination_id"] for sent in gateway.sent] == ["T1"]
    assert gateway.sent[0]["content"] == (
        "<@111> <@222>\n\n✅ **Resolved in favor of SELLER**"
    )
    assert result.outcomes[0].target.is_thread is True


@pytest.mark.anyio
async def test_resolution_falls_back_to_channel_when_thread_is_gone(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "D1", "wos_accounts", kind="disputes")
    gateway = recording_gateway_cls(
        thread_lookup={"T1": DeliveryError("Unknown Channel")}
    )

    result = await _dispatcher(table, gateway).dispatch_envelope(
        _resolved_envelope(discord_thread_id="T1")
    )

    assert result.attempted == 2
    assert result.succeeded == 1
    assert result.ok is True
    assert [sent["destination_id"] for sent in gateway.sent] == ["D1"]
    assert gateway.sent[0]["content"] == "<@111> <@222>"


@pytest.mark.anyio
async def test_resolution_falls_back_when_id_is_not_a_thread(
    table: RoutingTable, recording_gateway_cls
) -> None:
    table.configure("g1", "D1", "wos_accounts", kind="disputes")
    gateway = recording_gateway_cls()

    result = await _dispatcher(table, gateway).dispatch_envelope(
        _resolved_envelope(discord_thread_id="T1")
    )

    assert gateway.lookups == ["T1"]
    assert result.attempted == 1
    assert [sent["destination_id"] for sent in gateway.sent] == ["D1"]
