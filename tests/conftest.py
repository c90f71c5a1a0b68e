"""Test harness configuration.

This repo uses a `src/` layout. Ensure tests always import the in-repo code
rather than an installed `market_relay` package.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Optional

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 60


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class RecordingGateway:
    """In-memory delivery gateway that records calls and fails on demand."""

    def __init__(
        self,
        *,
        fail_destinations: tuple[str, ...] = (),
        fail_members: tuple[str, ...] = (),
        thread_lookup: Optional[dict[str, Any]] = None,
        admin: Optional[str] = None,
    ) -> None:
        from market_relay.core.delivery import DeliveryRejected

        self._rejected = DeliveryRejected
        self.fail_destinations = set(fail_destinations)
        self.fail_members = set(fail_members)
        self.thread_lookup = dict(thread_lookup or {})
        self.admin = admin
        self.sent: list[dict[str, Any]] = []
        self.threads: list[dict[str, Any]] = []
        self.members: list[tuple[str, str, Optional[str]]] = []
        self.lookups: list[str] = []

    async def send_message(self, destination_id, message, *, content=None):
        from market_relay.core.delivery import DeliveryReceipt

        if destination_id in self.fail_destinations:
            raise self._rejected(f"Missing Access for {destination_id}")
        self.sent.append(
            {"destination_id": destination_id, "message": message, "content": content}
        )
        return DeliveryReceipt(
            destination_id=destination_id, message_id=f"msg-{len(self.sent)}"
        )

    async def create_thread(self, channel_id, name, *, private=True, reason=None):
        from market_relay.core.delivery import ThreadHandle

        if channel_id in self.fail_destinations:
            raise self._rejected(f"Missing Access for {channel_id}")
        self.threads.append(
            {
                "channel_id": channel_id,
                "name": name,
                "private": private,
                "reason": reason,
            }
        )
        return ThreadHandle(
            thread_id=f"thread-{channel_id}", channel_id=channel_id, guild_id="guild-1"
        )

    async def add_member(self, thread_id, user_id, *, reason=None):
        if user_id in self.fail_members:
            raise self._rejected(f"Unknown Member {user_id}")
        self.members.append((thread_id, user_id, reason))

    async def get_thread(self, destination_id):
        self.lookups.append(destination_id)
        result = self.thread_lookup.get(destination_id)
        if isinstance(result, Exception):
            raise result
        return result

    async def admin_mention(self, guild_id):
        return self.admin


@pytest.fixture
def recording_gateway_cls() -> type[RecordingGateway]:
    return RecordingGateway
