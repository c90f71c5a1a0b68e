"""Event dispatch: validate, resolve, format, deliver, aggregate.

One dispatch walks ``RECEIVED -> VALIDATED -> RESOLVED -> DELIVERING ->
COMPLETED``; envelopes that fail validation stop at ``REJECTED`` before the
routing table is consulted. Deliveries to different targets run concurrently
and fail independently. A dispatch succeeds when at least one target got the
message, or when there was nothing to deliver to.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, assert_never

from .delivery import DeliveryGateway, ThreadHandle
from .events import (
    DisputeCreated,
    DisputePayload,
    DisputeResolved,
    DisputeUpdated,
    ListingCreated,
    ListingUpdated,
    MarketplaceEvent,
    parse_envelope,
)
from .exceptions import EventRejected
from .formatting import ChatMessage, MessageFormatter, dispute_thread_name, mention_user
from .logging_utils import log_event
from .resolver import DestinationResolver, ResolvedTarget
from .routing import RouteKind

DISPUTE_THREAD_REASON = (
    "New dispute created - private communication between buyer and seller"
)
DEFAULT_FALLBACK_ADMIN_MENTION = "@everyone"


class DispatchState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    RESOLVED = "resolved"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MemberOutcome:
    user_id: str
    role: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "success": self.success,
            "error": self.error,
        }


@dataclass(frozen=True)
class DeliveryOutcome:
    target: ResolvedTarget
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None
    thread: Optional[ThreadHandle] = None
    members: tuple[MemberOutcome, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "scope": self.target.scope,
            "destination_id": self.target.destination_id,
            "kind": self.target.kind.value,
            "success": self.success,
        }
        if self.target.is_thread:
            payload["is_thread"] = True
        if self.error is not None:
            payload["error"] = self.error
        if self.message_id is not None:
            payload["message_id"] = self.message_id
        if self.thread is not None:
            payload["thread"] = self.thread.as_result()
        if self.members:
            payload["members"] = [member.to_dict() for member in self.members]
        return payload


@dataclass(frozen=True)
class DispatchResult:
    event_kind: Optional[str]
    state: DispatchState
    attempted: int = 0
    succeeded: int = 0
    outcomes: tuple[DeliveryOutcome, ...] = field(default_factory=tuple)
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        if self.state is DispatchState.REJECTED:
            return False
        return self.attempted == 0 or self.succeeded > 0

    @property
    def status(self) -> str:
        if self.state is DispatchState.REJECTED:
            return "rejected"
        if self.attempted == 0:
            return "noop"
        if self.succeeded == self.attempted:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    @property
    def errors(self) -> list[str]:
        return [o.error for o in self.outcomes if not o.success and o.error]

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_kind,
            "status": self.status,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


TargetOperation = Callable[[ResolvedTarget], Awaitable[DeliveryOutcome]]


class EventDispatcher:
    def __init__(
        self,
        resolver: DestinationResolver,
        formatter: MessageFormatter,
        gateway: DeliveryGateway,
        *,
        logger: Optional[logging.Logger] = None,
        notify_updates: bool = False,
        fallback_admin_mention: Optional[str] = DEFAULT_FALLBACK_ADMIN_MENTION,
    ) -> None:
        self._resolver = resolver
        self._formatter = formatter
        self._gateway = gateway
        self._logger = logger or logging.getLogger(__name__)
        self._notify_updates = notify_updates
        self._fallback_admin_mention = fallback_admin_mention

    async def dispatch_envelope(self, body: Any) -> DispatchResult:
        raw_type = body.get("event_type") if isinstance(body, dict) else None
        log_event(
            self._logger,
            logging.INFO,
            "relay.dispatch.received",
            event_type=raw_type if isinstance(raw_type, str) else None,
        )
        try:
            event = parse_envelope(body)
        except EventRejected as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "relay.dispatch.rejected",
                event_type=exc.event_type,
                reason=str(exc),
            )
            return DispatchResult(
                event_kind=exc.event_type,
                state=DispatchState.REJECTED,
                error=str(exc),
            )
        return await self.dispatch(event)

    async def dispatch(self, event: MarketplaceEvent) -> DispatchResult:
        log_event(
            self._logger,
            logging.INFO,
            "relay.dispatch.validated",
            event_type=event.kind.value,
        )
        if isinstance(event, ListingCreated):
            return await self._broadcast(event)
        if isinstance(event, (ListingUpdated, DisputeUpdated)):
            if not self._notify_updates:
                log_event(
                    self._logger,
                    logging.INFO,
                    "relay.dispatch.update_logged",
                    event_type=event.kind.value,
                    subject_id=(
                        event.listing.listing_id
                        if isinstance(event, ListingUpdated)
                        else event.dispute.dispute_id
                    ),
                )
                return self._complete(event, [])
            return await self._broadcast(event)
        if isinstance(event, DisputeCreated):
            return await self._dispute_created(event)
        if isinstance(event, DisputeResolved):
            return await self._dispute_resolved(event)
        assert_never(event)

    async def _broadcast(self, event: MarketplaceEvent) -> DispatchResult:
        targets = self._resolver.resolve_targets(event)
        message = self._formatter.format(event)
        content = message.content()

        async def _send(target: ResolvedTarget) -> DeliveryOutcome:
            receipt = await self._gateway.send_message(
                target.destination_id, message, content=content
            )
            return DeliveryOutcome(
                target=target, success=True, message_id=receipt.message_id
            )

        outcomes = await self._fan_out(event, targets, _send)
        return self._complete(event, outcomes)

    async def _dispute_created(self, event: DisputeCreated) -> DispatchResult:
        dispute = event.dispute
        targets = self._resolver.resolve_targets(event)
        message = self._formatter.format(event)
        thread_name = dispute_thread_name(dispute)

        async def _open_thread(target: ResolvedTarget) -> DeliveryOutcome:
            thread = await self._gateway.create_thread(
                target.destination_id,
                thread_name,
                private=True,
                reason=DISPUTE_THREAD_REASON,
            )
            members = await self._add_participants(thread, dispute)
            admin = await self._admin_mention(
                thread.guild_id or target.scope, fallback=self._fallback_admin_mention
            )
            mentions = _participant_mentions(dispute)
            if admin:
                mentions += (admin,)
            try:
                receipt = await self._gateway.send_message(
                    thread.thread_id, message, content=message.content(mentions)
                )
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "relay.thread.post_failed",
                    dispute_id=dispute.dispute_id,
                    thread_id=thread.thread_id,
                    exc=exc,
                )
                return DeliveryOutcome(
                    target=target,
                    success=False,
                    error=_describe(exc),
                    thread=thread,
                    members=members,
                )
            log_event(
                self._logger,
                logging.INFO,
                "relay.thread.created",
                dispute_id=dispute.dispute_id,
                channel_id=target.destination_id,
                thread_id=thread.thread_id,
            )
            return DeliveryOutcome(
                target=target,
                success=True,
                message_id=receipt.message_id,
                thread=thread,
                members=members,
            )

        outcomes = await self._fan_out(event, targets, _open_thread)
        result = next(
            (
                outcome.thread.as_result()
                for outcome in outcomes
                if outcome.success and outcome.thread is not None
            ),
            None,
        )
        return self._complete(event, outcomes, result=result)

    async def _dispute_resolved(self, event: DisputeResolved) -> DispatchResult:
        dispute = event.dispute
        message = self._formatter.format(event)
        outcomes: list[DeliveryOutcome] = []

        thread_id = dispute.discord_thread_id
        if thread_id:
            thread_outcome = await self._post_resolution_to_thread(
                event, message, thread_id
            )
            if thread_outcome is not None:
                if thread_outcome.success:
                    return self._complete(event, [thread_outcome])
                outcomes.append(thread_outcome)

        targets = self._resolver.resolve_targets(event)
        channel_message = dataclasses.replace(message, body_lines=())
        content = channel_message.content(_participant_mentions(dispute))

        async def _send(target: ResolvedTarget) -> DeliveryOutcome:
            receipt = await self._gateway.send_message(
                target.destination_id, channel_message, content=content
            )
            return DeliveryOutcome(
                target=target, success=True, message_id=receipt.message_id
            )

        outcomes.extend(await self._fan_out(event, targets, _send))
        return self._complete(event, outcomes)

    async def _post_resolution_to_thread(
        self, event: DisputeResolved, message: ChatMessage, thread_id: str
    ) -> Optional[DeliveryOutcome]:
        dispute = event.dispute
        target = ResolvedTarget(
            scope=dispute.scope or "",
            destination_id=thread_id,
            kind=RouteKind.DISPUTES,
            is_thread=True,
        )
        try:
            thread = await self._gateway.get_thread(thread_id)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "relay.thread.lookup_failed",
                dispute_id=dispute.dispute_id,
                thread_id=thread_id,
                exc=exc,
            )
            return DeliveryOutcome(target=target, success=False, error=_describe(exc))
        if thread is None:
            log_event(
                self._logger,
                logging.WARNING,
                "relay.thread.not_a_thread",
                dispute_id=dispute.dispute_id,
                thread_id=thread_id,
            )
            return None

        async def _send(thread_target: ResolvedTarget) -> DeliveryOutcome:
            mentions = _participant_mentions(dispute)
            admin = await self._admin_mention(
                thread.guild_id or dispute.scope, fallback=None
            )
            if admin:
                mentions += (admin,)
            receipt = await self._gateway.send_message(
                thread_target.destination_id, message, content=message.content(mentions)
            )
            return DeliveryOutcome(
                target=thread_target, success=True, message_id=receipt.message_id
            )

        (outcome,) = await self._fan_out(event, [target], _send)
        return outcome

    async def _add_participants(
        self, thread: ThreadHandle, dispute: DisputePayload
    ) -> tuple[MemberOutcome, ...]:
        outcomes: list[MemberOutcome] = []
        for role, user_id in (
            ("buyer", dispute.buyer_discord_id),
            ("seller", dispute.seller_discord_id),
        ):
            if not user_id:
                continue
            try:
                await self._gateway.add_member(
                    thread.thread_id,
                    user_id,
                    reason=f"{role.capitalize()} added to dispute thread",
                )
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.WARNING,
                    "relay.thread.member_add_failed",
                    thread_id=thread.thread_id,
                    user_id=user_id,
                    role=role,
                    exc=exc,
                )
                outcomes.append(
                    MemberOutcome(
                        user_id=user_id, role=role, success=False, error=_describe(exc)
                    )
                )
                continue
            outcomes.append(MemberOutcome(user_id=user_id, role=role, success=True))
        return tuple(outcomes)

    async def _admin_mention(
        self, guild_id: Optional[str], *, fallback: Optional[str]
    ) -> Optional[str]:
        try:
            mention = await self._gateway.admin_mention(guild_id)
        except Exception as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "relay.admin_role.lookup_failed",
                guild_id=guild_id,
                exc=exc,
            )
            mention = None
        return mention or fallback

    async def _fan_out(
        self,
        event: MarketplaceEvent,
        targets: list[ResolvedTarget],
        operation: TargetOperation,
    ) -> list[DeliveryOutcome]:
        if not targets:
            return []
        log_event(
            self._logger,
            logging.INFO,
            "relay.dispatch.delivering",
            event_type=event.kind.value,
            targets=[target.destination_id for target in targets],
        )

        async def _guarded(target: ResolvedTarget) -> DeliveryOutcome:
            try:
                return await operation(target)
            except Exception as exc:
                log_event(
                    self._logger,
                    logging.ERROR,
                    "relay.delivery.failed",
                    event_type=event.kind.value,
                    scope=target.scope,
                    destination_id=target.destination_id,
                    exc=exc,
                )
                return DeliveryOutcome(
                    target=target, success=False, error=_describe(exc)
                )

        return list(await asyncio.gather(*(_guarded(target) for target in targets)))

    def _complete(
        self,
        event: MarketplaceEvent,
        outcomes: list[DeliveryOutcome],
        *,
        result: Optional[dict[str, Any]] = None,
    ) -> DispatchResult:
        succeeded = sum(1 for outcome in outcomes if outcome.success)
        dispatch = DispatchResult(
            event_kind=event.kind.value,
            state=DispatchState.COMPLETED,
            attempted=len(outcomes),
            succeeded=succeeded,
            outcomes=tuple(outcomes),
            result=result,
            error=None if outcomes and succeeded else _summarize_errors(outcomes),
        )
        log_event(
            self._logger,
            logging.INFO if dispatch.ok else logging.ERROR,
            "relay.dispatch.completed",
            event_type=dispatch.event_kind,
            status=dispatch.status,
            attempted=dispatch.attempted,
            succeeded=dispatch.succeeded,
        )
        return dispatch


def _participant_mentions(dispute: DisputePayload) -> tuple[str, ...]:
    return tuple(mention_user(user_id) for user_id in dispute.participant_ids())


def _describe(exc: BaseException) -> str:
    text = str(exc).strip()
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def _summarize_errors(outcomes: list[DeliveryOutcome]) -> Optional[str]:
    errors = [outcome.error for outcome in outcomes if outcome.error]
    if not errors:
        return None
    return "; ".join(errors)


__all__ = [
    "DeliveryOutcome",
    "DispatchResult",
    "DispatchState",
    "EventDispatcher",
    "MemberOutcome",
]
