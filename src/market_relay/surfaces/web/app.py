"""HTTP surface: backend webhooks, health, and Discord interactions."""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...core.categories import CATEGORY_CATALOG
from ...core.config import RelayConfig
from ...core.delivery import DeliveryGateway
from ...core.dispatcher import DispatchResult, DispatchState, EventDispatcher
from ...core.events import parse_legacy_listing
from ...core.exceptions import EventRejected
from ...core.formatting import MessageFormatter
from ...core.logging_utils import log_event
from ...core.resolver import DestinationResolver
from ...core.routing import (
    JsonRoutingStore,
    RouteKind,
    RoutingTable,
    bootstrap_routes_from_env,
)
from ...integrations.discord.commands import (
    NOT_CONFIGURED,
    ROUTES_COMMAND_NAME,
    RoutesCommandHandler,
)
from ...integrations.discord.gateway import DiscordDeliveryGateway
from ...integrations.discord.interactions import (
    ephemeral_response,
    extract_command_path_and_options,
    extract_guild_id,
    extract_user_id,
    is_application_command,
    is_ping,
    pong_response,
    verify_interaction_signature,
)
from ...integrations.discord.rest import DiscordRestClient
from ...integrations.discord.roles import AdminRoleResolver

WEBHOOK_SECRET_HEADER = "x-webhook-secret"
SIGNATURE_HEADER = "x-signature-ed25519"
SIGNATURE_TIMESTAMP_HEADER = "x-signature-timestamp"

logger = logging.getLogger("market_relay.web")


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _secret_matches(request: Request, secret: Optional[str]) -> bool:
    if not secret:
        return True
    provided = request.headers.get(WEBHOOK_SECRET_HEADER) or ""
    return hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8"))


async def _read_json(request: Request) -> tuple[Any, bool]:
    raw = await request.body()
    try:
        return json.loads(raw or b"null"), True
    except ValueError:
        return None, False


def routing_overview(
    table: RoutingTable, *, default_scope: Optional[str] = None
) -> dict[str, Any]:
    """Per-scope route view; an empty table still reports `default_scope`."""
    scopes = table.scopes()
    if not scopes and default_scope:
        scopes = [default_scope]
    configuration: dict[str, Any] = {}
    for scope in scopes:
        scope_view: dict[str, Any] = {}
        for kind in RouteKind:
            categories = {
                code: table.resolve(scope, code, kind=kind) or NOT_CONFIGURED
                for code in CATEGORY_CATALOG
            }
            for entry_scope, entry_kind, code, destination in table.entries():
                if entry_scope == scope and entry_kind is kind and code:
                    categories[code] = destination
            scope_view[kind.value] = {
                "general": table.resolve(scope, kind=kind) or NOT_CONFIGURED,
                "categories": categories,
            }
        configuration[scope] = scope_view
    return {
        "status": "ok",
        "scopes": table.scopes(),
        "configuration": configuration,
        "categories": dict(CATEGORY_CATALOG),
    }


def _failure_response(dispatch: DispatchResult) -> JSONResponse:
    return JSONResponse(
        {
            "success": False,
            "event_type": dispatch.event_kind,
            "error": dispatch.error or "Delivery failed",
            "outcomes": [outcome.to_dict() for outcome in dispatch.outcomes],
        },
        status_code=502,
    )


def create_app(
    config: RelayConfig,
    *,
    dispatcher: EventDispatcher,
    table: RoutingTable,
    gateway: Optional[DeliveryGateway] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_event(
            logger,
            logging.INFO,
            "relay.server.started",
            scopes=table.scopes(),
            routes_file=str(config.routes_file),
        )
        try:
            yield
        finally:
            close = getattr(gateway, "close", None)
            if close is not None:
                await close()
            log_event(logger, logging.INFO, "relay.server.stopped")

    app = FastAPI(redirect_slashes=False, lifespan=lifespan)
    app.state.config = config
    app.state.dispatcher = dispatcher
    app.state.table = table
    app.state.routes_handler = RoutesCommandHandler(table)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return routing_overview(table, default_scope=config.bootstrap_scope)

    @app.post("/webhook")
    async def webhook(request: Request):
        if not _secret_matches(request, config.webhook_secret):
            log_event(logger, logging.WARNING, "relay.webhook.unauthorized")
            return _error(401, "Unauthorized")
        body, ok = await _read_json(request)
        if not ok:
            return _error(400, "Invalid JSON body")
        event_type = body.get("event_type") if isinstance(body, dict) else None
        try:
            dispatch = await dispatcher.dispatch_envelope(body)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "relay.webhook.failed",
                event_type=event_type,
                exc=exc,
            )
            return JSONResponse(
                {"success": False, "error": str(exc), "event_type": event_type},
                status_code=500,
            )
        if dispatch.state is DispatchState.REJECTED:
            return _error(400, dispatch.error or "Invalid event")
        if not dispatch.ok:
            return _failure_response(dispatch)
        payload: dict[str, Any] = {
            "success": True,
            "event_type": dispatch.event_kind,
            "dispatch": dispatch.to_dict(),
        }
        if dispatch.result is not None:
            payload["result"] = dispatch.result
        return payload

    @app.post("/webhook/listing")
    async def legacy_listing(request: Request):
        if not _secret_matches(request, config.webhook_secret):
            log_event(logger, logging.WARNING, "relay.webhook.unauthorized")
            return _error(401, "Unauthorized")
        body, ok = await _read_json(request)
        if not ok:
            return _error(400, "Invalid listing data")
        try:
            event = parse_legacy_listing(body)
        except EventRejected as exc:
            log_event(
                logger, logging.WARNING, "relay.dispatch.rejected", reason=str(exc)
            )
            return _error(400, "Invalid listing data")
        try:
            dispatch = await dispatcher.dispatch(event)
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "relay.webhook.failed",
                event_type=event.kind.value,
                exc=exc,
            )
            return JSONResponse(
                {"success": False, "error": str(exc), "event_type": event.kind.value},
                status_code=500,
            )
        if not dispatch.ok:
            return _failure_response(dispatch)
        return {
            "success": True,
            "sentTo": [
                outcome.target.destination_id
                for outcome in dispatch.outcomes
                if outcome.success
            ],
        }

    @app.post("/interactions")
    async def interactions(request: Request):
        if not config.public_key:
            return _error(404, "Not Found")
        raw = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER) or ""
        timestamp = request.headers.get(SIGNATURE_TIMESTAMP_HEADER) or ""
        if not verify_interaction_signature(
            config.public_key, signature, timestamp, raw
        ):
            return _error(401, "invalid request signature")
        try:
            payload = json.loads(raw)
        except ValueError:
            return _error(400, "Invalid JSON body")
        if not isinstance(payload, dict):
            return _error(400, "Invalid interaction")
        if is_ping(payload):
            return pong_response()
        if not is_application_command(payload):
            return ephemeral_response("Unsupported interaction.")
        path, options = extract_command_path_and_options(payload)
        if len(path) < 2 or path[0] != ROUTES_COMMAND_NAME:
            return ephemeral_response("Unknown command.")
        guild_id = extract_guild_id(payload)
        log_event(
            logger,
            logging.INFO,
            "relay.interaction.routes",
            action=path[1],
            guild_id=guild_id,
            user_id=extract_user_id(payload),
        )
        text = await asyncio.to_thread(
            app.state.routes_handler.handle, guild_id, path[1], options
        )
        return ephemeral_response(text)

    return app


def build_relay_app(config: RelayConfig) -> FastAPI:
    """Wire the Discord gateway, routing table and dispatcher from config."""
    rest = DiscordRestClient(
        bot_token=config.require_bot_token(),
        timeout_seconds=config.discord_timeout_seconds,
    )
    gateway = DiscordDeliveryGateway(
        rest, admin_roles=AdminRoleResolver(rest, config.admin_roles)
    )
    table = RoutingTable(JsonRoutingStore(config.routes_file))
    bootstrap_routes_from_env(table, scope=config.bootstrap_scope)
    dispatcher = EventDispatcher(
        DestinationResolver(table),
        MessageFormatter(
            frontend_url=config.frontend_url, brand_name=config.brand_name
        ),
        gateway,
        notify_updates=config.notify_updates,
        fallback_admin_mention=config.admin_roles.fallback_mention,
    )
    return create_app(config, dispatcher=dispatcher, table=table, gateway=gateway)


__all__ = ["build_relay_app", "create_app", "routing_overview"]
