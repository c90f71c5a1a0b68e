from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer
import uvicorn

from ... import __version__
from ...core.categories import CATEGORY_CATALOG
from ...core.config import ConfigError, RelayConfig, load_relay_config
from ...core.logging_utils import setup_rotating_logger
from ...core.routing import (
    JsonRoutingStore,
    RouteKind,
    RoutingTable,
    category_env_var,
)
from ...integrations.discord.commands import (
    RoutesCommandHandler,
    build_application_commands,
    sync_commands,
)
from ...integrations.discord.errors import DiscordAPIError
from ...integrations.discord.rest import DiscordRestClient
from ..web.app import build_relay_app

logger = logging.getLogger("market_relay")

app = typer.Typer(add_completion=False, help="Marketplace to Discord relay.")
routes_app = typer.Typer(
    add_completion=False, help="Inspect or edit channel routes."
)
app.add_typer(routes_app, name="routes")


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _load_config(root: Optional[Path]) -> RelayConfig:
    try:
        return load_relay_config(root or Path.cwd())
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


def _open_table(config: RelayConfig) -> RoutingTable:
    return RoutingTable(JsonRoutingStore(config.routes_file))


def _version_callback(value: bool) -> None:
    if not value:
        return
    typer.echo(f"market-relay {__version__}")
    raise typer.Exit(code=0)


@app.callback()
def _root(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
) -> None:
    return


@app.command("serve")
def serve(
    root: Optional[Path] = typer.Option(None, "--root", help="Project root path"),
    host: Optional[str] = typer.Option(None, "--host", help="Bind host"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
) -> None:
    """Run the webhook server."""
    config = _load_config(root)
    setup_rotating_logger("market_relay", config.log)
    try:
        relay_app = build_relay_app(config)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    typer.echo(f"Serving market-relay on http://{bind_host}:{bind_port}")
    uvicorn.run(relay_app, host=bind_host, port=bind_port)


def coverage_report(table: RoutingTable, scopes: list[str]) -> list[str]:
    lines: list[str] = []
    for scope in scopes:
        lines.append(f"Scope {scope}:")
        for kind in RouteKind:
            general = table.resolve(scope, kind=kind)
            status = general or f"missing (set {category_env_var(kind, None)})"
            lines.append(f"  {kind.value} general: {status}")
        for code, name in CATEGORY_CATALOG.items():
            missing = [
                kind
                for kind in RouteKind
                if table.resolve(scope, code, kind=kind) is None
            ]
            if not missing:
                lines.append(f"  [ok] {name}: listings and disputes configured")
            elif len(missing) == len(RouteKind):
                lines.append(f"  [missing] {name}: no channels configured")
            else:
                hints = ", ".join(category_env_var(kind, code) for kind in missing)
                lines.append(f"  [incomplete] {name}: set {hints}")
    return lines


@app.command("doctor")
def doctor(
    root: Optional[Path] = typer.Option(None, "--root", help="Project root path"),
) -> None:
    """Report channel coverage for every catalog category."""
    config = _load_config(root)
    table = _open_table(config)
    typer.echo(f"Routes file: {config.routes_file}")
    typer.echo(
        f"Bot token ({config.bot_token_env}): "
        f"{'set' if config.bot_token else 'missing'}"
    )
    typer.echo(f"Webhook secret: {'set' if config.webhook_secret else 'not set'}")
    scopes = table.scopes() or [config.bootstrap_scope]
    for line in coverage_report(table, scopes):
        typer.echo(line)


def _run_routes_action(
    root: Optional[Path],
    scope: Optional[str],
    action: str,
    options: dict[str, Optional[str]],
) -> None:
    config = _load_config(root)
    handler = RoutesCommandHandler(_open_table(config))
    typer.echo(handler.handle(scope or config.bootstrap_scope, action, options))


@routes_app.command("show")
def routes_show(
    root: Optional[Path] = typer.Option(None, "--root", help="Project root path"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Guild id or scope"),
) -> None:
    _run_routes_action(root, scope, "show", {})


@routes_app.command("set")
def routes_set(
    channel: str = typer.Option(..., "--channel", help="Destination channel id"),
    root: Optional[Path] = typer.Option(None, "--root", help="Project root path"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Guild id or scope"),
    kind: str = typer.Option("listings", "--kind", help="listings or disputes"),
    category: Optional[str] = typer.Option(None, "--category", help="Category code"),
) -> None:
    _run_routes_action(
        root,
        scope,
        "set",
        {"channel": channel, "kind": kind, "category": category},
    )


@routes_app.command("remove")
def routes_remove(
    root: Optional[Path] = typer.Option(None, "--root", help="Project root path"),
    scope: Optional[str] = typer.Option(None, "--scope", help="Guild id or scope"),
    kind: str = typer.Option("listings", "--kind", help="listings or disputes"),
    category: Optional[str] = typer.Option(None, "--category", help="Category code"),
) -> None:
    _run_routes_action(root, scope, "remove", {"kind": kind, "category": category})


async def _register_commands(config: RelayConfig, guild_ids: tuple[str, ...]) -> int:
    if not config.application_id:
        raise ConfigError("Discord application id is required to register commands")
    async with DiscordRestClient(
        bot_token=config.require_bot_token(),
        timeout_seconds=config.discord_timeout_seconds,
    ) as rest:
        return await sync_commands(
            rest,
            application_id=config.application_id,
            commands=build_application_commands(),
            guild_ids=guild_ids,
            logger=logger,
        )


@app.command("register-commands")
def register_commands(
    root: Optional[Path] = typer.Option(None, "--root", help="Project root path"),
    guild: Optional[list[str]] = typer.Option(
        None, "--guild", help="Register in this guild only (repeatable)"
    ),
) -> None:
    """Publish the /relay-routes slash command."""
    config = _load_config(root)
    setup_rotating_logger("market_relay", config.log)
    try:
        count = asyncio.run(_register_commands(config, tuple(guild or ())))
    except (ConfigError, DiscordAPIError) as exc:
        raise_exit(str(exc), cause=exc)
    typer.echo(f"Registered {count} application command(s).")


def main() -> None:
    """Entrypoint for CLI execution."""
    app()
