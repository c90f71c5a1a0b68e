from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigError
from .formatting import DEFAULT_BRAND_NAME, DEFAULT_FRONTEND_URL
from .logging_utils import LogConfig

logger = logging.getLogger("market_relay.core.config")

CONFIG_FILENAME = "market-relay.yml"
DEFAULT_ROUTES_FILE = ".market-relay/routes.json"
DEFAULT_LOG_FILE = ".market-relay/market-relay.log"
DEFAULT_BOT_TOKEN_ENV = "DISCORD_TOKEN"
DEFAULT_APPLICATION_ID_ENV = "DISCORD_APPLICATION_ID"
DEFAULT_PUBLIC_KEY_ENV = "DISCORD_PUBLIC_KEY"
DEFAULT_WEBHOOK_SECRET_ENV = "WEBHOOK_SECRET"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_SCOPE = "default"
DEFAULT_DISCORD_TIMEOUT_SECONDS = 10.0
DEFAULT_ADMIN_ROLE_NAMES = (
    "Admin",
    "Administrators",
    "Staff",
    "Mod",
    "Moderator",
    "أدمن",
    "إدارة",
)
ADMIN_ROLE_MATCH_MODES = ("exact", "contains")


@dataclass(frozen=True)
class AdminRoleConfig:
    role_id: Optional[str] = None
    names: tuple[str, ...] = DEFAULT_ADMIN_ROLE_NAMES
    match: str = "exact"
    fallback_mention: Optional[str] = "@everyone"


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass(frozen=True)
class RelayConfig:
    root: Path
    bot_token_env: str
    bot_token: Optional[str]
    application_id: Optional[str]
    public_key: Optional[str]
    webhook_secret: Optional[str]
    frontend_url: str
    guild_id: Optional[str]
    default_scope: str
    routes_file: Path
    brand_name: str
    notify_updates: bool
    discord_timeout_seconds: float
    server: ServerConfig = field(default_factory=ServerConfig)
    admin_roles: AdminRoleConfig = field(default_factory=AdminRoleConfig)
    log: LogConfig = field(default_factory=lambda: LogConfig(path=None))

    @property
    def bootstrap_scope(self) -> str:
        """Scope that environment-provided channel ids are written under."""
        return self.guild_id or self.default_scope

    def require_bot_token(self) -> str:
        if not self.bot_token:
            raise ConfigError(
                f"Discord bot token is required; set {self.bot_token_env} in the "
                "environment or .env file"
            )
        return self.bot_token

    @classmethod
    def from_raw(
        cls,
        *,
        root: Path,
        raw: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
    ) -> "RelayConfig":
        cfg: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
        source = env if env is not None else os.environ

        bot_token_env = _parse_env_name(cfg, "bot_token_env", DEFAULT_BOT_TOKEN_ENV)
        application_id_env = _parse_env_name(
            cfg, "application_id_env", DEFAULT_APPLICATION_ID_ENV
        )
        public_key_env = _parse_env_name(cfg, "public_key_env", DEFAULT_PUBLIC_KEY_ENV)
        webhook_secret_env = _parse_env_name(
            cfg, "webhook_secret_env", DEFAULT_WEBHOOK_SECRET_ENV
        )

        frontend_url = _env_or_value(source, "FRONTEND_URL", cfg.get("frontend_url"))
        frontend_url = (frontend_url or DEFAULT_FRONTEND_URL).rstrip("/")

        guild_id = _env_or_value(source, "DISCORD_GUILD_ID", cfg.get("guild_id"))
        default_scope = _optional_str(cfg.get("default_scope")) or DEFAULT_SCOPE

        routes_file_value = cfg.get("routes_file", DEFAULT_ROUTES_FILE)
        if not isinstance(routes_file_value, str) or not routes_file_value.strip():
            raise ConfigError("routes_file must be a string path")

        server_raw = cfg.get("server")
        server_cfg = server_raw if isinstance(server_raw, Mapping) else {}
        port = _parse_port(
            _env_or_value(source, "PORT", server_cfg.get("port")), default=DEFAULT_PORT
        )
        host = _optional_str(server_cfg.get("host")) or DEFAULT_HOST

        discord_raw = cfg.get("discord")
        discord_cfg = discord_raw if isinstance(discord_raw, Mapping) else {}
        timeout_value = discord_cfg.get(
            "timeout_seconds", DEFAULT_DISCORD_TIMEOUT_SECONDS
        )
        if isinstance(timeout_value, bool) or not isinstance(
            timeout_value, (int, float)
        ):
            raise ConfigError("discord.timeout_seconds must be a number")
        if timeout_value <= 0:
            raise ConfigError("discord.timeout_seconds must be > 0")

        notify_updates = cfg.get("notify_updates", False)
        if not isinstance(notify_updates, bool):
            raise ConfigError("notify_updates must be a boolean")

        return cls(
            root=root,
            bot_token_env=bot_token_env,
            bot_token=_optional_str(source.get(bot_token_env)),
            application_id=_optional_str(source.get(application_id_env)),
            public_key=_optional_str(source.get(public_key_env)),
            webhook_secret=_optional_str(source.get(webhook_secret_env)),
            frontend_url=frontend_url,
            guild_id=guild_id,
            default_scope=default_scope,
            routes_file=(root / routes_file_value).resolve(),
            brand_name=_optional_str(cfg.get("brand_name")) or DEFAULT_BRAND_NAME,
            notify_updates=notify_updates,
            discord_timeout_seconds=float(timeout_value),
            server=ServerConfig(host=host, port=port),
            admin_roles=_parse_admin_roles(cfg.get("admin_roles")),
            log=_parse_log_config(root, cfg.get("log")),
        )


def _optional_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def _env_or_value(source: Mapping[str, str], name: str, value: Any) -> Optional[str]:
    return _optional_str(source.get(name)) or _optional_str(value)


def _parse_env_name(cfg: Mapping[str, Any], key: str, default: str) -> str:
    value = str(cfg.get(key, default)).strip()
    if not value:
        raise ConfigError(f"{key} must be non-empty")
    return value


def _parse_port(value: Optional[str], *, default: int) -> int:
    if value is None:
        return default
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"port must be an integer, got {value!r}") from exc
    if not 0 < port < 65536:
        raise ConfigError(f"port out of range: {port}")
    return port


def _parse_admin_roles(raw: Any) -> AdminRoleConfig:
    if raw is None:
        return AdminRoleConfig()
    if not isinstance(raw, Mapping):
        raise ConfigError("admin_roles must be a mapping")
    names_raw = raw.get("names")
    if names_raw is None:
        names = DEFAULT_ADMIN_ROLE_NAMES
    elif isinstance(names_raw, (list, tuple)):
        names = tuple(str(item).strip() for item in names_raw if str(item).strip())
    else:
        raise ConfigError("admin_roles.names must be a list")
    match = str(raw.get("match", "exact")).strip().lower()
    if match not in ADMIN_ROLE_MATCH_MODES:
        raise ConfigError(
            f"admin_roles.match must be one of: {', '.join(ADMIN_ROLE_MATCH_MODES)}"
        )
    fallback = raw.get("fallback_mention", "@everyone")
    return AdminRoleConfig(
        role_id=_optional_str(raw.get("role_id")),
        names=names,
        match=match,
        fallback_mention=_optional_str(fallback),
    )


def _parse_log_config(root: Path, raw: Any) -> LogConfig:
    cfg = raw if isinstance(raw, Mapping) else {}
    path_value = cfg.get("path", DEFAULT_LOG_FILE)
    path = (root / path_value).resolve() if _optional_str(path_value) else None
    level = str(cfg.get("level", "INFO")).strip().upper() or "INFO"
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigError(f"log.level is not a valid level: {level}")
    max_bytes = cfg.get("max_bytes", 5_000_000)
    backup_count = cfg.get("backup_count", 3)
    if not isinstance(max_bytes, int) or max_bytes <= 0:
        raise ConfigError("log.max_bytes must be a positive integer")
    if not isinstance(backup_count, int) or backup_count < 0:
        raise ConfigError("log.backup_count must be a non-negative integer")
    return LogConfig(
        path=path, level=level, max_bytes=max_bytes, backup_count=backup_count
    )


def load_yaml_dict(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must be a mapping: {path}")
    return data


def load_dotenv_for_root(root: Path) -> None:
    candidate = root / ".env"
    if candidate.exists():
        load_dotenv(dotenv_path=candidate, override=False)


def load_relay_config(
    root: Path,
    *,
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RelayConfig:
    root = root.resolve()
    if env is None:
        load_dotenv_for_root(root)
    path = config_path or (root / CONFIG_FILENAME)
    raw = load_yaml_dict(path)
    config = RelayConfig.from_raw(root=root, raw=raw, env=env)
    logger.debug("Loaded relay config from %s", path)
    return config


__all__ = [
    "AdminRoleConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "RelayConfig",
    "ServerConfig",
    "load_relay_config",
    "load_yaml_dict",
]
