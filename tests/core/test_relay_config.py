from __future__ import annotations

from pathlib import Path

import pytest

from market_relay.core.config import (
    DEFAULT_ADMIN_ROLE_NAMES,
    ConfigError,
    load_relay_config,
)


def _write(root: Path, text: str) -> None:
    (root / "market-relay.yml").write_text(text, encoding="utf-8")


def test_defaults_without_config_file(tmp_path: Path) -> None:
    config = load_relay_config(tmp_path, env={})

    assert config.bot_token is None
    assert config.frontend_url == "http://localhost:5173"
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 3000
    assert config.routes_file == (tmp_path / ".market-relay/routes.json").resolve()
    assert config.brand_name == "NXOLand"
    assert config.notify_updates is False
    assert config.bootstrap_scope == "default"
    assert config.admin_roles.names == DEFAULT_ADMIN_ROLE_NAMES
    assert config.admin_roles.fallback_mention == "@everyone"
    assert config.discord_timeout_seconds == 10.0


def test_env_overrides_file_values(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "frontend_url: https://file.test/\n"
        "guild_id: 111\n"
        "server:\n  port: 8000\n"
        "bot_token_env: RELAY_TOKEN\n",
    )
    env = {
        "RELAY_TOKEN": " secret ",
        "FRONTEND_URL": "https://env.test/",
        "PORT": "9001",
        "WEBHOOK_SECRET": "shh",
    }

    config = load_relay_config(tmp_path, env=env)

    assert config.require_bot_token() == "secret"
    assert config.frontend_url == "https://env.test"
    assert config.server.port == 9001
    assert config.guild_id == "111"
    assert config.bootstrap_scope == "111"
    assert config.webhook_secret == "shh"


def test_missing_token_raises(tmp_path: Path) -> None:
    config = load_relay_config(tmp_path, env={})
    with pytest.raises(ConfigError, match="DISCORD_TOKEN"):
        config.require_bot_token()


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "key: [unterminated\n",
        "notify_updates: maybe\n",
        "admin_roles:\n  match: fuzzy\n",
        "discord:\n  timeout_seconds: 0\n",
        "log:\n  level: LOUD\n",
    ],
)
def test_invalid_config_raises(tmp_path: Path, text: str) -> None:
    _write(tmp_path, text)
    with pytest.raises(ConfigError):
        load_relay_config(tmp_path, env={})


def test_invalid_port_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_relay_config(tmp_path, env={"PORT": "http"})


def test_admin_roles_section(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "admin_roles:\n"
        "  role_id: 555\n"
        "  names: [Support, Staff]\n"
        "  match: contains\n"
        "  fallback_mention: null\n",
    )

    config = load_relay_config(tmp_path, env={})

    assert config.admin_roles.role_id == "555"
    assert config.admin_roles.names == ("Support", "Staff")
    assert config.admin_roles.match == "contains"
    assert config.admin_roles.fallback_mention is None


def test_dotenv_is_loaded_without_overriding(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "from-env")
    monkeypatch.setenv("WEBHOOK_SECRET", "placeholder")
    monkeypatch.delenv("WEBHOOK_SECRET")
    (tmp_path / ".env").write_text(
        "DISCORD_TOKEN=from-file\nWEBHOOK_SECRET=dotenv-secret\n", encoding="utf-8"
    )

    config = load_relay_config(tmp_path)

    assert config.bot_token == "from-env"
    assert config.webhook_secret == "dotenv-secret"
