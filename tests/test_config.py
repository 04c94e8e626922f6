"""Tests for AppConfig helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from mcpsync import config as config_module
from mcpsync.config import AppConfig, RegistrySettings, load_config, save_config


def test_all_servers_enabled_when_unset() -> None:
    config = AppConfig()

    assert config.server_filters() == (None, set())
    assert config.is_server_enabled("github") is True


def test_allowlist_restricts_servers() -> None:
    config = AppConfig(servers={"github": True, "playwright": False})

    assert config.is_server_enabled("github") is True
    assert config.is_server_enabled("memory") is False


def test_blocklist_disables_named_servers() -> None:
    config = AppConfig(servers={"playwright": False})

    assert config.is_server_enabled("playwright") is False
    assert config.is_server_enabled("memory") is True


def test_load_config_returns_defaults_when_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "CONFIG_FILE", tmp_path / "config.toml")

    result = load_config()

    assert result == AppConfig()


def test_load_config_reads_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
mcp_dir = "/opt/mcp"
claude_config = "/tmp/claude.json"
env_file = ".env.local"
connection_id = "shop"

[registry]
command = "/usr/local/bin/claude"
timeout_seconds = 10

[servers]
playwright = false
"""
    )
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.mcp_dir == Path("/opt/mcp")
    assert result.claude_config == Path("/tmp/claude.json")
    assert result.env_file == ".env.local"
    assert result.connection_id == "shop"
    assert result.registry == RegistrySettings(command="/usr/local/bin/claude", timeout_seconds=10.0)
    assert result.servers == {"playwright": False}


def test_load_config_ignores_invalid_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('env_file = 3\n[registry]\ntimeout_seconds = -1\ncommand = ""\n')
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result.env_file == ".env"
    assert result.registry == RegistrySettings()


def test_load_config_handles_toml_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("mcp_dir = [unterminated")
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)

    result = load_config()

    assert result == AppConfig()


def test_with_server_enabled_toggles_flags() -> None:
    config = AppConfig(servers={})

    updated = config.with_server_enabled("playwright", False)
    assert updated.is_server_enabled("playwright") is False
    restored = updated.with_server_enabled("playwright", True)
    assert restored.servers == {}


def test_with_registry_updates_settings() -> None:
    config = AppConfig()

    updated = config.with_registry(timeout_seconds=2.0)

    assert updated.registry.timeout_seconds == 2.0
    assert config.registry.timeout_seconds == 5.0


def test_save_config_round_trips(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "nested" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_path)
    original = AppConfig(
        mcp_dir=Path("/opt/mcp"),
        claude_config=Path("/tmp/claude.json"),
        connection_id="shop",
        servers={"playwright": False, "fetch": True},
        registry=RegistrySettings(command="claude", timeout_seconds=7.5),
    )

    save_config(original)

    content = config_path.read_text()
    assert "[registry]" in content
    assert "[servers]" in content
    assert "playwright = false" in content
    assert load_config() == original
