"""Tool configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from pydantic import BaseModel, Field

CONFIG_FILE = Path.home() / ".config" / "mcpsync" / "config.toml"


def _default_mcp_dir() -> Path:
    return Path.home() / ".config" / "claude-code" / "mcp-servers"


def _default_claude_config() -> Path:
    return Path.home() / ".claude.json"


class RegistrySettings(BaseModel):
    """How to reach the MCP registry CLI."""

    command: str = "claude"
    timeout_seconds: float = 5.0


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    mcp_dir: Path = Field(default_factory=_default_mcp_dir)
    claude_config: Path = Field(default_factory=_default_claude_config)
    env_file: str = ".env"
    connection_id: str = "laravel"
    servers: dict[str, bool] = Field(default_factory=dict)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)

    def server_filters(self) -> tuple[set[str] | None, set[str]]:
        """Return allow/block lists for global server registration."""

        allowed = {name for name, flag in self.servers.items() if flag}
        disabled = {name for name, flag in self.servers.items() if not flag}
        allowlist: set[str] | None = allowed or None
        return allowlist, disabled

    def is_server_enabled(self, name: str) -> bool:
        allowlist, disabled = self.server_filters()
        if allowlist is not None:
            return name in allowlist
        return name not in disabled

    def with_server_enabled(self, name: str, enabled: bool) -> AppConfig:
        """Return a copy with the given server flag updated."""

        servers = dict(self.servers)
        if enabled:
            servers.pop(name, None)
        else:
            servers[name] = False
        return self.model_copy(update={"servers": servers})

    def with_registry(self, **updates: object) -> AppConfig:
        """Return a copy with registry settings changes applied."""

        registry = self.registry.model_copy(update=updates)
        return self.model_copy(update={"registry": registry})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    return AppConfig(**data)


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f'mcp_dir = "{_toml_str(config.mcp_dir)}"',
        f'claude_config = "{_toml_str(config.claude_config)}"',
        f'env_file = "{_toml_str(config.env_file)}"',
        f'connection_id = "{_toml_str(config.connection_id)}"',
        "",
        "[registry]",
        f'command = "{_toml_str(config.registry.command)}"',
        f"timeout_seconds = {config.registry.timeout_seconds}",
    ]
    if config.servers:
        lines.append("")
        lines.append("[servers]")
        for name in sorted(config.servers):
            flag = "true" if config.servers[name] else "false"
            lines.append(f"{name} = {flag}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _toml_str(value: object) -> str:
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    if isinstance(raw, dict):
        for key in ("mcp_dir", "claude_config"):
            value = raw.get(key)
            if isinstance(value, str) and value:
                data[key] = Path(value).expanduser()
        for key in ("env_file", "connection_id"):
            value = raw.get(key)
            if isinstance(value, str) and value:
                data[key] = value
        servers = raw.get("servers")
        if isinstance(servers, dict):
            parsed_servers: dict[str, bool] = {}
            for name, enabled in servers.items():
                parsed_servers[str(name)] = bool(enabled)
            data["servers"] = parsed_servers
        registry = raw.get("registry")
        if isinstance(registry, dict):
            settings: dict[str, object] = {}
            command = registry.get("command")
            if isinstance(command, str) and command:
                settings["command"] = command
            timeout = registry.get("timeout_seconds")
            if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and timeout > 0:
                settings["timeout_seconds"] = float(timeout)
            data["registry"] = RegistrySettings(**settings)
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "RegistrySettings", "load_config", "save_config"]
