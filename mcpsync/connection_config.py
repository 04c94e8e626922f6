"""Connection config document consumed by the database MCP server."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .models import ConnectionType, EnvRecord

LOG = logging.getLogger(__name__)

CONFIG_FILENAME = "database-config.json"
DEFAULT_CONNECTION_ID = "laravel"


class ConnectionDescriptor(BaseModel):
    """One entry of the ``connections`` array."""

    id: str
    type: ConnectionType
    host: str | None = None
    port: int | None = None
    database: str | None = None
    name: str | None = None
    user: str | None = None
    password: str | None = None
    query_timeout: int = 60
    max_open_conns: int = 20
    max_idle_conns: int = 5
    conn_max_lifetime_seconds: int = 300
    conn_max_idle_time_seconds: int = 60


class ConnectionConfigFile(BaseModel):
    """Shape of ``database-config.json``."""

    connections: list[ConnectionDescriptor] = Field(default_factory=list)

    def render(self) -> str:
        """Serialize deterministically; identical input yields identical bytes."""

        payload = self.model_dump(mode="json", exclude_none=True)
        return json.dumps(payload, indent=2) + "\n"


def config_path_for(project_root: Path) -> Path:
    return project_root / CONFIG_FILENAME


def build_connection_config(
    record: EnvRecord, *, connection_id: str = DEFAULT_CONNECTION_ID
) -> ConnectionConfigFile:
    """Build the single-descriptor document for ``record``.

    Raises ``ValueError`` when the record has no database name; callers
    skip the write in that case.
    """

    if not record.database_name:
        raise ValueError("Cannot build a connection config without DB_DATABASE")
    if record.connection_type is ConnectionType.SQLITE:
        descriptor = ConnectionDescriptor(
            id=connection_id,
            type=ConnectionType.SQLITE,
            database=record.database_path or record.database_name,
            max_open_conns=10,
            max_idle_conns=2,
        )
    else:
        descriptor = ConnectionDescriptor(
            id=connection_id,
            type=record.connection_type,
            host=record.host,
            port=record.port,
            name=record.database_name,
            user=record.username,
            password=record.password,
        )
    return ConnectionConfigFile(connections=[descriptor])


def write_connection_config(path: Path, document: ConnectionConfigFile) -> None:
    """Replace ``path`` wholesale via a temp file and rename."""

    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        temp_path.write_text(document.render(), encoding="utf-8")
        os.replace(temp_path, path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    LOG.info("Wrote connection config", extra={"path": str(path)})


def load_connection_config(path: Path) -> ConnectionConfigFile | None:
    """Read a previously written document; ``None`` when absent."""

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError):
        LOG.warning("Unreadable connection config", extra={"path": str(path)})
        return None
    try:
        return ConnectionConfigFile.model_validate(raw)
    except ValidationError:
        LOG.warning("Connection config has an unexpected shape", extra={"path": str(path)})
        return None


__all__ = [
    "CONFIG_FILENAME",
    "ConnectionConfigFile",
    "ConnectionDescriptor",
    "DEFAULT_CONNECTION_ID",
    "build_connection_config",
    "config_path_for",
    "load_connection_config",
    "write_connection_config",
]
