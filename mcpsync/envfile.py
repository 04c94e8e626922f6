"""Dotenv parsing and database settings extraction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping

from .errors import InvalidPortError
from .models import ConnectionType, EnvRecord

LOG = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3306

_CONNECTION_ALIASES: Mapping[str, ConnectionType] = {
    "mysql": ConnectionType.MYSQL,
    "pgsql": ConnectionType.POSTGRES,
    "postgres": ConnectionType.POSTGRES,
    "postgresql": ConnectionType.POSTGRES,
    "sqlite": ConnectionType.SQLITE,
}


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
    """Parse KEY=VALUE lines into an ordered mapping; later keys win."""

    values: dict[str, str] = {}
    for lineno, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, raw_value = line.rstrip("\r\n").partition("=")
        if not sep:
            LOG.debug("Ignoring dotenv line without '='", extra={"line": lineno})
            continue
        key = "".join(key.split())
        if not key:
            LOG.debug("Ignoring dotenv line with empty key", extra={"line": lineno})
            continue
        values[key] = _strip_quotes(raw_value)
    return values


def parse_env_file(path: Path) -> dict[str, str]:
    """Read a dotenv file; a missing file yields an empty mapping."""

    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        LOG.info("No dotenv file found, using defaults", extra={"path": str(path)})
        return {}
    return parse_env_lines(text.splitlines())


def build_env_record(values: Mapping[str, str], project_root: Path) -> EnvRecord:
    """Apply defaults and normalization rules to parsed dotenv values."""

    warnings: list[str] = []
    connection_type = _resolve_connection(values.get("DB_CONNECTION", ""), warnings)
    database_name = values.get("DB_DATABASE", "")
    database_path: str | None = None
    if connection_type is ConnectionType.SQLITE and database_name:
        if Path(database_name).is_absolute():
            database_path = database_name
        else:
            database_path = str(project_root / "database" / database_name)
    return EnvRecord(
        connection_type=connection_type,
        host=values.get("DB_HOST") or DEFAULT_HOST,
        port=_parse_port(values.get("DB_PORT", "")),
        database_name=database_name,
        username=values.get("DB_USERNAME", ""),
        password=values.get("DB_PASSWORD", ""),
        database_path=database_path,
        warnings=tuple(warnings),
    )


def extract_env_record(path: Path, project_root: Path | None = None) -> EnvRecord:
    """Parse ``path`` and derive the normalized record.

    ``project_root`` anchors relative sqlite paths and defaults to the dotenv
    file's directory. Raises :class:`InvalidPortError` for a malformed
    ``DB_PORT``; a missing file is not an error.
    """

    root = project_root if project_root is not None else path.parent
    record = build_env_record(parse_env_file(path), root.absolute())
    for warning in record.warnings:
        LOG.warning(warning)
    return record


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def _resolve_connection(raw: str, warnings: list[str]) -> ConnectionType:
    if not raw:
        warnings.append("DB_CONNECTION is not set, defaulting to mysql")
        return ConnectionType.MYSQL
    resolved = _CONNECTION_ALIASES.get(raw.strip().lower())
    if resolved is None:
        warnings.append(f"Unknown database type '{raw}', defaulting to mysql")
        return ConnectionType.MYSQL
    return resolved


def _parse_port(raw: str) -> int:
    if not raw:
        return DEFAULT_PORT
    digits = raw.strip()
    if not (digits.isascii() and digits.isdigit()):
        raise InvalidPortError(raw)
    port = int(digits)
    if not 0 < port < 65536:
        raise InvalidPortError(raw)
    return port


__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "build_env_record",
    "extract_env_record",
    "parse_env_file",
    "parse_env_lines",
]
