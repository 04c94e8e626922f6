"""Tests for the database-config.json document."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mcpsync.connection_config import (
    build_connection_config,
    config_path_for,
    load_connection_config,
    write_connection_config,
)
from mcpsync.models import ConnectionType, EnvRecord


def test_mysql_document_matches_expected_shape() -> None:
    record = EnvRecord(database_name="myapp", username="root")

    payload = json.loads(build_connection_config(record).render())

    assert payload == {
        "connections": [
            {
                "id": "laravel",
                "type": "mysql",
                "host": "127.0.0.1",
                "port": 3306,
                "name": "myapp",
                "user": "root",
                "password": "",
                "query_timeout": 60,
                "max_open_conns": 20,
                "max_idle_conns": 5,
                "conn_max_lifetime_seconds": 300,
                "conn_max_idle_time_seconds": 60,
            }
        ]
    }


def test_sqlite_document_omits_host_fields() -> None:
    record = EnvRecord(
        connection_type=ConnectionType.SQLITE,
        database_name="test.sqlite",
        database_path="/srv/app/database/test.sqlite",
        username="ignored",
    )

    descriptor = json.loads(build_connection_config(record).render())["connections"][0]

    assert descriptor["type"] == "sqlite"
    assert descriptor["database"] == "/srv/app/database/test.sqlite"
    for key in ("host", "port", "user", "password", "name"):
        assert key not in descriptor
    assert descriptor["max_open_conns"] == 10
    assert descriptor["max_idle_conns"] == 2


def test_postgres_document_uses_custom_id() -> None:
    record = EnvRecord(connection_type=ConnectionType.POSTGRES, port=5432, database_name="app")

    descriptor = build_connection_config(record, connection_id="shop").connections[0]

    assert descriptor.id == "shop"
    assert descriptor.type is ConnectionType.POSTGRES
    assert descriptor.port == 5432


def test_build_requires_database_name() -> None:
    with pytest.raises(ValueError):
        build_connection_config(EnvRecord())


def test_write_replaces_file_wholesale(tmp_path: Path) -> None:
    path = config_path_for(tmp_path)
    path.write_text('{"connections": [], "stale": true, "padding": "' + "x" * 200 + '"}')

    write_connection_config(path, build_connection_config(EnvRecord(database_name="app")))

    content = path.read_text()
    assert "stale" not in content
    assert content.endswith("\n")
    assert not (tmp_path / "database-config.json.tmp").exists()


def test_write_is_byte_stable(tmp_path: Path) -> None:
    path = tmp_path / "database-config.json"
    document = build_connection_config(EnvRecord(database_name="app", password="pw"))

    write_connection_config(path, document)
    first = path.read_bytes()
    write_connection_config(path, document)

    assert path.read_bytes() == first


def test_load_returns_none_for_missing_or_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "database-config.json"
    assert load_connection_config(path) is None

    path.write_text("{not json")
    assert load_connection_config(path) is None


def test_load_reads_written_document(tmp_path: Path) -> None:
    path = tmp_path / "database-config.json"
    write_connection_config(path, build_connection_config(EnvRecord(database_name="app")))

    loaded = load_connection_config(path)

    assert loaded is not None
    assert loaded.connections[0].name == "app"
