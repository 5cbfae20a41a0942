"""Live PostgreSQL fixtures for integration tests.

Point CONFIGURATOR_TEST_PGHOST (and optionally _PGPORT, _PGUSER, _PGPASSWORD,
_PGDATABASE) at a disposable superuser connection, e.g. the ``postgres:15``
container with ``wal_level=logical``. Tests are skipped otherwise.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any

import psycopg
import pytest
from psycopg import sql

from exoquic_configurator.config.models import ConfiguratorConfig

PREFIX = "CONFIGURATOR_TEST_"
ROLE = "exoquic_it_user"
PUBLICATION = "exoquic_it_publication"
SLOT = "exoquic_it_slot"
HELPER_SCHEMA = "exoquic_it"


def _env(name: str, default: str) -> str:
    return os.environ.get(PREFIX + name) or default


@pytest.fixture(scope="session")
def pg_settings() -> dict[str, Any]:
    host = os.environ.get(PREFIX + "PGHOST")
    if not host:
        pytest.skip(f"{PREFIX}PGHOST not set")
    return {
        "host": host,
        "port": int(_env("PGPORT", "5432")),
        "user": _env("PGUSER", "postgres"),
        "password": _env("PGPASSWORD", "postgres"),
        "database": _env("PGDATABASE", "exoquic_test"),
    }


@pytest.fixture
def admin_conn(pg_settings: dict[str, Any]) -> Iterator[psycopg.Connection[Any]]:
    conn = psycopg.connect(
        host=pg_settings["host"],
        port=pg_settings["port"],
        user=pg_settings["user"],
        password=pg_settings["password"],
        dbname=pg_settings["database"],
        autocommit=True,
    )
    _cleanup(conn)
    conn.execute("CREATE TABLE test_data (id SERIAL, name TEXT, value INTEGER)")
    conn.execute("CREATE TABLE with_pk (id SERIAL PRIMARY KEY, name TEXT)")
    yield conn
    _cleanup(conn)
    conn.close()


def _cleanup(conn: psycopg.Connection[Any]) -> None:
    conn.execute(
        "SELECT pg_drop_replication_slot(slot_name) FROM pg_replication_slots "
        "WHERE slot_name = %s",
        (SLOT,),
    )
    conn.execute(sql.SQL("DROP PUBLICATION IF EXISTS {}").format(sql.Identifier(PUBLICATION)))
    conn.execute(
        sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(sql.Identifier(HELPER_SCHEMA))
    )
    conn.execute("DROP TABLE IF EXISTS test_data, with_pk")
    row = conn.execute("SELECT 1 FROM pg_roles WHERE rolname = %s", (ROLE,)).fetchone()
    if row is not None:
        role = sql.Identifier(ROLE)
        conn.execute(sql.SQL("DROP OWNED BY {}").format(role))
        conn.execute(sql.SQL("DROP ROLE {}").format(role))


@pytest.fixture
def it_config(
    pg_settings: dict[str, Any], admin_conn: psycopg.Connection[Any]
) -> ConfiguratorConfig:
    return ConfiguratorConfig.model_validate(
        {
            "postgres": pg_settings,
            "replication": {
                "user": ROLE,
                "password": "exoquic_password",
                "publication_name": PUBLICATION,
                "slot_name": SLOT,
                "helper_schema": HELPER_SCHEMA,
            },
            "retry": {"max_attempts": 1},
        }
    )
