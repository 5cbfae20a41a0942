"""Replication role creation and read grants."""

from __future__ import annotations

from typing import Any

import psycopg
import structlog
from psycopg import sql

from exoquic_configurator.config.models import ReplicationConfig
from exoquic_configurator.errors import RoleProvisioningError

logger = structlog.get_logger()


def role_exists(conn: psycopg.Connection[Any], name: str) -> bool:
    row = conn.execute(
        "SELECT EXISTS(SELECT 1 FROM pg_roles WHERE rolname = %s)", (name,)
    ).fetchone()
    return bool(row and row[0])


def ensure_replication_role(
    conn: psycopg.Connection[Any], replication: ReplicationConfig
) -> str:
    """Create the replication role if missing and (re)apply its grants.

    Grants are applied on every run, including a default-privileges rule so
    tables created later are readable too. Any failure raises
    RoleProvisioningError, since the publication and slot are useless to a
    consumer that cannot log in or read.
    """
    role = sql.Identifier(replication.user)
    schema = sql.Identifier(replication.schema_name)
    lines: list[str] = []

    try:
        exists = role_exists(conn, replication.user)
    except psycopg.Error as exc:
        msg = f"failed to check if user exists: {exc}"
        raise RoleProvisioningError(msg) from exc

    if exists:
        lines.append(f"Replication user {replication.user} already exists.")
    else:
        try:
            conn.execute(
                sql.SQL("CREATE ROLE {} WITH LOGIN PASSWORD {} REPLICATION").format(
                    role, sql.Literal(replication.password.get_secret_value())
                )
            )
        except psycopg.Error as exc:
            msg = f"failed to create replication user: {exc}"
            raise RoleProvisioningError(msg) from exc
        logger.info("role.created", role=replication.user)
        lines.append(f"Created replication user {replication.user}.")

    grants = (
        ("grant usage permission", sql.SQL("GRANT USAGE ON SCHEMA {} TO {}")),
        (
            "grant select permission",
            sql.SQL("GRANT SELECT ON ALL TABLES IN SCHEMA {} TO {}"),
        ),
        (
            "alter default privileges",
            sql.SQL("ALTER DEFAULT PRIVILEGES IN SCHEMA {} GRANT SELECT ON TABLES TO {}"),
        ),
    )
    for action, statement in grants:
        try:
            conn.execute(statement.format(schema, role))
        except psycopg.Error as exc:
            msg = f"failed to {action}: {exc}"
            raise RoleProvisioningError(msg) from exc

    logger.info("role.granted", role=replication.user, schema=replication.schema_name)
    lines.append(f"Granted SELECT permissions to {replication.user} on all tables.")
    return "".join(f"{line}\n" for line in lines)
