"""Helper schema holding the replication ``status`` view."""

from __future__ import annotations

from typing import Any

import psycopg
import structlog
from psycopg import sql

logger = structlog.get_logger()

STATUS_VIEW = "status"

_STATUS_VIEW_BODY = """
    SELECT
        current_database() AS database_name,
        (SELECT count(*) FROM pg_publication) AS publication_count,
        (SELECT count(*) FROM pg_replication_slots) AS replication_slot_count,
        (SELECT count(*) FROM pg_stat_replication) AS active_replication_count
"""


def ensure_helper_schema(conn: psycopg.Connection[Any], schema: str = "exoquic") -> str:
    """Create *schema* if needed and (re)create its status view."""
    row = conn.execute(
        "SELECT EXISTS(SELECT 1 FROM pg_namespace WHERE nspname = %s)", (schema,)
    ).fetchone()
    lines: list[str] = []
    if row and row[0]:
        lines.append(f"Schema {schema} already exists.")
    else:
        conn.execute(sql.SQL("CREATE SCHEMA {}").format(sql.Identifier(schema)))
        logger.info("helper_schema.created", schema=schema)
        lines.append(f"Created schema {schema}.")

    conn.execute(
        sql.SQL("CREATE OR REPLACE VIEW {} AS" + _STATUS_VIEW_BODY).format(
            sql.Identifier(schema, STATUS_VIEW)
        )
    )
    lines.append(f"Refreshed view {schema}.{STATUS_VIEW}.")
    return "".join(f"{line}\n" for line in lines)


def read_status(conn: psycopg.Connection[Any], schema: str = "exoquic") -> dict[str, Any]:
    """Return the single row of the status view as a dict."""
    cur = conn.execute(
        sql.SQL("SELECT * FROM {}").format(sql.Identifier(schema, STATUS_VIEW))
    )
    row = cur.fetchone()
    if row is None or cur.description is None:
        return {}
    return {col.name: value for col, value in zip(cur.description, row, strict=True)}
