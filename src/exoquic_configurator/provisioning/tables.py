"""Replica identity normalization for tables without a primary key."""

from __future__ import annotations

from typing import Any, NamedTuple

import psycopg
import structlog
from psycopg import sql

logger = structlog.get_logger()

_TABLES_WITHOUT_PK = """
    SELECT n.nspname AS schema_name, c.relname AS table_name
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE c.relkind = 'r'
        AND n.nspname = %s
        AND NOT EXISTS (
            SELECT 1 FROM pg_constraint
            WHERE conrelid = c.oid AND contype = 'p'
        )
    ORDER BY c.relname
"""


class TableRef(NamedTuple):
    schema: str
    name: str

    @property
    def qualified(self) -> str:
        return f"{self.schema}.{self.name}"


def find_tables_without_primary_key(
    conn: psycopg.Connection[Any], schema: str = "public"
) -> list[TableRef]:
    """Ordinary tables in *schema* that have no primary-key constraint."""
    rows = conn.execute(_TABLES_WITHOUT_PK, (schema,)).fetchall()
    return [TableRef(r[0], r[1]) for r in rows]


def apply_replica_identity_full(
    conn: psycopg.Connection[Any], schema: str = "public"
) -> str:
    """Set ``REPLICA IDENTITY FULL`` on every table lacking a primary key.

    Without a key, UPDATE and DELETE events would carry no old-row values.
    Each table succeeds or fails on its own.
    """
    lines: list[str] = []
    modified = False
    for table in find_tables_without_primary_key(conn, schema):
        try:
            conn.execute(
                sql.SQL("ALTER TABLE {} REPLICA IDENTITY FULL").format(
                    sql.Identifier(table.schema, table.name)
                )
            )
        except psycopg.Error as exc:
            logger.warning(
                "replica_identity.failed", table=table.qualified, error=str(exc)
            )
            lines.append(
                f"Failed to set REPLICA IDENTITY FULL for {table.qualified}: {exc}"
            )
            continue
        logger.info("replica_identity.full", table=table.qualified)
        lines.append(f"Set REPLICA IDENTITY FULL for {table.qualified}")
        modified = True

    if not modified:
        lines.append("No tables required REPLICA IDENTITY FULL setting.")
    return "".join(f"{line}\n" for line in lines)


def primary_key_advisory(conn: psycopg.Connection[Any], schema: str = "public") -> str:
    """List tables still lacking primary keys with a recommendation."""
    text = "\nTables without primary keys:\n-----------------------------\n"
    tables = find_tables_without_primary_key(conn, schema)
    if not tables:
        return text + "No tables without primary keys found.\n"
    for table in tables:
        text += f"- {table.qualified} (REPLICA IDENTITY FULL has been set)\n"
    text += (
        "\nNote: For tables without primary keys, REPLICA IDENTITY FULL has been set\n"
        "to ensure all column values are included in change events. For better\n"
        "performance, consider adding primary keys to these tables.\n"
    )
    return text
