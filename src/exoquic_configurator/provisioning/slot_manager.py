"""Publication and replication slot lifecycle management."""

from __future__ import annotations

from typing import Any

import psycopg
import structlog
from psycopg import sql

from exoquic_configurator.errors import PublicationError

logger = structlog.get_logger()

OUTPUT_PLUGIN = "pgoutput"


def _table_identifier(name: str) -> sql.Identifier:
    """``orders`` or ``sales.orders`` as a (possibly qualified) identifier."""
    return sql.Identifier(*name.split("."))


class SlotManager:
    """Manages the publication and logical slot a CDC consumer reads from.

    The publication is rebuilt on every call so its table list always matches
    the configuration. The slot is only ever created: dropping it would
    discard the consumer's replication position.
    """

    def __init__(
        self,
        conn: psycopg.Connection[Any],
        slot_name: str = "exoquic_replication_slot",
        publication_name: str = "exoquic_publication",
    ) -> None:
        self._conn = conn
        self._slot_name = slot_name
        self._publication_name = publication_name

    def publication_exists(self) -> bool:
        row = self._conn.execute(
            "SELECT EXISTS(SELECT 1 FROM pg_publication WHERE pubname = %s)",
            (self._publication_name,),
        ).fetchone()
        return bool(row and row[0])

    def slot_exists(self) -> bool:
        row = self._conn.execute(
            "SELECT EXISTS(SELECT 1 FROM pg_replication_slots WHERE slot_name = %s)",
            (self._slot_name,),
        ).fetchone()
        return bool(row and row[0])

    def ensure_publication(self, tables: list[str]) -> str:
        """Drop any existing publication and create it afresh.

        Args:
            tables: Table names, optionally schema-qualified. Empty means
                ``FOR ALL TABLES``.
        """
        name = sql.Identifier(self._publication_name)
        lines: list[str] = []

        if self.publication_exists():
            lines.append(f"Publication {self._publication_name} already exists.")
            self._conn.execute(sql.SQL("DROP PUBLICATION {}").format(name))
            logger.info("publication.dropped", name=self._publication_name)
            lines.append("Dropped existing publication to recreate it.")

        if tables:
            statement = sql.SQL("CREATE PUBLICATION {} FOR TABLE {}").format(
                name, sql.SQL(", ").join(_table_identifier(t) for t in tables)
            )
        else:
            statement = sql.SQL("CREATE PUBLICATION {} FOR ALL TABLES").format(name)
        try:
            self._conn.execute(statement)
        except psycopg.Error as exc:
            if not lines:
                raise
            # The old publication is already gone at this point.
            msg = " ".join(lines) + f" Recreating it failed: {exc}"
            raise PublicationError(msg) from exc

        logger.info(
            "publication.created",
            name=self._publication_name,
            tables=tables or "ALL",
        )
        lines.append(f"Created publication {self._publication_name}.")
        return "".join(f"{line}\n" for line in lines)

    def ensure_slot(self) -> str:
        """Create the logical replication slot if it doesn't exist."""
        if self.slot_exists():
            logger.info("slot.exists", name=self._slot_name)
            return f"Replication slot {self._slot_name} already exists.\n"

        self._conn.execute(
            "SELECT pg_create_logical_replication_slot(%s, %s)",
            (self._slot_name, OUTPUT_PLUGIN),
        )
        logger.info("slot.created", name=self._slot_name, plugin=OUTPUT_PLUGIN)
        return f"Created logical replication slot {self._slot_name}.\n"
