"""Bring WAL-related server settings up to what logical replication needs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import psycopg
import structlog
from psycopg import sql

logger = structlog.get_logger()

RESTART_HINT = (
    "\nWARNING: Some changes require a server restart to take effect.\n"
    "To restart PostgreSQL, you may need to run:\n"
    "  - For systemd: sudo systemctl restart postgresql\n"
    "  - For Docker: docker restart <container_name>\n"
    "  - For Railway.app: Redeploy the PostgreSQL service\n"
)


@dataclass(frozen=True)
class WalSetting:
    """A server parameter and the value logical replication requires.

    Numeric settings are satisfied by anything at or above ``required``;
    other settings must match exactly.
    """

    name: str
    required: str
    numeric: bool = False

    def satisfied_by(self, current: str) -> bool:
        if self.numeric:
            return int(current) >= int(self.required)
        return current == self.required

    def describe_ok(self, current: str) -> str:
        if self.numeric:
            return f"INFO: {self.name} is sufficient: {current}."
        return f"INFO: {self.name} is correctly set to {current}."

    def describe_change(self, current: str) -> str:
        if self.numeric:
            return f"CHANGED: {self.name} from {current} to {self.required}."
        return f"CHANGED: {self.name} from '{current}' to '{self.required}'."


REQUIRED_WAL_SETTINGS: tuple[WalSetting, ...] = (
    WalSetting("wal_level", "logical"),
    WalSetting("max_replication_slots", "5", numeric=True),
    WalSetting("max_wal_senders", "5", numeric=True),
)


def show_setting(conn: psycopg.Connection[Any], name: str) -> str:
    row = conn.execute(sql.SQL("SHOW {}").format(sql.Identifier(name))).fetchone()
    if row is None:
        msg = f"SHOW {name} returned no rows"
        raise psycopg.DataError(msg)
    return str(row[0])


def reconcile_wal_settings(
    conn: psycopg.Connection[Any],
    settings: tuple[WalSetting, ...] = REQUIRED_WAL_SETTINGS,
) -> str:
    """Check each setting and ``ALTER SYSTEM`` the ones that fall short.

    A failing ``SHOW`` aborts the step. A failing ``ALTER SYSTEM`` is
    reported as an ERROR line and the remaining settings are still checked.
    When anything changed the configuration is reloaded and a restart
    warning is appended; the server itself is never restarted.
    """
    lines: list[str] = []
    changed = False

    for setting in settings:
        current = show_setting(conn, setting.name)
        if setting.satisfied_by(current):
            lines.append(setting.describe_ok(current))
            continue
        try:
            conn.execute(
                sql.SQL("ALTER SYSTEM SET {} = {}").format(
                    sql.Identifier(setting.name), sql.Literal(setting.required)
                )
            )
        except psycopg.Error as exc:
            logger.warning(
                "wal.setting_failed", setting=setting.name, error=str(exc)
            )
            lines.append(
                f"ERROR: Failed to set {setting.name} to {setting.required}: {exc}"
            )
            continue
        logger.info(
            "wal.setting_changed",
            setting=setting.name,
            old=current,
            new=setting.required,
        )
        lines.append(setting.describe_change(current))
        changed = True

    text = "".join(f"{line}\n" for line in lines)
    if changed:
        try:
            conn.execute("SELECT pg_reload_conf()")
        except psycopg.Error as exc:
            text += f"ERROR: Failed to reload PostgreSQL configuration: {exc}\n"
        else:
            text += "\nINFO: PostgreSQL configuration reloaded.\n"
        text += RESTART_HINT
    return text
