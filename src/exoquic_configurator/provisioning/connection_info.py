"""Connection details a CDC consumer needs to reach the prepared database."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import psycopg

from exoquic_configurator.config.models import ConfiguratorConfig
from exoquic_configurator.provisioning.wal import show_setting


@dataclass(frozen=True)
class ConnectionInfo:
    host: str
    port: str
    database: str
    username: str
    slot_name: str
    publication_name: str

    def render(self) -> str:
        return (
            "\nExoquic Connection Information:\n"
            "===========================\n"
            f"Host: {self.host}\n"
            f"Port: {self.port}\n"
            f"Database: {self.database}\n"
            f"Username: {self.username}\n"
            f"Replication Slot: {self.slot_name}\n"
            f"Publication: {self.publication_name}\n"
            "\nUse these details to configure your Exoquic agent.\n"
        )


def reachable_host(listen_addresses: str, configured_host: str) -> str:
    """A wildcard or multi-address bind is useless to a client; use our host."""
    if listen_addresses == "*" or "," in listen_addresses:
        return configured_host
    return listen_addresses


def gather_connection_info(
    conn: psycopg.Connection[Any], config: ConfiguratorConfig
) -> ConnectionInfo:
    listen = show_setting(conn, "listen_addresses")
    port = show_setting(conn, "port")
    return ConnectionInfo(
        host=reachable_host(listen, config.postgres.host),
        port=port,
        database=config.postgres.database,
        username=config.replication.user,
        slot_name=config.replication.slot_name,
        publication_name=config.replication.publication_name,
    )
