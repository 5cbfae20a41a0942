"""Configurator orchestrator: one linear pass over the provisioning steps."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import psycopg
import structlog

from exoquic_configurator.cloud.registration import (
    CloudRegistrar,
    RegistrationPayload,
)
from exoquic_configurator.config.models import CloudConfig, ConfiguratorConfig
from exoquic_configurator.db.connection import Database, check_superuser
from exoquic_configurator.errors import PublicationError, RegistrationError
from exoquic_configurator.provisioning.connection_info import gather_connection_info
from exoquic_configurator.provisioning.helper_schema import ensure_helper_schema
from exoquic_configurator.provisioning.role import ensure_replication_role
from exoquic_configurator.provisioning.slot_manager import SlotManager
from exoquic_configurator.provisioning.tables import (
    apply_replica_identity_full,
    primary_key_advisory,
)
from exoquic_configurator.provisioning.wal import reconcile_wal_settings
from exoquic_configurator.report import Report, StepResult

logger = structlog.get_logger()

# Failures of these types are reported and the run moves on to the next step.
RECOVERABLE_ERRORS: tuple[type[Exception], ...] = (
    psycopg.Error,
    httpx.HTTPError,
    PublicationError,
    RegistrationError,
)

SKIP_REGISTRATION = "Skipping Exoquic cloud registration (no API key provided).\n"


class Configurator:
    """Runs the full preparation sequence against one database.

    Order: superuser check, WAL settings, helper schema, replication role,
    publication, slot, replica identity, primary-key advisory, connection
    info, cloud registration. Fatal errors propagate out of ``run()``;
    everything else ends up in the returned report.
    """

    def __init__(
        self,
        config: ConfiguratorConfig,
        *,
        database: Database | None = None,
        registrar_factory: Callable[[CloudConfig], CloudRegistrar] = CloudRegistrar,
    ) -> None:
        self._config = config
        self._database = database or Database(config.postgres, config.retry)
        self._registrar_factory = registrar_factory

    @property
    def _conn(self) -> psycopg.Connection[Any]:
        return self._database.connection

    def run(self) -> Report:
        report = Report()
        replication = self._config.replication

        with self._database:
            check_superuser(self._conn)
            logger.info("configurator.superuser_confirmed")

            self._step(
                report,
                "wal",
                "WAL Configuration",
                lambda: reconcile_wal_settings(self._conn),
            )
            self._step(
                report,
                "helper_schema",
                "Helper Schema",
                lambda: ensure_helper_schema(self._conn, replication.helper_schema),
            )
            # Fatal on failure: RoleProvisioningError is not recoverable.
            self._step(
                report,
                "role",
                "Replication User",
                lambda: ensure_replication_role(self._conn, replication),
            )
            self._step(
                report,
                "publication",
                "Publication",
                lambda: self._slot_manager().ensure_publication(replication.tables),
            )
            self._step(
                report,
                "slot",
                "Replication Slot",
                lambda: self._slot_manager().ensure_slot(),
            )
            self._step(
                report,
                "replica_identity",
                "Replica Identity",
                lambda: apply_replica_identity_full(self._conn, replication.schema_name),
            )
            self._step(
                report,
                "primary_keys",
                None,
                lambda: primary_key_advisory(self._conn, replication.schema_name),
            )
            self._step(
                report,
                "connection_info",
                None,
                lambda: gather_connection_info(self._conn, self._config).render(),
            )

        self._step(report, "registration", "Exoquic Cloud Registration", self._register)
        logger.info("configurator.complete", failed_steps=len(report.failures))
        return report

    def _slot_manager(self) -> SlotManager:
        return SlotManager(
            self._conn,
            slot_name=self._config.replication.slot_name,
            publication_name=self._config.replication.publication_name,
        )

    def _register(self) -> str:
        if not self._config.cloud.enabled:
            logger.info("cloud.registration_skipped")
            return SKIP_REGISTRATION
        payload = RegistrationPayload.from_config(self._config)
        with self._registrar_factory(self._config.cloud) as registrar:
            registrar.register(payload)
        return "Successfully registered database with Exoquic\n"

    def _step(
        self,
        report: Report,
        name: str,
        title: str | None,
        action: Callable[[], str],
    ) -> StepResult:
        try:
            text = action()
        except RECOVERABLE_ERRORS as exc:
            logger.warning("configurator.step_failed", step=name, error=str(exc))
            return report.add(StepResult(name=name, title=title, error=str(exc)))
        return report.add(StepResult(name=name, title=title, text=text))
