"""Connection management for the target PostgreSQL instance.

The configurator owns exactly one autocommit connection for the whole run.
It is opened with bounded exponential backoff, probed with ``SELECT 1`` and
replaced once it outlives ``max_lifetime_seconds``.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import psycopg
import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from exoquic_configurator.config.models import ConnectRetryConfig, PostgresConfig
from exoquic_configurator.errors import (
    DatabaseUnavailableError,
    InsufficientPrivilegeError,
    PrivilegeCheckError,
)

logger = structlog.get_logger()


def connect(config: PostgresConfig) -> psycopg.Connection[Any]:
    """Open a single autocommit connection and verify it is alive."""
    conn = psycopg.connect(
        host=config.host,
        port=config.port,
        user=config.user,
        password=config.password.get_secret_value(),
        dbname=config.database,
        sslmode=config.sslmode,
        connect_timeout=config.connect_timeout_seconds,
        autocommit=True,
    )
    try:
        conn.execute("SELECT 1")
    except psycopg.Error:
        conn.close()
        raise
    return conn


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    wait = state.next_action.sleep if state.next_action else 0
    logger.warning(
        "db.connect_failed",
        attempt=state.attempt_number,
        error=str(exc),
        retry_in_seconds=wait,
    )


def connect_with_retry(
    config: PostgresConfig,
    retry: ConnectRetryConfig | None = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> psycopg.Connection[Any]:
    """Connect, retrying with exponential backoff.

    With the default policy the waits are 3, 6, 12 and 24 seconds across five
    attempts. Raises DatabaseUnavailableError once the attempts are exhausted.
    """
    policy = retry or ConnectRetryConfig()
    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(
            multiplier=policy.initial_wait_seconds, exp_base=policy.multiplier
        ),
        retry=retry_if_exception_type(psycopg.OperationalError),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )

    try:
        for attempt in retrying:
            with attempt:
                logger.info(
                    "db.connect_attempt",
                    host=config.host,
                    port=config.port,
                    database=config.database,
                    attempt=attempt.retry_state.attempt_number,
                    max_attempts=policy.max_attempts,
                )
                conn = connect(config)
    except psycopg.Error as exc:
        msg = f"failed to connect after {policy.max_attempts} attempts: {exc}"
        raise DatabaseUnavailableError(msg) from exc
    logger.info("db.connected", host=config.host, database=config.database)
    return conn


def check_superuser(conn: psycopg.Connection[Any]) -> None:
    """Raise unless the current role is a superuser."""
    try:
        row = conn.execute(
            "SELECT usesuper FROM pg_user WHERE usename = current_user"
        ).fetchone()
    except psycopg.Error as exc:
        msg = f"failed to check superuser privileges: {exc}"
        raise PrivilegeCheckError(msg) from exc
    if row is None or not row[0]:
        msg = "Current user does not have superuser privileges."
        raise InsufficientPrivilegeError(msg)


class Database:
    """Owns the run's connection; use as a context manager."""

    def __init__(
        self,
        config: PostgresConfig,
        retry: ConnectRetryConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._retry = retry
        self._sleep = sleep
        self._clock = clock
        self._conn: psycopg.Connection[Any] | None = None
        self._opened_at = 0.0

    @property
    def connection(self) -> psycopg.Connection[Any]:
        """The live connection, reopened if closed or past its lifetime."""
        if self._conn is not None and not self._conn.closed:
            age = self._clock() - self._opened_at
            if age < self._config.max_lifetime_seconds:
                return self._conn
            logger.info("db.connection_expired", age_seconds=round(age, 1))
            self.close()
        self._conn = connect_with_retry(self._config, self._retry, sleep=self._sleep)
        self._opened_at = self._clock()
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Database:
        self.connection  # noqa: B018
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
