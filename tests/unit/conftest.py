"""Shared fixtures: a scripted stand-in for a psycopg connection."""

from __future__ import annotations

from collections.abc import Iterator
from types import SimpleNamespace
from typing import Any

import pytest
import structlog
from psycopg import sql

from exoquic_configurator.config.models import ConfiguratorConfig


class FakeCursor:
    def __init__(self, rows: list[tuple[Any, ...]], columns: list[str] | None = None):
        self._rows = rows
        self.description = (
            [SimpleNamespace(name=c) for c in columns] if columns else None
        )

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows[0] if self._rows else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self._rows)


class FakeConnection:
    """Records rendered SQL and answers from substring-matched scripts.

    The first registered fragment found in a statement decides its outcome;
    unmatched statements succeed with no rows.
    """

    def __init__(self) -> None:
        self.executed: list[tuple[str, Any]] = []
        self.closed = False
        self._script: list[tuple[str, Any, list[str] | None]] = []

    def respond(
        self, fragment: str, rows: list[tuple[Any, ...]], columns: list[str] | None = None
    ) -> None:
        self._script.append((fragment, rows, columns))

    def fail(self, fragment: str, exc: Exception) -> None:
        self._script.append((fragment, exc, None))

    def execute(self, query: Any, params: Any = None) -> FakeCursor:
        text = query.as_string(None) if isinstance(query, sql.Composable) else query
        self.executed.append((text, params))
        for fragment, outcome, columns in self._script:
            if fragment in text:
                if isinstance(outcome, Exception):
                    raise outcome
                return FakeCursor(outcome, columns)
        return FakeCursor([])

    @property
    def statements(self) -> list[str]:
        return [" ".join(text.split()) for text, _ in self.executed]

    def ran(self, fragment: str) -> bool:
        return any(fragment in s for s in self.statements)

    def close(self) -> None:
        self.closed = True


class FakeDatabase:
    """Duck-types db.connection.Database around a FakeConnection."""

    def __init__(self, conn: FakeConnection) -> None:
        self.connection = conn
        self.entered = False
        self.exited = False

    def __enter__(self) -> FakeDatabase:
        self.entered = True
        return self

    def __exit__(self, *exc: object) -> None:
        self.exited = True


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    # CLI commands bind structlog to the runner's (soon closed) stderr.
    yield
    structlog.reset_defaults()


@pytest.fixture
def fake_conn() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def fake_db(fake_conn: FakeConnection) -> Iterator[FakeDatabase]:
    yield FakeDatabase(fake_conn)


@pytest.fixture
def config() -> ConfiguratorConfig:
    return ConfiguratorConfig.model_validate(
        {
            "postgres": {
                "host": "db.internal",
                "user": "postgres",
                "password": "postgres",
                "database": "app",
            },
            "replication": {"password": "repl-secret"},
        }
    )
