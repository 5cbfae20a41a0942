"""Unit tests for the WAL settings reconciler."""

from __future__ import annotations

import psycopg
import pytest

from exoquic_configurator.provisioning.wal import (
    REQUIRED_WAL_SETTINGS,
    WalSetting,
    reconcile_wal_settings,
)


def _script(conn, wal_level="logical", slots="10", senders="10"):
    conn.respond('SHOW "wal_level"', [(wal_level,)])
    conn.respond('SHOW "max_replication_slots"', [(slots,)])
    conn.respond('SHOW "max_wal_senders"', [(senders,)])


class TestWalSetting:
    def test_numeric_threshold(self):
        s = WalSetting("max_wal_senders", "5", numeric=True)
        assert s.satisfied_by("5")
        assert s.satisfied_by("10")
        assert not s.satisfied_by("4")

    def test_exact_match(self):
        s = WalSetting("wal_level", "logical")
        assert s.satisfied_by("logical")
        assert not s.satisfied_by("replica")

    def test_required_settings(self):
        assert [(s.name, s.required) for s in REQUIRED_WAL_SETTINGS] == [
            ("wal_level", "logical"),
            ("max_replication_slots", "5"),
            ("max_wal_senders", "5"),
        ]


class TestReconcileWalSettings:
    def test_already_configured_only_info(self, fake_conn):
        _script(fake_conn)
        text = reconcile_wal_settings(fake_conn)
        lines = [line for line in text.splitlines() if line]
        assert all(line.startswith("INFO:") for line in lines)
        assert "INFO: wal_level is correctly set to logical." in text
        assert "INFO: max_replication_slots is sufficient: 10." in text
        assert not fake_conn.ran("ALTER SYSTEM")
        assert not fake_conn.ran("pg_reload_conf")
        assert "restart" not in text

    def test_changes_applied_and_reloaded(self, fake_conn):
        _script(fake_conn, wal_level="replica", slots="2", senders="10")
        text = reconcile_wal_settings(fake_conn)
        assert fake_conn.ran("ALTER SYSTEM SET \"wal_level\" = 'logical'")
        assert fake_conn.ran("ALTER SYSTEM SET \"max_replication_slots\" = '5'")
        assert not fake_conn.ran('ALTER SYSTEM SET "max_wal_senders"')
        assert "CHANGED: wal_level from 'replica' to 'logical'." in text
        assert "CHANGED: max_replication_slots from 2 to 5." in text
        assert "INFO: max_wal_senders is sufficient: 10." in text
        assert fake_conn.statements.count("SELECT pg_reload_conf()") == 1
        assert "INFO: PostgreSQL configuration reloaded." in text
        assert "WARNING: Some changes require a server restart" in text

    def test_failed_alter_is_error_line_and_continues(self, fake_conn):
        _script(fake_conn, wal_level="replica", slots="1", senders="1")
        fake_conn.fail(
            'ALTER SYSTEM SET "wal_level"',
            psycopg.errors.InsufficientPrivilege("permission denied"),
        )
        text = reconcile_wal_settings(fake_conn)
        assert "ERROR: Failed to set wal_level to logical: permission denied" in text
        assert "CHANGED: max_replication_slots from 1 to 5." in text
        assert "CHANGED: max_wal_senders from 1 to 5." in text
        assert fake_conn.ran("pg_reload_conf")

    def test_all_alters_fail_no_reload(self, fake_conn):
        _script(fake_conn, wal_level="minimal", slots="0", senders="0")
        fake_conn.fail("ALTER SYSTEM", psycopg.errors.InsufficientPrivilege("nope"))
        text = reconcile_wal_settings(fake_conn)
        assert text.count("ERROR:") == 3
        assert not fake_conn.ran("pg_reload_conf")

    def test_reload_failure_reported(self, fake_conn):
        _script(fake_conn, slots="1")
        fake_conn.fail("pg_reload_conf", psycopg.OperationalError("reload failed"))
        text = reconcile_wal_settings(fake_conn)
        assert "ERROR: Failed to reload PostgreSQL configuration: reload failed" in text
        assert "WARNING: Some changes require a server restart" in text

    def test_show_failure_aborts_step(self, fake_conn):
        fake_conn.fail('SHOW "wal_level"', psycopg.errors.UndefinedObject("unknown"))
        with pytest.raises(psycopg.Error):
            reconcile_wal_settings(fake_conn)
