"""Prepare PostgreSQL for logical-replication change data capture."""

__version__ = "0.1.0"
