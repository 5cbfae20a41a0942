"""Typer CLI for the Exoquic PostgreSQL configurator."""

from __future__ import annotations

import time
from pathlib import Path

import psycopg
import structlog
import typer
from rich.console import Console
from rich.table import Table

from exoquic_configurator.config.loader import load_config
from exoquic_configurator.config.models import ConfiguratorConfig
from exoquic_configurator.db.connection import Database
from exoquic_configurator.errors import ConfigError, FatalError
from exoquic_configurator.observability.logging import configure_logging
from exoquic_configurator.pipeline.runner import Configurator
from exoquic_configurator.provisioning.helper_schema import read_status

logger = structlog.get_logger()
console = Console()
app = typer.Typer(
    name="exoquic-configure",
    help="Prepare PostgreSQL for Exoquic change data capture",
)

ConfigOption = typer.Option(
    None, "--config", help="YAML file merged over the environment-driven defaults"
)
LogFormatOption = typer.Option("console", "--log-format", help="console or json")


def _load(config_path: str | None) -> ConfiguratorConfig:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as exc:
        logger.error("configurator.config_error", error=str(exc))
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def run(
    config_path: str | None = ConfigOption,
    linger_seconds: float = typer.Option(
        0.0,
        "--linger-seconds",
        min=0.0,
        help="Stay alive this long after a successful run",
    ),
    log_format: str = LogFormatOption,
) -> None:
    """Configure WAL, role, publication and slot, then print a report."""
    configure_logging(log_format)
    logger.info("configurator.starting")
    config = _load(config_path)

    try:
        report = Configurator(config).run()
    except FatalError as exc:
        logger.error("configurator.fatal", error=str(exc), kind=type(exc).__name__)
        raise typer.Exit(1) from exc

    console.print("\n" + report.render(), markup=False, highlight=False, soft_wrap=True)
    logger.info("configurator.finished", warnings=len(report.failures))

    if linger_seconds > 0:
        logger.info("configurator.lingering", seconds=linger_seconds)
        time.sleep(linger_seconds)


@app.command()
def validate(
    config_path: str | None = ConfigOption,
    log_format: str = LogFormatOption,
) -> None:
    """Validate configuration without connecting to the database."""
    configure_logging(log_format)
    config = _load(config_path)
    pg = config.postgres
    rep = config.replication
    console.print("[green]Valid[/green]")
    console.print(f"  postgres:    {pg.user}@{pg.host}:{pg.port}/{pg.database}")
    console.print(f"  role:        {rep.user}")
    console.print(f"  publication: {rep.publication_name}")
    console.print(f"  slot:        {rep.slot_name}")
    tables = ", ".join(rep.tables) if rep.tables else "(all tables)"
    console.print(f"  tables:      {tables}", markup=False)
    if config.cloud.enabled:
        console.print(f"  cloud:       {config.cloud.url}{config.cloud.register_path}")
    else:
        console.print("  cloud:       (registration disabled)")


@app.command()
def status(
    config_path: str | None = ConfigOption,
    log_format: str = LogFormatOption,
) -> None:
    """Show the replication status view created by ``run``."""
    configure_logging(log_format)
    config = _load(config_path)
    schema = config.replication.helper_schema

    try:
        with Database(config.postgres, config.retry) as db:
            row = read_status(db.connection, schema)
    except FatalError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    except psycopg.Error as exc:
        console.print(f"[red]Could not read {schema}.status:[/red] {exc}")
        raise typer.Exit(1) from exc

    table = Table(title=f"{schema}.status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    for key, value in row.items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
