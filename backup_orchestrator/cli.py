"""Command line entry point: ``db-backup``.

Usage:
    db-backup run
    db-backup run --metrics-file /var/lib/node_exporter/db_backup.prom
    db-backup probe db_1a2b3c
    db-backup list
    db-backup schedule
    db-backup init-db
"""

import sys
from typing import Optional

import click
from prometheus_client import REGISTRY, write_to_textfile
from sqlalchemy.exc import SQLAlchemyError

from .config import CONFIG_PATH, Settings, load_config, load_settings
from .database import create_db_and_tables
from .errors import BackupError, ConfigError
from .factory import build_orchestrator, build_probe, build_registry, build_sink, build_store
from .logger import get_logger, setup_logging
from .scheduler import create_scheduler
from .schemas import BatchResult, DatabaseSummary

logger = get_logger(__name__)


class CliState:
    def __init__(self, settings: Settings, config_path: str):
        self.settings = settings
        self.config_path = config_path


def run_batch(settings: Settings, config_path: str) -> Optional[BatchResult]:
    """One orchestration pass. Raises BackupError, SQLAlchemyError or OSError if the batch cannot start."""
    store = build_store(settings)
    create_db_and_tables(store)
    configs = build_registry(settings, store, config_path).list()

    if not configs:
        click.echo("No databases to back up.")
        return None

    click.echo(f"Found {len(configs)} database(s) to back up.")
    result = build_orchestrator(settings, build_sink(store)).run_all(configs)

    for outcome in result.outcomes:
        if outcome.success:
            click.echo(f"✓ {outcome.database_name}: {outcome.artifact_path}")
        else:
            click.echo(f"✗ {outcome.database_name}: {outcome.error_summary or outcome.error_message}")
    click.echo("")
    click.echo(result.summary())
    if result.recorded != result.total:
        click.echo(f"Recorded: {result.recorded} of {result.total}")

    if settings.metrics_file:
        write_metrics(settings.metrics_file)
    return result


def write_metrics(path: str) -> None:
    try:
        write_to_textfile(path, REGISTRY)
    except OSError as e:
        logger.error(f"Failed to write metrics to {path}: {e}")


@click.group()
@click.option(
    "--config",
    "config_path",
    default=CONFIG_PATH,
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Path to the YAML configuration file.",
)
@click.option("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...).")
@click.pass_context
def cli(ctx, config_path, log_level):
    """Back up registered PostgreSQL and MySQL databases."""
    try:
        settings = load_settings(load_config(config_path))
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    setup_logging(log_level or settings.log_level, settings.log_file)
    ctx.obj = CliState(settings, config_path)


@cli.command()
@click.option("--metrics-file", type=click.Path(dir_okay=False), help="Write Prometheus metrics to this textfile.")
@click.option("--max-parallel-jobs", type=click.IntRange(min=1), help="Maximum number of dumps in flight.")
@click.pass_obj
def run(state: CliState, metrics_file, max_parallel_jobs):
    """Back up every registered database once and print a summary."""
    updates = {}
    if metrics_file:
        updates["metrics_file"] = metrics_file
    if max_parallel_jobs:
        updates["max_parallel_jobs"] = max_parallel_jobs
    settings = state.settings.model_copy(update=updates)

    click.echo("Starting database backups...")
    try:
        run_batch(settings, state.config_path)
    except (BackupError, SQLAlchemyError, OSError) as e:
        logger.error(f"Backup batch could not start: {e}")
        click.echo(f"Fatal error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument("database_id")
@click.pass_obj
def probe(state: CliState, database_id):
    """Test the connection to one registered database (by id or name)."""
    try:
        store = build_store(state.settings)
        config = build_registry(state.settings, store, state.config_path).get(database_id)
    except (BackupError, SQLAlchemyError, OSError) as e:
        click.echo(f"Fatal error: {e}", err=True)
        sys.exit(1)

    if config is None:
        click.echo(f"Database not found: {database_id}", err=True)
        sys.exit(1)

    result = build_probe(state.settings).probe(config)
    if result.success:
        click.echo(f"✓ {config.name}: connection succeeded")
        return
    click.echo(f"✗ {config.name}: {result.error_kind}: {result.error}")
    sys.exit(1)


@cli.command("list")
@click.pass_obj
def list_databases(state: CliState):
    """List registered databases (without credentials)."""
    try:
        store = build_store(state.settings)
        configs = build_registry(state.settings, store, state.config_path).list()
    except (BackupError, SQLAlchemyError, OSError) as e:
        click.echo(f"Fatal error: {e}", err=True)
        sys.exit(1)

    for config in configs:
        summary = DatabaseSummary.model_validate(config, from_attributes=True)
        click.echo(
            f"{summary.id}\t{summary.name}\t{summary.engine}\t"
            f"{summary.username}@{summary.host}:{summary.port}/{summary.database_name}"
        )


@cli.command()
@click.pass_obj
def schedule(state: CliState):
    """Run the backup batch on the configured crontab schedule."""

    def job():
        try:
            run_batch(state.settings, state.config_path)
        except (BackupError, SQLAlchemyError, OSError) as e:
            logger.error(f"Scheduled backup batch could not start: {e}")

    try:
        scheduler = create_scheduler(job, state.settings.schedule)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Backups scheduled with '{state.settings.schedule}'. Press Ctrl+C to stop.")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped.")


@cli.command("init-db")
@click.pass_obj
def init_db(state: CliState):
    """Create the registration and backup tables."""
    try:
        create_db_and_tables(build_store(state.settings))
    except (SQLAlchemyError, OSError) as e:
        click.echo(f"Fatal error: {e}", err=True)
        sys.exit(1)
    click.echo("Tables created.")


def main():
    cli()


if __name__ == "__main__":
    main()
