"""Main CLI entry point."""

import logging

import click
from bankimport.database.factories import create_sqlite_database

# Import and register all commands at module level
from bankimport.cli.commands import (
    import_cmd,
    movements,
    profile,
)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides BANKIMPORT_DB_PATH environment variable)",
    envvar="BANKIMPORT_DB_PATH",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="BANKIMPORT_LOG_LEVEL",
    help="Logging level (overrides BANKIMPORT_LOG_LEVEL environment variable)",
)
@click.pass_context
def cli(ctx, db_path: str | None, log_level: str):
    """Bankimport - Universal bank statement importer.

    Import CSV, XLSX and XLS statements from any bank: columns, number
    formats and date formats are detected, signs are derived from the
    debit/credit structure, and re-imported movements are skipped.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
import_cmd.register_commands(cli)
profile.register_commands(cli)
movements.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
