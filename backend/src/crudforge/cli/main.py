"""crudforge CLI entry point."""

import logging
from pathlib import Path

import click

from crudforge.config import CrudConfig
from crudforge.persistence.config import DatabaseConfig


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.option(
    "--schema-path",
    default=None,
    type=click.Path(path_type=Path),
    help="Schema directory (overrides CRUDFORGE_SCHEMA_PATH).",
)
@click.option("--database-url", default=None, help="Database URL (overrides DATABASE_URL).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, schema_path: Path | None, database_url: str | None):
    """crudforge — schema-driven CRUD engine CLI."""
    config = CrudConfig.from_env()
    if schema_path is not None:
        config.schema_path = schema_path
    if database_url:
        config.database = DatabaseConfig(url=database_url)

    logging.basicConfig(
        level=logging.DEBUG if verbose or config.debug_mode else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = config


# Register subcommand groups
from crudforge.cli.records_cmd import records  # noqa: E402
from crudforge.cli.schema_cmd import schema  # noqa: E402

cli.add_command(schema)
cli.add_command(records)
