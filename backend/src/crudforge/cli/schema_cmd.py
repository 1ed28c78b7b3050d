"""Schema CLI commands — validate, show, actions."""

import json
from pathlib import Path

import click

from crudforge.config import CrudConfig
from crudforge.errors import CrudError
from crudforge.schema.loader import SchemaLoader
from crudforge.schema.types import ActionScope
from crudforge.schema.validator import validate_schema_dir, validate_schema_file
from crudforge.service import CrudService


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
def schema():
    """Schema document commands."""
    pass


@schema.command()
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
@click.option(
    "--path",
    "target_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Validate a single schema file instead of the whole schema directory.",
)
@click.pass_obj
def validate(config: CrudConfig, strict: bool, target_path: Path | None):
    """Validate schema documents."""
    if target_path is not None:
        issues = validate_schema_file(target_path)
        if strict:
            for issue in issues:
                issue.severity = "error"
    else:
        if not config.schema_path.is_dir():
            click.echo(f"Error: Schema directory not found at {config.schema_path}", err=True)
            raise SystemExit(1)
        issues = validate_schema_dir(config.schema_path, strict=strict)

    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} schema error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    if target_path is None:
        loader = SchemaLoader(config.schema_path)
        models = loader.list_models()
        click.echo(f"\nFound {len(models)} model(s):")
        for name in models:
            click.echo(f"  ✓ {name}")

    click.echo(click.style("\nAll schemas are valid.", fg="green", bold=True))


@schema.command()
@click.argument("model")
@click.option("--context", "contexts", default=None, help="Comma-separated contexts, e.g. list,form.")
@click.option("--namespace", default=None, help="Schema namespace (subdirectory).")
@click.pass_obj
def show(config: CrudConfig, model: str, contexts: str | None, namespace: str | None):
    """Print a model's schema, optionally projected to contexts."""
    service = CrudService(config)
    try:
        view = service.get_context_schema(model, contexts, namespace)
    except CrudError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    _echo_json(view)


@schema.command()
@click.argument("model")
@click.option(
    "--scope",
    required=True,
    type=click.Choice([s.value for s in ActionScope]),
    help="Display scope of the actions.",
)
@click.option("--namespace", default=None, help="Schema namespace (subdirectory).")
@click.pass_obj
def actions(config: CrudConfig, model: str, scope: str, namespace: str | None):
    """Print the actions available in a scope."""
    service = CrudService(config)
    try:
        result = service.get_actions_for_scope(model, scope, namespace)
    except CrudError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    _echo_json(result)
