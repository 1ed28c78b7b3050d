"""Record CLI commands — list, related, show."""

import json

import click

from crudforge.config import CrudConfig
from crudforge.errors import CrudError
from crudforge.persistence.query import ListingResult
from crudforge.service import CrudService


def listing_options(func):
    """Pagination, sort, filter and search options shared by listing commands."""
    options = [
        click.option("--page", type=int, default=0, show_default=True, help="Page number (0-based)."),
        click.option("--size", type=int, default=None, help="Rows per page."),
        click.option("--sort", "sorts", multiple=True, help="Sort as field:asc or field:desc. Repeatable."),
        click.option("--filter", "filters", multiple=True, help="Filter as field=value. Repeatable."),
        click.option("--search", default=None, help="Search text across filterable fields."),
        click.option("--namespace", default=None, help="Schema namespace (subdirectory)."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_params(
    page: int, size: int | None, sorts: tuple[str, ...], filters: tuple[str, ...], search: str | None
) -> dict:
    """Translate CLI options into listing request parameters."""
    params: dict = {"page": page, "sorts": {}, "filters": {}}
    if size is not None:
        params["size"] = size
    for item in sorts:
        name, _, direction = item.partition(":")
        params["sorts"][name] = direction or "asc"
    for item in filters:
        name, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected field=value, got '{item}'", param_hint="--filter")
        params["filters"][name] = value
    if search:
        params["search"] = search
    return params


def _echo_result(result: ListingResult) -> None:
    for rejected in result.rejected:
        click.echo(click.style(f"Ignored {rejected}", fg="yellow"), err=True)
    click.echo(json.dumps(result.to_dict(), indent=2, default=str))


@click.group()
def records():
    """Record listing commands."""
    pass


@records.command("list")
@click.argument("model")
@listing_options
@click.pass_obj
def list_cmd(config: CrudConfig, model, page, size, sorts, filters, search, namespace):
    """List a page of a model's records."""
    params = build_params(page, size, sorts, filters, search)
    try:
        result = CrudService(config).list_records(model, params, namespace)
    except CrudError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    _echo_result(result)


@records.command()
@click.argument("model")
@click.argument("record_id")
@click.argument("relation")
@listing_options
@click.pass_obj
def related(config: CrudConfig, model, record_id, relation, page, size, sorts, filters, search, namespace):
    """List a page of records related to one record."""
    params = build_params(page, size, sorts, filters, search)
    try:
        result = CrudService(config).list_related_records(model, record_id, relation, params, namespace)
    except CrudError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    _echo_result(result)


@records.command()
@click.argument("model")
@click.argument("record_id")
@click.option("--namespace", default=None, help="Schema namespace (subdirectory).")
@click.pass_obj
def show(config: CrudConfig, model, record_id, namespace):
    """Print one record."""
    try:
        record = CrudService(config).get_record(model, record_id, namespace)
    except CrudError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)
    click.echo(json.dumps(record, indent=2, default=str))
