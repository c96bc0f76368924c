"""Command-line interface for loop-counters."""

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from .counter import ShardedCounter
from .exceptions import ValidationError
from .models import DEFAULT_FAMILY, DEFAULT_SHARD_COUNT, MAX_SHARD_COUNT, CounterFamily
from .naming import resolve_table_name
from .repository import Repository

T = TypeVar("T")


def _table_name(table_name: str | None) -> str:
    try:
        return resolve_table_name(table_name)
    except ValidationError as e:
        raise click.BadParameter(e.reason, param_hint="--table-name") from e


def _make_counter(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    family: str,
    shards: int,
) -> ShardedCounter:
    repository = Repository(_table_name(table_name), region=region, endpoint_url=endpoint_url)
    return ShardedCounter(repository, family=CounterFamily(name=family, shard_count=shards))


def _run(
    counter: ShardedCounter,
    operation: Callable[[ShardedCounter], Awaitable[T]],
    failure: str,
) -> T:
    """Run one counter operation, exiting with status 1 on failure."""

    async def _go() -> T:
        async with counter:
            return await operation(counter)

    try:
        return asyncio.run(_go())
    except Exception as e:
        click.echo(f"✗ {failure}: {e}", err=True)
        sys.exit(1)


def _print_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


@click.group()
@click.version_option(package_name="loop-counters")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """loop-counters sharded counter management CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("create-table")
@click.option("--table-name", "-t", help="DynamoDB table name (env: LOOP_COUNTERS_TABLE).")
@click.option("--region", help="AWS region.")
@click.option("--endpoint-url", help="AWS endpoint URL (e.g., LocalStack).")
def create_table(table_name: str | None, region: str | None, endpoint_url: str | None) -> None:
    """Create the DynamoDB table holding counter shards."""
    name = _table_name(table_name)

    async def _create() -> None:
        async with Repository(name, region=region, endpoint_url=endpoint_url) as repository:
            await repository.create_table()

    try:
        asyncio.run(_create())
    except Exception as e:
        click.echo(f"✗ Table creation failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Table '{name}' ready")


@cli.command("delete-table")
@click.option("--table-name", "-t", help="DynamoDB table name (env: LOOP_COUNTERS_TABLE).")
@click.option("--region", help="AWS region.")
@click.option("--endpoint-url", help="AWS endpoint URL (e.g., LocalStack).")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
def delete_table(
    table_name: str | None, region: str | None, endpoint_url: str | None, yes: bool
) -> None:
    """Delete the DynamoDB table and every counter in it."""
    name = _table_name(table_name)
    if not yes:
        click.confirm(f"Are you sure you want to delete table '{name}'?", abort=True)

    async def _delete() -> None:
        async with Repository(name, region=region, endpoint_url=endpoint_url) as repository:
            await repository.delete_table()

    try:
        asyncio.run(_delete())
    except Exception as e:
        click.echo(f"✗ Deletion failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ Table '{name}' deleted")


@cli.command("init")
@click.argument("parent_path")
@click.argument("fields", nargs=-1, required=True)
@click.option("--table-name", "-t", help="DynamoDB table name (env: LOOP_COUNTERS_TABLE).")
@click.option("--region", help="AWS region.")
@click.option("--endpoint-url", help="AWS endpoint URL (e.g., LocalStack).")
@click.option("--family", "-f", default=DEFAULT_FAMILY, show_default=True, help="Counter family.")
@click.option(
    "--shards",
    "-n",
    type=click.IntRange(1, MAX_SHARD_COUNT),
    default=DEFAULT_SHARD_COUNT,
    show_default=True,
    help="Number of shards.",
)
def init(
    parent_path: str,
    fields: tuple[str, ...],
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    family: str,
    shards: int,
) -> None:
    """Create all shards of PARENT_PATH with FIELDS set to zero.

    Resets existing shards of the family to zero.
    """
    counter = _make_counter(table_name, region, endpoint_url, family, shards)
    _run(
        counter,
        lambda c: c.initialize_counters(parent_path, fields),
        "Initialization failed",
    )
    click.echo(f"✓ Initialized {shards} shards for {parent_path} ({', '.join(fields)})")


@cli.command("incr")
@click.argument("parent_path")
@click.argument("field")
@click.option("--by", "delta", type=int, default=1, show_default=True, help="Amount to add.")
@click.option("--table-name", "-t", help="DynamoDB table name (env: LOOP_COUNTERS_TABLE).")
@click.option("--region", help="AWS region.")
@click.option("--endpoint-url", help="AWS endpoint URL (e.g., LocalStack).")
@click.option("--family", "-f", default=DEFAULT_FAMILY, show_default=True, help="Counter family.")
@click.option(
    "--shards",
    "-n",
    type=click.IntRange(1, MAX_SHARD_COUNT),
    default=DEFAULT_SHARD_COUNT,
    show_default=True,
    help="Number of shards (a stored family descriptor takes precedence).",
)
def incr(
    parent_path: str,
    field: str,
    delta: int,
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    family: str,
    shards: int,
) -> None:
    """Add --by to FIELD of PARENT_PATH."""
    counter = _make_counter(table_name, region, endpoint_url, family, shards)
    index = _run(
        counter,
        lambda c: c.increment_counter(parent_path, field, delta),
        "Increment failed",
    )
    click.echo(f"✓ Incremented {field} by {delta} (shard {index})")


@cli.command("get")
@click.argument("parent_path")
@click.argument("field", required=False)
@click.option("--table-name", "-t", help="DynamoDB table name (env: LOOP_COUNTERS_TABLE).")
@click.option("--region", help="AWS region.")
@click.option("--endpoint-url", help="AWS endpoint URL (e.g., LocalStack).")
@click.option("--family", "-f", default=DEFAULT_FAMILY, show_default=True, help="Counter family.")
def get(
    parent_path: str,
    field: str | None,
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    family: str,
) -> None:
    """Print the value of FIELD, or of every counter of PARENT_PATH as JSON."""
    counter = _make_counter(table_name, region, endpoint_url, family, DEFAULT_SHARD_COUNT)
    if field is not None:
        value = _run(
            counter,
            lambda c: c.get_counter_value(parent_path, field),
            "Read failed",
        )
        click.echo(str(value))
        return

    values = _run(counter, lambda c: c.get_all_counter_values(parent_path), "Read failed")
    _print_json(values)


@cli.command("shards")
@click.argument("parent_path")
@click.option("--table-name", "-t", help="DynamoDB table name (env: LOOP_COUNTERS_TABLE).")
@click.option("--region", help="AWS region.")
@click.option("--endpoint-url", help="AWS endpoint URL (e.g., LocalStack).")
@click.option("--family", "-f", default=DEFAULT_FAMILY, show_default=True, help="Counter family.")
def shards(
    parent_path: str,
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    family: str,
) -> None:
    """List the shard records of PARENT_PATH."""
    counter = _make_counter(table_name, region, endpoint_url, family, DEFAULT_SHARD_COUNT)
    records = _run(counter, lambda c: c.get_shards(parent_path), "Query failed")

    if not records:
        click.echo(f"No shards for {parent_path}/{family}")
        return

    click.echo(f"{'Shard':<6} Fields")
    for record in records:
        click.echo(f"{record.index:<6} {json.dumps(record.fields, sort_keys=True)}")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
