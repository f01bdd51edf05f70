"""CLI entrypoint for fixity-sweep."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from fixity_sweep import __version__
from fixity_sweep.errors import ConfigError, QueueError, RepositoryError
from fixity_sweep.sweep.controllers import (
    DrainCommand,
    ItemCommand,
    ListItemsCommand,
    MismatchesCommand,
    RunsCommand,
    SweepCliController,
    TickCommand,
)

click.rich_click.USE_MARKDOWN = True
SWEEP_CONTROLLER = SweepCliController()


@click.group()
@click.version_option(version=__version__, prog_name="fixity-sweep")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level. Defaults to FIXITY_SWEEP_LOG_LEVEL or INFO.",
)
def fixity_sweep(log_level: str | None) -> None:
    """Scheduled checksum validation sweeps over a digital repository."""

    level = (log_level or os.getenv("FIXITY_SWEEP_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _db_path_option(function: Callable) -> Callable:
    return click.option(
        "--db-path",
        type=click.Path(path_type=Path),
        default=None,
        help="SQLite DB path.",
    )(function)


def _repository_url_option(function: Callable) -> Callable:
    return click.option(
        "--repository-url",
        default=None,
        help="Repository API base URL. Defaults to FIXITY_SWEEP_REPOSITORY_URL.",
    )(function)


def _tick_options(function: Callable) -> Callable:
    function = click.option(
        "--tick-hours",
        type=int,
        default=None,
        help="Hours between scheduled ticks. Requires --horizon-days.",
    )(function)
    function = click.option(
        "--horizon-days",
        type=int,
        default=None,
        help="Days in which the whole corpus should be re-validated. Requires --tick-hours.",
    )(function)
    return click.option(
        "--fixed-limit",
        type=int,
        default=None,
        help="Keep at most this many items queued. Defaults to FIXITY_SWEEP_FIXED_LIMIT.",
    )(function)


@fixity_sweep.command("tick")
@_db_path_option
@_repository_url_option
@_tick_options
def tick(
    db_path: Path | None,
    repository_url: str | None,
    fixed_limit: int | None,
    horizon_days: int | None,
    tick_hours: int | None,
) -> None:
    """Run one scheduled tick: plan, enqueue, drain, and send the mismatch summary."""

    _emit_lines(
        _guarded(
            SWEEP_CONTROLLER.tick,
            TickCommand(
                db_path=db_path,
                repository_url=repository_url,
                fixed_limit=fixed_limit,
                horizon_days=horizon_days,
                tick_hours=tick_hours,
            ),
        ),
    )


@fixity_sweep.command("plan")
@_db_path_option
@_repository_url_option
@_tick_options
def plan(
    db_path: Path | None,
    repository_url: str | None,
    fixed_limit: int | None,
    horizon_days: int | None,
    tick_hours: int | None,
) -> None:
    """Show the enqueue limit the next tick would use (no queue changes)."""

    _emit_lines(
        _guarded(
            SWEEP_CONTROLLER.plan,
            TickCommand(
                db_path=db_path,
                repository_url=repository_url,
                fixed_limit=fixed_limit,
                horizon_days=horizon_days,
                tick_hours=tick_hours,
            ),
        ),
    )


@fixity_sweep.command("drain")
@_db_path_option
@_repository_url_option
def drain(db_path: Path | None, repository_url: str | None) -> None:
    """Drain the queue without planning new items."""

    _emit_lines(
        _guarded(
            SWEEP_CONTROLLER.drain,
            DrainCommand(db_path=db_path, repository_url=repository_url),
        ),
    )


@fixity_sweep.group()
def queue() -> None:
    """Work queue inspection and operator commands."""


@queue.command("list")
@_db_path_option
@click.option(
    "--status",
    type=click.Choice(["queued", "claimed"], case_sensitive=False),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Max items to print.",
)
def queue_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List queued and claimed objects in queue order."""

    _emit_lines(
        _guarded(
            SWEEP_CONTROLLER.list_items,
            ListItemsCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@queue.command("inspect")
@_db_path_option
@click.option("--object-id", required=True, help="Repository object id.")
def queue_inspect(db_path: Path | None, object_id: str) -> None:
    """Inspect one object with its queue event history."""

    _emit_lines(
        _guarded(SWEEP_CONTROLLER.inspect_item, ItemCommand(db_path=db_path, object_id=object_id)),
    )


@queue.command("enqueue")
@_db_path_option
@click.option("--object-id", required=True, help="Repository object id.")
def queue_enqueue(db_path: Path | None, object_id: str) -> None:
    """Queue one object for validation on the next drain."""

    _emit_lines(
        _guarded(SWEEP_CONTROLLER.enqueue_item, ItemCommand(db_path=db_path, object_id=object_id)),
    )


@queue.command("remove")
@_db_path_option
@click.option("--object-id", required=True, help="Repository object id.")
def queue_remove(db_path: Path | None, object_id: str) -> None:
    """Remove an object from the queue, e.g. one that keeps failing."""

    _emit_lines(
        _guarded(SWEEP_CONTROLLER.remove_item, ItemCommand(db_path=db_path, object_id=object_id)),
    )


@fixity_sweep.command("mismatches")
@_db_path_option
@click.option(
    "--all/--unresolved",
    "include_resolved",
    default=False,
    show_default=True,
    help="Include mismatches that later validated successfully.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=10_000),
    default=100,
    show_default=True,
    help="Max mismatches to print.",
)
def mismatches(db_path: Path | None, include_resolved: bool, limit: int) -> None:
    """List checksum mismatches tracked across ticks."""

    _emit_lines(
        _guarded(
            SWEEP_CONTROLLER.mismatches,
            MismatchesCommand(db_path=db_path, include_resolved=include_resolved, limit=limit),
        ),
    )


@fixity_sweep.command("runs")
@_db_path_option
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=200),
    default=10,
    show_default=True,
    help="How many latest ticks to display.",
)
def runs(db_path: Path | None, limit: int) -> None:
    """Show recent tick runs."""

    _emit_lines(_guarded(SWEEP_CONTROLLER.runs, RunsCommand(db_path=db_path, limit=limit)))


def _guarded(handler: Callable, command: object) -> list[str]:
    try:
        return handler(command)
    except ConfigError as error:
        raise click.ClickException(f"Configuration error: {error}") from error
    except (QueueError, RepositoryError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    fixity_sweep()
