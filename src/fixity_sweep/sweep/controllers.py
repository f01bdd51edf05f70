"""Controllers for sweep CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path

from fixity_sweep.config import Settings
from fixity_sweep.notify import LogMismatchNotifier, Notifier, SmtpMismatchNotifier, SmtpTarget
from fixity_sweep.repository_api import RepositoryClient
from fixity_sweep.sweep.diagnostics import LoggingDiagnosticSink
from fixity_sweep.sweep.models import WorkItem, WorkItemStatus
from fixity_sweep.sweep.repository import SweepRepository
from fixity_sweep.sweep.service import SweepService
from fixity_sweep.sweep.validation import ChecksumValidator


@dataclass(slots=True)
class TickCommand:
    """CLI input for one scheduled tick."""

    db_path: Path | None
    repository_url: str | None = None
    fixed_limit: int | None = None
    horizon_days: int | None = None
    tick_hours: int | None = None


@dataclass(slots=True)
class DrainCommand:
    db_path: Path | None
    repository_url: str | None = None


@dataclass(slots=True)
class ListItemsCommand:
    """CLI input for queue listing."""

    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class ItemCommand:
    """CLI input for single-item inspection and operator actions."""

    db_path: Path | None
    object_id: str


@dataclass(slots=True)
class MismatchesCommand:
    db_path: Path | None
    include_resolved: bool
    limit: int


@dataclass(slots=True)
class RunsCommand:
    db_path: Path | None
    limit: int


class SweepCliController:
    """Coordinates tick, queue, and inspection CLI operations."""

    def tick(self, command: TickCommand) -> list[str]:
        settings = _settings(command.db_path, command.repository_url)
        config = settings.tick_config(
            fixed_limit=command.fixed_limit,
            horizon_days=command.horizon_days,
            tick_hours=command.tick_hours,
        )
        settings.validate_for_sweep()
        with _repository(settings) as repository, _client(settings) as client:
            service = _service(settings, repository=repository, client=client)
            summary = service.run_tick(config)

        return [
            "Tick finished: "
            f"run_id={summary.run_id} mode={summary.plan.mode} "
            f"total={summary.plan.total_item_count} limit={summary.plan.limit} "
            f"enqueued={summary.plan.enqueued} recovered={summary.recovered}",
            "Drain summary: "
            f"succeeded={len(summary.report.succeeded)} failed={len(summary.report.failed)} "
            f"remaining={summary.remaining_depth}",
        ]

    def plan(self, command: TickCommand) -> list[str]:
        """Report the limit the next tick would use without mutating the queue."""

        settings = _settings(command.db_path, command.repository_url)
        config = settings.tick_config(
            fixed_limit=command.fixed_limit,
            horizon_days=command.horizon_days,
            tick_hours=command.tick_hours,
        )
        settings.validate_for_sweep()
        with _repository(settings) as repository, _client(settings) as client:
            preview = _service(settings, repository=repository, client=client).preview(config)

        return [
            f"Mode: {preview.mode}",
            f"Total objects: {preview.total_item_count}",
            f"Queue depth: {preview.queue_depth}",
            f"Cursor offset: {preview.cursor_offset}",
            f"Enqueue limit: {preview.limit}",
        ]

    def drain(self, command: DrainCommand) -> list[str]:
        settings = _settings(command.db_path, command.repository_url)
        settings.validate_for_sweep()
        with _repository(settings) as repository, _client(settings) as client:
            report = _service(settings, repository=repository, client=client).drain_only()
            remaining = repository.depth()

        return [
            "Drain summary: "
            f"succeeded={len(report.succeeded)} failed={len(report.failed)} "
            f"remaining={remaining}",
        ]

    def list_items(self, command: ListItemsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status_filter = WorkItemStatus(command.status.lower()) if command.status else None
        with _repository(settings) as repository:
            items = repository.list_items(status=status_filter, limit=command.limit)
            depth = repository.depth()

        lines = [f"Queue depth: {depth}", f"Items: {len(items)}"]
        for item in items:
            lines.append(
                f"  {item.object_id} status={item.status.value} seq={item.seq} "
                f"attempt={item.attempt} enqueued_at={item.enqueued_at.isoformat()}",
            )
        return lines

    def inspect_item(self, command: ItemCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            item = repository.get_item(command.object_id)
            events = repository.list_item_events(command.object_id)
        if item is None and not events:
            return [f"Object not found: {command.object_id}"]

        lines = [f"Object: {command.object_id}"]
        if item is None:
            lines.append("Status: not queued")
        else:
            lines.extend(
                [
                    f"Status: {item.status.value}",
                    f"Attempt: {item.attempt}",
                    f"Claimed by: {item.claimed_by or '-'}",
                ],
            )
        lines.append(f"Events: {len(events)}")
        for event in events:
            lines.append(f"  {event.created_at.isoformat()} {event.event_type}")
        return lines

    def enqueue_item(self, command: ItemCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            added = repository.enqueue([WorkItem(object_id=command.object_id)])
        if added:
            return [f"Object enqueued: {command.object_id}"]
        return [f"Object already queued: {command.object_id}"]

    def remove_item(self, command: ItemCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            removed = repository.remove(command.object_id)
        if removed:
            return [f"Object removed from queue: {command.object_id}"]
        return [f"Object not queued: {command.object_id}"]

    def mismatches(self, command: MismatchesCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            rows = repository.list_mismatches(
                include_resolved=command.include_resolved,
                limit=command.limit,
            )

        lines = [f"Mismatches: {len(rows)}"]
        for row in rows:
            resolved = row.resolved_at.isoformat() if row.resolved_at is not None else "-"
            lines.append(
                f"  {row.object_id} datastream={row.datastream_id} "
                f"occurrences={row.occurrences} "
                f"last_seen={row.last_detected_at.isoformat()} resolved={resolved}",
            )
        return lines

    def runs(self, command: RunsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            runs = repository.list_tick_runs(limit=command.limit)

        lines = [f"Tick runs: {len(runs)}"]
        for run in runs:
            lines.append(
                f"  {run.run_id} {run.started_at.isoformat()} status={run.status.value} "
                f"mode={run.mode} limit={run.computed_limit} enqueued={run.enqueued_count} "
                f"succeeded={run.succeeded_count} failed={run.failed_count}"
                + (f" error={run.error_summary}" if run.error_summary else ""),
            )
        return lines


def build_notifier(settings: Settings, repository: SweepRepository) -> Notifier:
    notification = settings.notification
    if notification.smtp_host is None:
        return LogMismatchNotifier(mismatches=repository)
    return SmtpMismatchNotifier(
        target=SmtpTarget(
            host=notification.smtp_host,
            port=notification.smtp_port,
            sender=notification.sender,
            recipients=notification.recipients,
            starttls=notification.smtp_starttls,
            username=notification.smtp_username,
            password=notification.smtp_password,
        ),
        mismatches=repository,
    )


def _service(
    settings: Settings,
    *,
    repository: SweepRepository,
    client: RepositoryClient,
) -> SweepService:
    return SweepService(
        repository=repository,
        source=client,
        validate=ChecksumValidator(checker=client, mismatches=repository),
        notifier=build_notifier(settings, repository),
        diagnostics=LoggingDiagnosticSink(),
        stale_claim_after=timedelta(seconds=settings.tick.stale_claim_seconds),
    )


def _settings(db_path: Path | None, repository_url: str | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    if repository_url:
        settings.repository = replace(settings.repository, base_url=repository_url.strip())
    return settings


@contextmanager
def _repository(settings: Settings) -> Iterator[SweepRepository]:
    repository = SweepRepository(
        db_path=settings.db_path,
        worker_id=settings.worker_id,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _client(settings: Settings) -> Iterator[RepositoryClient]:
    client = RepositoryClient(
        settings.repository.base_url,
        timeout_seconds=settings.repository.timeout_seconds,
        max_retries=settings.repository.max_retries,
        page_size=settings.repository.page_size,
        username=settings.repository.username,
        password=settings.repository.password,
    )
    try:
        yield client
    finally:
        client.close()
