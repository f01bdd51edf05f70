"""Persistent sweep queue, mismatch, and tick-run repository."""

from __future__ import annotations

import json
from collections.abc import Collection, Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

from sqlalchemy import ColumnElement, func
from sqlalchemy import delete as sa_delete
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from fixity_sweep.errors import QueueError
from fixity_sweep.storage.alembic_runner import upgrade_head
from fixity_sweep.storage.common import (
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from fixity_sweep.storage.sqlmodel_models import (
    DEFAULT_CURSOR_NAME,
    ChecksumMismatchRow,
    SweepCursorRow,
    TickRunRow,
    WorkItemEventRow,
    WorkItemRow,
)
from fixity_sweep.sweep.models import (
    ChecksumMismatchView,
    DatastreamCheck,
    TickRunStatus,
    TickRunView,
    WorkItem,
    WorkItemEventView,
    WorkItemStatus,
    WorkItemView,
)


class SweepRepository:
    """Queue persistence facade backed by SQLModel + SQLite.

    Implements the ``WorkQueue`` capability plus the sweep cursor,
    mismatch tracking, and tick-run accounting used by the CLI.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        worker_id: str = "fixity-sweep",
        cursor_name: str = DEFAULT_CURSOR_NAME,
        sqlite_busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_path = db_path
        self.worker_id = worker_id
        self.cursor_name = cursor_name
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)
        # object_id -> attempt number of each claim this instance holds
        self._claims: dict[str, int] = {}

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # -- WorkQueue capability -------------------------------------------------

    def enumerate(self) -> list[WorkItem]:
        with _queue_errors(), Session(self.engine) as session:
            rows = session.exec(select(WorkItemRow).order_by(col(WorkItemRow.seq).asc())).all()
        return [_to_work_item(row) for row in rows]

    def enqueue(self, items: Iterable[WorkItem]) -> int:
        """Append new items at the tail; ids already stored are skipped."""

        pending = list(items)
        if not pending:
            return 0
        now = utc_now()
        with _queue_errors(), Session(self.engine) as session:
            _begin_immediate(session)
            existing = set(
                session.exec(
                    select(WorkItemRow.object_id).where(
                        col(WorkItemRow.object_id).in_([item.object_id for item in pending]),
                    ),
                ).all(),
            )
            next_seq = _next_seq(session)
            added = 0
            for item in pending:
                if item.object_id in existing:
                    continue
                existing.add(item.object_id)
                session.add(
                    WorkItemRow(
                        object_id=item.object_id,
                        seq=next_seq,
                        status=WorkItemStatus.QUEUED.value,
                        payload_json=_dump_json(item.payload),
                        attempt=0,
                        enqueued_at=now,
                        updated_at=now,
                    ),
                )
                self._add_event(
                    session=session,
                    object_id=item.object_id,
                    event_type="enqueued",
                    details={"seq": next_seq},
                )
                next_seq += 1
                added += 1
            session.commit()
        return added

    def claim(self, *, exclude: Collection[str] = ()) -> WorkItem | None:
        """Atomically claim the oldest visible item not in ``exclude``."""

        excluded = list(exclude)
        while True:
            now = utc_now()
            with _queue_errors(), Session(self.engine) as session:
                statement = select(WorkItemRow).where(
                    WorkItemRow.status == WorkItemStatus.QUEUED.value,
                )
                if excluded:
                    statement = statement.where(col(WorkItemRow.object_id).not_in(excluded))
                candidate = session.exec(
                    statement.order_by(col(WorkItemRow.seq).asc()).limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(WorkItemRow)
                    .where(
                        col(WorkItemRow.object_id) == candidate.object_id,
                        col(WorkItemRow.status) == WorkItemStatus.QUEUED.value,
                    )
                    .values(
                        status=WorkItemStatus.CLAIMED.value,
                        attempt=candidate.attempt + 1,
                        claimed_by=self.worker_id,
                        claimed_at=to_db_datetime(now),
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                self._add_event(
                    session=session,
                    object_id=candidate.object_id,
                    event_type="claimed",
                    details={"worker_id": self.worker_id, "attempt": candidate.attempt + 1},
                )
                session.commit()
                self._claims[candidate.object_id] = candidate.attempt + 1
                return WorkItem(
                    object_id=candidate.object_id,
                    payload=_load_json(candidate.payload_json),
                )

    def delete(self, object_id: str) -> bool:
        """Remove an item claimed by this repository after successful validation.

        The claim must still be ours: once stale-claim recovery hands the
        item to another tick, a late delete from the original claimant is a
        no-op.
        """

        attempt = self._claims.get(object_id)
        if attempt is None:
            return False
        with _queue_errors(), Session(self.engine) as session:
            result = session.exec(
                sa_delete(WorkItemRow).where(
                    col(WorkItemRow.object_id) == object_id,
                    col(WorkItemRow.status) == WorkItemStatus.CLAIMED.value,
                    col(WorkItemRow.claimed_by) == self.worker_id,
                    col(WorkItemRow.attempt) == attempt,
                ),
            )
            deleted = result.rowcount == 1
            if deleted:
                self._add_event(
                    session=session,
                    object_id=object_id,
                    event_type="deleted",
                    details={"attempt": attempt},
                )
                session.commit()
            else:
                session.rollback()
        self._claims.pop(object_id, None)
        return deleted

    def release(self, object_id: str) -> bool:
        """Return an item claimed by this repository to the tail of the queue."""

        attempt = self._claims.get(object_id)
        if attempt is None:
            return False
        released = self._release_claimed(
            object_id,
            col(WorkItemRow.claimed_by) == self.worker_id,
            col(WorkItemRow.attempt) == attempt,
            event_type="released",
        )
        self._claims.pop(object_id, None)
        return released

    def _release_claimed(
        self,
        object_id: str,
        *conditions: ColumnElement[bool],
        event_type: str,
    ) -> bool:
        now = utc_now()
        with _queue_errors(), Session(self.engine) as session:
            _begin_immediate(session)
            next_seq = _next_seq(session)
            result = session.exec(
                sa_update(WorkItemRow)
                .where(
                    col(WorkItemRow.object_id) == object_id,
                    col(WorkItemRow.status) == WorkItemStatus.CLAIMED.value,
                    *conditions,
                )
                .values(
                    status=WorkItemStatus.QUEUED.value,
                    seq=next_seq,
                    claimed_by=None,
                    claimed_at=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                object_id=object_id,
                event_type=event_type,
                details={"seq": next_seq},
            )
            session.commit()
            return True

    def depth(self) -> int:
        with _queue_errors(), Session(self.engine) as session:
            return int(session.exec(select(func.count()).select_from(WorkItemRow)).one())

    # -- operator actions -----------------------------------------------------

    def remove(self, object_id: str) -> bool:
        """Drop an item regardless of its state (external removal)."""

        with _queue_errors(), Session(self.engine) as session:
            row = session.exec(
                select(WorkItemRow).where(WorkItemRow.object_id == object_id),
            ).one_or_none()
            if row is None:
                return False
            previous = row.status
            session.delete(row)
            self._add_event(
                session=session,
                object_id=object_id,
                event_type="removed",
                details={"status": previous},
            )
            session.commit()
            return True

    def recover_stale_claims(self, *, older_than: timedelta) -> list[str]:
        """Release claims left behind by a tick that never finished."""

        cutoff = to_db_datetime(utc_now() - older_than)
        recovered: list[str] = []
        with _queue_errors(), Session(self.engine) as session:
            stale_ids = session.exec(
                select(WorkItemRow.object_id)
                .where(
                    WorkItemRow.status == WorkItemStatus.CLAIMED.value,
                    col(WorkItemRow.claimed_at) <= cutoff,
                )
                .order_by(col(WorkItemRow.seq).asc()),
            ).all()
        for object_id in stale_ids:
            self._claims.pop(object_id, None)
            if self._release_claimed(
                object_id,
                col(WorkItemRow.claimed_at) <= cutoff,
                event_type="recovered",
            ):
                recovered.append(object_id)
        return recovered

    def list_items(
        self,
        *,
        status: WorkItemStatus | None = None,
        limit: int = 50,
    ) -> list[WorkItemView]:
        """List queued/claimed items in queue order."""

        with _queue_errors(), Session(self.engine) as session:
            statement = select(WorkItemRow).order_by(col(WorkItemRow.seq).asc()).limit(limit)
            if status is not None:
                statement = statement.where(WorkItemRow.status == status.value)
            rows = session.exec(statement).all()
        return [_to_item_view(row) for row in rows]

    def get_item(self, object_id: str) -> WorkItemView | None:
        with _queue_errors(), Session(self.engine) as session:
            row = session.exec(
                select(WorkItemRow).where(WorkItemRow.object_id == object_id),
            ).one_or_none()
        return _to_item_view(row) if row is not None else None

    def list_item_events(self, object_id: str) -> list[WorkItemEventView]:
        """Return the audit trail of one object id, including past queue visits."""

        with _queue_errors(), Session(self.engine) as session:
            rows = session.exec(
                select(WorkItemEventRow)
                .where(WorkItemEventRow.object_id == object_id)
                .order_by(col(WorkItemEventRow.id).asc()),
            ).all()
        return [
            WorkItemEventView(
                event_id=row.id or 0,
                object_id=row.object_id,
                event_type=row.event_type,
                created_at=to_utc_aware_datetime(row.created_at),
                details=_load_json(row.details_json),
            )
            for row in rows
        ]

    # -- sweep cursor ---------------------------------------------------------

    def get_cursor(self) -> int:
        with _queue_errors(), Session(self.engine) as session:
            row = session.exec(
                select(SweepCursorRow).where(SweepCursorRow.name == self.cursor_name),
            ).one_or_none()
        return row.offset if row is not None else 0

    def set_cursor(self, offset: int) -> None:
        if offset < 0:
            raise ValueError(f"Cursor offset must be >= 0, got {offset}.")
        with _queue_errors(), Session(self.engine) as session:
            row = session.exec(
                select(SweepCursorRow).where(SweepCursorRow.name == self.cursor_name),
            ).one_or_none()
            if row is None:
                row = SweepCursorRow(name=self.cursor_name, offset=offset, updated_at=utc_now())
            else:
                row.offset = offset
                row.updated_at = to_db_datetime(utc_now())
            session.add(row)
            session.commit()

    # -- mismatch tracking ----------------------------------------------------

    def record_mismatch(self, *, object_id: str, check: DatastreamCheck) -> None:
        """Open a mismatch record or bump the occurrences of the open one."""

        now = utc_now()
        with _queue_errors(), Session(self.engine) as session:
            row = session.exec(
                select(ChecksumMismatchRow).where(
                    ChecksumMismatchRow.object_id == object_id,
                    ChecksumMismatchRow.datastream_id == check.datastream_id,
                    col(ChecksumMismatchRow.resolved_at).is_(None),
                ),
            ).one_or_none()
            if row is None:
                row = ChecksumMismatchRow(
                    object_id=object_id,
                    datastream_id=check.datastream_id,
                    checksum_type=check.checksum_type,
                    expected_checksum=check.checksum,
                    occurrences=1,
                    first_detected_at=now,
                    last_detected_at=now,
                )
            else:
                row.occurrences += 1
                row.last_detected_at = to_db_datetime(now)
                row.checksum_type = check.checksum_type
                row.expected_checksum = check.checksum
            session.add(row)
            session.commit()

    def resolve_mismatches(
        self,
        *,
        object_id: str,
        datastream_ids: Collection[str] | None = None,
        except_datastream_ids: Collection[str] = (),
    ) -> int:
        """Mark open mismatches of an object as resolved; return how many changed.

        ``datastream_ids`` limits the update to those datastreams (all when
        ``None``); ``except_datastream_ids`` keeps the listed ones open.
        """

        now = utc_now()
        with _queue_errors(), Session(self.engine) as session:
            statement = (
                sa_update(ChecksumMismatchRow)
                .where(
                    col(ChecksumMismatchRow.object_id) == object_id,
                    col(ChecksumMismatchRow.resolved_at).is_(None),
                )
                .values(resolved_at=to_db_datetime(now))
            )
            if datastream_ids is not None:
                statement = statement.where(
                    col(ChecksumMismatchRow.datastream_id).in_(list(datastream_ids)),
                )
            if except_datastream_ids:
                statement = statement.where(
                    col(ChecksumMismatchRow.datastream_id).not_in(list(except_datastream_ids)),
                )
            result = session.exec(statement)
            session.commit()
            return int(result.rowcount or 0)

    def list_mismatches(
        self,
        *,
        include_resolved: bool = False,
        limit: int | None = None,
    ) -> list[ChecksumMismatchView]:
        with _queue_errors(), Session(self.engine) as session:
            statement = select(ChecksumMismatchRow).order_by(
                col(ChecksumMismatchRow.first_detected_at).asc(),
                col(ChecksumMismatchRow.id).asc(),
            )
            if not include_resolved:
                statement = statement.where(col(ChecksumMismatchRow.resolved_at).is_(None))
            if limit is not None:
                statement = statement.limit(limit)
            rows = session.exec(statement).all()
        return [_to_mismatch_view(row) for row in rows]

    # -- tick runs ------------------------------------------------------------

    def start_tick_run(self, *, mode: str) -> str:
        run_id = str(uuid4())
        with _queue_errors(), Session(self.engine) as session:
            session.add(
                TickRunRow(
                    run_id=run_id,
                    mode=mode,
                    status=TickRunStatus.RUNNING.value,
                    started_at=utc_now(),
                ),
            )
            session.commit()
        return run_id

    def finish_tick_run(  # noqa: PLR0913
        self,
        *,
        run_id: str,
        status: TickRunStatus,
        computed_limit: int = 0,
        enqueued_count: int = 0,
        succeeded_count: int = 0,
        failed_count: int = 0,
        recovered_count: int = 0,
        error_summary: str | None = None,
    ) -> None:
        with _queue_errors(), Session(self.engine) as session:
            row = session.exec(select(TickRunRow).where(TickRunRow.run_id == run_id)).one_or_none()
            if row is None:
                raise RuntimeError(f"Tick run not found: {run_id}")
            row.status = status.value
            row.computed_limit = computed_limit
            row.enqueued_count = enqueued_count
            row.succeeded_count = succeeded_count
            row.failed_count = failed_count
            row.recovered_count = recovered_count
            row.error_summary = error_summary
            row.finished_at = to_db_datetime(utc_now())
            session.add(row)
            session.commit()

    def list_tick_runs(self, *, limit: int = 10) -> list[TickRunView]:
        with _queue_errors(), Session(self.engine) as session:
            rows = session.exec(
                select(TickRunRow).order_by(col(TickRunRow.started_at).desc()).limit(limit),
            ).all()
        return [_to_tick_run_view(row) for row in rows]

    def _add_event(
        self,
        *,
        session: Session,
        object_id: str,
        event_type: str,
        details: dict[str, object],
    ) -> None:
        session.add(
            WorkItemEventRow(
                object_id=object_id,
                event_type=event_type,
                details_json=_dump_json(details),
                created_at=utc_now(),
            ),
        )


@contextmanager
def _queue_errors() -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as error:
        raise QueueError(f"Work queue storage unavailable: {error}") from error


def _begin_immediate(session: Session) -> None:
    # take the write lock before reading MAX(seq) so allocation cannot interleave
    session.connection().exec_driver_sql("BEGIN IMMEDIATE")


def _next_seq(session: Session) -> int:
    current = session.exec(select(func.max(WorkItemRow.seq))).one()
    return (current or 0) + 1


def _dump_json(value: dict[str, object]) -> str | None:
    if not value:
        return None
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _load_json(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    parsed = json.loads(raw)
    return parsed if isinstance(parsed, dict) else {}


def _optional_utc(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None


def _to_work_item(row: WorkItemRow) -> WorkItem:
    return WorkItem(object_id=row.object_id, payload=_load_json(row.payload_json))


def _to_item_view(row: WorkItemRow) -> WorkItemView:
    return WorkItemView(
        object_id=row.object_id,
        seq=row.seq,
        status=WorkItemStatus(row.status),
        attempt=row.attempt,
        claimed_by=row.claimed_by,
        claimed_at=_optional_utc(row.claimed_at),
        enqueued_at=to_utc_aware_datetime(row.enqueued_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
        payload=_load_json(row.payload_json),
    )


def _to_mismatch_view(row: ChecksumMismatchRow) -> ChecksumMismatchView:
    return ChecksumMismatchView(
        mismatch_id=row.id or 0,
        object_id=row.object_id,
        datastream_id=row.datastream_id,
        checksum_type=row.checksum_type,
        expected_checksum=row.expected_checksum,
        occurrences=row.occurrences,
        first_detected_at=to_utc_aware_datetime(row.first_detected_at),
        last_detected_at=to_utc_aware_datetime(row.last_detected_at),
        resolved_at=_optional_utc(row.resolved_at),
    )


def _to_tick_run_view(row: TickRunRow) -> TickRunView:
    return TickRunView(
        run_id=row.run_id,
        mode=row.mode,
        status=TickRunStatus(row.status),
        computed_limit=row.computed_limit,
        enqueued_count=row.enqueued_count,
        succeeded_count=row.succeeded_count,
        failed_count=row.failed_count,
        recovered_count=row.recovered_count,
        error_summary=row.error_summary,
        started_at=to_utc_aware_datetime(row.started_at),
        finished_at=_optional_utc(row.finished_at),
    )
