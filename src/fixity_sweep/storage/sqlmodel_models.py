"""SQLModel ORM tables for sweep queue storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text, text
from sqlmodel import Field, SQLModel

DEFAULT_CURSOR_NAME = "default"


class WorkItemRow(SQLModel, table=True):
    __tablename__ = "work_items"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_work_items_queue", "status", "seq"),)

    object_id: str = Field(primary_key=True)
    seq: int = Field(index=True, unique=True)
    status: str = Field(index=True)
    payload_json: str | None = Field(default=None, sa_column=Column(Text))
    attempt: int = Field(default=0)
    claimed_by: str | None = None
    claimed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    enqueued_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class WorkItemEventRow(SQLModel, table=True):
    __tablename__ = "work_item_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_work_item_events_object_time", "object_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    object_id: str = Field(index=True)
    event_type: str = Field(index=True)
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ChecksumMismatchRow(SQLModel, table=True):
    __tablename__ = "checksum_mismatches"  # type: ignore[bad-override]
    __table_args__ = (
        Index(
            "uq_checksum_mismatches_open",
            "object_id",
            "datastream_id",
            unique=True,
            sqlite_where=text("resolved_at IS NULL"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    object_id: str = Field(index=True)
    datastream_id: str
    checksum_type: str | None = None
    expected_checksum: str | None = None
    occurrences: int = Field(default=1)
    first_detected_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    last_detected_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    resolved_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class TickRunRow(SQLModel, table=True):
    __tablename__ = "tick_runs"  # type: ignore[bad-override]

    run_id: str = Field(primary_key=True)
    mode: str
    status: str = Field(index=True)
    computed_limit: int = 0
    enqueued_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    recovered_count: int = 0
    error_summary: str | None = Field(default=None, sa_column=Column(Text))
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    finished_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


class SweepCursorRow(SQLModel, table=True):
    __tablename__ = "sweep_cursors"  # type: ignore[bad-override]

    name: str = Field(primary_key=True)
    offset: int = Field(default=0)
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
