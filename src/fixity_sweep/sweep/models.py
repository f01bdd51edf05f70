"""Domain models for the sweep queue, tick planning, and mismatch tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from fixity_sweep.errors import ConfigError


class WorkItemStatus(str, Enum):
    """Queue visibility states of a stored work item."""

    QUEUED = "queued"
    CLAIMED = "claimed"


class TickRunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One object to validate; equality and hashing use ``object_id`` only."""

    object_id: str
    payload: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True, slots=True)
class FixedLimitConfig:
    """Top the queue up to ``fixed_limit`` items each tick."""

    fixed_limit: int

    def __post_init__(self) -> None:
        if isinstance(self.fixed_limit, bool) or not isinstance(self.fixed_limit, int):
            raise ConfigError(f"fixed_limit must be an integer, got {self.fixed_limit!r}.")
        if self.fixed_limit < 0:
            raise ConfigError(f"fixed_limit must be >= 0, got {self.fixed_limit}.")

    @property
    def mode(self) -> str:
        return "fixed"


@dataclass(frozen=True, slots=True)
class PacedConfig:
    """Spread a full-corpus sweep over ``horizon_days`` with ticks every ``tick_hours``."""

    horizon_days: int
    tick_hours: int

    def __post_init__(self) -> None:
        for name in ("horizon_days", "tick_hours"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}.")

    @property
    def mode(self) -> str:
        return "paced"


TickConfig = FixedLimitConfig | PacedConfig


@dataclass(slots=True)
class DrainReport:
    """Object ids processed by one drain call, in processing order."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)


@dataclass(slots=True)
class EnqueuePlan:
    """Outcome of the planning + enqueue step of one tick."""

    mode: str
    total_item_count: int
    queue_depth_before: int
    limit: int
    enqueued: int
    cursor_offset: int


@dataclass(slots=True)
class WorkItemView:
    """Readable queue row for CLI inspection."""

    object_id: str
    seq: int
    status: WorkItemStatus
    attempt: int
    claimed_by: str | None
    claimed_at: datetime | None
    enqueued_at: datetime
    updated_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class WorkItemEventView:
    event_id: int
    object_id: str
    event_type: str
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DatastreamCheck:
    """Checksum validation result for one datastream of an object."""

    datastream_id: str
    checksum_type: str | None
    checksum: str | None
    valid: bool


@dataclass(slots=True)
class ChecksumMismatchView:
    """Persistent record of a datastream whose checksum failed validation."""

    mismatch_id: int
    object_id: str
    datastream_id: str
    checksum_type: str | None
    expected_checksum: str | None
    occurrences: int
    first_detected_at: datetime
    last_detected_at: datetime
    resolved_at: datetime | None


@dataclass(slots=True)
class TickRunView:
    run_id: str
    mode: str
    status: TickRunStatus
    computed_limit: int
    enqueued_count: int
    succeeded_count: int
    failed_count: int
    recovered_count: int
    error_summary: str | None
    started_at: datetime
    finished_at: datetime | None
