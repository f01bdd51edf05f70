"""Per-tick enqueue limit planning and the enumeration step that fills the queue."""

from __future__ import annotations

import logging
from typing import Protocol

from fixity_sweep.errors import ConfigError
from fixity_sweep.sweep.models import (
    EnqueuePlan,
    FixedLimitConfig,
    PacedConfig,
    TickConfig,
    WorkItem,
)
from fixity_sweep.sweep.queue import WorkQueue

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24


class ObjectSource(Protocol):
    """Repository side of the enumeration step."""

    def get_total_object_count(self) -> int:
        """Return how many objects the repository holds."""
        raise NotImplementedError

    def list_object_identifiers(self, *, offset: int, limit: int) -> list[str]:
        """Return up to ``limit`` identifiers starting at ``offset``."""
        raise NotImplementedError


class CursorStore(Protocol):
    """Persists how far the sweep has progressed through the corpus."""

    def get_cursor(self) -> int:
        raise NotImplementedError

    def set_cursor(self, offset: int) -> None:
        raise NotImplementedError


def build_tick_config(
    *,
    fixed_limit: int | None = None,
    horizon_days: int | None = None,
    tick_hours: int | None = None,
) -> TickConfig:
    """Validate raw tick parameters and pick the planning mode.

    Paced mode wins whenever both ``horizon_days`` and ``tick_hours`` are
    given. Every error is raised here, before anything touches the queue.
    """

    for name, value in (
        ("fixed_limit", fixed_limit),
        ("horizon_days", horizon_days),
        ("tick_hours", tick_hours),
    ):
        if value is not None:
            _require_positive_int(name, value)

    if (horizon_days is None) != (tick_hours is None):
        raise ConfigError(
            "horizon_days and tick_hours must be supplied together or not at all "
            f"(got horizon_days={horizon_days!r}, tick_hours={tick_hours!r}).",
        )

    if horizon_days is not None and tick_hours is not None:
        return PacedConfig(horizon_days=horizon_days, tick_hours=tick_hours)
    if fixed_limit is None:
        raise ConfigError(
            "A fixed limit is required when horizon_days/tick_hours are not supplied.",
        )
    return FixedLimitConfig(fixed_limit=fixed_limit)


def compute_limit(config: TickConfig, total_item_count: int, current_queue_depth: int) -> int:
    """Number of new items to enqueue this tick (never negative)."""

    if total_item_count < 0:
        raise ValueError(f"total_item_count must be >= 0, got {total_item_count}.")
    if current_queue_depth < 0:
        raise ValueError(f"current_queue_depth must be >= 0, got {current_queue_depth}.")

    if isinstance(config, FixedLimitConfig):
        return max(0, config.fixed_limit - current_queue_depth)
    if isinstance(config, PacedConfig):
        # ceil(total / horizon * tick / 24) without float rounding
        numerator = total_item_count * config.tick_hours
        denominator = config.horizon_days * HOURS_PER_DAY
        return -(-numerator // denominator)
    raise TypeError(f"Unsupported tick config: {config!r}")


def plan_enqueue(
    *,
    source: ObjectSource,
    queue: WorkQueue,
    cursor: CursorStore,
    config: TickConfig,
) -> EnqueuePlan:
    """Compute this tick's limit and enqueue the next identifiers after the cursor."""

    total = source.get_total_object_count()
    depth_before = queue.depth()
    limit = compute_limit(config, total, depth_before)
    offset = cursor.get_cursor()
    if total == 0 or offset >= total:
        offset = 0

    items: list[WorkItem] = []
    remaining = min(limit, total)
    while remaining > 0:
        batch = source.list_object_identifiers(offset=offset, limit=remaining)
        if not batch:
            # corpus shrank under the cursor; restart from the beginning next tick
            offset = 0
            break
        items.extend(WorkItem(object_id=object_id) for object_id in batch)
        remaining -= len(batch)
        offset += len(batch)
        if offset >= total:
            offset = 0

    enqueued = queue.enqueue(items) if items else 0
    cursor.set_cursor(offset)
    logger.info(
        "Planned tick: mode=%s total=%d depth=%d limit=%d enqueued=%d cursor=%d",
        config.mode,
        total,
        depth_before,
        limit,
        enqueued,
        offset,
    )
    return EnqueuePlan(
        mode=config.mode,
        total_item_count=total,
        queue_depth_before=depth_before,
        limit=limit,
        enqueued=enqueued,
        cursor_offset=offset,
    )


def _require_positive_int(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}.")
