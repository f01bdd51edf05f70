from __future__ import annotations

import math

import allure
import pytest

from fixity_sweep.errors import ConfigError
from fixity_sweep.sweep.models import FixedLimitConfig, PacedConfig, WorkItem
from fixity_sweep.sweep.planner import build_tick_config, compute_limit, plan_enqueue
from fixity_sweep.sweep.queue import InMemoryWorkQueue

pytestmark = [
    allure.epic("Checksum Sweep"),
    allure.feature("Rate Planner"),
]


class _ListSource:
    def __init__(self, identifiers: list[str]) -> None:
        self.identifiers = identifiers

    def get_total_object_count(self) -> int:
        return len(self.identifiers)

    def list_object_identifiers(self, *, offset: int, limit: int) -> list[str]:
        return self.identifiers[offset : offset + limit]


class _MemoryCursor:
    def __init__(self, offset: int = 0) -> None:
        self.offset = offset

    def get_cursor(self) -> int:
        return self.offset

    def set_cursor(self, offset: int) -> None:
        self.offset = offset


def test_fixed_limit_tops_up_to_target() -> None:
    assert compute_limit(FixedLimitConfig(fixed_limit=50), 10_000, 10) == 40


@pytest.mark.parametrize(
    ("fixed_limit", "depth"),
    [(0, 0), (0, 5), (1, 0), (10, 10), (10, 25), (100, 3)],
)
def test_fixed_limit_never_negative(fixed_limit: int, depth: int) -> None:
    assert compute_limit(FixedLimitConfig(fixed_limit=fixed_limit), 7, depth) == max(
        0,
        fixed_limit - depth,
    )


def test_paced_limit_matches_documented_example() -> None:
    config = PacedConfig(horizon_days=100, tick_hours=12)

    assert compute_limit(config, 1000, 0) == 5


@pytest.mark.parametrize(
    ("total", "horizon_days", "tick_hours"),
    [(1, 1, 1), (1000, 100, 12), (1001, 100, 12), (7, 3, 5), (123_457, 30, 1), (50, 365, 24)],
)
def test_paced_limit_is_ceiling_of_rate(total: int, horizon_days: int, tick_hours: int) -> None:
    config = PacedConfig(horizon_days=horizon_days, tick_hours=tick_hours)

    expected = math.ceil(total * tick_hours / (horizon_days * 24))
    assert compute_limit(config, total, 0) == expected


def test_paced_limit_ignores_queue_depth() -> None:
    config = PacedConfig(horizon_days=10, tick_hours=24)

    assert compute_limit(config, 100, 0) == compute_limit(config, 100, 9_999) == 10


def test_compute_limit_rejects_negative_inputs() -> None:
    with pytest.raises(ValueError, match="total_item_count"):
        compute_limit(FixedLimitConfig(fixed_limit=5), -1, 0)
    with pytest.raises(ValueError, match="current_queue_depth"):
        compute_limit(FixedLimitConfig(fixed_limit=5), 0, -1)


def test_build_tick_config_prefers_paced_mode_when_complete() -> None:
    config = build_tick_config(fixed_limit=100, horizon_days=30, tick_hours=1)

    assert config == PacedConfig(horizon_days=30, tick_hours=1)


def test_build_tick_config_defaults_to_fixed_mode() -> None:
    assert build_tick_config(fixed_limit=25) == FixedLimitConfig(fixed_limit=25)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fixed_limit": 10, "horizon_days": 30},
        {"fixed_limit": 10, "tick_hours": 1},
        {"horizon_days": 30},
    ],
)
def test_build_tick_config_rejects_half_specified_pacing(kwargs: dict[str, int]) -> None:
    with pytest.raises(ConfigError, match="supplied together"):
        build_tick_config(**kwargs)


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("fixed_limit", 0),
        ("fixed_limit", -3),
        ("horizon_days", 0),
        ("tick_hours", -1),
        ("horizon_days", 1.5),
        ("tick_hours", "12"),
        ("fixed_limit", True),
    ],
)
def test_build_tick_config_rejects_non_positive_or_non_integer(name: str, value: object) -> None:
    kwargs: dict[str, object] = {"fixed_limit": 10, "horizon_days": 30, "tick_hours": 6}
    kwargs[name] = value

    with pytest.raises(ConfigError, match=name):
        build_tick_config(**kwargs)  # type: ignore[arg-type]


def test_build_tick_config_requires_some_limit() -> None:
    with pytest.raises(ConfigError, match="fixed limit is required"):
        build_tick_config()


def test_plan_enqueue_tops_up_and_advances_cursor() -> None:
    source = _ListSource([f"pid:{index}" for index in range(10)])
    queue = InMemoryWorkQueue([WorkItem("pid:0")])
    cursor = _MemoryCursor(offset=1)

    plan = plan_enqueue(
        source=source,
        queue=queue,
        cursor=cursor,
        config=FixedLimitConfig(fixed_limit=4),
    )

    assert plan.limit == 3
    assert plan.enqueued == 3
    assert [item.object_id for item in queue.enumerate()] == ["pid:0", "pid:1", "pid:2", "pid:3"]
    assert cursor.offset == 4
    assert plan.cursor_offset == 4


def test_plan_enqueue_wraps_around_end_of_corpus() -> None:
    source = _ListSource(["a", "b", "c", "d", "e"])
    queue = InMemoryWorkQueue()
    cursor = _MemoryCursor(offset=3)

    plan = plan_enqueue(
        source=source,
        queue=queue,
        cursor=cursor,
        config=FixedLimitConfig(fixed_limit=4),
    )

    assert [item.object_id for item in queue.enumerate()] == ["d", "e", "a", "b"]
    assert plan.cursor_offset == 2


def test_plan_enqueue_never_queues_an_object_twice_per_tick() -> None:
    source = _ListSource(["a", "b", "c"])
    queue = InMemoryWorkQueue()
    cursor = _MemoryCursor(offset=2)

    plan = plan_enqueue(
        source=source,
        queue=queue,
        cursor=cursor,
        config=PacedConfig(horizon_days=1, tick_hours=240),
    )

    assert plan.limit == 30
    assert sorted(item.object_id for item in queue.enumerate()) == ["a", "b", "c"]
    assert plan.enqueued == 3


def test_plan_enqueue_resets_cursor_past_shrunk_corpus() -> None:
    source = _ListSource(["a", "b"])
    queue = InMemoryWorkQueue()
    cursor = _MemoryCursor(offset=10)

    plan_enqueue(source=source, queue=queue, cursor=cursor, config=FixedLimitConfig(fixed_limit=1))

    assert [item.object_id for item in queue.enumerate()] == ["a"]
    assert cursor.offset == 1


def test_plan_enqueue_with_empty_repository_is_noop() -> None:
    queue = InMemoryWorkQueue()
    cursor = _MemoryCursor(offset=0)

    plan = plan_enqueue(
        source=_ListSource([]),
        queue=queue,
        cursor=cursor,
        config=FixedLimitConfig(fixed_limit=10),
    )

    assert plan.enqueued == 0
    assert queue.depth() == 0
    assert cursor.offset == 0
