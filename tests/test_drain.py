from __future__ import annotations

import logging

import allure
import pytest

from fixity_sweep.errors import QueueError
from fixity_sweep.sweep.diagnostics import CollectingDiagnosticSink, LoggingDiagnosticSink
from fixity_sweep.sweep.drain import DRAIN_COMPONENT, drain
from fixity_sweep.sweep.models import WorkItem
from fixity_sweep.sweep.queue import InMemoryWorkQueue
from fixity_sweep.sweep.repository import SweepRepository

pytestmark = [
    allure.epic("Checksum Sweep"),
    allure.feature("Queue Drain Loop"),
]


def _queue(count: int) -> InMemoryWorkQueue:
    return InMemoryWorkQueue(WorkItem(f"pid:{index}") for index in range(count))


def test_drain_deletes_every_passing_item() -> None:
    queue = _queue(5)
    sink = CollectingDiagnosticSink()

    report = drain(queue, lambda item: True, diagnostics=sink)

    assert report.succeeded == [f"pid:{index}" for index in range(5)]
    assert report.failed == []
    assert queue.depth() == 0
    assert sink.events == []


def test_drain_releases_every_failing_item_and_terminates() -> None:
    queue = _queue(4)
    sink = CollectingDiagnosticSink()

    report = drain(queue, lambda item: False, diagnostics=sink)

    assert report.succeeded == []
    assert report.failed == [f"pid:{index}" for index in range(4)]
    assert queue.depth() == 4
    assert queue.claimed_ids() == frozenset()
    assert [event.object_id for event in sink.events] == report.failed
    assert {event.component for event in sink.events} == {DRAIN_COMPONENT}


def test_drain_does_not_retry_released_item_in_same_call() -> None:
    queue = _queue(3)
    calls: list[str] = []

    def validate(item: WorkItem) -> bool:
        calls.append(item.object_id)
        return item.object_id != "pid:1"

    report = drain(queue, validate, diagnostics=CollectingDiagnosticSink())

    assert calls == ["pid:0", "pid:1", "pid:2"]
    assert report.failed == ["pid:1"]
    assert [item.object_id for item in queue.enumerate()] == ["pid:1"]


def test_drain_treats_validation_errors_as_failures() -> None:
    queue = _queue(2)
    sink = CollectingDiagnosticSink()

    def validate(item: WorkItem) -> bool:
        if item.object_id == "pid:0":
            raise ConnectionError("repository unreachable")
        return True

    report = drain(queue, validate, diagnostics=sink)

    assert report.failed == ["pid:0"]
    assert report.succeeded == ["pid:1"]
    assert "repository unreachable" in sink.events[0].message


def test_drain_on_empty_queue_returns_empty_report() -> None:
    report = drain(InMemoryWorkQueue(), lambda item: True, diagnostics=CollectingDiagnosticSink())

    assert report.processed == 0


def test_failed_items_are_retried_on_next_drain() -> None:
    queue = _queue(2)
    attempts: dict[str, int] = {}

    def flaky(item: WorkItem) -> bool:
        attempts[item.object_id] = attempts.get(item.object_id, 0) + 1
        return attempts[item.object_id] > 1

    first = drain(queue, flaky, diagnostics=CollectingDiagnosticSink())
    second = drain(queue, flaky, diagnostics=CollectingDiagnosticSink())

    assert first.failed == ["pid:0", "pid:1"]
    assert second.succeeded == ["pid:0", "pid:1"]
    assert queue.depth() == 0


def test_drain_against_sqlite_queue(repository: SweepRepository) -> None:
    repository.enqueue([WorkItem("pid:a"), WorkItem("pid:b"), WorkItem("pid:c")])

    report = drain(
        repository,
        lambda item: item.object_id != "pid:b",
        diagnostics=CollectingDiagnosticSink(),
    )

    assert report.succeeded == ["pid:a", "pid:c"]
    assert report.failed == ["pid:b"]
    assert [item.object_id for item in repository.enumerate()] == ["pid:b"]
    assert [event.event_type for event in repository.list_item_events("pid:b")] == [
        "enqueued",
        "claimed",
        "released",
    ]


def test_queue_errors_abort_the_drain() -> None:
    class BrokenQueue(InMemoryWorkQueue):
        def claim(self, *, exclude=()):
            raise QueueError("database is locked")

    with pytest.raises(QueueError, match="database is locked"):
        drain(BrokenQueue([WorkItem("a")]), lambda item: True)


def test_logging_sink_emits_warning_with_structured_fields(caplog) -> None:
    queue = _queue(1)

    with caplog.at_level(logging.WARNING):
        drain(queue, lambda item: False, diagnostics=LoggingDiagnosticSink())

    records = [record for record in caplog.records if getattr(record, "object_id", None)]
    assert len(records) == 1
    assert records[0].levelno == logging.WARNING
    assert records[0].object_id == "pid:0"
    assert records[0].component == DRAIN_COMPONENT
