"""Claim -> validate -> delete-or-release loop over the work queue."""

from __future__ import annotations

import logging
from collections.abc import Callable

from fixity_sweep.sweep.diagnostics import DiagnosticEvent, DiagnosticSink, LoggingDiagnosticSink
from fixity_sweep.sweep.models import DrainReport, WorkItem
from fixity_sweep.sweep.queue import WorkQueue

logger = logging.getLogger(__name__)

DRAIN_COMPONENT = "fixity_sweep"

Validator = Callable[[WorkItem], bool]


def drain(
    queue: WorkQueue,
    validate: Validator,
    *,
    diagnostics: DiagnosticSink | None = None,
) -> DrainReport:
    """Process queued items one at a time until none is visible.

    Passing items are deleted. Failing items, including those whose
    validation raised, are reported to ``diagnostics`` and released back
    to the queue; they are not claimed again within this call. Queue
    errors propagate and abort the drain.
    """

    sink = diagnostics or LoggingDiagnosticSink()
    report = DrainReport()
    released: set[str] = set()

    while True:
        item = queue.claim(exclude=released)
        if item is None:
            break

        try:
            passed = bool(validate(item))
            reason = "Checksum validation failed"
        except Exception as error:  # noqa: BLE001
            passed = False
            reason = f"Checksum validation errored: {error}"

        if passed:
            if not queue.delete(item.object_id):
                logger.warning("Validated item %s was no longer claimed", item.object_id)
            report.succeeded.append(item.object_id)
            continue

        sink.warning(
            DiagnosticEvent(
                component=DRAIN_COMPONENT,
                message=reason,
                object_id=item.object_id,
            ),
        )
        queue.release(item.object_id)
        released.add(item.object_id)
        report.failed.append(item.object_id)

    logger.info(
        "Drain finished: succeeded=%d failed=%d",
        len(report.succeeded),
        len(report.failed),
    )
    return report
