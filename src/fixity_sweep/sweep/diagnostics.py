"""Structured diagnostic events emitted by the drain loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DiagnosticEvent:
    component: str
    message: str
    object_id: str


class DiagnosticSink(Protocol):
    """Receives warning-level events for items that failed validation."""

    def warning(self, event: DiagnosticEvent) -> None:
        raise NotImplementedError


class LoggingDiagnosticSink:
    """Forward diagnostic events to stdlib logging with structured ``extra`` fields."""

    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    def warning(self, event: DiagnosticEvent) -> None:
        self._logger.warning(
            "[%s] %s (object_id=%s)",
            event.component,
            event.message,
            event.object_id,
            extra={
                "component": event.component,
                "object_id": event.object_id,
            },
        )


class CollectingDiagnosticSink:
    """Keep events in memory; handy for summaries and tests."""

    def __init__(self) -> None:
        self.events: list[DiagnosticEvent] = []

    def warning(self, event: DiagnosticEvent) -> None:
        self.events.append(event)
