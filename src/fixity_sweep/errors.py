"""Error taxonomy shared by planner, queue, and repository client."""

from __future__ import annotations

from dataclasses import dataclass


class ConfigError(ValueError):
    """Invalid or inconsistent tick/runtime configuration."""


class QueueError(RuntimeError):
    """Work queue storage is unavailable; the current tick must abort."""


@dataclass(slots=True)
class RepositoryError(Exception):
    """Repository API request failed or returned an unusable response."""

    message: str
    code: str = "repository_error"
    status_code: int | None = None

    def __str__(self) -> str:
        return self.message
