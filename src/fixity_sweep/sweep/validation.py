"""Adapter turning repository checksum checks into the drain loop's validate callable."""

from __future__ import annotations

import logging
from collections.abc import Collection
from typing import Protocol

from fixity_sweep.sweep.models import DatastreamCheck, WorkItem

logger = logging.getLogger(__name__)


class ObjectChecker(Protocol):
    def check_object(self, object_id: str) -> list[DatastreamCheck]:
        raise NotImplementedError


class MismatchStore(Protocol):
    """Keeps unresolved mismatches across ticks for the summary notification."""

    def record_mismatch(self, *, object_id: str, check: DatastreamCheck) -> None:
        raise NotImplementedError

    def resolve_mismatches(
        self,
        *,
        object_id: str,
        datastream_ids: Collection[str] | None = None,
        except_datastream_ids: Collection[str] = (),
    ) -> int:
        raise NotImplementedError


class ChecksumValidator:
    """Validate one work item and keep the mismatch store in sync with the result.

    Every open mismatch of the object whose datastream did not fail this
    time is resolved, including datastreams that were since removed or had
    checksumming disabled.
    """

    def __init__(self, *, checker: ObjectChecker, mismatches: MismatchStore) -> None:
        self.checker = checker
        self.mismatches = mismatches

    def __call__(self, item: WorkItem) -> bool:
        checks = self.checker.check_object(item.object_id)
        failed = [check for check in checks if not check.valid]

        for check in failed:
            self.mismatches.record_mismatch(object_id=item.object_id, check=check)
        resolved = self.mismatches.resolve_mismatches(
            object_id=item.object_id,
            except_datastream_ids=[check.datastream_id for check in failed],
        )
        if resolved:
            logger.info("Resolved %d mismatch(es) for %s", resolved, item.object_id)
        return not failed
