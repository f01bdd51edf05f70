"""Work queue capability used by the planner and the drain loop."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Collection, Iterable
from typing import Protocol

from fixity_sweep.sweep.models import WorkItem


class WorkQueue(Protocol):
    """At-least-once FIFO queue with exclusive claims.

    A claimed item stays invisible to every other ``claim`` until it is
    deleted or released. ``delete`` and ``release`` return ``False`` and
    change nothing when the item is unknown or not currently claimed.
    """

    def enumerate(self) -> list[WorkItem]:
        """Return all stored items (visible and claimed) in queue order."""
        raise NotImplementedError

    def enqueue(self, items: Iterable[WorkItem]) -> int:
        """Append items whose ids are not already stored; return how many were added."""
        raise NotImplementedError

    def claim(self, *, exclude: Collection[str] = ()) -> WorkItem | None:
        """Claim the oldest visible item whose id is not in ``exclude``."""
        raise NotImplementedError

    def delete(self, object_id: str) -> bool:
        """Remove a claimed item for good."""
        raise NotImplementedError

    def release(self, object_id: str) -> bool:
        """Make a claimed item visible again at the tail of the queue."""
        raise NotImplementedError

    def depth(self) -> int:
        """Count stored items, claimed ones included."""
        raise NotImplementedError


class InMemoryWorkQueue:
    """Process-local queue, used for tests and dry runs."""

    def __init__(self, items: Iterable[WorkItem] = ()) -> None:
        self._items: OrderedDict[str, WorkItem] = OrderedDict()
        self._claimed: set[str] = set()
        self.enqueue(items)

    def enumerate(self) -> list[WorkItem]:
        return list(self._items.values())

    def enqueue(self, items: Iterable[WorkItem]) -> int:
        added = 0
        for item in items:
            if item.object_id in self._items:
                continue
            self._items[item.object_id] = item
            added += 1
        return added

    def claim(self, *, exclude: Collection[str] = ()) -> WorkItem | None:
        for object_id, item in self._items.items():
            if object_id in self._claimed or object_id in exclude:
                continue
            self._claimed.add(object_id)
            return item
        return None

    def delete(self, object_id: str) -> bool:
        if object_id not in self._claimed:
            return False
        self._claimed.discard(object_id)
        del self._items[object_id]
        return True

    def release(self, object_id: str) -> bool:
        if object_id not in self._claimed:
            return False
        self._claimed.discard(object_id)
        self._items.move_to_end(object_id)
        return True

    def depth(self) -> int:
        return len(self._items)

    def claimed_ids(self) -> frozenset[str]:
        return frozenset(self._claimed)
