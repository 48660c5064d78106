"""
ID Sources - Work Lists of User Identifiers

Two sources share one capability:
- RangeIdSource: every identifier from 1 up to a configured maximum (first pass)
- ListIdSource: FIFO replay of identifiers that failed in a previous pass

A source is consumed by many concurrent workers; the batcher holds
``source.lock`` for the whole peek/pop sequence of one batch.
"""

import threading
from collections import deque
from pathlib import Path
from typing import Iterable, Protocol

from agescan.utils.sinks import read_ids


class IdSource(Protocol):
    """Ordered, consumable sequence of user identifiers."""

    lock: threading.Lock

    @property
    def total_count(self) -> int: ...

    def has_more(self) -> bool: ...

    def peek(self) -> int: ...

    def pop(self) -> None: ...


class RangeIdSource:
    """Identifiers ``1..end`` in ascending order."""

    START = 1

    def __init__(self, end: int) -> None:
        self._end = end
        self._next = self.START
        self._total_count = max(end - self.START + 1, 0)
        self.lock = threading.Lock()

    @property
    def total_count(self) -> int:
        return self._total_count

    def has_more(self) -> bool:
        return self._next <= self._end

    def peek(self) -> int:
        if not self.has_more():
            raise IndexError("peek from exhausted id range")
        return self._next

    def pop(self) -> None:
        if not self.has_more():
            raise IndexError("pop from exhausted id range")
        self._next += 1


class ListIdSource:
    """Identifiers replayed in the order given."""

    def __init__(self, ids: Iterable[int]) -> None:
        self._ids = deque(ids)
        self._total_count = len(self._ids)
        self.lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str | Path) -> "ListIdSource":
        """Load a failure list written one identifier per line."""
        return cls(read_ids(path))

    @property
    def total_count(self) -> int:
        return self._total_count

    def has_more(self) -> bool:
        return len(self._ids) > 0

    def peek(self) -> int:
        if not self._ids:
            raise IndexError("peek from empty id list")
        return self._ids[0]

    def pop(self) -> None:
        if not self._ids:
            raise IndexError("pop from empty id list")
        self._ids.popleft()
