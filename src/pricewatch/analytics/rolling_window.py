"""
Fixed-capacity FIFO history buffer.

RollingWindow keeps the N most recently pushed values. Pushing past capacity
evicts the oldest value. Not internally synchronized — the Monitor's single
evaluation path is the only writer.
"""

from collections import deque
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class RollingWindow(Generic[T]):
    """
    Bounded history of the most recent values, oldest → newest.

    Usage:
        window: RollingWindow[float] = RollingWindow(300)
        window.push(0.25)
        changes = window.values()
    """

    def __init__(self, capacity: int) -> None:
        # Non-positive capacities are clamped rather than rejected
        self._capacity = max(int(capacity), 1)
        self._data: deque[T] = deque(maxlen=self._capacity)

    def push(self, value: T) -> None:
        """Append a value, evicting the oldest one when the window is full."""
        self._data.append(value)

    def values(self) -> list[T]:
        """Return a copy of the held values, oldest → newest."""
        return list(self._data)

    def latest(self) -> Optional[T]:
        """Most recently pushed value, or None if nothing was pushed yet."""
        if not self._data:
            return None
        return self._data[-1]

    def size(self) -> int:
        return len(self._data)

    def capacity(self) -> int:
        return self._capacity

    def is_full(self) -> bool:
        return len(self._data) == self._capacity

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
