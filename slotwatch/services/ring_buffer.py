"""
Bounded history of recent program logs.
Appending past capacity evicts the oldest entry.
"""

from collections import deque
from typing import Deque, Generic, Iterator, List, TypeVar

T = TypeVar('T')


class RingBuffer(Generic[T]):
    """Fixed-capacity FIFO; O(1) append and eviction."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)

    def append(self, item: T) -> None:
        self._items.append(item)

    def to_list(self) -> List[T]:
        """Oldest first."""
        return list(self._items)

    def latest(self, n: int = 1) -> List[T]:
        """The ``n`` most recent entries, newest first."""
        if n <= 0:
            return []
        return list(reversed(self._items))[:n]

    def clear(self) -> None:
        self._items.clear()

    def __iter__(self) -> Iterator[T]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
