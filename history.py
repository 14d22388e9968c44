from collections import deque
from typing import Generic, Iterable, List, TypeVar

T = TypeVar("T")

GLOBAL_HISTORY_LIMIT = 100
WEBSITE_HISTORY_LIMIT = 50


class BoundedLog(Generic[T]):
    """Append-only log that keeps the most recent ``capacity`` items, oldest first.

    Appending past capacity evicts from the front. Used for both the global
    check history and each monitored website's history.
    """

    def __init__(self, capacity: int, items: Iterable[T] = ()):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._items = deque(items, maxlen=capacity)

    def append(self, item: T) -> T:
        self._items.append(item)
        return item

    def to_list(self) -> List[T]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self):
        return f"BoundedLog(capacity={self.capacity}, len={len(self)})"
