"""FIFO traversal queue for breadth-first crawling."""

from collections import deque
from typing import Deque, Iterable, Optional

from ..models.crawl import QueueItem


class CrawlQueue:
    """First-in first-out queue of :class:`QueueItem`.

    No deduplication happens here; the engine's visited set owns that.
    """

    def __init__(self, items: Optional[Iterable[QueueItem]] = None):
        self._items: Deque[QueueItem] = deque(items or ())

    def enqueue(self, item: QueueItem) -> None:
        self._items.append(item)

    def enqueue_batch(self, items: Iterable[QueueItem]) -> None:
        self._items.extend(items)

    def dequeue(self) -> Optional[QueueItem]:
        """Remove and return the oldest item, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def is_empty(self) -> bool:
        return not self._items

    def size(self) -> int:
        return len(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
