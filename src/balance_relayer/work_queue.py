"""
Pending work queue for the balance relayer.

Holds work items between event capture and processing. All operations are
synchronous and never await, so on a single event loop each append or removal
is atomic with respect to the listener and the drain loop.
"""

import logging
from collections import deque

from .models import WorkItem

logger = logging.getLogger(__name__)


class PendingWorkQueue:
    """
    FIFO buffer of work items with a capacity bound.

    When the queue is full the oldest item is shed to make room, so a burst
    of events cannot grow memory without limit.
    """

    DEFAULT_MAX_SIZE: int = 10_000

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        """
        Initialize the queue.

        Args:
            max_size: Maximum number of items held before shedding the oldest
        """
        if max_size <= 0:
            raise ValueError(f"Queue capacity must be positive, got {max_size}")

        self.max_size = max_size
        self._items: deque[WorkItem] = deque()

        # Counters
        self.enqueued = 0
        self.dequeued = 0
        self.shed = 0

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def enqueue(self, item: WorkItem) -> WorkItem | None:
        """
        Append an item to the tail.

        Args:
            item: Work item to append

        Returns:
            The oldest item if it had to be shed to respect capacity, else None
        """
        evicted: WorkItem | None = None
        if len(self._items) >= self.max_size:
            evicted = self._items.popleft()
            self.shed += 1
            logger.warning(
                f"Pending queue at capacity ({self.max_size}), shedding oldest item {evicted}"
            )

        self._items.append(item)
        self.enqueued += 1
        return evicted

    def dequeue_batch(self, max_count: int) -> list[WorkItem]:
        """
        Remove and return up to ``max_count`` items from the head, in order.

        Removed items are never restored, whatever happens to them afterwards.
        """
        if max_count <= 0:
            return []

        batch: list[WorkItem] = []
        while self._items and len(batch) < max_count:
            batch.append(self._items.popleft())

        self.dequeued += len(batch)
        return batch

    def peek_all(self) -> list[WorkItem]:
        """Snapshot of the queued items, head first."""
        return list(self._items)

    def get_stats(self) -> dict:
        return {
            'pending': len(self._items),
            'capacity': self.max_size,
            'enqueued': self.enqueued,
            'dequeued': self.dequeued,
            'shed': self.shed,
        }
