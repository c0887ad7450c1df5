"""Unit tests for the PendingWorkQueue class."""

from decimal import Decimal

import pytest

from balance_relayer.models import WorkItem
from balance_relayer.work_queue import PendingWorkQueue


def items(count):
    return [WorkItem(user_address=f"0x{i:040x}", amount=Decimal(i)) for i in range(count)]


class TestPendingWorkQueue:
    """Test suite for PendingWorkQueue."""

    def test_fifo_order(self):
        queue = PendingWorkQueue()
        queued = items(5)
        for item in queued:
            queue.enqueue(item)

        assert queue.dequeue_batch(5) == queued
        assert len(queue) == 0

    def test_batch_of_five_with_chunk_three(self):
        queue = PendingWorkQueue()
        queued = items(5)
        for item in queued:
            queue.enqueue(item)

        assert queue.dequeue_batch(3) == queued[:3]
        assert len(queue) == 2
        assert queue.dequeue_batch(3) == queued[3:]
        assert len(queue) == 0
        assert queue.dequeue_batch(3) == []

    def test_dequeue_zero(self):
        queue = PendingWorkQueue()
        queue.enqueue(items(1)[0])
        assert queue.dequeue_batch(0) == []
        assert len(queue) == 1

    def test_capacity_sheds_oldest(self):
        queue = PendingWorkQueue(max_size=3)
        queued = items(4)
        evicted = [queue.enqueue(item) for item in queued]

        assert evicted == [None, None, None, queued[0]]
        assert queue.peek_all() == queued[1:]
        assert queue.shed == 1

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            PendingWorkQueue(max_size=0)

    def test_stats(self):
        queue = PendingWorkQueue(max_size=10)
        for item in items(4):
            queue.enqueue(item)
        queue.dequeue_batch(3)

        assert queue.get_stats() == {
            'pending': 1,
            'capacity': 10,
            'enqueued': 4,
            'dequeued': 3,
            'shed': 0,
        }
