"""
Queue drain loop for the balance relayer.

Pulls a bounded batch off the pending queue on a fixed interval and hands the
items to the request processor one at a time.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from .request_processor import ProcessingResult
from .work_queue import PendingWorkQueue

if TYPE_CHECKING:
    from .request_processor import RequestProcessor

logger = logging.getLogger(__name__)


class QueueDrainLoop:
    """
    Timer driven consumer of the pending work queue.

    Ticks run inside a single task, so a slow tick delays the next one instead
    of overlapping with it.
    """

    def __init__(
        self,
        queue: PendingWorkQueue,
        processor: "RequestProcessor",
        interval: float = 2.0,
        chunk_size: int = 3,
    ) -> None:
        """
        Initialize the drain loop.

        Args:
            queue: Queue to drain
            processor: Processor invoked for every dequeued item
            interval: Seconds between tick starts
            chunk_size: Maximum items processed per tick
        """
        if interval <= 0:
            raise ValueError(f"Drain interval must be positive, got {interval}")
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")

        self.queue = queue
        self.processor = processor
        self.interval = interval
        self.chunk_size = chunk_size
        self.is_running = False

        self.ticks = 0
        self.items_processed = 0
        self.overruns = 0

    async def drain_once(self) -> list[ProcessingResult]:
        """
        Run one drain tick.

        Returns:
            Results for the items processed in this tick, in queue order
        """
        self.ticks += 1
        batch = self.queue.dequeue_batch(self.chunk_size)
        if not batch:
            return []

        logger.debug(f"Draining {len(batch)} item(s), {len(self.queue)} left in queue")

        results: list[ProcessingResult] = []
        for item in batch:
            try:
                results.append(await self.processor.process(item))
            except Exception as e:
                logger.error(f"Unexpected error processing {item}: {e}", exc_info=True)
            self.items_processed += 1

        return results

    async def run(self) -> None:
        """Drain the queue every ``interval`` seconds until stopped."""
        if self.is_running:
            logger.warning("Drain loop already running")
            return

        self.is_running = True
        loop = asyncio.get_running_loop()
        logger.info(
            f"Starting drain loop: up to {self.chunk_size} item(s) every {self.interval}s"
        )

        delay = self.interval
        while self.is_running:
            try:
                await asyncio.sleep(delay)
                started = loop.time()
                await self.drain_once()
                elapsed = loop.time() - started

                if elapsed > self.interval:
                    self.overruns += 1
                    logger.warning(
                        f"Drain tick took {elapsed:.2f}s, longer than the {self.interval}s interval"
                    )
                delay = max(0.0, self.interval - elapsed)

            except asyncio.CancelledError:
                logger.info("Drain loop cancelled")
                break
            except Exception as e:
                logger.error(f"Error in drain loop: {e}", exc_info=True)
                delay = self.interval

        self.is_running = False

    def stop(self) -> None:
        self.is_running = False

    def get_stats(self) -> dict:
        return {
            'is_running': self.is_running,
            'ticks': self.ticks,
            'items_processed': self.items_processed,
            'overruns': self.overruns,
        }
