"""
Polling-based event listener utility for contract event subscriptions.

"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, Callable, Dict, List, Optional

from web3.contract import Contract
from web3.types import EventData

EventCallback = Callable[[EventData], Awaitable[Any]]


class PollingEventListener:
    """
    Utility for polling several events of one contract via HTTP RPC.

    Handlers are keyed by event name, so each event name has at most one
    active handler no matter how many times it is registered.
    """

    def __init__(
        self,
        contract: Contract,
        lookback_blocks: int = 0
    ):
        """
        Initialize the polling event listener.

        Args:
            contract: Contract instance whose events are polled
            lookback_blocks: Number of blocks to look back on startup
        """
        self.contract = contract
        self.w3 = contract.w3
        self.contract_address = contract.address
        self.lookback_blocks = lookback_blocks

        self._handlers: Dict[str, EventCallback] = {}

        # State tracking
        self.last_processed_block: Optional[int] = None
        self.is_running = False

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def on(self, event_name: str, callback: EventCallback) -> None:
        """
        Register the handler for an event, replacing any previous one.

        Raises:
            ValueError: If the event is not part of the contract ABI
        """
        if not hasattr(self.contract.events, event_name):
            raise ValueError(f"Event {event_name} not found in contract ABI")

        if event_name in self._handlers:
            self.logger.debug(f"Replacing existing handler for {event_name}")
        self._handlers[event_name] = callback

    def remove_listener(self, event_name: str) -> bool:
        """Remove the handler for an event. Returns True if one was installed."""
        return self._handlers.pop(event_name, None) is not None

    def remove_all_listeners(self) -> None:
        self._handlers.clear()

    def listener_count(self, event_name: str) -> int:
        return 1 if event_name in self._handlers else 0

    @property
    def event_names(self) -> List[str]:
        return list(self._handlers)

    def _fetch_logs(self, from_block: int, to_block: int) -> List[EventData]:
        """Fetch logs for every registered event, in chain order."""
        events: List[EventData] = []
        for event_name in self._handlers:
            event_obj = getattr(self.contract.events, event_name)
            events.extend(event_obj.get_logs(from_block=from_block, to_block=to_block))

        events.sort(key=lambda e: (e.get('blockNumber', 0), e.get('logIndex', 0)))
        return events

    async def _dispatch(self, events: List[EventData]) -> None:
        for event in events:
            handler = self._handlers.get(event.get('event'))
            if handler is None:
                continue
            try:
                await handler(event)
            except Exception as e:
                self.logger.error(f"Error in {event.get('event')} handler: {e}", exc_info=True)

    async def initial_sync(self) -> None:
        """
        Catch up on events inside the lookback window and set the block cursor.
        """
        try:
            current_block = await asyncio.to_thread(lambda: self.w3.eth.block_number)

            if self.lookback_blocks > 0 and self._handlers:
                from_block = max(0, current_block - self.lookback_blocks)
                self.logger.info(
                    f"Initial sync for {', '.join(self._handlers)} "
                    f"from block {from_block} to {current_block}"
                )

                events = await asyncio.to_thread(self._fetch_logs, from_block, current_block)
                if events:
                    self.logger.info(f"Found {len(events)} historical events")
                    await self._dispatch(events)
                else:
                    self.logger.info("No historical events found")

            # Set last processed block
            self.last_processed_block = current_block

        except Exception as e:
            self.logger.error(f"Error during initial sync: {e}")
            raise

    async def poll_for_events(self) -> None:
        """
        Poll for new events since the last processed block.
        """
        try:
            current_block = await asyncio.to_thread(lambda: self.w3.eth.block_number)

            # Skip if no new blocks
            if self.last_processed_block is not None and current_block <= self.last_processed_block:
                return

            from_block = (
                self.last_processed_block + 1
                if self.last_processed_block is not None
                else current_block
            )

            events = await asyncio.to_thread(self._fetch_logs, from_block, current_block)

            if events:
                self.logger.info(
                    f"Found {len(events)} new events in blocks {from_block}-{current_block}"
                )
                await self._dispatch(events)

            # Update last processed block
            self.last_processed_block = current_block

        except Exception as e:
            self.logger.error(f"Error polling for events: {e}")
            # Don't update last_processed_block on error

    async def start_polling(self, interval: float = 4.0) -> None:
        """
        Start polling for events at the specified interval.

        Args:
            interval: Polling interval in seconds
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(
            f"Starting polling for {', '.join(self._handlers) or 'no'} events "
            f"on {self.contract_address} every {interval} seconds"
        )

        await self.initial_sync()

        # Main polling loop
        while self.is_running:
            try:
                await asyncio.sleep(interval)
                await self.poll_for_events()
            except asyncio.CancelledError:
                self.logger.info("Polling cancelled")
                break

    async def stop(self) -> None:
        """Stop the polling loop."""
        self.logger.info(f"Stopping polling on {self.contract_address}")
        self.is_running = False

    def get_status(self) -> Dict[str, Any]:
        """
        Get current status of the polling listener.

        Returns:
            Dictionary with status information
        """
        return {
            "is_running": self.is_running,
            "last_processed_block": self.last_processed_block,
            "contract_address": self.contract_address,
            "event_names": self.event_names,
        }
