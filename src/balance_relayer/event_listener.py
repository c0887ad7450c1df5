"""
Event listener for the balance oracle contract.

Turns UpdateUserBalanceEvent logs into queued work items and records
SetUserBalanceEvent logs for audit, keeping the normalisation logic separate
from the polling transport.
"""

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING

from web3.types import EventData

from .errors import MalformedEventError
from .models import DEFAULT_AMOUNT_DECIMALS, SetUserBalanceEvent, UpdateUserBalanceEvent, WorkItem
from .work_queue import PendingWorkQueue

if TYPE_CHECKING:
    from .utils.polling_event_listener import PollingEventListener

logger = logging.getLogger(__name__)


class BalanceEventListener:
    """Normalises balance oracle events and feeds the pending work queue."""

    EVENT_NAMES: tuple[str, ...] = (
        UpdateUserBalanceEvent.EVENT_NAME,
        SetUserBalanceEvent.EVENT_NAME,
    )
    MAX_SEEN_EVENTS: int = 10_000

    def __init__(
        self,
        queue: PendingWorkQueue,
        amount_decimals: int = DEFAULT_AMOUNT_DECIMALS,
    ) -> None:
        """
        Initialize the event listener.

        Args:
            queue: Queue that receives work items
            amount_decimals: Decimals used to scale raw event values
        """
        self.queue = queue
        self.amount_decimals = amount_decimals

        # (tx_hash, log_index) of delivered logs, oldest first
        self.seen_events: OrderedDict[tuple[str, int], None] = OrderedDict()

        # Metrics tracking
        self.events_received = 0
        self.events_enqueued = 0
        self.events_rejected = 0
        self.events_duplicated = 0
        self.audit_events = 0

    def install(self, poller: "PollingEventListener") -> None:
        """
        Install the handlers on a poller.

        Any handler previously installed for the same event names is removed
        first, so re-initialising never leaves two active handlers for one event.
        """
        for event_name in self.EVENT_NAMES:
            if poller.remove_listener(event_name):
                logger.info(f"Removed previous {event_name} handler")

        poller.on(UpdateUserBalanceEvent.EVENT_NAME, self.handle_update_event)
        poller.on(SetUserBalanceEvent.EVENT_NAME, self.handle_set_event)
        logger.info(f"Listening for {', '.join(self.EVENT_NAMES)}")

    async def handle_update_event(self, event: EventData) -> WorkItem | None:
        """
        Process an UpdateUserBalanceEvent.

        Args:
            event: Decoded event data

        Returns:
            The queued WorkItem, or None if the event was rejected or a duplicate
        """
        self.events_received += 1

        try:
            parsed = UpdateUserBalanceEvent.from_event(event, self.amount_decimals)
        except MalformedEventError as e:
            self.events_rejected += 1
            logger.warning(f"* Rejected Update User Balance Event: {e}")
            return None

        logger.info(
            f"* New Update User Balance Event. Amount: {parsed.amount} "
            f"with id {parsed.on_chain_id} at address: {parsed.user_address}"
        )

        if self._is_duplicate(parsed.unique_key):
            self.events_duplicated += 1
            logger.debug(f"Skipping duplicate event {parsed.tx_hash[:10]}...#{parsed.log_index}")
            return None

        item = parsed.to_work_item()
        self.queue.enqueue(item)
        self.events_enqueued += 1
        return item

    async def handle_set_event(self, event: EventData) -> SetUserBalanceEvent | None:
        """
        Log a SetUserBalanceEvent. These are never queued.

        Returns:
            The parsed event, or None if it was malformed
        """
        self.events_received += 1

        try:
            parsed = SetUserBalanceEvent.from_event(event, self.amount_decimals)
        except MalformedEventError as e:
            self.events_rejected += 1
            logger.warning(f"* Rejected Set User Balance Event: {e}")
            return None

        self.audit_events += 1
        logger.info(
            f"* New Set User Balance Event. Amount: {parsed.amount} "
            f"with a total balance of {parsed.balance} at address: {parsed.user_address}"
        )
        return parsed

    def _is_duplicate(self, key: tuple[str, int]) -> bool:
        """Check and record a log key. Logs without a transaction hash are never deduplicated."""
        if not key[0]:
            return False
        if key in self.seen_events:
            self.seen_events.move_to_end(key)
            return True

        if len(self.seen_events) >= self.MAX_SEEN_EVENTS:
            self.seen_events.popitem(last=False)
        self.seen_events[key] = None
        return False

    def get_stats(self) -> dict:
        return {
            'events_received': self.events_received,
            'events_enqueued': self.events_enqueued,
            'events_rejected': self.events_rejected,
            'events_duplicated': self.events_duplicated,
            'audit_events': self.audit_events,
        }
