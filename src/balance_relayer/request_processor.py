"""
Request processor for the balance relayer.

This module runs the lookup and write for one work item with a bounded number
of attempts, and applies the retry exhaustion policy when every attempt fails.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .balance_client import parse_balance
from .models import WorkItem

if TYPE_CHECKING:
    from .balance_client import BalanceLookupClient
    from .chain_writer import ChainWriter

logger = logging.getLogger(__name__)


class ExhaustionPolicy(Enum):
    """What to do once every attempt for an item has failed."""
    DROP = "drop"  # fail closed: no write
    ZERO_BALANCE = "zero-balance"  # fail safe: write a zero balance once


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    """Outcome of processing one work item."""
    item: WorkItem
    succeeded: bool
    attempts: int
    balance: int | None = None
    tx_hash: str | None = None
    fallback_written: bool = False
    error: str | None = None


class RequestProcessor:
    """Fetches the authoritative balance for a work item and commits it on-chain."""

    def __init__(
        self,
        balance_client: "BalanceLookupClient",
        chain_writer: "ChainWriter",
        max_retries: int = 5,
        exhaustion_policy: ExhaustionPolicy = ExhaustionPolicy.DROP,
        retry_backoff: float = 0.5,
        max_retry_backoff: float = 8.0,
    ) -> None:
        """
        Initialize the request processor.

        Args:
            balance_client: Client for the balance authority
            chain_writer: Writer for the balance oracle contract
            max_retries: Maximum number of attempts per item
            exhaustion_policy: Policy applied after the last failed attempt
            retry_backoff: Delay in seconds before the second attempt, doubled for each later one
            max_retry_backoff: Upper bound for a single delay in seconds
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        if retry_backoff < 0 or max_retry_backoff < 0:
            raise ValueError("Retry backoff must be non-negative")

        self.balance_client = balance_client
        self.chain_writer = chain_writer
        self.max_retries = max_retries
        self.exhaustion_policy = exhaustion_policy
        self.retry_backoff = retry_backoff
        self.max_retry_backoff = max_retry_backoff

        # Metrics tracking
        self.items_succeeded = 0
        self.items_dropped = 0
        self.fallback_writes = 0
        self.total_attempts = 0

    def backoff_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.retry_backoff * (2 ** (attempt - 1)), self.max_retry_backoff)

    async def process(self, item: WorkItem) -> ProcessingResult:
        """
        Process one work item.

        Each attempt looks up the balance and submits it. Any failure in either
        step consumes one attempt; the first fully successful attempt ends the loop.

        Args:
            item: Work item taken off the queue

        Returns:
            ProcessingResult describing the outcome
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            self.total_attempts += 1
            try:
                raw_balance = await self.balance_client.fetch_balance(item.user_address)
                balance = parse_balance(raw_balance)
                tx_hash = await self.chain_writer.set_user_balance(balance, item)

                self.items_succeeded += 1
                logger.info(f"Updated balance of {item.user_address} to {balance} (attempt {attempt})")
                return ProcessingResult(
                    item=item,
                    succeeded=True,
                    attempts=attempt,
                    balance=balance,
                    tx_hash=tx_hash,
                )

            except Exception as e:
                last_error = e
                logger.warning(
                    f"Attempt {attempt}/{self.max_retries} failed for {item.user_address}: {e}"
                )

            if attempt < self.max_retries and (delay := self.backoff_delay(attempt)) > 0:
                await asyncio.sleep(delay)

        return await self._handle_exhaustion(item, last_error)

    async def _handle_exhaustion(self, item: WorkItem, error: Exception | None) -> ProcessingResult:
        """Apply the exhaustion policy after the last failed attempt."""
        error_msg = str(error) if error else None

        match self.exhaustion_policy:
            case ExhaustionPolicy.ZERO_BALANCE:
                logger.error(
                    f"Retries exhausted for {item}, writing fallback zero balance"
                )
                try:
                    tx_hash = await self.chain_writer.set_user_balance(0, item)
                except Exception as e:
                    self.items_dropped += 1
                    logger.error(f"Fallback write failed for {item.user_address}: {e}")
                    return ProcessingResult(
                        item=item,
                        succeeded=False,
                        attempts=self.max_retries,
                        error=str(e),
                    )

                self.fallback_writes += 1
                return ProcessingResult(
                    item=item,
                    succeeded=False,
                    attempts=self.max_retries,
                    balance=0,
                    tx_hash=tx_hash,
                    fallback_written=True,
                    error=error_msg,
                )

            case _:
                self.items_dropped += 1
                logger.error(
                    f"Retries exhausted for {item}, dropping without write: {error_msg}"
                )
                return ProcessingResult(
                    item=item,
                    succeeded=False,
                    attempts=self.max_retries,
                    error=error_msg,
                )

    def get_stats(self) -> dict:
        return {
            'items_succeeded': self.items_succeeded,
            'items_dropped': self.items_dropped,
            'fallback_writes': self.fallback_writes,
            'total_attempts': self.total_attempts,
            'exhaustion_policy': self.exhaustion_policy.value,
        }
