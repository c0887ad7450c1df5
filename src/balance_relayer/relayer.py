"""
Balance relayer implementation.

This module contains the main relayer service that wires the event listener,
pending queue, drain loop and request processor together and manages their
lifecycle.
"""

import asyncio
import logging
from typing import Any, Optional

from .balance_client import BalanceLookupClient
from .chain_writer import ChainWriter
from .config import RelayerConfig
from .drain_loop import QueueDrainLoop
from .event_listener import BalanceEventListener
from .health_server import HealthServer
from .request_processor import RequestProcessor
from .utils.contract_utility import ContractUtility
from .utils.polling_event_listener import PollingEventListener
from .work_queue import PendingWorkQueue

logger = logging.getLogger(__name__)


class BalanceRelayer:
    """
    Main relayer service that orchestrates event monitoring and processing.

    This class focuses on coordination and lifecycle management, delegating
    event normalisation to BalanceEventListener and per-item work to
    RequestProcessor.
    """

    STATUS_LOG_INTERVAL = 30  # seconds
    CONTRACT_NAME = "BalanceOracle"

    def __init__(
        self,
        config: RelayerConfig,
        contract_util: Optional[ContractUtility] = None,
        balance_client: Optional[BalanceLookupClient] = None,
    ):
        """
        Initialize the balance relayer.

        Args:
            config: Relayer configuration
            contract_util: Optional pre-built contract utility
            balance_client: Optional pre-built balance lookup client
        """
        self.config = config
        self.running = False
        self.listening = False

        # Initialize utilities
        self._init_utilities(contract_util)

        processing = config.processing

        # Initialize components
        self.queue = PendingWorkQueue(max_size=processing.max_queue_size)
        self.event_listener = BalanceEventListener(
            queue=self.queue,
            amount_decimals=processing.amount_decimals,
        )
        self.balance_client = balance_client or BalanceLookupClient(
            base_url=config.balance_api.base_url,
            timeout=config.balance_api.request_timeout,
        )
        self.chain_writer = ChainWriter(
            contract=self.contract,
            method_name=config.chain.contract_method,
            caller_address=config.chain.bank_address,
            amount_decimals=processing.amount_decimals,
            gas_limit=config.chain.gas_limit,
        )
        self.processor = RequestProcessor(
            balance_client=self.balance_client,
            chain_writer=self.chain_writer,
            max_retries=processing.max_retries,
            exhaustion_policy=processing.exhaustion_policy,
            retry_backoff=processing.retry_backoff_ms / 1000,
            max_retry_backoff=processing.max_retry_backoff_ms / 1000,
        )
        self.drain_loop = QueueDrainLoop(
            queue=self.queue,
            processor=self.processor,
            interval=processing.sleep_interval,
            chunk_size=processing.chunk_size,
        )
        self.health_server = HealthServer(
            host=config.server.host,
            port=config.server.port,
            stats_provider=self.get_stats,
        )
        self.poller: Optional[PollingEventListener] = None

        # Async coordination
        self.shutdown_event = asyncio.Event()

    def _init_utilities(self, contract_util: Optional[ContractUtility]) -> None:
        """
        Create the single contract handle shared by the listener and the writer.
        """
        chain = self.config.chain
        self.contract_util = contract_util or ContractUtility(
            rpc_url=chain.rpc_url,
            secret=chain.private_key,
            request_timeout=self.config.balance_api.request_timeout,
        )

        abi = self.contract_util.get_contract_abi(self.CONTRACT_NAME, chain.abi_path)
        self.contract = self.contract_util.get_contract(chain.oracle_address, abi)

        logger.info(f"Connected to balance oracle {chain.oracle_address} via {chain.rpc_url}")

    @classmethod
    def from_env(cls) -> "BalanceRelayer":
        """
        Create a BalanceRelayer instance from environment variables.

        Returns:
            Configured BalanceRelayer instance

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayerConfig.from_env()
        config.log_config()
        return cls(config)

    def init_event_monitoring(self) -> bool:
        """
        Install the event handlers on the polling listener.

        Failures are logged and leave the relayer running without listening.

        Returns:
            True if the subscriptions are installed
        """
        logger.info("Initializing event monitoring...")
        try:
            if self.poller is None:
                self.poller = PollingEventListener(
                    contract=self.contract,
                    lookback_blocks=self.config.processing.lookback_blocks,
                )
            self.event_listener.install(self.poller)
            self.listening = True
        except Exception as e:
            logger.error(f"Failed to install event subscriptions: {e}", exc_info=True)
            self.listening = False

        return self.listening

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            queue_stats = self.queue.get_stats()
            processor_stats = self.processor.get_stats()
            if queue_stats['pending'] > 0 or queue_stats['enqueued'] > 0:
                logger.info(
                    f"Status: {queue_stats['pending']} pending, "
                    f"{processor_stats['items_succeeded']} updated, "
                    f"{processor_stats['items_dropped']} dropped, "
                    f"{queue_stats['shed']} shed"
                )

    async def _check_task_health(self, tasks: dict[str, asyncio.Task]) -> bool:
        """Check if any critical task has failed. The event task is not critical."""
        for name, task in list(tasks.items()):
            if not task.done() or name == "status":  # status task can end normally
                continue

            try:
                await task
            except Exception as e:
                logger.error(f"{name} task failed: {e}", exc_info=True)

            if name == "events":
                logger.error("Event listener stopped, continuing without listening")
                self.listening = False
                del tasks[name]
                continue
            return False
        return True

    async def _cleanup_tasks(self, tasks: dict[str, asyncio.Task]) -> None:
        """Clean up all tasks, listeners and the liveness server."""
        if self.poller:
            await self.poller.stop()
        self.drain_loop.stop()

        # Cancel all running tasks
        for name, task in tasks.items():
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass  # Expected when cancelling

        await self.health_server.stop()

    async def run(self) -> None:
        """Main event loop for the relayer service."""
        self.running = True
        logger.info("Balance Relayer starting...")

        tasks: dict[str, asyncio.Task] = {}
        try:
            await self.health_server.start()

            if self.init_event_monitoring() and self.poller:
                tasks["events"] = asyncio.create_task(
                    self.poller.start_polling(
                        interval=self.config.processing.event_poll_interval
                    )
                )
            else:
                logger.error("Event subscriptions unavailable, running without listening")

            tasks["drain"] = asyncio.create_task(self.drain_loop.run())
            tasks["status"] = asyncio.create_task(self._periodic_status_logger())

            logger.info("Event monitoring started, waiting for events...")

            # Wait until shutdown or task failure
            while self.running:
                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=1.0)
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass  # Continue running

                if not await self._check_task_health(tasks):
                    logger.error("Critical task failure, shutting down")
                    break

        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            raise
        finally:
            self.running = False
            await self._cleanup_tasks(tasks)
            logger.info("Balance Relayer stopped")

    def stop(self) -> None:
        """Stop the relayer service."""
        self.running = False
        self.shutdown_event.set()

    def get_stats(self) -> dict[str, Any]:
        """
        Get current relayer statistics.

        Returns:
            Dictionary with the state of every component
        """
        return {
            'listening': self.listening,
            'queue': self.queue.get_stats(),
            'events': self.event_listener.get_stats(),
            'drain': self.drain_loop.get_stats(),
            'processor': self.processor.get_stats(),
            'writer': self.chain_writer.get_stats(),
            'poller': self.poller.get_status() if self.poller else None,
        }
