#!/usr/bin/env python3
"""Entry point for the balance relayer service."""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from balance_relayer.relayer import BalanceRelayer


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)


async def main() -> None:
    """Main entry point for the balance relayer.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Balance Relayer - sync balances from the balance authority to the oracle contract",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  PRIVATE_KEY        - Key used to sign balance updates (required)
  ORACLE_ADDRESS     - Balance oracle contract address (required)
  RPC_URL            - JSON-RPC endpoint (default: http://127.0.0.1:8545)
  BALANCE_API_URL    - Balance authority base URL
  BANK_ADDRESS       - Caller address passed to setUserBalance
  SLEEP_INTERVAL     - Drain interval in ms (default: 2000)
  CHUNK_SIZE         - Items per drain tick (default: 3)
  MAX_RETRIES        - Attempts per item (default: 5)
  EXHAUSTION_POLICY  - drop or zero-balance (default: drop)
  PORT               - Liveness endpoint port (default: 4000)
  LOG_LEVEL          - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("=== Balance Relayer Starting ===")

    relayer = None
    try:
        relayer = BalanceRelayer.from_env()
        await relayer.run()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Required environment variables:")
        logger.error("  - PRIVATE_KEY: Private key for signing balance updates")
        logger.error("  - ORACLE_ADDRESS: Balance oracle contract address")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        if relayer:
            relayer.stop()
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    load_dotenv()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)
