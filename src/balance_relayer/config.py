"""Configuration management for the balance relayer.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables, with defaults for
everything except the signing key and the oracle contract address.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

from .request_processor import ExhaustionPolicy

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
ALCHEMY_GOERLI_URL = "https://eth-goerli.g.alchemy.com/v2/{key}"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _checksum(address: str, label: str) -> str:
    if not Web3.is_address(address):
        raise ValueError(f"Invalid {label}: {address}")
    return Web3.to_checksum_address(address)


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the chain hosting the balance oracle.

    Attributes:
        rpc_url: HTTP(S) JSON-RPC endpoint
        oracle_address: Checksummed balance oracle contract address
        private_key: Key used to sign balance updates
        bank_address: Optional caller address passed to the write method
        contract_method: Name of the write method
        abi_path: Optional path to the contract ABI
        gas_limit: Fixed gas limit, None to estimate
    """

    rpc_url: str
    oracle_address: str
    private_key: str = field(repr=False)
    bank_address: str | None = None
    contract_method: str = "setUserBalance"
    abi_path: str | None = None
    gas_limit: int | None = None

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. Expected http or https"
            )

        if not self.oracle_address:
            raise ValueError("Oracle contract address is required (ORACLE_ADDRESS)")
        object.__setattr__(self, 'oracle_address', _checksum(self.oracle_address, "oracle address"))

        if self.bank_address:
            object.__setattr__(self, 'bank_address', _checksum(self.bank_address, "bank address"))

        if not self.private_key:
            raise ValueError("PRIVATE_KEY environment variable is required")

        # Private key should be 64 hex chars, optionally with 0x prefix
        key = self.private_key.removeprefix('0x')
        if len(key) != 64:
            raise ValueError(
                f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
            )
        try:
            int(key, 16)
        except ValueError:
            raise ValueError("Invalid private key format. Must be hexadecimal") from None

        if not self.contract_method:
            raise ValueError("Contract method name must not be empty (CONTRACT_METHOD)")

        if self.gas_limit is not None and self.gas_limit <= 0:
            raise ValueError(f"Gas limit must be positive, got {self.gas_limit}")


@dataclass(frozen=True, slots=True)
class BalanceApiConfig:
    """Configuration for the balance authority service."""

    base_url: str = "https://server.forkedfinance.xyz"
    request_timeout: int = 30  # seconds

    def __post_init__(self) -> None:
        parsed = urlparse(self.base_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"Invalid balance API URL: {self.base_url!r}")
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class ProcessingConfig:
    """Configuration for queueing, draining and retries."""

    sleep_interval_ms: int = 2000  # between drain ticks
    chunk_size: int = 3  # items per drain tick
    max_retries: int = 5  # attempts per item
    retry_backoff_ms: int = 500
    max_retry_backoff_ms: int = 8000
    exhaustion_policy: ExhaustionPolicy = ExhaustionPolicy.DROP
    max_queue_size: int = 10_000
    event_poll_interval_ms: int = 4000
    lookback_blocks: int = 0
    amount_decimals: int = 6

    def __post_init__(self) -> None:
        """Validate processing configuration."""
        if self.sleep_interval_ms <= 0:
            raise ValueError(f"SLEEP_INTERVAL must be positive, got {self.sleep_interval_ms}")
        if self.chunk_size <= 0:
            raise ValueError(f"CHUNK_SIZE must be positive, got {self.chunk_size}")
        if self.max_retries < 1:
            raise ValueError(f"MAX_RETRIES must be at least 1, got {self.max_retries}")
        if self.retry_backoff_ms < 0 or self.max_retry_backoff_ms < 0:
            raise ValueError("Retry backoff must be non-negative")
        if self.max_queue_size <= 0:
            raise ValueError(f"MAX_QUEUE_SIZE must be positive, got {self.max_queue_size}")
        if self.event_poll_interval_ms <= 0:
            raise ValueError(f"EVENT_POLL_INTERVAL must be positive, got {self.event_poll_interval_ms}")
        if self.lookback_blocks < 0:
            raise ValueError(f"LOOKBACK_BLOCKS must be non-negative, got {self.lookback_blocks}")
        if not 0 <= self.amount_decimals <= 36:
            raise ValueError(f"AMOUNT_DECIMALS out of range, got {self.amount_decimals}")

    @property
    def sleep_interval(self) -> float:
        return self.sleep_interval_ms / 1000

    @property
    def event_poll_interval(self) -> float:
        return self.event_poll_interval_ms / 1000


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Configuration for the liveness endpoint."""

    host: str = "0.0.0.0"
    port: int = 4000

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"PORT must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True, slots=True)
class RelayerConfig:
    """Main configuration for the balance relayer."""

    chain: ChainConfig
    balance_api: BalanceApiConfig = field(default_factory=BalanceApiConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> "RelayerConfig":
        """
        Load configuration from environment variables.

        Returns:
            RelayerConfig: Configured relayer instance

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        private_key = os.environ.get("PRIVATE_KEY", "")
        if not private_key:
            raise ValueError(
                "PRIVATE_KEY environment variable is required. "
                "This is used to sign balance updates"
            )

        oracle_address = os.environ.get("ORACLE_ADDRESS", "")
        if not oracle_address:
            raise ValueError(
                "ORACLE_ADDRESS environment variable is required. "
                "This is the address of the deployed balance oracle contract"
            )

        rpc_url = os.environ.get("RPC_URL", "")
        if not rpc_url:
            alchemy_key = os.environ.get("ALCHEMY_KEY", "")
            rpc_url = ALCHEMY_GOERLI_URL.format(key=alchemy_key) if alchemy_key else DEFAULT_RPC_URL

        gas_limit = _env_int("GAS_LIMIT", 0) or None

        chain = ChainConfig(
            rpc_url=rpc_url,
            oracle_address=oracle_address,
            private_key=private_key,
            bank_address=os.environ.get("BANK_ADDRESS") or None,
            contract_method=os.environ.get("CONTRACT_METHOD", "setUserBalance"),
            abi_path=os.environ.get("ABI_PATH") or None,
            gas_limit=gas_limit,
        )

        balance_api = BalanceApiConfig(
            base_url=os.environ.get("BALANCE_API_URL", "https://server.forkedfinance.xyz"),
            request_timeout=_env_int("REQUEST_TIMEOUT", 30),
        )

        policy_name = os.environ.get("EXHAUSTION_POLICY", ExhaustionPolicy.DROP.value)
        try:
            exhaustion_policy = ExhaustionPolicy(policy_name.strip().lower())
        except ValueError:
            valid = ', '.join(p.value for p in ExhaustionPolicy)
            raise ValueError(
                f"Unsupported EXHAUSTION_POLICY: {policy_name}. Supported policies: {valid}"
            ) from None

        processing = ProcessingConfig(
            sleep_interval_ms=_env_int("SLEEP_INTERVAL", 2000),
            chunk_size=_env_int("CHUNK_SIZE", 3),
            max_retries=_env_int("MAX_RETRIES", 5),
            retry_backoff_ms=_env_int("RETRY_BACKOFF_MS", 500),
            max_retry_backoff_ms=_env_int("MAX_RETRY_BACKOFF_MS", 8000),
            exhaustion_policy=exhaustion_policy,
            max_queue_size=_env_int("MAX_QUEUE_SIZE", 10_000),
            event_poll_interval_ms=_env_int("EVENT_POLL_INTERVAL", 4000),
            lookback_blocks=_env_int("LOOKBACK_BLOCKS", 0),
            amount_decimals=_env_int("AMOUNT_DECIMALS", 6),
        )

        server = ServerConfig(
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_env_int("PORT", 4000),
        )

        return cls(
            chain=chain,
            balance_api=balance_api,
            processing=processing,
            server=server,
        )

    def log_config(self) -> None:
        """Log the configuration, hiding sensitive data."""
        logger.info("=" * 60)
        logger.info("Balance Relayer Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  Oracle: {self.chain.oracle_address}")
        logger.info(f"  Method: {self.chain.contract_method}")
        logger.info(f"  Bank Address: {self.chain.bank_address or '[NOT SET]'}")
        logger.info(f"  Private Key: {'[SET]' if self.chain.private_key else '[NOT SET]'}")

        logger.info("Balance API:")
        logger.info(f"  URL: {self.balance_api.base_url}")
        logger.info(f"  Request Timeout: {self.balance_api.request_timeout} seconds")

        logger.info("Processing Settings:")
        logger.info(f"  Sleep Interval: {self.processing.sleep_interval_ms} ms")
        logger.info(f"  Chunk Size: {self.processing.chunk_size}")
        logger.info(f"  Max Retries: {self.processing.max_retries}")
        logger.info(
            f"  Retry Backoff: {self.processing.retry_backoff_ms} ms "
            f"(max {self.processing.max_retry_backoff_ms} ms)"
        )
        logger.info(f"  Exhaustion Policy: {self.processing.exhaustion_policy.value}")
        logger.info(f"  Queue Capacity: {self.processing.max_queue_size}")
        logger.info(f"  Event Poll Interval: {self.processing.event_poll_interval_ms} ms")
        logger.info(f"  Lookback Blocks: {self.processing.lookback_blocks}")

        logger.info(f"Liveness Endpoint: {self.server.host}:{self.server.port}")
        logger.info("=" * 60)
