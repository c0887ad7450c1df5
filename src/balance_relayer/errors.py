"""
Exception types raised by the balance relayer components.
"""


class RelayerError(Exception):
    """Base class for balance relayer errors."""


class MalformedEventError(RelayerError, ValueError):
    """Raised when an event payload fails validation and must not be queued."""


class BalanceLookupError(RelayerError):
    """Raised when the balance authority cannot return a usable balance."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChainWriteError(RelayerError):
    """Raised when the balance update transaction is rejected or reverted."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
