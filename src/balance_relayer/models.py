"""
Shared data models for the balance relayer.

This module contains the work item that travels through the pending queue and
the two tagged event variants emitted by the balance oracle contract. Event
payloads are validated here, at the boundary, so nothing downstream has to
guess at their shape.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from web3 import Web3

from .errors import MalformedEventError

DEFAULT_AMOUNT_DECIMALS = 6


def parse_amount(value: Any, decimals: int = DEFAULT_AMOUNT_DECIMALS) -> Decimal:
    """
    Convert a raw uint256 event value into a decimal amount.

    Args:
        value: Raw value from the event args (int, or an integer string)
        decimals: Number of decimals the value is denominated in

    Returns:
        The value scaled down by ``decimals``

    Raises:
        MalformedEventError: If the value is not an unsigned integer
    """
    match value:
        case bool():
            raise MalformedEventError(f"Amount must be numeric, got boolean {value!r}")
        case int():
            raw = value
        case str() if value.strip():
            try:
                raw = int(value.strip(), 0)
            except ValueError:
                raise MalformedEventError(f"Amount is not a number: {value!r}") from None
        case _:
            raise MalformedEventError(f"Amount is not a number: {value!r}")

    if raw < 0:
        raise MalformedEventError(f"Amount must be non-negative, got {raw}")

    return Decimal(raw).scaleb(-decimals)


def to_base_units(amount: Decimal, decimals: int = DEFAULT_AMOUNT_DECIMALS) -> int:
    """Scale a decimal amount back to the integer units the contract expects."""
    scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    return int(scaled)


def _format_tx_hash(tx_hash: Any) -> str:
    match tx_hash:
        case None:
            return ""
        case bytes():
            return Web3.to_hex(tx_hash)
        case str():
            return tx_hash
        case _:
            return str(tx_hash)


def _require_address(args: Mapping[str, Any], key: str) -> str:
    address = args.get(key)
    if not isinstance(address, str) or not address.strip():
        raise MalformedEventError(f"Event is missing a valid '{key}': {address!r}")
    return address


def _require_uint(args: Mapping[str, Any], key: str) -> int:
    value = args.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedEventError(f"Event field '{key}' must be an unsigned integer, got {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class WorkItem:
    """
    One pending balance sync task.

    Attributes:
        user_address: Address whose balance must be refreshed
        amount: Value carried by the triggering event, already scaled by decimals
        on_chain_id: Correlation id of the triggering event, when the protocol has one
    """
    user_address: str
    amount: Decimal
    on_chain_id: int | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.user_address, str) or not self.user_address.strip():
            raise MalformedEventError("Work item requires a non-empty user address")

        amount = self.amount
        if isinstance(amount, bool):
            raise MalformedEventError(f"Invalid amount: {amount!r}")
        if isinstance(amount, int):
            amount = Decimal(amount)
        elif isinstance(amount, str):
            try:
                amount = Decimal(amount)
            except InvalidOperation:
                raise MalformedEventError(f"Invalid amount: {self.amount!r}") from None
        if not isinstance(amount, Decimal) or not amount.is_finite():
            raise MalformedEventError(f"Invalid amount: {self.amount!r}")
        object.__setattr__(self, 'amount', amount)

        if self.on_chain_id is not None:
            if isinstance(self.on_chain_id, bool) or not isinstance(self.on_chain_id, int) or self.on_chain_id < 0:
                raise MalformedEventError(f"Invalid on-chain id: {self.on_chain_id!r}")

    def __str__(self) -> str:
        id_part = f", id={self.on_chain_id}" if self.on_chain_id is not None else ""
        return f"WorkItem(address={self.user_address}, amount={self.amount}{id_part})"


@dataclass(frozen=True, slots=True)
class UpdateUserBalanceEvent:
    """
    A request from the contract to refresh a user's balance.

    Attributes:
        user_address: Address whose balance must be refreshed
        amount: Event value scaled by the token decimals
        on_chain_id: Correlation id, absent in address-only protocol variants
        tx_hash: Transaction that emitted the event
        log_index: Position of the log inside its block
        block_number: Block where the event was emitted
    """
    user_address: str
    amount: Decimal
    on_chain_id: int | None
    tx_hash: str
    log_index: int
    block_number: int

    EVENT_NAME = "UpdateUserBalanceEvent"

    @classmethod
    def from_event(cls, event: Mapping[str, Any], decimals: int = DEFAULT_AMOUNT_DECIMALS) -> "UpdateUserBalanceEvent":
        """
        Build the variant from decoded event data.

        Raises:
            MalformedEventError: If a required field is missing or invalid
        """
        args: Mapping[str, Any] = event.get('args') or {}
        on_chain_id = args.get('id')
        if on_chain_id is not None:
            on_chain_id = _require_uint(args, 'id')

        return cls(
            user_address=_require_address(args, 'userAddress'),
            amount=parse_amount(args.get('value'), decimals),
            on_chain_id=on_chain_id,
            tx_hash=_format_tx_hash(event.get('transactionHash')),
            log_index=event.get('logIndex') or 0,
            block_number=event.get('blockNumber') or 0,
        )

    @property
    def unique_key(self) -> tuple[str, int]:
        return (self.tx_hash, self.log_index)

    def to_work_item(self) -> WorkItem:
        return WorkItem(
            user_address=self.user_address,
            amount=self.amount,
            on_chain_id=self.on_chain_id,
        )


@dataclass(frozen=True, slots=True)
class SetUserBalanceEvent:
    """
    Notification that a balance was settled on-chain. Audit only.

    Attributes:
        balance: Total balance recorded by the contract
        user_address: Address whose balance was set
        amount: Event value scaled by the token decimals
        tx_hash: Transaction that emitted the event
        log_index: Position of the log inside its block
        block_number: Block where the event was emitted
    """
    balance: int
    user_address: str
    amount: Decimal
    tx_hash: str
    log_index: int
    block_number: int

    EVENT_NAME = "SetUserBalanceEvent"

    @classmethod
    def from_event(cls, event: Mapping[str, Any], decimals: int = DEFAULT_AMOUNT_DECIMALS) -> "SetUserBalanceEvent":
        """
        Build the variant from decoded event data.

        Raises:
            MalformedEventError: If a required field is missing or invalid
        """
        args: Mapping[str, Any] = event.get('args') or {}
        return cls(
            balance=_require_uint(args, 'userBalance'),
            user_address=_require_address(args, 'userAddress'),
            amount=parse_amount(args.get('value'), decimals),
            tx_hash=_format_tx_hash(event.get('transactionHash')),
            log_index=event.get('logIndex') or 0,
            block_number=event.get('blockNumber') or 0,
        )

    @property
    def unique_key(self) -> tuple[str, int]:
        return (self.tx_hash, self.log_index)
