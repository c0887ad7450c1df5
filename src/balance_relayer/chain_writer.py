"""Balance update submission for the balance relayer.

This module submits the balance correction call to the balance oracle
contract and waits for the receipt, so a reverted transaction is reported as
a failure rather than silently accepted.
"""

import asyncio
import logging
from typing import Any

from web3 import Web3
from web3.contract import Contract
from web3.types import HexBytes, TxParams, TxReceipt

from .errors import ChainWriteError
from .models import DEFAULT_AMOUNT_DECIMALS, WorkItem, to_base_units

logger = logging.getLogger(__name__)


class ChainWriter:
    """Handles balance update transactions to the balance oracle contract."""

    DEFAULT_METHOD = "setUserBalance"

    def __init__(
        self,
        contract: Contract,
        method_name: str = DEFAULT_METHOD,
        caller_address: str | None = None,
        amount_decimals: int = DEFAULT_AMOUNT_DECIMALS,
        gas_limit: int | None = None,
        receipt_timeout: int = 120,
    ) -> None:
        """
        Initialize the ChainWriter.

        Args:
            contract: Contract instance bound to a signing provider
            method_name: Contract method that commits the balance
            caller_address: Optional caller (bank) address passed to the method
            amount_decimals: Decimals used to convert amounts back to base units
            gas_limit: Fixed gas limit, or None to let the node estimate
            receipt_timeout: Seconds to wait for the transaction receipt

        Raises:
            ValueError: If the method is missing from the ABI or its inputs
                cannot be filled with the configured arguments
        """
        input_counts = self.method_input_counts(contract, method_name)
        if not input_counts:
            raise ValueError(f"Method {method_name} not found in contract ABI")

        self.contract = contract
        self.method_name = method_name
        self.input_counts = input_counts
        self.caller_address = Web3.to_checksum_address(caller_address) if caller_address else None

        # balance, user and amount, plus the caller when set; the id is optional per item
        fixed = 4 if self.caller_address else 3
        if not input_counts & {fixed, fixed + 1}:
            counts = ', '.join(str(c) for c in sorted(input_counts))
            hint = " Set BANK_ADDRESS to pass the caller address." if not self.caller_address else ""
            raise ValueError(
                f"{method_name} takes {counts} argument(s) but the writer builds "
                f"{fixed} or {fixed + 1}.{hint}"
            )

        self.amount_decimals = amount_decimals
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout

        self.writes_submitted = 0
        self.writes_failed = 0

        logger.info(f"ChainWriter initialized for {contract.address}.{method_name}")
        if self.caller_address:
            logger.info(f"  Caller Address: {self.caller_address}")

    @staticmethod
    def method_input_counts(contract: Contract, method_name: str) -> set[int]:
        """Input counts of every ABI overload named method_name."""
        return {
            len(entry.get('inputs', []))
            for entry in contract.abi
            if entry.get('type') == 'function' and entry.get('name') == method_name
        }

    def build_call_args(self, balance: int, item: WorkItem) -> list[Any]:
        """
        Arrange the call arguments.

        Layout: balance, user, [caller], [on-chain id], amount in base units.

        Raises:
            ValueError: If no overload of the method takes this many arguments
        """
        args: list[Any] = [balance, Web3.to_checksum_address(item.user_address)]
        if self.caller_address:
            args.append(self.caller_address)
        if item.on_chain_id is not None:
            args.append(item.on_chain_id)
        args.append(to_base_units(item.amount, self.amount_decimals))

        if len(args) not in self.input_counts:
            raise ValueError(
                f"{self.method_name} does not take {len(args)} arguments "
                f"(on-chain id {'set' if item.on_chain_id is not None else 'missing'})"
            )
        return args

    def _transact(self, args: list[Any]) -> str:
        w3 = self.contract.w3
        tx_params: TxParams = {}
        if self.gas_limit:
            tx_params['gas'] = self.gas_limit

        function = getattr(self.contract.functions, self.method_name)
        tx_hash: HexBytes = function(*args).transact(tx_params)
        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"Transaction submitted: {tx_hex}")

        receipt: TxReceipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        if (status := receipt.get('status', 0)) != 1:
            raise ChainWriteError(f"Transaction {tx_hex} reverted with status={status}", tx_hash=tx_hex)

        logger.info(f"Transaction confirmed in block {receipt.get('blockNumber')}")
        return tx_hex

    async def set_user_balance(self, balance: int, item: WorkItem) -> str:
        """
        Commit a balance for a work item.

        Args:
            balance: Authoritative balance in base units
            item: Work item being processed

        Returns:
            The transaction hash

        Raises:
            ChainWriteError: If the transaction cannot be sent or reverts
        """
        try:
            args = self.build_call_args(balance, item)
            logger.info(f"Calling {self.method_name} with balance {balance} for {item.user_address}")
            tx_hash = await asyncio.to_thread(self._transact, args)
        except ChainWriteError as e:
            self.writes_failed += 1
            logger.error(f"Error encountered while calling {self.method_name}: {e}")
            raise
        except Exception as e:
            self.writes_failed += 1
            logger.error(f"Error encountered while calling {self.method_name}: {e}")
            raise ChainWriteError(f"{self.method_name} failed for {item.user_address}: {e}") from e

        self.writes_submitted += 1
        return tx_hash

    def get_stats(self) -> dict:
        return {
            'writes_submitted': self.writes_submitted,
            'writes_failed': self.writes_failed,
        }
