"""Shared fixtures and event builders for the balance relayer tests."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from web3 import Web3

from balance_relayer.utils.contract_utility import ContractUtility

USER_A = Web3.to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb7")
USER_B = Web3.to_checksum_address("0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d")


def make_update_event(address=USER_A, value=10_000_000, on_chain_id=1,
                      tx_hash="0xaaaa", log_index=0, block_number=100):
    """Build a decoded UpdateUserBalanceEvent log."""
    args = {"userAddress": address, "value": value}
    if on_chain_id is not None:
        args["id"] = on_chain_id
    return {
        "event": "UpdateUserBalanceEvent",
        "args": args,
        "transactionHash": tx_hash,
        "logIndex": log_index,
        "blockNumber": block_number,
    }


def make_set_event(address=USER_A, balance=42, value=5_000_000,
                   tx_hash="0xbbbb", log_index=0, block_number=100):
    """Build a decoded SetUserBalanceEvent log."""
    return {
        "event": "SetUserBalanceEvent",
        "args": {"userBalance": balance, "userAddress": address, "value": value},
        "transactionHash": tx_hash,
        "logIndex": log_index,
        "blockNumber": block_number,
    }


@pytest.fixture
def mock_contract():
    """Contract stand-in exposing both oracle events and a web3 handle."""
    contract = MagicMock()
    contract.address = USER_B
    contract.abi = ContractUtility().get_contract_abi("BalanceOracle")
    contract.events = SimpleNamespace(
        UpdateUserBalanceEvent=MagicMock(),
        SetUserBalanceEvent=MagicMock(),
    )
    contract.events.UpdateUserBalanceEvent.get_logs = MagicMock(return_value=[])
    contract.events.SetUserBalanceEvent.get_logs = MagicMock(return_value=[])
    contract.w3.eth.block_number = 100
    return contract
