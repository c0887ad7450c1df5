import json
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder


class ContractUtility:
    """
    Utility for contract interaction and ABI loading.

    Can be used in two modes:
    1. Full mode: Initialize with an RPC URL and secret for signed transactions
    2. ABI-only mode: Initialize with empty strings to just load ABIs
    """

    def __init__(self, rpc_url: str = "", secret: str = "", request_timeout: int = 30):
        """
        Initialize the ContractUtility.

        Args:
            rpc_url: JSON-RPC endpoint (optional for ABI-only mode)
            secret: Private key for transactions (optional for ABI-only mode)
            request_timeout: HTTP request timeout in seconds
        """
        self.network = rpc_url or None
        self.request_timeout = request_timeout
        self.account: LocalAccount | None = None

        if rpc_url and secret:
            self.w3 = self.setup_web3_middleware(secret)
        else:
            self.w3 = None

    def setup_web3_middleware(self, secret: str) -> Web3:
        """Build an HTTP provider that signs outgoing transactions with the given key."""
        account: LocalAccount = Account.from_key(secret)
        provider = Web3.HTTPProvider(self.network, request_kwargs={'timeout': self.request_timeout})
        w3 = Web3(provider)
        w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(account))
        w3.eth.default_account = account.address
        self.account = account
        return w3

    def get_contract(self, address: str, abi: list) -> Contract:
        """Bind a contract instance to the connected provider."""
        if self.w3 is None:
            raise RuntimeError("ContractUtility was created in ABI-only mode")
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def get_contract_abi(self, contract_name: str, abi_path: str | None = None) -> list:
        """Fetches ABI of the given contract from the contracts folder, or from abi_path"""
        contract_path = (
            Path(abi_path)
            if abi_path
            else Path(__file__).parent.parent.parent.parent
            / "contracts"
            / f"{contract_name}.json"
        ).resolve()

        with contract_path.open() as file:
            contract_data = json.load(file)

        # Accept both artifact files and bare ABI arrays
        if isinstance(contract_data, list):
            return contract_data
        return contract_data["abi"]
