"""
Wallet Module
=============
Wraps an eth-account key and a Web3 connection to Pharos.

All methods are blocking; async callers run them through
``asyncio.to_thread``.
"""

from typing import Any, Dict, Optional

from web3 import Web3
from web3.exceptions import TransactionNotFound
from eth_account import Account

from utils import logger, validate_rpc_url


# Minimal ERC20 ABI for balance, decimals and approvals
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [
            {"name": "_owner", "type": "address"},
            {"name": "_spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_spender", "type": "address"},
            {"name": "_value", "type": "uint256"}
        ],
        "name": "approve",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function"
    }
]

MAX_UINT256 = 2 ** 256 - 1


def build_web3(rpc_url: str, timeout: float = 30.0) -> Web3:
    """Create a Web3 HTTP connection to the RPC endpoint."""
    if not validate_rpc_url(rpc_url):
        raise ValueError(f"Invalid RPC URL: {rpc_url}")
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


class PharosWallet:
    """
    A signing wallet bound to one Web3 connection.

    Transactions are built with a pending nonce, the node's gas price and
    the configured chain id, signed locally and sent raw.
    """

    def __init__(self, private_key: str, web3: Web3, chain_id: int):
        self.web3 = web3
        self.chain_id = chain_id
        self._account = Account.from_key(private_key)
        self.address = self._account.address

    def __repr__(self) -> str:
        return f"PharosWallet({self.address})"

    def token_contract(self, token_address: str):
        return self.web3.eth.contract(
            address=Web3.to_checksum_address(token_address),
            abi=ERC20_ABI
        )

    # Reads

    def get_native_balance(self) -> int:
        """Native balance in wei."""
        return self.web3.eth.get_balance(self.address)

    def get_token_balance(self, token_address: str) -> int:
        """ERC20 balance in the token's smallest unit."""
        return self.token_contract(token_address).functions.balanceOf(self.address).call()

    def get_token_decimals(self, token_address: str) -> int:
        return self.token_contract(token_address).functions.decimals().call()

    def get_allowance(self, token_address: str, spender: str) -> int:
        return self.token_contract(token_address).functions.allowance(
            self.address, Web3.to_checksum_address(spender)
        ).call()

    def get_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt for tx_hash, or None while it is still pending."""
        try:
            return self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    # Writes

    def _base_tx(self) -> Dict[str, Any]:
        return {
            "from": self.address,
            "nonce": self.web3.eth.get_transaction_count(self.address, "pending"),
            "gasPrice": self.web3.eth.gas_price,
            "chainId": self.chain_id,
        }

    def _sign_and_send(self, tx: Dict[str, Any]) -> str:
        signed = self._account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return self.web3.to_hex(tx_hash)

    def send_transaction(
        self,
        to: str,
        value: int = 0,
        data: Optional[str] = None,
        gas: Optional[int] = None,
    ) -> str:
        """
        Sign and submit a transaction.

        Args:
            to: Target address
            value: Native value in wei
            data: Hex call data, if any
            gas: Gas limit; estimated by the node when omitted

        Returns:
            Transaction hash as hex string
        """
        tx = self._base_tx()
        tx["to"] = Web3.to_checksum_address(to)
        tx["value"] = int(value)
        if data:
            tx["data"] = data
        tx["gas"] = int(gas) if gas else self.web3.eth.estimate_gas(tx)
        return self._sign_and_send(tx)

    def approve(self, token_address: str, spender: str, amount: int = MAX_UINT256) -> str:
        """Approve spender to move amount of token; returns the tx hash."""
        params = self._base_tx()
        tx = self.token_contract(token_address).functions.approve(
            Web3.to_checksum_address(spender), amount
        ).build_transaction(params)
        logger.debug(f"[{self.address}] Approve {spender} for {token_address}")
        return self._sign_and_send(tx)
