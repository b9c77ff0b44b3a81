"""
Shared fixtures for the test suite.

Run with: pytest tests/ -v
"""

import sys
from dataclasses import replace
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Config
from dodo_router import RouteData


TEST_KEY = "0x" + "1" * 64
TX_HASH = "0x" + "ab" * 32
RECIPIENTS = [
    "0x1111111111111111111111111111111111111111",
    "0x2222222222222222222222222222222222222222",
    "0x3333333333333333333333333333333333333333",
]


@pytest.fixture
def fast_config():
    """Default config with every pause set to zero."""
    return replace(
        Config(),
        retry_delay_seconds=0,
        receipt_poll_delay_seconds=0,
        post_tx_delay_seconds=0,
        wallet_delay_seconds=0,
    )


def make_wallet(address: str = "0x00000000000000000000000000000000000000aA") -> Mock:
    """A wallet double whose transactions all confirm."""
    wallet = Mock()
    wallet.address = address
    wallet.send_transaction.return_value = TX_HASH
    wallet.get_receipt.return_value = {"status": 1}
    wallet.get_native_balance.return_value = 10 ** 18
    wallet.get_token_balance.return_value = 5 * 10 ** 6
    wallet.get_token_decimals.return_value = 6
    wallet.get_allowance.return_value = 2 ** 255
    wallet.approve.return_value = TX_HASH
    return wallet


@pytest.fixture
def wallet():
    return make_wallet()


class FakeRouter:
    """Route service double that records every request."""

    def __init__(self, route: RouteData = None, error: Exception = None):
        self.route = route or RouteData(to="0x4444444444444444444444444444444444444444", data="0xdeadbeef", value=0)
        self.error = error
        self.calls = []

    async def fetch_route(self, from_token, to_token, user_address, amount):
        self.calls.append((from_token, to_token, user_address, amount))
        if self.error is not None:
            raise self.error
        return self.route


@pytest.fixture
def router():
    return FakeRouter()
