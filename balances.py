"""
Balance fetching with per-token degradation.

A token whose balance or decimals cannot be read after retries is
reported as unavailable (balance 0, decimals 18, error set) instead of
failing the whole snapshot.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, Optional

from config import Config
from retry import retry_async, retry_kwargs
from utils import logger, format_units

FALLBACK_DECIMALS = 18


@dataclass(frozen=True)
class TokenBalance:
    balance: int
    decimals: int = FALLBACK_DECIMALS
    error: Optional[str] = None

    @classmethod
    def unavailable(cls, error: str) -> "TokenBalance":
        return cls(balance=0, decimals=FALLBACK_DECIMALS, error=error)

    @property
    def available(self) -> bool:
        return self.error is None

    @property
    def formatted(self) -> str:
        return format_units(self.balance, self.decimals) if self.available else "unavailable"


@dataclass
class BalanceSnapshot:
    """Native balance plus one entry per tracked token."""
    native: TokenBalance
    tokens: Dict[str, TokenBalance] = field(default_factory=dict)

    def __getitem__(self, symbol: str) -> TokenBalance:
        return self.tokens[symbol]

    @property
    def unavailable(self) -> Dict[str, str]:
        missing = {s: b.error for s, b in self.tokens.items() if not b.available}
        if not self.native.available:
            missing["native"] = self.native.error
        return missing


async def fetch_native_balance(wallet, config: Config) -> TokenBalance:
    try:
        balance = await retry_async(
            lambda: asyncio.to_thread(wallet.get_native_balance),
            label="Native Balance",
            **retry_kwargs(config)
        )
    except Exception as e:
        logger.warning(f"[{wallet.address}] {config.native_symbol} balance: Error fetching ({e})")
        return TokenBalance.unavailable(str(e))

    result = TokenBalance(balance=int(balance), decimals=18)
    logger.info(f"[{wallet.address}] {config.native_symbol} balance: {result.formatted}")
    return result


async def fetch_token_balance(wallet, symbol: str, config: Config) -> TokenBalance:
    """Read balance and decimals concurrently, each with its own retries."""
    address = config.token_address(symbol)
    balance, decimals = await asyncio.gather(
        retry_async(
            lambda: asyncio.to_thread(wallet.get_token_balance, address),
            label=f"{symbol} ERC20 Balance",
            **retry_kwargs(config)
        ),
        retry_async(
            lambda: asyncio.to_thread(wallet.get_token_decimals, address),
            label=f"{symbol} ERC20 Decimals",
            **retry_kwargs(config)
        ),
        return_exceptions=True,
    )

    for outcome in (balance, decimals):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning(f"[{wallet.address}] {symbol} balance/decimals error: {outcome}")
            return TokenBalance.unavailable(str(outcome))

    result = TokenBalance(balance=int(balance), decimals=int(decimals))
    logger.info(f"[{wallet.address}] {symbol} balance: {result.formatted}")
    return result


async def fetch_balances(wallet, config: Config) -> BalanceSnapshot:
    """Snapshot the native balance and every configured swap token."""
    native = await fetch_native_balance(wallet, config)
    tokens = {}
    for symbol in config.swap_tokens:
        tokens[symbol] = await fetch_token_balance(wallet, symbol, config)
    return BalanceSnapshot(native=native, tokens=tokens)
