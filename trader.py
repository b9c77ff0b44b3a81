"""
Trading Sequence Module

Runs the fixed per-wallet sequence:

1. PHRS -> each swap token, a random amount per token
2. balance snapshot
3. each swap token -> PHRS, 90% of the snapshot balance
4. PHRS -> WPHRS, one more random amount
5. a random PHRS transfer to every recipient

Swap and transfer failures are logged and counted; they never stop the
sequence.
"""

import asyncio
import random
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from rich.table import Table
from rich import box

from balances import BalanceSnapshot, TokenBalance, fetch_balances
from config import Config
from executor import SwapResult, execute_swap, ensure_allowance, send_native
from utils import logger, percent_of, random_native_amount, to_base_units, format_units


@dataclass
class PassStats:
    """Counters for one pass (or one wallet) of the sequence."""
    wallets_processed: int = 0
    wallets_failed: int = 0
    swaps_attempted: int = 0
    swaps_confirmed: int = 0
    swaps_failed: int = 0
    swaps_skipped: int = 0
    transfers_attempted: int = 0
    transfers_sent: int = 0
    transfers_failed: int = 0

    @property
    def operations(self) -> int:
        """Swaps and transfers actually attempted."""
        return self.swaps_attempted + self.transfers_attempted

    def record_swap(self, result: Optional[SwapResult]):
        self.swaps_attempted += 1
        if result is not None and result.success:
            self.swaps_confirmed += 1
        else:
            self.swaps_failed += 1

    def record_transfer(self, success: bool):
        self.transfers_attempted += 1
        if success:
            self.transfers_sent += 1
        else:
            self.transfers_failed += 1

    def merge(self, other: "PassStats"):
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        data["operations"] = self.operations
        return data

    def get_stats_table(self, title: str = "Pass Statistics") -> Table:
        """Get a Rich table with the counters."""
        table = Table(title=title, box=box.ROUNDED)

        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Wallets", f"{self.wallets_processed} ({self.wallets_failed} failed)")
        table.add_row("Swaps Attempted", str(self.swaps_attempted))
        table.add_row("Swaps Confirmed", str(self.swaps_confirmed))
        table.add_row("Swaps Failed", str(self.swaps_failed))
        table.add_row("Swaps Skipped", str(self.swaps_skipped))
        table.add_row("Transfers Sent", f"{self.transfers_sent}/{self.transfers_attempted}")
        table.add_row("Operations", str(self.operations))

        return table


class WalletRunner:
    """
    Runs the swap/transfer sequence for one wallet.

    Stateless across wallets: build a new runner per wallet per pass.
    """

    def __init__(
        self,
        wallet,
        router,
        recipients: List[str],
        config: Config,
        rng: Optional[random.Random] = None,
    ):
        self.wallet = wallet
        self.router = router
        self.recipients = recipients
        self.config = config
        self.rng = rng or random.Random()
        self.stats = PassStats()

    @property
    def address(self) -> str:
        return self.wallet.address

    def random_amount(self) -> Decimal:
        return random_native_amount(
            self.config.min_native_amount,
            self.config.max_native_amount,
            self.config.amount_decimals,
            rng=self.rng,
        )

    async def _pause(self):
        if self.config.post_tx_delay_seconds > 0:
            await asyncio.sleep(self.config.post_tx_delay_seconds)

    async def _swap(
        self,
        from_symbol: str,
        to_symbol: str,
        amount: int,
        label: str,
        approve: bool = False,
    ) -> Optional[SwapResult]:
        from_token = self.config.token_address(from_symbol)
        to_token = self.config.token_address(to_symbol)

        # Refreshed routes may name a different spender, so approval runs per route
        async def fetch():
            route = await self.router.fetch_route(from_token, to_token, self.address, amount)
            if route.res_amount is not None:
                logger.debug(f"[{self.address}] {label} quoted output: {route.res_amount}")
            if approve and self.config.approve_before_swap_back and route.target_approve_addr:
                await ensure_allowance(self.wallet, from_token, route.target_approve_addr, amount, self.config)
            return route

        try:
            route = await fetch()
            result = await execute_swap(self.wallet, route, label, self.config, refresh_route=fetch)
        except Exception as e:
            logger.error(f"[{self.address}] ❌ Swap error ({label}): {e}")
            self.stats.record_swap(None)
            return None

        self.stats.record_swap(result)
        await self._pause()
        return result

    async def swap_native_to(self, symbol: str) -> Optional[SwapResult]:
        """Swap a fresh random native amount into symbol."""
        amount = self.random_amount()
        native = self.config.native_symbol
        logger.info(f"[{self.address}] Swapping {amount} {native} to {symbol}")
        return await self._swap(native, symbol, to_base_units(amount, 18), f"{native}→{symbol}")

    async def swap_back(self, symbol: str, token_balance: TokenBalance) -> Optional[SwapResult]:
        """Swap the configured share of a token balance back to native."""
        native = self.config.native_symbol
        percent = self.config.swap_back_percent
        logger.info(f"[{self.address}] Swapping {percent}% {symbol} to {native}")

        if token_balance.balance == 0:
            logger.info(f"[{self.address}] Skip swap{percent}: {symbol} balance is 0")
            self.stats.swaps_skipped += 1
            return None

        amount = percent_of(token_balance.balance, percent)
        if amount == 0:
            logger.info(f"[{self.address}] Skip swap{percent}: {symbol} {percent}% amount is 0")
            self.stats.swaps_skipped += 1
            return None

        logger.debug(
            f"[{self.address}] {percent}% of {symbol}: {format_units(amount, token_balance.decimals)}"
        )
        return await self._swap(symbol, native, amount, f"{percent}% {symbol}→{native}", approve=True)

    async def send_to_recipients(self):
        """Send a fresh random native amount to every recipient, in order."""
        native = self.config.native_symbol
        logger.info(
            f"[{self.address}] Sending random {native} "
            f"({self.config.min_native_amount}-{self.config.max_native_amount}) to all recipients"
        )
        for to in self.recipients:
            amount = self.random_amount()
            try:
                await send_native(self.wallet, to, to_base_units(amount, 18), self.config)
            except Exception as e:
                logger.error(f"[{self.address}] ❌ Send {amount} {native} to {to} failed: {e}")
                self.stats.record_transfer(False)
                continue
            self.stats.record_transfer(True)
            await self._pause()

    async def run(self) -> PassStats:
        """Run all five steps for this wallet."""
        logger.info(f"---- Wallet start: {self.address} ----")

        for symbol in self.config.swap_tokens:
            await self.swap_native_to(symbol)

        balances: BalanceSnapshot = await fetch_balances(self.wallet, self.config)
        if balances.unavailable:
            logger.warning(
                f"[{self.address}] Balances unavailable for {', '.join(balances.unavailable)}; treated as 0"
            )

        for symbol in self.config.swap_tokens:
            await self.swap_back(symbol, balances[symbol])

        await self.swap_native_to(self.config.wrapped_native_symbol)

        await self.send_to_recipients()

        logger.info(f"---- Wallet finished: {self.address} ----")
        return self.stats
