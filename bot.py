#!/usr/bin/env python3
"""
Faroswap Bot
============
Runs the swap/transfer sequence for every wallet in wallets.txt on
Pharos testnet, then sleeps four hours and starts over.

Usage:
    python bot.py run [--config bot_config.yaml] [--once]
    python bot.py balance
    python bot.py init-config
"""

import asyncio
import signal
import sys
from datetime import datetime
from typing import Callable, List, Optional

from rich.panel import Panel
from rich.table import Table
from rich import box

from balances import fetch_balances
from config import Config, load_config, write_default_config
from dodo_router import DodoRouter
from loaders import WalletRecord, load_wallets, load_recipients
from trader import PassStats, WalletRunner
from utils import logger, console, setup_logging, format_address, format_duration, InputFileError
from wallet import PharosWallet, build_web3


class FaroswapBot:
    """
    Main loop: process every wallet in file order, then sleep.

    ``stop()`` sets an event that is checked between wallets and cuts
    short the pauses; a wallet already running is allowed to finish.
    """

    def __init__(
        self,
        config: Config,
        wallets: List[WalletRecord],
        recipients: List[str],
        wallet_factory: Optional[Callable[[WalletRecord], object]] = None,
        router_factory: Optional[Callable[[WalletRecord], object]] = None,
    ):
        self.config = config
        self.wallets = wallets
        self.recipients = recipients
        self._web3 = None
        self._wallet_factory = wallet_factory or self._make_wallet
        self._router_factory = router_factory or self._make_router
        self._stop_event: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._task: Optional[asyncio.Task] = None
        self.forced = False
        self.pass_count = 0
        self.total_stats = PassStats()

    def _make_wallet(self, record: WalletRecord) -> PharosWallet:
        if self._web3 is None:
            self._web3 = build_web3(self.config.rpc_url, self.config.rpc_timeout_seconds)
        return PharosWallet(record.private_key, self._web3, self.config.chain_id)

    def _make_router(self, record: WalletRecord) -> DodoRouter:
        return DodoRouter(self.config, proxy=record.proxy)

    @property
    def stopped(self) -> bool:
        return self._stop_requested

    def stop(self):
        """Ask the loop to stop after the current wallet."""
        if not self._stop_requested:
            logger.info("Stop requested, finishing current wallet...")
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()

    def request_stop(self):
        """
        Signal handler entry point.

        The first call stops after the current wallet; a second call
        cancels the wallet run in progress.
        """
        if not self._stop_requested:
            self.stop()
            return
        if self._task is not None and not self._task.done():
            logger.warning("⚠ Second stop request, abandoning current wallet")
            self.forced = True
            self._task.cancel()

    def _event(self) -> asyncio.Event:
        # Created lazily so it belongs to the running loop
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
            if self._stop_requested:
                self._stop_event.set()
        return self._stop_event

    async def _wait(self, seconds: float) -> bool:
        """Sleep unless stopped first; returns True when stopped."""
        event = self._event()
        if seconds <= 0:
            return self._stop_requested
        try:
            await asyncio.wait_for(event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._stop_requested

    async def run_wallet(self, index: int, record: WalletRecord) -> PassStats:
        """Run the sequence for one wallet; errors are logged, never raised."""
        try:
            wallet = self._wallet_factory(record)
        except Exception as e:
            logger.error(f"Wallet #{index + 1}: could not initialise: {e}")
            return PassStats(wallets_processed=1, wallets_failed=1)

        logger.info("===============================")
        logger.info(f"Wallet #{index + 1}:")
        logger.info(f" - Address: {wallet.address}")
        logger.info(f" - Proxy: {record.proxy}" if record.has_proxy else " - Proxy: (none)")
        logger.info("===============================")

        runner = WalletRunner(wallet, self._router_factory(record), self.recipients, self.config)
        try:
            stats = await runner.run()
        except Exception as e:
            logger.exception(f"[{wallet.address}] ERROR: {e}")
            stats = runner.stats
            stats.wallets_failed += 1
        stats.wallets_processed += 1
        return stats

    async def run_pass(self) -> PassStats:
        """Process every wallet once, in file order."""
        self.pass_count += 1
        logger.info(f"========== New run at {datetime.now().isoformat()} ==========")

        stats = PassStats()
        for index, record in enumerate(self.wallets):
            if self.stopped:
                break
            stats.merge(await self.run_wallet(index, record))
            if await self._wait(self.config.wallet_delay_seconds):
                break

        self.total_stats.merge(stats)
        logger.debug(f"Pass {self.pass_count} stats: {stats.to_dict()}")
        console.print(stats.get_stats_table(title=f"Pass {self.pass_count} Statistics"))
        return stats

    async def run_forever(self, max_passes: Optional[int] = None) -> PassStats:
        """
        Alternate between a pass over all wallets and the pass interval.

        Args:
            max_passes: Stop after this many passes (None = run until stopped)

        Returns:
            Accumulated statistics
        """
        self._event()
        self._task = asyncio.current_task()

        try:
            while not self.stopped:
                await self.run_pass()
                if max_passes is not None and self.pass_count >= max_passes:
                    break
                if self.stopped:
                    break
                logger.info(
                    f"✅ All wallets completed. Sleeping {format_duration(self.config.pass_interval_seconds)}..."
                )
                if await self._wait(self.config.pass_interval_seconds):
                    break
        except asyncio.CancelledError:
            if not self.forced:
                raise
        finally:
            self._task = None

        logger.info(f"Stopped after {self.pass_count} pass(es)")
        return self.total_stats


def load_inputs(config: Config):
    """Load wallets and recipients; raise InputFileError if either is empty."""
    wallets = load_wallets(config.wallets_file)
    if not wallets:
        raise InputFileError(f"No wallets found in {config.wallets_file}")
    recipients = load_recipients(config.recipients_file)
    if not recipients:
        raise InputFileError(f"No recipients in {config.recipients_file}")
    return wallets, recipients


def _install_signal_handlers(bot: FaroswapBot):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass


def _config_from_args(args) -> Config:
    return load_config(
        getattr(args, "config", None),
        wallets_file=getattr(args, "wallets", None),
        recipients_file=getattr(args, "recipients", None),
        log_file=getattr(args, "log_file", None),
    )


def run_command(args) -> int:
    try:
        config = _config_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗ Invalid configuration: {e}[/red]")
        return 1

    setup_logging(config.log_level, config.log_file)
    logger.debug(f"Configuration: {config.to_dict()}")

    try:
        wallets, recipients = load_inputs(config)
    except InputFileError as e:
        logger.error(f"❌ {e}")
        return 1

    console.print(Panel.fit(
        "[bold cyan]🤖 Faroswap Bot | Pharos Testnet[/bold cyan]\n"
        f"[dim]{len(wallets)} wallets · {len(recipients)} recipients · "
        f"every {format_duration(config.pass_interval_seconds)}[/dim]",
        box=box.DOUBLE
    ))

    bot = FaroswapBot(config, wallets, recipients)

    async def main_loop():
        _install_signal_handlers(bot)
        await bot.run_forever(max_passes=1 if args.once else None)

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Bot stopped by user[/yellow]")

    console.print(bot.total_stats.get_stats_table(title="Total Statistics"))
    return 0


def balance_command(args) -> int:
    try:
        config = _config_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗ Invalid configuration: {e}[/red]")
        return 1

    setup_logging("WARNING", None)

    try:
        wallets = load_wallets(config.wallets_file)
    except InputFileError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1
    if not wallets:
        console.print(f"[red]✗ No wallets found in {config.wallets_file}[/red]")
        return 1

    web3 = build_web3(config.rpc_url, config.rpc_timeout_seconds)

    async def collect():
        rows = []
        for record in wallets:
            wallet = PharosWallet(record.private_key, web3, config.chain_id)
            rows.append((wallet.address, await fetch_balances(wallet, config)))
        return rows

    rows = asyncio.run(collect())

    table = Table(title="Wallet Balances", box=box.ROUNDED)
    table.add_column("#", style="cyan")
    table.add_column("Address", style="dim")
    table.add_column(config.native_symbol, style="green")
    for symbol in config.swap_tokens:
        table.add_column(symbol, style="yellow")

    for idx, (address, snapshot) in enumerate(rows, start=1):
        table.add_row(
            str(idx),
            format_address(address),
            snapshot.native.formatted,
            *(snapshot[symbol].formatted for symbol in config.swap_tokens)
        )

    console.print(table)
    return 0


def init_config_command(args) -> int:
    try:
        path = write_default_config(args.path)
    except FileExistsError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1
    console.print(f"[green]✓ Configuration template written to {path}[/green]")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Faroswap Bot for Pharos Testnet")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Start the swap loop")
    run_parser.add_argument("--config", type=str, help="YAML config file")
    run_parser.add_argument("--wallets", type=str, help="Wallets file (key[,proxy] per line)")
    run_parser.add_argument("--recipients", type=str, help="Recipients file (one address per line)")
    run_parser.add_argument("--log-file", type=str, help="Log file path")
    run_parser.add_argument("--once", action="store_true", help="Run a single pass and exit")

    # Balance command
    balance_parser = subparsers.add_parser("balance", help="Check wallet balances")
    balance_parser.add_argument("--config", type=str, help="YAML config file")
    balance_parser.add_argument("--wallets", type=str, help="Wallets file")

    # Init-config command
    init_parser = subparsers.add_parser("init-config", help="Write a default config file")
    init_parser.add_argument("path", nargs="?", default="bot_config.yaml", help="Destination path")

    args = parser.parse_args(argv)

    if args.command == "run":
        return run_command(args)
    elif args.command == "balance":
        return balance_command(args)
    elif args.command == "init-config":
        return init_config_command(args)
    else:
        parser.print_help()
        return 2


if __name__ == "__main__":
    sys.exit(main())
