"""
Utility Module

Logging setup, exception types, and formatting/amount helpers shared by
the rest of the bot.
"""

import os
import random
import logging
from decimal import Decimal, ROUND_DOWN
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from web3 import Web3
from rich.logging import RichHandler
from rich.console import Console


LOGGER_NAME = "faroswap"
LOG_BANNER = "=== Faroswap Automated Log Start ==="

# Global console for Rich output
console = Console()


class FaroswapError(Exception):
    """Base exception for bot failures."""
    pass


class TransactionError(FaroswapError):
    """Custom exception for transaction failures."""
    pass


class TransactionRevertedError(TransactionError):
    """The transaction reverted on-chain, or would revert on submission."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ReceiptTimeoutError(TransactionError):
    """No receipt was obtained within the polling budget."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class RouteError(FaroswapError):
    """The routing API answered but could not provide a route."""
    pass


class InputFileError(FaroswapError):
    """A required input file is missing or has no usable entries."""
    pass


class SecureLogger:
    """
    Logger that redacts registered secrets from log messages.

    Private keys are registered as they are loaded, so an error message
    that echoes a key never reaches the console or the log file.
    """

    REDACTED = "[PRIVATE_KEY_REDACTED]"

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._secrets: List[str] = []

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def add_secret(self, secret: str):
        """Register a value that must never be logged."""
        if not secret:
            return
        bare = secret[2:] if secret.lower().startswith("0x") else secret
        if bare and bare not in self._secrets:
            self._secrets.append(bare)

    def _sanitize(self, msg) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)
        for secret in self._secrets:
            if secret in msg:
                msg = msg.replace("0x" + secret, self.REDACTED).replace(secret, self.REDACTED)
        return msg

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


# Global secure logger; handlers are attached by setup_logging()
logger = SecureLogger(logging.getLogger(LOGGER_NAME))


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = "faroswap.log") -> SecureLogger:
    """
    Setup console and file logging for the bot.

    The console shows INFO and above through Rich. The log file receives
    everything down to DEBUG, including per-attempt retry failures, and is
    truncated and started with a banner line on every call.
    """
    base = logger.logger
    base.setLevel(logging.DEBUG)

    # Remove existing handlers
    for handler in list(base.handlers):
        base.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(getattr(logging, log_level.upper()))
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    base.addHandler(rich_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        with open(log_path, "w", encoding="utf-8") as f:
            f.write(LOG_BANNER + "\n")

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        base.addHandler(file_handler)

    return logger


# Amount utilities

def random_native_amount(
    min_amount: float = 0.0001,
    max_amount: float = 0.01,
    decimals: int = 6,
    rng: Optional[random.Random] = None,
) -> Decimal:
    """
    Draw a uniform random amount in [min_amount, max_amount].

    The result is rounded to `decimals` places and clamped so rounding can
    never push it outside the range.
    """
    rng = rng or random
    quantum = Decimal(1).scaleb(-decimals)
    low = Decimal(str(min_amount)).quantize(quantum)
    high = Decimal(str(max_amount)).quantize(quantum)
    value = Decimal(str(rng.uniform(min_amount, max_amount))).quantize(quantum)
    return min(max(value, low), high)


def percent_of(amount: int, percent: int) -> int:
    """Integer floor of amount * percent / 100."""
    return amount * percent // 100


def to_base_units(amount: Decimal, decimals: int = 18) -> int:
    """Convert a human amount to the token's smallest unit."""
    return int((Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))


# Formatting utilities

def format_units(amount: int, decimals: int = 18) -> str:
    """Format a smallest-unit amount as a plain decimal string."""
    if amount == 0:
        return "0"
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return format(value.normalize(), "f")


def format_address(address: str, length: int = 6) -> str:
    """Format Ethereum address with ellipsis."""
    if len(address) <= length * 2 + 2:
        return address
    return f"{address[:length + 2]}...{address[-length:]}"


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m" if minutes > 0 else f"{hours}h"


# Validation utilities

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def validate_rpc_url(url: str) -> bool:
    """RPC URLs must be http(s) with a host."""
    if not isinstance(url, str):
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_private_key(key: str) -> bool:
    """Validate private key format."""
    if not key:
        return False

    key_clean = key[2:] if key.startswith("0x") else key

    if len(key_clean) != 64:
        return False

    try:
        int(key_clean, 16)
        return True
    except ValueError:
        return False


def validate_address(address: str) -> bool:
    """Validate Ethereum address format."""
    if not address:
        return False
    return Web3.is_address(address)


def non_blank_lines(lines: Iterable[str]) -> List[str]:
    """Strip lines and drop the empty ones."""
    return [line.strip() for line in lines if line.strip()]
