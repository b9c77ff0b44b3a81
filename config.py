"""
Configuration Module

Network constants, the Pharos token table and runtime tuning knobs.
Every value has a default; a YAML file can override any of them.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Any, Mapping, Optional, Tuple

import yaml

from utils import LOG_LEVELS, validate_rpc_url

logger = logging.getLogger(__name__)


NATIVE_SYMBOL = "PHRS"
WRAPPED_NATIVE_SYMBOL = "WPHRS"

# DODO uses the 0xEeee... placeholder for the chain's native currency
DEFAULT_TOKENS = {
    "PHRS": "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE",
    "WBTC": "0x8275c526d1bCEc59a31d673929d3cE8d108fF5c7",
    "WETH": "0x4E28826d32F1C398DED160DC16Ac6873357d048f",
    "USDC": "0x72df0bcd7276f2dFbAc900D1CE63c272C4BCcCED",
    "USDT": "0xD4071393f8716661958F766DF660033b3d35fD29",
    "WPHRS": "0x3019B247381c850ab53Dc0EE53bCe7A07Ea9155f",
}

DEFAULT_SWAP_TOKENS = ("WBTC", "WETH", "USDC", "USDT", "WPHRS")


def _as_tuple(value) -> Tuple[str, ...]:
    # A single YAML scalar means a one-element list; an empty key means none
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class Config:
    """Bot configuration settings."""

    # Network
    rpc_urls: Tuple[str, ...] = ("https://testnet.dplabs-internal.com",)
    chain_id: int = 688688
    rpc_timeout_seconds: float = 30.0
    explorer_url: str = "https://testnet.pharosscan.xyz/tx/"

    # Tokens
    tokens: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_TOKENS))
    swap_tokens: Tuple[str, ...] = DEFAULT_SWAP_TOKENS
    native_symbol: str = NATIVE_SYMBOL
    wrapped_native_symbol: str = WRAPPED_NATIVE_SYMBOL

    # DODO route service
    route_api_url: str = "https://api.dodoex.io/route-service/v2/widget/getdodoroute"
    route_api_key: str = "a37546505892e1a952"
    route_source: str = "dodoV2AndMixWasm"
    slippage_percent: float = 3.225
    route_deadline_seconds: int = 600
    http_timeout_seconds: float = 10.0

    # Amounts
    min_native_amount: float = 0.0001
    max_native_amount: float = 0.01
    amount_decimals: int = 6
    swap_back_percent: int = 90
    default_gas_limit: int = 300000
    approve_before_swap_back: bool = True

    # Retries
    max_retries: int = 10
    retry_delay_seconds: float = 1.2
    receipt_poll_attempts: int = 20
    receipt_poll_delay_seconds: float = 4.0
    refetch_route_on_retry: bool = True

    # Pacing
    post_tx_delay_seconds: float = 1.0
    wallet_delay_seconds: float = 2.0
    pass_interval_seconds: float = 4 * 60 * 60

    # Files and logging
    wallets_file: str = "wallets.txt"
    recipients_file: str = "recipients.txt"
    log_file: str = "faroswap.log"
    log_level: str = "INFO"

    def __post_init__(self):
        # Freeze the token table so a shared Config cannot be mutated
        object.__setattr__(self, "tokens", MappingProxyType(dict(self.tokens)))
        object.__setattr__(self, "rpc_urls", _as_tuple(self.rpc_urls))
        object.__setattr__(self, "swap_tokens", _as_tuple(self.swap_tokens))

    @property
    def rpc_url(self) -> str:
        return self.rpc_urls[0]

    @property
    def native_address(self) -> str:
        return self.tokens[self.native_symbol]

    def token_address(self, symbol: str) -> str:
        """Look up a token address by symbol."""
        try:
            return self.tokens[symbol]
        except KeyError:
            raise KeyError(f"Unknown token symbol: {symbol}") from None

    def validate(self) -> "Config":
        """Raise ValueError for settings the bot cannot run with."""
        if not self.rpc_urls:
            raise ValueError("At least one RPC URL is required")
        bad_urls = [url for url in self.rpc_urls if not validate_rpc_url(url)]
        if bad_urls:
            raise ValueError(f"Invalid RPC URL: {bad_urls[0]}")
        if str(self.log_level).upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level}")
        if self.min_native_amount <= 0 or self.min_native_amount > self.max_native_amount:
            raise ValueError(
                f"Invalid native amount range: {self.min_native_amount} - {self.max_native_amount}"
            )
        if not 1 <= self.swap_back_percent <= 100:
            raise ValueError(f"swap_back_percent must be 1..100, got {self.swap_back_percent}")
        if self.max_retries < 1 or self.receipt_poll_attempts < 1:
            raise ValueError("Retry budgets must be at least 1")
        missing = [s for s in (self.native_symbol, *self.swap_tokens) if s not in self.tokens]
        if missing:
            raise ValueError(f"Token addresses missing for: {', '.join(missing)}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary suitable for YAML."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, Mapping):
                value = dict(value)
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


def load_config(path: Optional[str] = None, **overrides) -> Config:
    """
    Build a Config from an optional YAML file plus keyword overrides.

    Overrides whose value is None are ignored so argparse defaults can be
    passed straight through.
    """
    data: Dict[str, Any] = {}
    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")
        unknown = sorted(set(loaded) - set(Config.__dataclass_fields__))
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        data.update(loaded)

    config = Config.from_dict(data)
    changes = {k: v for k, v in overrides.items() if v is not None}
    if changes:
        config = replace(config, **changes)
    return config.validate()


def write_default_config(path: str) -> Path:
    """Write the default configuration template, refusing to overwrite."""
    config_path = Path(path)
    if config_path.exists():
        raise FileExistsError(f"Config file already exists: {config_path}")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG.lstrip())
    logger.info(f"Default configuration written to {config_path}")
    return config_path


# Default configuration template
DEFAULT_CONFIG = """
# Faroswap Bot Configuration
# Any key left out falls back to the built-in default.

rpc_urls:
  - https://testnet.dplabs-internal.com
chain_id: 688688

# Route service
slippage_percent: 3.225
route_deadline_seconds: 600
http_timeout_seconds: 10

# Random PHRS amount range for swaps and transfers
min_native_amount: 0.0001
max_native_amount: 0.01
swap_back_percent: 90

# Retries
max_retries: 10
retry_delay_seconds: 1.2
receipt_poll_attempts: 20
receipt_poll_delay_seconds: 4
refetch_route_on_retry: true

# Pacing (seconds)
wallet_delay_seconds: 2
pass_interval_seconds: 14400

# Files
wallets_file: wallets.txt
recipients_file: recipients.txt
log_file: faroswap.log
log_level: INFO
"""
