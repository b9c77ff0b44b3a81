"""
Input file loaders for wallets and recipients.

wallets.txt holds one ``privateKey[,proxyURL]`` per line; recipients.txt
holds one address per line. Blank lines are ignored in both.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from web3 import Web3

from utils import logger, InputFileError, non_blank_lines, validate_private_key, validate_address


@dataclass(frozen=True)
class WalletRecord:
    """A wallet to run, with the proxy its HTTP calls should use."""
    private_key: str
    proxy: str = ""

    @property
    def has_proxy(self) -> bool:
        return bool(self.proxy)

    def __repr__(self) -> str:
        return f"WalletRecord(private_key='***', proxy={self.proxy!r})"


def _read_lines(path: str) -> List[str]:
    file_path = Path(path)
    if not file_path.exists():
        raise InputFileError(f"File {file_path} not found")
    with open(file_path, "r", encoding="utf-8") as f:
        return non_blank_lines(f.read().splitlines())


def parse_wallet_line(line: str) -> WalletRecord:
    """Split a ``key,proxy`` line; the proxy part is optional."""
    private_key, _, proxy = line.partition(",")
    private_key = private_key.strip()
    if private_key and not private_key.startswith("0x"):
        private_key = "0x" + private_key
    return WalletRecord(private_key=private_key, proxy=proxy.strip())


def load_wallets(path: str = "wallets.txt") -> List[WalletRecord]:
    """Load all wallet records from file, skipping malformed keys."""
    wallets = []
    for line_no, line in enumerate(_read_lines(path), start=1):
        record = parse_wallet_line(line)
        if not validate_private_key(record.private_key):
            logger.warning(f"Skipping entry {line_no} in {path}: malformed private key")
            continue
        logger.add_secret(record.private_key)
        wallets.append(record)

    if wallets:
        logger.info(f"Loaded {len(wallets)} wallets from {path}")
    else:
        logger.error(f"❌ No wallets found in {path}")
    return wallets


def load_recipients(path: str = "recipients.txt") -> List[str]:
    """Load recipient addresses, checksummed, skipping malformed ones."""
    recipients = []
    for line_no, line in enumerate(_read_lines(path), start=1):
        if not validate_address(line):
            logger.warning(f"Skipping entry {line_no} in {path}: invalid address {line}")
            continue
        recipients.append(Web3.to_checksum_address(line))

    if recipients:
        logger.info(f"Loaded {len(recipients)} recipients from {path}")
    else:
        logger.error(f"❌ No recipients in {path}")
    return recipients


def format_proxy(proxy: str) -> Optional[Dict[str, str]]:
    """Format a proxy string for the requests library."""
    if not proxy:
        return None

    # Tunneling proxies are written as proxy+<url>
    if proxy.startswith("proxy+"):
        proxy = proxy[len("proxy+"):]

    if "://" not in proxy:
        proxy = f"http://{proxy}"

    return {"http": proxy, "https": proxy}
