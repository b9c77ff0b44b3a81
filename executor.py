"""
Transaction execution: swaps, native transfers and receipt polling.

A swap is resubmitted only after transient submission errors. A revert,
whether reported at submission or in the receipt, ends the swap, and so
does a receipt that never shows up.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from config import Config
from dodo_router import RouteData
from retry import attempt_async, is_revert_error, unless_revert, retry_kwargs, RetryStatus
from utils import logger, format_units, ReceiptTimeoutError, RouteError, TransactionRevertedError


class SwapStatus(Enum):
    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    RECEIPT_TIMEOUT = "receipt_timeout"
    FAILED = "failed"


@dataclass
class SwapResult:
    label: str
    status: SwapStatus
    attempts: int
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is SwapStatus.CONFIRMED


async def wait_for_receipt(
    wallet,
    tx_hash: str,
    attempts: int = 20,
    delay: float = 4.0,
) -> Dict[str, Any]:
    """
    Poll for a receipt until one arrives or the poll budget runs out.

    A failed poll is logged and polling continues.

    Raises:
        ReceiptTimeoutError: no receipt after ``attempts`` polls
    """
    last_error: Optional[Exception] = None
    for i in range(1, attempts + 1):
        try:
            receipt = await asyncio.to_thread(wallet.get_receipt, tx_hash)
            if receipt is not None:
                return receipt
        except Exception as e:
            last_error = e
            logger.warning(f"[{tx_hash}] Receipt poll {i}/{attempts} failed: {e}")
        if i < attempts:
            await asyncio.sleep(delay)

    message = f"Timeout waiting for receipt for {tx_hash}"
    if last_error is not None:
        message = f"{message} (last error: {last_error})"
    raise ReceiptTimeoutError(message, tx_hash=tx_hash)


def _receipt_reverted(receipt: Dict[str, Any]) -> bool:
    return receipt["status"] == 0


def _is_resubmittable(exc: BaseException) -> bool:
    if isinstance(exc, (ReceiptTimeoutError, RouteError)):
        return False
    return unless_revert(exc)


async def execute_swap(
    wallet,
    route: RouteData,
    label: str,
    config: Config,
    refresh_route: Optional[Callable[[], Awaitable[RouteData]]] = None,
) -> SwapResult:
    """
    Submit a routed swap and wait for it to confirm.

    Args:
        wallet: PharosWallet (or anything with send_transaction/get_receipt)
        route: Payload from the route service
        label: Human-readable name for the log, e.g. "PHRS→USDC"
        config: Retry budgets and the default gas limit
        refresh_route: Fetches a new route before each resubmission

    Returns:
        SwapResult describing how the swap ended
    """
    state = {"route": route, "tx_hash": None, "submissions": 0}

    async def submit_and_confirm() -> str:
        if state["submissions"] and refresh_route is not None and config.refetch_route_on_retry:
            try:
                state["route"] = await refresh_route()
            except Exception as e:
                raise RouteError(f"Route refresh failed: {e}") from e

        current: RouteData = state["route"]
        state["submissions"] += 1
        tx_hash = await asyncio.to_thread(
            wallet.send_transaction,
            current.to,
            current.value,
            current.data,
            current.gas_limit or config.default_gas_limit,
        )
        state["tx_hash"] = tx_hash
        logger.info(f"[{wallet.address}] 🚀 {label} Swap TX sent: {tx_hash}")

        receipt = await wait_for_receipt(
            wallet, tx_hash, config.receipt_poll_attempts, config.receipt_poll_delay_seconds
        )
        if _receipt_reverted(receipt):
            raise TransactionRevertedError(f"TX reverted on-chain (status 0): {tx_hash}", tx_hash=tx_hash)
        return tx_hash

    outcome = await attempt_async(
        submit_and_confirm,
        label=f"[{wallet.address}] {label} Swap TX",
        is_retryable=_is_resubmittable,
        **retry_kwargs(config)
    )

    if outcome.ok:
        logger.info(f"[{wallet.address}] ✅ TX confirmed: {config.explorer_url}{outcome.value}")
        return SwapResult(label, SwapStatus.CONFIRMED, outcome.attempts, tx_hash=outcome.value)

    error = outcome.error
    if outcome.status is RetryStatus.TERMINAL and isinstance(error, ReceiptTimeoutError):
        logger.error(
            f"[{wallet.address}] ❌ Failed to get receipt after {config.receipt_poll_attempts} tries: {error}"
        )
        status = SwapStatus.RECEIPT_TIMEOUT
    elif outcome.status is RetryStatus.TERMINAL and is_revert_error(error):
        logger.error(f"[{wallet.address}] ❌ Swap failed (on-chain revert, not retrying): {error}")
        status = SwapStatus.REVERTED
    else:
        logger.error(f"[{wallet.address}] ❌ Swap final error: {error}")
        status = SwapStatus.FAILED

    return SwapResult(label, status, outcome.attempts, tx_hash=state["tx_hash"], error=str(error))


async def send_native(wallet, to: str, amount_wei: int, config: Config) -> str:
    """
    Transfer native currency and wait for the receipt.

    Submission and confirmation are retried together; a revert is not.

    Returns:
        Hash of the confirmed transaction
    """
    async def transfer() -> str:
        tx_hash = await asyncio.to_thread(wallet.send_transaction, to, amount_wei)
        logger.info(
            f"[{wallet.address}] Sent {format_units(amount_wei)} {config.native_symbol} to {to} | TX: {tx_hash}"
        )
        receipt = await wait_for_receipt(
            wallet, tx_hash, config.receipt_poll_attempts, config.receipt_poll_delay_seconds
        )
        if _receipt_reverted(receipt):
            raise TransactionRevertedError(f"Transfer reverted on-chain: {tx_hash}", tx_hash=tx_hash)
        return tx_hash

    outcome = await attempt_async(
        transfer,
        label=f"[{wallet.address}] Send {config.native_symbol}",
        is_retryable=unless_revert,
        **retry_kwargs(config)
    )
    return outcome.unwrap()


async def ensure_allowance(wallet, token_address: str, spender: str, amount: int, config: Config) -> Optional[str]:
    """
    Approve spender for token when the current allowance is below amount.

    Returns:
        Approval tx hash, or None when no approval was needed
    """
    allowance = await attempt_async(
        lambda: asyncio.to_thread(wallet.get_allowance, token_address, spender),
        label=f"[{wallet.address}] Allowance",
        **retry_kwargs(config)
    )
    if allowance.ok and int(allowance.value) >= amount:
        return None

    tx_hash = await asyncio.to_thread(wallet.approve, token_address, spender)
    logger.info(f"[{wallet.address}] Approval TX sent: {tx_hash}")
    receipt = await wait_for_receipt(
        wallet, tx_hash, config.receipt_poll_attempts, config.receipt_poll_delay_seconds
    )
    if _receipt_reverted(receipt):
        raise TransactionRevertedError(f"Approval reverted on-chain: {tx_hash}", tx_hash=tx_hash)
    return tx_hash
