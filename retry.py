"""
Retry Module

Fixed-delay, bounded retries for every network-facing call.

Two entry points share one tenacity loop:

- ``attempt_async`` returns a ``RetryOutcome`` that tells success,
  exhausted retries and terminal failure apart.
- ``retry_async`` returns the value or raises the last error.

A classifier decides whether an error is worth another attempt. The
default treats every ``Exception`` as transient; cancellation and
keyboard interrupts are never retried.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_fixed
from web3.exceptions import ContractLogicError

from utils import logger, TransactionRevertedError


T = TypeVar("T")

DEFAULT_ATTEMPTS = 10
DEFAULT_DELAY_SECONDS = 1.2


class RetryStatus(Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    TERMINAL = "terminal"


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a retried operation."""
    status: RetryStatus
    attempts: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is RetryStatus.SUCCESS

    def unwrap(self) -> T:
        """Return the value, or raise the error that ended the retries."""
        if self.ok:
            return self.value
        raise self.error


def is_transient(exc: BaseException) -> bool:
    """Every ordinary error is worth another attempt."""
    return isinstance(exc, Exception)


def is_revert_error(exc: BaseException) -> bool:
    """True when the error says the transaction reverted on-chain."""
    if isinstance(exc, (TransactionRevertedError, ContractLogicError)):
        return True
    if not isinstance(exc, Exception):
        return False
    # JSON-RPC errors arrive as ValueError({"code": ..., "message": ...})
    for arg in exc.args:
        if isinstance(arg, dict) and "revert" in str(arg.get("message", "")).lower():
            return True
    return "revert" in str(exc).lower()


def unless_revert(exc: BaseException) -> bool:
    """Transient unless the error is an on-chain revert."""
    return is_transient(exc) and not is_revert_error(exc)


def _log_failed_attempt(label: str, attempts: int) -> Callable[[RetryCallState], None]:
    def log_attempt(retry_state: RetryCallState):
        exc = retry_state.outcome.exception()
        logger.debug(f"{label} Retry {retry_state.attempt_number}/{attempts} failed: {exc}")
    return log_attempt


async def attempt_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_DELAY_SECONDS,
    label: str = "",
    is_retryable: Callable[[BaseException], bool] = is_transient,
) -> RetryOutcome[T]:
    """
    Run ``fn`` until it succeeds, the budget runs out, or it fails with an
    error ``is_retryable`` rejects.

    Args:
        fn: Zero-argument coroutine function
        attempts: Maximum number of calls
        delay: Fixed pause between calls, in seconds
        label: Prefix for the per-attempt log lines
        is_retryable: Classifier for transient errors

    Returns:
        RetryOutcome with the value or the last error
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception(is_retryable),
        after=_log_failed_attempt(label, attempts),
        reraise=True,
    )

    made = 0
    try:
        async for attempt in retrying:
            made = attempt.retry_state.attempt_number
            with attempt:
                value = await fn()
    except Exception as exc:
        if is_retryable(exc):
            return RetryOutcome(RetryStatus.EXHAUSTED, made, error=exc)
        logger.debug(f"{label} Attempt {made} failed, not retrying: {exc}")
        return RetryOutcome(RetryStatus.TERMINAL, made, error=exc)

    return RetryOutcome(RetryStatus.SUCCESS, made, value=value)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_DELAY_SECONDS,
    label: str = "",
    is_retryable: Callable[[BaseException], bool] = is_transient,
) -> T:
    """Retry ``fn`` and return its value, raising the last error on failure."""
    outcome = await attempt_async(fn, attempts, delay, label, is_retryable)
    return outcome.unwrap()


def retry_kwargs(config: Any) -> dict:
    """Attempt budget and delay taken from a Config."""
    return {"attempts": config.max_retries, "delay": config.retry_delay_seconds}
