"""
Tests for the retry combinator.
"""

import asyncio

import pytest
from web3.exceptions import ContractLogicError

from retry import (
    RetryStatus,
    attempt_async,
    is_revert_error,
    is_transient,
    retry_async,
    unless_revert,
)
from utils import TransactionRevertedError


def flaky(failures: int, result="ok", error=ConnectionError):
    """Coroutine function that fails `failures` times, then succeeds."""
    calls = []

    async def op():
        calls.append(len(calls) + 1)
        if len(calls) <= failures:
            raise error(f"failure {len(calls)}")
        return result

    return op, calls


class TestRetryAsync:
    """Tests for retry_async."""

    def test_returns_first_success(self):
        op, calls = flaky(0)
        assert asyncio.run(retry_async(op, attempts=10, delay=0)) == "ok"
        assert calls == [1]

    def test_stops_retrying_after_success(self):
        op, calls = flaky(2)
        assert asyncio.run(retry_async(op, attempts=10, delay=0)) == "ok"
        assert len(calls) == 3

    def test_always_failing_makes_exactly_n_attempts(self):
        op, calls = flaky(100)
        with pytest.raises(ConnectionError, match="failure 10"):
            asyncio.run(retry_async(op, attempts=10, delay=0))
        assert len(calls) == 10

    def test_single_attempt_budget(self):
        op, calls = flaky(100)
        with pytest.raises(ConnectionError):
            asyncio.run(retry_async(op, attempts=1, delay=0))
        assert len(calls) == 1


class TestAttemptAsync:
    """Tests for the outcome-returning variant."""

    def test_success_outcome(self):
        op, _ = flaky(1, result=42)
        outcome = asyncio.run(attempt_async(op, attempts=5, delay=0))
        assert outcome.ok
        assert outcome.status is RetryStatus.SUCCESS
        assert outcome.value == 42
        assert outcome.attempts == 2

    def test_exhausted_outcome(self):
        op, _ = flaky(100)
        outcome = asyncio.run(attempt_async(op, attempts=4, delay=0))
        assert outcome.status is RetryStatus.EXHAUSTED
        assert outcome.attempts == 4
        assert isinstance(outcome.error, ConnectionError)
        with pytest.raises(ConnectionError):
            outcome.unwrap()

    def test_terminal_error_stops_immediately(self):
        op, calls = flaky(100, error=TransactionRevertedError)
        outcome = asyncio.run(attempt_async(op, attempts=10, delay=0, is_retryable=unless_revert))
        assert outcome.status is RetryStatus.TERMINAL
        assert outcome.attempts == 1
        assert len(calls) == 1

    def test_transient_before_terminal(self):
        errors = [ConnectionError("timeout"), RuntimeError("execution reverted")]

        async def op():
            raise errors.pop(0)

        outcome = asyncio.run(attempt_async(op, attempts=10, delay=0, is_retryable=unless_revert))
        assert outcome.status is RetryStatus.TERMINAL
        assert outcome.attempts == 2


class TestClassifiers:
    """Tests for error classification."""

    def test_exceptions_are_transient(self):
        assert is_transient(ConnectionError("x"))
        assert is_transient(ValueError("x"))

    def test_cancellation_is_not_transient(self):
        assert not is_transient(asyncio.CancelledError())
        assert not is_transient(KeyboardInterrupt())

    def test_contract_logic_error_is_revert(self):
        assert is_revert_error(ContractLogicError("execution reverted"))

    def test_rpc_error_dict_is_revert(self):
        assert is_revert_error(ValueError({"code": -32000, "message": "execution reverted: STF"}))

    def test_revert_in_message(self):
        assert is_revert_error(RuntimeError("Transaction Reverted"))

    def test_other_errors_are_not_revert(self):
        assert not is_revert_error(ValueError({"code": -32000, "message": "nonce too low"}))
        assert not is_revert_error(ConnectionError("read timeout"))
        assert unless_revert(ConnectionError("read timeout"))
        assert not unless_revert(TransactionRevertedError("status 0"))
