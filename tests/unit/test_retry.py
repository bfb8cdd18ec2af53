"""Unit tests for the retry coordinator."""

from __future__ import annotations

import asyncio
import random

import pytest

from xeno_agent.errors import ErrorCode
from xeno_agent.utils.config import RetryConfig, RetrySettings
from xeno_agent.voice.errors import (
    PermanentFailureError,
    RecognitionError,
    RetryExhaustedError,
)
from xeno_agent.voice.retry import RetryCoordinator, RetryPolicy, classify_error


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def flaky(*outcomes: object):
    """Coroutine factory that raises or returns the given outcomes in order."""
    remaining = list(outcomes)
    calls = {"count": 0}

    async def call() -> object:
        calls["count"] += 1
        outcome = remaining.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    call.calls = calls  # type: ignore[attr-defined]
    return call


# =============================================================================
# Classification
# =============================================================================


class TestClassifyError:
    """Tests for classify_error."""

    def test_explicit_code_wins(self) -> None:
        """Errors carrying an ErrorCode keep it."""
        error = RecognitionError("nope", code=ErrorCode.QUOTA_EXCEEDED)
        assert classify_error(error) == ErrorCode.QUOTA_EXCEEDED

    def test_builtin_exception_types(self) -> None:
        """Timeouts and connection errors map by type."""
        assert classify_error(TimeoutError()) == ErrorCode.TIMEOUT
        assert classify_error(asyncio.TimeoutError()) == ErrorCode.TIMEOUT
        assert classify_error(ConnectionResetError()) == ErrorCode.CONNECTION_RESET
        assert classify_error(ConnectionRefusedError()) == ErrorCode.NETWORK_ERROR

    def test_message_inspection(self) -> None:
        """Unknown types fall back to message fragments."""
        assert classify_error(RuntimeError("HTTP 429 Too Many Requests")) == ErrorCode.RATE_LIMITED
        assert classify_error(RuntimeError("401 Unauthorized")) == ErrorCode.AUTHENTICATION_FAILED
        assert classify_error(RuntimeError("monthly quota exceeded")) == ErrorCode.QUOTA_EXCEEDED
        assert classify_error(RuntimeError("503 Service Unavailable")) == ErrorCode.SERVICE_UNAVAILABLE

    def test_unknown_error_is_internal(self) -> None:
        """Nothing matched means an internal error."""
        assert classify_error(ValueError("bad value")) == ErrorCode.INTERNAL_ERROR


# =============================================================================
# Backoff
# =============================================================================


class TestRetryPolicy:
    """Tests for RetryPolicy delay calculation."""

    def test_exponential_delay(self) -> None:
        """Delay doubles per attempt without jitter."""
        policy = RetryPolicy(base_delay_seconds=1.0, backoff_multiplier=2.0, jitter=False)
        assert policy.get_delay(1) == 1.0
        assert policy.get_delay(2) == 2.0
        assert policy.get_delay(3) == 4.0

    def test_delay_is_capped(self) -> None:
        """Delay never exceeds max_delay_seconds."""
        policy = RetryPolicy(base_delay_seconds=10.0, max_delay_seconds=15.0, jitter=False)
        assert policy.get_delay(5) == 15.0

    def test_jitter_within_ten_percent(self) -> None:
        """Jittered delays stay within ±10% of the nominal delay."""
        policy = RetryPolicy(base_delay_seconds=2.0, jitter=True)
        rng = random.Random(7)
        for _ in range(50):
            delay = policy.get_delay(1, rng)
            assert 1.8 <= delay <= 2.2

    def test_from_config_converts_milliseconds(self) -> None:
        """Config values are given in milliseconds."""
        policy = RetryPolicy.from_config(
            RetryConfig(max_attempts=4, base_delay_ms=250, max_delay_ms=2000, jitter=False)
        )
        assert policy.max_attempts == 4
        assert policy.base_delay_seconds == 0.25
        assert policy.max_delay_seconds == 2.0
        assert policy.jitter is False


# =============================================================================
# Execution
# =============================================================================


class TestRetryCoordinator:
    """Tests for RetryCoordinator.execute."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self) -> None:
        """A successful call returns its result without sleeping."""
        sleep = SleepRecorder()
        coordinator = RetryCoordinator(sleep=sleep)

        result = await coordinator.execute("dialogue", flaky("hi"))

        assert result == "hi"
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self) -> None:
        """Transient errors are retried with growing delays."""
        sleep = SleepRecorder()
        coordinator = RetryCoordinator(
            default_policy=RetryPolicy(max_attempts=3, base_delay_seconds=1.0, jitter=False),
            sleep=sleep,
        )
        call = flaky(TimeoutError("slow"), ConnectionError("down"), "ok")

        result = await coordinator.execute("recognition", call)

        assert result == "ok"
        assert call.calls["count"] == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self) -> None:
        """Auth failures raise immediately after one attempt."""
        sleep = SleepRecorder()
        coordinator = RetryCoordinator(sleep=sleep)
        call = flaky(RuntimeError("401 Unauthorized"), "never")

        with pytest.raises(PermanentFailureError) as exc_info:
            await coordinator.execute("recognition", call)

        assert exc_info.value.code == ErrorCode.AUTHENTICATION_FAILED
        assert exc_info.value.attempts == 1
        assert call.calls["count"] == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_exhaustion_carries_last_error(self) -> None:
        """After max_attempts the last error is attached."""
        coordinator = RetryCoordinator(
            default_policy=RetryPolicy(max_attempts=2, base_delay_seconds=0.0, jitter=False),
            sleep=SleepRecorder(),
        )
        last = TimeoutError("still slow")
        call = flaky(TimeoutError("slow"), last)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await coordinator.execute("dialogue", call)

        assert exc_info.value.attempts == 2
        assert exc_info.value.last_error is last
        assert exc_info.value.code == ErrorCode.TIMEOUT
        assert exc_info.value.operation == "dialogue"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self) -> None:
        """CancelledError is never swallowed or retried."""
        coordinator = RetryCoordinator(sleep=SleepRecorder())
        call = flaky(asyncio.CancelledError(), "never")

        with pytest.raises(asyncio.CancelledError):
            await coordinator.execute("synthesis", call)
        assert call.calls["count"] == 1

    @pytest.mark.asyncio
    async def test_policy_per_operation(self) -> None:
        """Settings give each operation its own attempt budget."""
        settings = RetrySettings(
            recognition=RetryConfig(max_attempts=1, base_delay_ms=0, jitter=False),
            synthesis=RetryConfig(max_attempts=2, base_delay_ms=0, jitter=False),
        )
        coordinator = RetryCoordinator.from_settings(settings, sleep=SleepRecorder())

        assert coordinator.policy_for("recognition").max_attempts == 1
        assert coordinator.policy_for("synthesis").max_attempts == 2
        assert coordinator.policy_for("unknown") is coordinator.default_policy

    @pytest.mark.asyncio
    async def test_status_report(self) -> None:
        """Counters track calls, failures and retries."""
        coordinator = RetryCoordinator(
            default_policy=RetryPolicy(max_attempts=3, base_delay_seconds=0.0, jitter=False),
            sleep=SleepRecorder(),
        )
        await coordinator.execute("dialogue", flaky(TimeoutError(), "ok"))

        report = coordinator.status_report()["dialogue"]
        assert report["calls"] == 1
        assert report["failures"] == 1
        assert report["retries"] == 1
        assert report["last_error_code"] == "TIMEOUT"

        coordinator.reset()
        assert coordinator.status_report() == {}
