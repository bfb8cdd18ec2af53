"""Retry coordinator for outbound collaborator calls.

Wraps recognition, dialogue and synthesis calls with bounded exponential
backoff. Failures are classified into retryable (network, timeout,
rate-limit, service-unavailable) and non-retryable (authentication,
quota) by exception type, explicit error code, or message inspection.

Outcomes:
- Success: the operation's result is returned
- Non-retryable failure: PermanentFailureError raised immediately
- Exhaustion: RetryExhaustedError raised, carrying the last error
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from xeno_agent.errors import ErrorCode
from xeno_agent.utils.config import RetryConfig, RetrySettings

from .errors import CollaboratorError, PermanentFailureError, RetryExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.1

# Message fragments checked in order; first match wins
_MESSAGE_RULES: list[tuple[ErrorCode, tuple[str, ...]]] = [
    (ErrorCode.RATE_LIMITED, ("rate limit", "ratelimit", "rate_limited", "too many requests", "429")),
    (
        ErrorCode.AUTHENTICATION_FAILED,
        ("unauthorized", "authentication", "invalid api key", "forbidden", "401", "403"),
    ),
    (ErrorCode.QUOTA_EXCEEDED, ("quota exceeded", "quota", "usage limit", "billing")),
    (
        ErrorCode.SERVICE_UNAVAILABLE,
        ("service unavailable", "service_unavailable", "unavailable", "502", "503", "504"),
    ),
    (ErrorCode.TIMEOUT, ("timed out", "timeout", "deadline exceeded")),
    (ErrorCode.CONNECTION_RESET, ("connection reset", "connection_reset", "broken pipe")),
    (ErrorCode.NETWORK_ERROR, ("network", "connection", "dns", "unreachable")),
]


def classify_error(error: BaseException) -> ErrorCode:
    """Map an exception raised by a collaborator to an ErrorCode.

    Args:
        error: The exception to classify

    Returns:
        The matching code, INTERNAL_ERROR if nothing matched
    """
    code = getattr(error, "code", None)
    if isinstance(code, ErrorCode):
        return code

    if isinstance(error, TimeoutError):
        return ErrorCode.TIMEOUT
    if isinstance(error, ConnectionResetError):
        return ErrorCode.CONNECTION_RESET
    if isinstance(error, ConnectionError):
        return ErrorCode.NETWORK_ERROR

    message = f"{type(error).__name__} {error}".lower()
    for rule_code, fragments in _MESSAGE_RULES:
        if any(fragment in message for fragment in fragments):
            return rule_code

    if isinstance(error, OSError):
        return ErrorCode.NETWORK_ERROR
    return ErrorCode.INTERNAL_ERROR


@dataclass
class RetryPolicy:
    """Backoff configuration for one class of outbound calls."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_seconds: float = 30.0
    jitter: bool = True

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay_seconds=config.base_delay_ms / 1000,
            backoff_multiplier=config.backoff_multiplier,
            max_delay_seconds=config.max_delay_ms / 1000,
            jitter=config.jitter,
        )

    def get_delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Delay before the attempt following ``attempt`` (1-based).

        Exponential in the attempt number, capped at max_delay_seconds,
        with ±10% jitter when enabled.
        """
        delay = self.base_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
        delay = min(delay, self.max_delay_seconds)
        if self.jitter and delay > 0:
            spread = delay * JITTER_RATIO
            delay += (rng or random).uniform(-spread, spread)
        return max(0.0, delay)


@dataclass
class _OperationStats:
    calls: int = 0
    failures: int = 0
    retries: int = 0
    last_failure_time: float = 0.0
    last_error_code: str | None = None


@dataclass
class RetryCoordinator:
    """Executes outbound calls under per-operation retry policies.

    Generic: any coroutine factory can be wrapped, keyed by an
    operation name ("recognition", "dialogue", "synthesis", ...).
    """

    policies: dict[str, RetryPolicy] = field(default_factory=dict)
    default_policy: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    _stats: dict[str, _OperationStats] = field(default_factory=dict, repr=False)

    @classmethod
    def from_settings(cls, settings: RetrySettings, **kwargs: Any) -> RetryCoordinator:
        """Build a coordinator with one policy per configured operation."""
        return cls(
            policies={
                "recognition": RetryPolicy.from_config(settings.recognition),
                "dialogue": RetryPolicy.from_config(settings.dialogue),
                "synthesis": RetryPolicy.from_config(settings.synthesis),
            },
            **kwargs,
        )

    def policy_for(self, operation: str) -> RetryPolicy:
        return self.policies.get(operation, self.default_policy)

    async def execute(
        self,
        operation: str,
        call: Callable[[], Coroutine[Any, Any, T]],
        policy: RetryPolicy | None = None,
    ) -> T:
        """Run ``call`` until it succeeds or the policy gives up.

        Args:
            operation: Operation name (selects the policy, tags logs)
            call: Zero-argument coroutine factory, invoked once per attempt
            policy: Optional override of the configured policy

        Returns:
            The call's result

        Raises:
            PermanentFailureError: Non-retryable failure (no further attempts)
            RetryExhaustedError: All attempts failed with retryable errors
            asyncio.CancelledError: Propagated untouched
        """
        policy = policy or self.policy_for(operation)
        stats = self._stats.setdefault(operation, _OperationStats())
        stats.calls += 1

        last_error: BaseException | None = None
        last_code = ErrorCode.INTERNAL_ERROR

        for attempt in range(1, policy.max_attempts + 1):
            try:
                result = await call()
            except asyncio.CancelledError:
                raise
            except CollaboratorError:
                # Already aggregated by a nested coordinator
                raise
            except Exception as e:
                last_error = e
                last_code = classify_error(e)
                stats.failures += 1
                stats.last_failure_time = time.time()
                stats.last_error_code = last_code.value

                logger.warning(
                    "outbound_call_failed",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    code=last_code.value,
                    error=str(e),
                )

                if not last_code.is_retryable():
                    logger.error(
                        "outbound_call_not_retryable",
                        operation=operation,
                        code=last_code.value,
                    )
                    raise PermanentFailureError(operation, attempt, e, last_code) from e

                if attempt == policy.max_attempts:
                    break

                delay = policy.get_delay(attempt, self.rng)
                stats.retries += 1
                logger.debug(
                    "outbound_call_backoff",
                    operation=operation,
                    next_attempt=attempt + 1,
                    delay_seconds=round(delay, 3),
                )
                await self.sleep(delay)
            else:
                if attempt > 1:
                    logger.info(
                        "outbound_call_recovered",
                        operation=operation,
                        attempt=attempt,
                    )
                return result

        logger.error(
            "outbound_call_exhausted",
            operation=operation,
            attempts=policy.max_attempts,
            code=last_code.value,
        )
        raise RetryExhaustedError(
            operation, policy.max_attempts, last_error, code=last_code
        ) from last_error

    def status_report(self) -> dict[str, Any]:
        """Per-operation call, failure and retry counters.

        Returns:
            Dict keyed by operation name
        """
        return {
            name: {
                "calls": s.calls,
                "failures": s.failures,
                "retries": s.retries,
                "last_failure": s.last_failure_time,
                "last_error_code": s.last_error_code,
                "max_attempts": self.policy_for(name).max_attempts,
            }
            for name, s in self._stats.items()
        }

    def reset(self) -> None:
        """Clear accumulated statistics."""
        self._stats.clear()
