"""
AgentInvoker: the single choke point for every external model call.

Wraps a zero-argument coroutine factory with tenacity retries:
exponential backoff with uniform jitter, an attempt budget, and a
classifier that refuses to retry authentication/permission failures.
Whatever the provider says, callers only ever see
ServiceUnavailableError("service temporarily unavailable").
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt

from briefing.config import config
from briefing.exceptions import ServiceUnavailableError
from briefing.utils.logging import agent_logger


T = TypeVar("T")

# Substrings that mark a failure as permanent. Matched case-insensitively.
NON_RETRYABLE_MARKERS = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "invalid_api_key",
    "invalid x-api-key",
    "authentication_error",
    "permission_error",
    "401",
    "403",
)

NON_RETRYABLE_STATUS = (401, 403)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay_ms: float = 1000.0
    backoff_factor: float = 2.0
    jitter_ratio: float = 0.2

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if not 0 <= self.jitter_ratio < 1:
            raise ValueError("jitter_ratio must be in [0, 1)")

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            max_attempts=config.AGENT_MAX_RETRIES,
            initial_delay_ms=config.AGENT_INITIAL_DELAY_MS,
            backoff_factor=config.AGENT_BACKOFF_FACTOR,
            jitter_ratio=config.AGENT_JITTER_RATIO,
        )


def compute_delay(attempt: int, policy: RetryPolicy, rng: random.Random | None = None) -> float:
    """
    Delay in seconds to wait after failed attempt number ``attempt`` (1-based).

    delay = D * B^(attempt-1) * U(1 - j, 1 + j)
    """
    rng = rng or random
    base_ms = policy.initial_delay_ms * (policy.backoff_factor ** (attempt - 1))
    jitter = rng.uniform(1 - policy.jitter_ratio, 1 + policy.jitter_ratio)
    return base_ms * jitter / 1000.0


def is_retryable(exc: BaseException) -> bool:
    """Classify a failure. Auth/permission problems never succeed on retry."""
    if isinstance(exc, asyncio.CancelledError):
        return False
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    if status in NON_RETRYABLE_STATUS:
        return False
    message = str(exc).lower()
    return not any(marker in message for marker in NON_RETRYABLE_MARKERS)


@dataclass
class InvocationStats:
    """What happened during the most recent invoke() call."""
    agent_name: str = ""
    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    succeeded: bool = False
    last_error_type: Optional[str] = None
    elapsed_ms: int = 0


class AgentInvoker:
    """
    Runs agent calls under a retry policy.

    Args:
        policy: Retry policy (defaults to the configured one)
        sleep: Awaitable sleep used between attempts (injectable for tests)
        rng: Random source for jitter (injectable for tests)
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        rng: random.Random | None = None,
    ):
        self.policy = policy or RetryPolicy.from_config()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self.last_stats = InvocationStats()

    async def invoke(self, work: Callable[[], Awaitable[T]], agent_name: str = "agent") -> T:
        """
        Run ``work`` until it succeeds or the policy gives up.

        Raises:
            ServiceUnavailableError: After a non-retryable failure (one attempt)
                or after the attempt budget is spent on retryable failures
            asyncio.CancelledError: Propagated untouched, never retried
        """
        stats = InvocationStats(agent_name=agent_name)
        self.last_stats = stats
        start = time.monotonic()

        def wait(retry_state) -> float:
            delay = compute_delay(retry_state.attempt_number, self.policy, self._rng)
            stats.delays.append(delay)
            return delay

        def before_sleep(retry_state) -> None:
            exc = retry_state.outcome.exception()
            agent_logger.warning(
                f"{agent_name} attempt {retry_state.attempt_number} failed, retrying",
                error_type=type(exc).__name__,
                delay_s=round(stats.delays[-1], 3),
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    stats.attempts = attempt.retry_state.attempt_number
                    result = await work()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stats.last_error_type = type(e).__name__
            stats.elapsed_ms = int((time.monotonic() - start) * 1000)
            retryable = is_retryable(e)
            agent_logger.error(
                f"{agent_name} unavailable",
                attempts=stats.attempts,
                retryable=retryable,
                error_type=stats.last_error_type,
            )
            raise ServiceUnavailableError(
                agent_name=agent_name,
                attempts=stats.attempts,
                retryable=retryable,
            ) from None

        stats.succeeded = True
        stats.elapsed_ms = int((time.monotonic() - start) * 1000)
        if stats.attempts > 1:
            agent_logger.info(
                f"{agent_name} succeeded after retries",
                attempts=stats.attempts,
            )
        return result
