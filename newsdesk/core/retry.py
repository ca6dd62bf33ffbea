"""Retry with exponential backoff and jitter around async operations."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .errors import ValidationFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Jitter adds up to this fraction of the computed delay.
JITTER_FRACTION = 0.3


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between.

    Delays are in seconds. Attempt ``i`` (1-based) that fails with attempts
    left waits ``min(base_delay * backoff_multiplier ** (i - 1), max_delay)``
    plus jitter. The ``max_attempts``-th failure is re-raised.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay: float = 10.0
    on_retry: Optional[Callable[[BaseException, int], Any]] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays cannot be negative")


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Backoff delay after failed attempt ``attempt``, without jitter."""
    delay = policy.base_delay * policy.backoff_multiplier ** (attempt - 1)
    return min(delay, policy.max_delay)


def _log_retry(error: BaseException, attempt: int) -> None:
    logger.warning(f"Attempt {attempt} failed: {error}")


async def run_with_policy(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Args:
        operation: Zero-argument coroutine function, called once per attempt
        policy: Retry policy, defaults to ``RetryPolicy()``
        rng: Random source for jitter
        sleep: Coroutine used to wait between attempts

    Returns:
        The first successful result

    Raises:
        Whatever the final attempt raised, unchanged
    """
    policy = policy or RetryPolicy()
    rng = rng or random.Random()
    on_retry = policy.on_retry or _log_retry

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == policy.max_attempts:
                logger.error(
                    f"Giving up after {policy.max_attempts} attempts: {e}"
                )
                raise

            on_retry(e, attempt)

            delay = compute_delay(policy, attempt)
            delay += rng.random() * JITTER_FRACTION * delay
            logger.debug(f"Retrying in {delay:.2f}s (attempt {attempt + 1})")
            await sleep(delay)

    # range() is never empty because max_attempts >= 1
    raise AssertionError("unreachable")


async def run_validated(
    operation: Callable[[], Awaitable[T]],
    validate: Callable[[T], bool],
    policy: Optional[RetryPolicy] = None,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Like ``run_with_policy`` but also retry results ``validate`` rejects."""

    async def validated() -> T:
        result = await operation()
        if not validate(result):
            raise ValidationFailure("AI generation validation failed", value=result)
        return result

    return await run_with_policy(validated, policy, rng=rng, sleep=sleep)
