"""Bounded retry with growing delay for async operations."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger
from pydantic import BaseModel, Field

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Retry policy for a single operation.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay_seconds: Delay after the first failed attempt
        backoff_factor: Multiplier applied to the delay after each failure
    """

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    backoff_factor: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given failed attempt (1-indexed)."""
        return self.base_delay_seconds * self.backoff_factor ** (attempt - 1)


class RetryExhaustedError(Exception):
    """All attempts of an operation failed."""

    def __init__(self, description: str, attempts: int, last_error: BaseException):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{description} failed after {attempts} attempts: {last_error}")


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    give_up_on: tuple[type[BaseException], ...] = (),
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or ``policy.max_attempts`` is reached.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Attempt count and delay schedule
        description: Used in log messages (e.g. "batch 3 upload to qdrant")
        retry_on: Exception types that trigger another attempt; anything else
            propagates immediately
        give_up_on: Exception types that propagate immediately even when they
            also match ``retry_on``
        sleep: Awaitable sleep, replaceable in tests

    Returns:
        Result of the first successful attempt

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error
    """
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except give_up_on:
            raise
        except retry_on as e:
            last_error = e
            if attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed (attempt {attempt}/{policy.max_attempts}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await sleep(delay)

    assert last_error is not None
    logger.error(f"{description} failed after {policy.max_attempts} attempts: {last_error}")
    raise RetryExhaustedError(description, policy.max_attempts, last_error) from last_error
