"""
Retry policy with exponential backoff and optional jitter.

Used for backup network association attempts and for the dispatcher's
ordinary-failure retry schedule.
"""

from __future__ import annotations

import asyncio
import os
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from resilient_net.errors import classify_error, is_retryable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


class JitterStrategy(str, Enum):
    """Jitter strategy for retry delays."""

    NONE = "none"
    FULL = "full"
    EQUAL = "equal"


@dataclass
class RetryConfig:
    """Configuration for retry policy.

    Attributes:
        max_retries: Maximum number of retry attempts after the first (0 = no retries)
        min_delay_ms: Delay before the first retry in milliseconds
        max_delay_ms: Maximum delay between retries in milliseconds
        jitter: Jitter strategy (none, full, equal)
        exponential_base: Multiplier applied per attempt
    """

    max_retries: int = 2
    min_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter: JitterStrategy = JitterStrategy.NONE
    exponential_base: float = 2.0

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first."""
        return self.max_retries + 1

    @classmethod
    def association(cls) -> RetryConfig:
        """Backup network association: 3 attempts, 1s base, 30s cap."""
        return cls(max_retries=2, min_delay_ms=1000, max_delay_ms=30000)

    @classmethod
    def dispatch(cls, max_attempts: int = 5) -> RetryConfig:
        """Queued request retry schedule: 1s base, 60s cap."""
        return cls(max_retries=max_attempts - 1, min_delay_ms=1000, max_delay_ms=60000)

    @classmethod
    def from_env(cls, prefix: str = "RESILIENT_NET_RETRY", base: RetryConfig | None = None) -> RetryConfig:
        """Create configuration from environment variables.

        Reads ``{prefix}_MAX_RETRIES``, ``{prefix}_MIN_DELAY_MS``,
        ``{prefix}_MAX_DELAY_MS`` and ``{prefix}_JITTER``.
        """
        base = base or cls()
        jitter_str = os.getenv(f"{prefix}_JITTER", base.jitter.value)
        jitter = (
            JitterStrategy(jitter_str)
            if jitter_str in ("none", "full", "equal")
            else base.jitter
        )
        return cls(
            max_retries=int(os.getenv(f"{prefix}_MAX_RETRIES", str(base.max_retries))),
            min_delay_ms=int(os.getenv(f"{prefix}_MIN_DELAY_MS", str(base.min_delay_ms))),
            max_delay_ms=int(os.getenv(f"{prefix}_MAX_DELAY_MS", str(base.max_delay_ms))),
            jitter=jitter,
            exponential_base=base.exponential_base,
        )

    @classmethod
    def no_retry(cls) -> RetryConfig:
        """Create a config that disables retries."""
        return cls(max_retries=0)


@dataclass
class RetryResult:
    """Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        value: The result value (if success)
        error: The last error (if failed)
        attempts: Number of attempts made
        total_delay_ms: Total delay from retries in milliseconds
    """

    success: bool
    value: Any = None
    error: Exception | None = None
    attempts: int = 0
    total_delay_ms: float = 0.0


class RetryPolicy:
    """Retry policy with exponential backoff.

    Example:
        >>> policy = RetryPolicy(RetryConfig.association())
        >>> result = await policy.execute(lambda: attacher_attempt())
        >>> if not result.success:
        ...     print(f"Failed after {result.attempts} attempts")
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize retry policy.

        Args:
            config: Retry configuration
            sleep: Awaitable sleep used between attempts
        """
        self._config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep

    @property
    def config(self) -> RetryConfig:
        """Get retry configuration."""
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay before the retry following `attempt`.

        Args:
            attempt: Number of failed attempts so far minus one (0-based)

        Returns:
            Delay in seconds
        """
        base_delay_ms = self._config.min_delay_ms * (
            self._config.exponential_base ** max(attempt, 0)
        )
        base_delay_ms = min(base_delay_ms, self._config.max_delay_ms)

        if self._config.jitter == JitterStrategy.FULL:
            delay_ms = random.uniform(0, base_delay_ms)
        elif self._config.jitter == JitterStrategy.EQUAL:
            delay_ms = base_delay_ms / 2 + random.uniform(0, base_delay_ms / 2)
        else:
            delay_ms = base_delay_ms

        return delay_ms / 1000.0

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Check if an error should trigger a retry.

        Args:
            error: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if should retry
        """
        if attempt >= self._config.max_retries:
            return False
        return is_retryable(classify_error(error))

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: Callable[[int, Exception, float], None] | None = None,
    ) -> RetryResult:
        """Execute an operation with retry.

        Args:
            operation: Async operation to execute
            on_retry: Optional callback called before each retry

        Returns:
            RetryResult with success status and value/error
        """
        total_delay = 0.0
        attempt = 0

        while True:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    value=result,
                    attempts=attempt + 1,
                    total_delay_ms=total_delay * 1000,
                )
            except Exception as e:
                attempt += 1

                if not self.should_retry(e, attempt - 1):
                    return RetryResult(
                        success=False,
                        error=e,
                        attempts=attempt,
                        total_delay_ms=total_delay * 1000,
                    )

                delay = self.calculate_delay(attempt - 1)
                total_delay += delay

                if on_retry:
                    on_retry(attempt, e, delay)

                await self._sleep(delay)
