"""
Retry Policy for external API calls

One policy shared by the YouTube, extraction and Notion clients. Each
client supplies a classifier that tells retryable failures (rate limits,
transport errors) from fatal ones (bad input, malformed responses).
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classifier = Callable[[BaseException], bool]
Sleeper = Callable[[float], Awaitable[Any]]


def never_retry(exc: BaseException) -> bool:
    """Classifier that treats every failure as fatal."""
    return False


@dataclass
class RetryStats:
    """Statistics for a retry policy."""

    total_calls: int = 0
    total_attempts: int = 0
    retries: int = 0
    exhausted: int = 0
    last_error: str | None = None


class RetryPolicy:
    """
    Exponential backoff with jitter.

    Attempt ``n`` (0-based) that fails with a retryable error waits
    ``base_delay * 2**n + uniform(0, max_jitter)`` seconds before the next
    attempt. After ``max_attempts`` attempts the last error is re-raised
    unchanged so the caller can translate it.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_jitter: float = 1.0,
        classifier: Classifier = never_retry,
        sleep: Sleeper | None = None,
        name: str = "",
    ):
        """
        Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first one
            base_delay: Delay in seconds before the first retry
            max_jitter: Upper bound of the random delay added to each wait
            classifier: Returns True when an exception may be retried
            sleep: Awaitable sleep function (injectable for tests)
            name: Label used in log messages
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_jitter = max_jitter
        self.classifier = classifier
        self.name = name
        self._sleep = sleep or asyncio.sleep
        self._stats = RetryStats()

    @property
    def stats(self) -> RetryStats:
        """Get retry statistics."""
        return self._stats

    def with_classifier(self, classifier: Classifier, name: str = "") -> "RetryPolicy":
        """Copy of this policy with a different classifier."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_jitter=self.max_jitter,
            classifier=classifier,
            sleep=self._sleep,
            name=name or self.name,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given 0-based attempt."""
        return self.base_delay * (2**attempt) + random.uniform(0, self.max_jitter)

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Run an async function under this policy.

        Args:
            func: Coroutine function performing one attempt
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Result of the first successful attempt

        Raises:
            The last exception, when it is fatal or attempts are exhausted
        """
        self._stats.total_calls += 1

        for attempt in range(self.max_attempts):
            self._stats.total_attempts += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                self._stats.last_error = f"{type(e).__name__}: {e}"[:200]

                if not self.classifier(e):
                    raise

                if attempt >= self.max_attempts - 1:
                    self._stats.exhausted += 1
                    logger.warning(
                        f"{self.name or 'call'} failed after {self.max_attempts} attempts: "
                        f"{type(e).__name__}"
                    )
                    raise

                delay = self.delay_for(attempt)
                self._stats.retries += 1
                logger.info(
                    f"{self.name or 'call'} attempt {attempt + 1}/{self.max_attempts} "
                    f"failed ({type(e).__name__}), retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without result")
