"""Bounded retry with a fixed delay between attempts."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from voicepeak_broker.errors import SynthesisExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy:
    """Retries a failing async operation a fixed number of times.

    Every exception from the operation counts as a failed attempt. The policy
    keeps no state between calls to run().

    Attributes:
        max_attempts: Total attempts, including the first one.
        delay: Seconds to wait between attempts.
    """

    def __init__(self, max_attempts: int = 5, delay: float = 1.0) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {max_attempts}")
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got: {delay}")
        self.max_attempts = max_attempts
        self.delay = delay

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "Synthesis") -> T:
        """Run operation until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine function for one attempt.
            label: Name used in log lines.

        Returns:
            The first successful result.

        Raises:
            SynthesisExhausted: All attempts failed; chained to the last cause.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self.delay)
            try:
                logger.info("%s attempt %d/%d", label, attempt, self.max_attempts)
                return await operation()
            except Exception as e:
                last_error = e
                logger.warning(
                    "%s failed (attempt %d/%d): %s", label, attempt, self.max_attempts, e
                )

        raise SynthesisExhausted(self.max_attempts, last_error) from last_error
