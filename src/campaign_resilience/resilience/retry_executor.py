"""
Bounded retry with exponential backoff, jitter and cooperative cancellation.

Wraps a single fallible async operation. Attempt 0 runs immediately; each
later attempt waits ``base_delay * backoff_factor ** attempt`` seconds plus a
symmetric random jitter. A cancellation token is checked before every attempt
and raced against every backoff wait.
"""

import asyncio
import inspect
import random
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from campaign_resilience.types.error_types import ExhaustedRetriesError, RetryCancelledError
from campaign_resilience.types.resilience_models import CancellationToken, RetryPolicy
from campaign_resilience.types.resilience_types import CircuitOpenError

# Errors that signal "stop", not "try again"
_NON_RETRYABLE = (RetryCancelledError, CircuitOpenError)


class RetryExecutor:
    """
    Executes an operation under a RetryPolicy.

    The executor holds no per-call state, so one instance can be shared by
    every caller in the process.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self._sleep = sleep
        self._rng = rng or random.Random()

    def compute_delay(self, attempt: int, policy: RetryPolicy) -> float:
        """
        Calculate the backoff before attempt ``attempt + 1``.

        Args:
            attempt: Attempt that just failed (0-based)
            policy: Retry policy in effect

        Returns:
            Delay in seconds, never negative
        """
        delay = policy.base_delay * (policy.backoff_factor ** attempt)
        if policy.max_delay is not None:
            delay = min(delay, policy.max_delay)
        if policy.jitter > 0:
            delay += self._rng.uniform(-policy.jitter, policy.jitter)
        return max(0.0, delay)

    async def execute(
        self,
        operation: Callable[[], Any],
        policy: Optional[RetryPolicy] = None,
    ) -> Any:
        """
        Run ``operation`` until it succeeds or the policy is exhausted.

        Args:
            operation: Zero-argument callable returning a value or an awaitable
            policy: Retry policy; defaults to ``RetryPolicy()``

        Returns:
            Result of the first successful attempt

        Raises:
            ExhaustedRetriesError: After ``max_retries + 1`` failed attempts
            RetryCancelledError: If the policy's token fires before an attempt or during backoff
        """
        policy = policy or RetryPolicy()
        token = policy.cancellation_token
        attempt = 0

        while True:
            if token is not None and token.cancelled:
                raise RetryCancelledError(f"Cancelled before attempt {attempt}", attempt=attempt)

            try:
                return await self._attempt(operation, policy.attempt_timeout)
            except _NON_RETRYABLE:
                raise
            except Exception as e:
                if attempt >= policy.max_retries:
                    logger.warning(
                        f"Retries exhausted | attempts={attempt + 1} | error={e}"
                    )
                    raise ExhaustedRetriesError(attempts=attempt + 1, last_error=e) from e

                delay = self.compute_delay(attempt, policy)
                logger.debug(
                    f"Attempt {attempt} failed, retrying in {delay:.3f}s | "
                    f"error_type={type(e).__name__} | error={e}"
                )
                await self._backoff(delay, token, attempt)
                attempt += 1

    async def _attempt(self, operation: Callable[[], Any], timeout: Optional[float]) -> Any:
        result = operation()
        if not inspect.isawaitable(result):
            return result
        if timeout is None:
            return await result
        return await asyncio.wait_for(result, timeout)

    async def _backoff(
        self,
        delay: float,
        token: Optional[CancellationToken],
        attempt: int,
    ) -> None:
        """Wait ``delay`` seconds, resolving early with RetryCancelledError if the token fires."""
        if token is None:
            await self._sleep(delay)
            return

        sleeper = asyncio.ensure_future(self._sleep(delay))
        canceller = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Whichever side lost the race is cancelled and reaped here
            for task in (sleeper, canceller):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, canceller, return_exceptions=True)

        if token.cancelled:
            raise RetryCancelledError(f"Cancelled during backoff after attempt {attempt}", attempt=attempt)
