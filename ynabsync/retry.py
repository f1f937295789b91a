"""Retry policy with exponential backoff.

Operations report their result as an ``Outcome``; the policy decides whether
to try again from ``Failure.error.kind`` alone.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .exceptions import ErrorKind
from .models import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY_MS,
    Failure,
    Outcome,
    RetryContext,
)

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Outcome]]


class RetryPolicy:
    """Runs an operation, retrying transient and rate-limit failures."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        max_delay_ms: Optional[int] = DEFAULT_MAX_DELAY_MS,
    ):
        """Initializes the RetryPolicy.

        Args:
            max_attempts: Total attempts including the first one.
            base_delay_ms: Delay before the second attempt; doubled for each
                further attempt.
            max_delay_ms: Cap on the exponential backoff term. A server-provided
                retry-after is never capped. ``None`` disables the cap.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms

    def _delay_ms(self, context: RetryContext, failure: Failure) -> int:
        delay = context.delay_ms()
        if self.max_delay_ms is not None:
            delay = min(delay, self.max_delay_ms)
        error = failure.error
        if error.kind is ErrorKind.RATE_LIMIT_EXCEEDED and error.retry_after_ms is not None:
            delay = max(delay, error.retry_after_ms)
        return delay

    async def execute(
        self,
        operation: Operation,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> Outcome:
        """Run ``operation`` until it succeeds, fails fatally or attempts run out.

        Args:
            operation: Zero-argument coroutine function returning an ``Outcome``.
            max_attempts: Overrides the policy default for this call.
            base_delay_ms: Overrides the policy default for this call.

        Returns:
            The first ``Success``, the first fatal ``Failure``, or the
            ``Failure`` of the last attempt.
        """
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        context = RetryContext(
            max_attempts=max_attempts if max_attempts is not None else self.max_attempts,
            base_delay_ms=base_delay_ms if base_delay_ms is not None else self.base_delay_ms,
        )

        while True:
            outcome = await operation()
            if outcome.ok:
                return outcome

            kind = outcome.error.kind
            if not kind.retryable:
                logger.debug(f"Not retrying {kind.value} failure on attempt {context.attempt}")
                return outcome

            if context.attempt >= context.max_attempts:
                logger.error(
                    f"Giving up after {context.attempt} attempts. Last error: {outcome.error}"
                )
                return outcome

            delay_ms = self._delay_ms(context, outcome)
            logger.warning(
                f"Retryable {kind.value} failure on attempt {context.attempt}/{context.max_attempts}, "
                f"retrying in {delay_ms}ms: {outcome.error}"
            )
            await asyncio.sleep(delay_ms / 1000)
            context.attempt += 1
