import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from .models import (
    Admission,
    QuotaStatus,
    RateLimitState,

    # Constants
    DEFAULT_RATE_LIMIT_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_MS,
)

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window request quota shared by every request of one client.

    At most ``capacity`` requests are admitted per window. The window resets
    when it expires, so a burst straddling a boundary can briefly reach
    twice the nominal rate; this matches how the service advertises its quota.

    For most use cases, use ``YnabClient`` instead of using this class directly.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_RATE_LIMIT_REQUESTS,
        window_ms: int = DEFAULT_RATE_LIMIT_WINDOW_MS,
        now_fn: Optional[Callable[[], float]] = None,
    ):
        if capacity <= 0 or window_ms <= 0:
            raise ValueError("Capacity and window must be positive numbers")

        self._now = now_fn or time.time
        self._lock = threading.Lock()
        # Created lazily so the limiter can be built outside a running loop
        self._waiters: Optional[asyncio.Lock] = None
        self._state = RateLimitState(
            capacity=capacity,
            window_seconds=window_ms / 1000,
            consumed=0,
            window_reset_at=self._now() + window_ms / 1000,
        )

        # Statistics
        self.total_admitted: int = 0
        self.total_blocked: int = 0
        self.total_wait_time: float = 0

        logger.info(f"RateLimiter initialized: {capacity} requests / {window_ms} ms")

    @property
    def capacity(self) -> int:
        return self._state.capacity

    def _roll_window(self, now: float) -> None:
        """Start a fresh window if the current one has expired. Caller holds the lock."""
        if now >= self._state.window_reset_at:
            self._state.consumed = 0
            self._state.window_reset_at = now + self._state.window_seconds

    def admit(self) -> Admission:
        """
        Try to take one slot from the current window without waiting.

        Returns:
            An admitted ``Admission``, or a blocked one carrying the seconds
            until the window resets.
        """
        with self._lock:
            now = self._now()
            self._roll_window(now)
            if self._state.consumed < self._state.capacity:
                self._state.consumed += 1
                self.total_admitted += 1
                return Admission(admitted=True)
            wait = max(0.0, self._state.window_reset_at - now)
            self.total_blocked += 1
        logger.debug(f"Quota exhausted, window resets in {wait:.2f} seconds")
        return Admission(admitted=False, wait_seconds=wait)

    async def acquire(self, block: bool = True) -> Admission:
        """
        Admit one request, optionally waiting for the next window.

        Waiters are served in the order they called ``acquire``. The wait is a
        plain ``asyncio.sleep``, so cancelling the calling task (or wrapping
        the call in ``asyncio.wait_for``) aborts it.

        Args:
            block: Wait for the window to reset instead of returning a
                blocked ``Admission``.
        """
        if not block:
            return self.admit()

        if self._waiters is None:
            self._waiters = asyncio.Lock()

        async with self._waiters:
            while True:
                admission = self.admit()
                if admission.admitted:
                    return admission
                logger.warning(f"Rate limit reached, waiting for {admission.wait_seconds:.2f} seconds")
                self.total_wait_time += admission.wait_seconds
                await asyncio.sleep(admission.wait_seconds)

    def get_remaining_tokens(self) -> int:
        """Requests still available in the current window."""
        with self._lock:
            self._roll_window(self._now())
            return max(0, self._state.capacity - self._state.consumed)

    def reset_rate_limit(self) -> None:
        """
        Manually reset the window.

        Administrative use only, e.g. in tests or after switching tokens.
        """
        with self._lock:
            self._state.consumed = 0
            self._state.window_reset_at = self._now() + self._state.window_seconds
        logger.info("Rate limit window manually reset")

    def get_status(self) -> QuotaStatus:
        """Get current quota status"""
        with self._lock:
            self._roll_window(self._now())
            return QuotaStatus(
                remaining=max(0, self._state.capacity - self._state.consumed),
                reset_at=self._state.window_reset_at,
                capacity=self._state.capacity,
                consumed=self._state.consumed,
                window_ms=int(self._state.window_seconds * 1000),
            )
