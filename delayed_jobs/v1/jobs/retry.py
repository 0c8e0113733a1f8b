"""
Retry backoff for failed jobs.
"""

import random
from datetime import UTC, datetime, timedelta

from delayed_jobs.config.settings import Settings

MAX_RETRY_INTERVAL = timedelta(days=7)


class RetryStrategy:
    """
    Exponential backoff: ``base_delay * 2**attempt``, capped at ``max_delay``.

    Jitter only ever adds delay, up to ``jitter`` times the computed delay.
    With ``jitter < 1`` a later attempt always waits longer than an earlier
    one until the cap is reached.

    Example schedule with the default 5 second base and no jitter:
    - Attempt 1: 10 seconds
    - Attempt 2: 20 seconds
    - Attempt 3: 40 seconds
    - Attempt 10: ~1.4 hours
    - Attempt 17 onwards: capped at 7 days
    """

    def __init__(
        self,
        base_delay: timedelta = timedelta(seconds=5),
        max_delay: timedelta = MAX_RETRY_INTERVAL,
        jitter: float = 0.25,
        rng: random.Random | None = None,
    ):
        if base_delay <= timedelta(0):
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must not be shorter than base_delay")
        if not 0 <= jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got: {jitter}")

        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryStrategy":
        return cls(
            base_delay=timedelta(seconds=settings.job_backoff_base_s),
            max_delay=timedelta(seconds=settings.job_max_backoff_s),
            jitter=settings.job_backoff_jitter,
        )

    def delay_for(self, attempt_number: int) -> timedelta:
        """Backoff delay before the given attempt, without jitter."""
        if attempt_number < 1:
            raise ValueError(f"attempt_number must be >= 1, got: {attempt_number}")

        base_seconds = self.base_delay.total_seconds()
        max_seconds = self.max_delay.total_seconds()

        # Compare exponents first so huge attempt counts never overflow a float
        if attempt_number >= 64 or base_seconds * 2**attempt_number >= max_seconds:
            return self.max_delay
        return timedelta(seconds=base_seconds * 2**attempt_number)

    def next_retry_time(
        self, attempt_number: int, now: datetime | None = None
    ) -> datetime:
        """Earliest time the job may run again after ``attempt_number`` attempts."""
        delay = self.delay_for(attempt_number)
        if self.jitter:
            delay += delay * (self.jitter * self._rng.random())

        return (now or datetime.now(UTC)) + delay
