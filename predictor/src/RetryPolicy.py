"""RetryPolicy: bounded retry schedules owned by callers of the core.

The round state machine never sleeps or schedules; callers that want to
retry a failed transition (for example after ``PriceFeedTooOld``) ask a
policy how long to wait before attempt ``n`` and stop when it says None.

.. code-block:: python

    >>> stale = RetryPolicy.fixed(120, max_attempts=2)
    >>> [stale.delay_for(n) for n in (1, 2, 3)]
    [120.0, 120.0, None]
    >>> backoff = RetryPolicy.exponential(5, max_delay=300)
    >>> [backoff.delay_for(n) for n in (1, 2, 3, 10)]
    [5.0, 10.0, 20.0, 300.0]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class RetryPolicy:
    """Delay schedule ``base_delay * multiplier ** (attempt - 1)``.

    :ivar base_delay: Delay before the first retry, in seconds.
    :ivar multiplier: Growth factor per attempt (1.0 = fixed delay).
    :ivar max_delay: Upper bound of a single delay, or None.
    :ivar max_attempts: Number of retries allowed, or None for unbounded.
    """

    base_delay: float
    multiplier: float = 1.0
    max_delay: float | None = None
    max_attempts: int | None = None

    def __post_init__(self) -> None:
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be at least 1.0")
        if self.max_attempts is not None and self.max_attempts < 0:
            raise ValueError("max_attempts must not be negative")

    @classmethod
    def fixed(cls, delay: float, max_attempts: int | None = None) -> RetryPolicy:
        """Same delay before every retry."""
        return cls(base_delay=delay, max_attempts=max_attempts)

    @classmethod
    def exponential(
        cls,
        base_delay: float,
        max_delay: float,
        max_attempts: int | None = None,
        multiplier: float = 2.0,
    ) -> RetryPolicy:
        """Delay doubling (by default) per attempt, capped at ``max_delay``."""
        return cls(
            base_delay=base_delay,
            multiplier=multiplier,
            max_delay=max_delay,
            max_attempts=max_attempts,
        )

    def delay_for(self, attempt: int) -> float | None:
        """Delay before retry number ``attempt`` (1-based).

        :returns: Seconds to wait, or None once the attempts are exhausted.
        :raises ValueError: If attempt is less than 1.
        """
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        if self.max_attempts is not None and attempt > self.max_attempts:
            return None
        delay = self.base_delay * self.multiplier ** (attempt - 1)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return float(delay)

    def delays(self) -> Iterator[float]:
        """Iterate over the remaining delays (endless if unbounded)."""
        attempt = 1
        while (delay := self.delay_for(attempt)) is not None:
            yield delay
            attempt += 1
