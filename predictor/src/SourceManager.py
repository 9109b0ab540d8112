"""SourceManager: health tracking for fallback price sources.

A fallback source that fails (returns no price, raises, or times out) is
benched for a while. The bench time doubles with every consecutive failure
up to a cap; one success puts the source straight back in rotation.

.. code-block:: python

    >>> manager = SourceManager(["coinbase", "coingecko"])
    >>> manager.record_failure("coinbase")
    5.0
    >>> manager.record_failure("coinbase")
    10.0
    >>> manager.active_sources()
    ['coingecko']
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class SourceStatus:
    """Health of a single source.

    :ivar consecutive_failures: Failures since the last success.
    :ivar backoff_until: Clock value at which the source becomes usable again.
    :ivar total_failures: Failures since tracking began.
    :ivar total_successes: Successes since tracking began.
    """

    consecutive_failures: int = 0
    backoff_until: float = 0.0
    total_failures: int = 0
    total_successes: int = 0


class SourceManager:
    """Orders fallback sources and benches failing ones.

    Sources keep the order they were configured in; :meth:`active_sources`
    filters out the ones currently benched.

    :ivar sources: Tracked source names in priority order.
    :ivar base_backoff_seconds: Bench time after the first failure.
    :ivar max_backoff_seconds: Upper bound of the bench time.
    """

    DEFAULT_BASE_BACKOFF_SECONDS = 5.0
    DEFAULT_MAX_BACKOFF_SECONDS = 300.0

    def __init__(
        self,
        sources: list[str],
        base_backoff_seconds: float = DEFAULT_BASE_BACKOFF_SECONDS,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the manager.

        :param sources: Source names in priority order.
        :param base_backoff_seconds: Bench time after the first failure.
        :param max_backoff_seconds: Cap for the exponential bench time.
        :param clock: Callable returning the current time in seconds.
        """
        self.sources = list(sources)
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.clock = clock
        self._status: dict[str, SourceStatus] = {s: SourceStatus() for s in self.sources}

    def _get(self, source: str) -> SourceStatus:
        if source not in self._status:
            self.sources.append(source)
            self._status[source] = SourceStatus()
        return self._status[source]

    def record_failure(self, source: str) -> float:
        """Bench a source after a failure.

        :param source: Source that failed.
        :returns: Bench duration in seconds.
        """
        status = self._get(source)
        status.consecutive_failures += 1
        status.total_failures += 1

        backoff_seconds = min(
            self.base_backoff_seconds * 2 ** (status.consecutive_failures - 1),
            self.max_backoff_seconds,
        )
        status.backoff_until = self.clock() + backoff_seconds
        return float(backoff_seconds)

    def record_success(self, source: str) -> None:
        """Clear a source's failure streak and bench."""
        status = self._get(source)
        status.consecutive_failures = 0
        status.backoff_until = 0.0
        status.total_successes += 1

    def active_sources(self) -> list[str]:
        """Sources not currently benched, in priority order."""
        now = self.clock()
        return [s for s in self.sources if now >= self._status[s].backoff_until]

    def is_active(self, source: str) -> bool:
        """Check whether a known source is usable right now."""
        status = self._status.get(source)
        return status is not None and self.clock() >= status.backoff_until

    def backoff_remaining(self, source: str) -> float:
        """Seconds left on a source's bench, 0 if not benched."""
        status = self._status.get(source)
        if status is None:
            return 0.0
        return max(0.0, status.backoff_until - self.clock())

    def status(self, source: str) -> SourceStatus | None:
        """Health record of a source, or None if unknown."""
        return self._status.get(source)

    def reset(self) -> None:
        """Forget all failures."""
        self._status = {s: SourceStatus() for s in self.sources}
