"""Round and Stake records.

Both records are immutable. A round is finalized by producing a new
``Round`` via :meth:`Round.finalize`; the store swaps the reference.

.. code-block:: python

    >>> r = Round.open(round_id=5, start_time=0, start_price=6000000000000, duration=900)
    >>> r.phase(now=100)
    <RoundPhase.ACTIVE: 'active'>
    >>> r.phase(now=900)
    <RoundPhase.EXPIRED: 'expired'>
    >>> r.finalize(6100000000000).outcome_is_up
    True
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, replace

# Default round length in seconds (15 minutes).
DEFAULT_ROUND_DURATION = 900


def wall_clock() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


class RoundPhase(enum.Enum):
    """Lifecycle phase of a round at a given wall-clock time."""

    ACTIVE = "active"
    EXPIRED = "expired"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class Round:
    """A single timed betting cycle.

    :ivar id: Strictly increasing round identifier.
    :ivar start_time: Unix timestamp the round opened at.
    :ivar end_time: Unix timestamp betting closes at.
    :ivar start_price: Fixed-point price captured when the round opened.
    :ivar end_price: Fixed-point price captured at finalization, 0 before.
    :ivar outcome_is_up: True if ``end_price > start_price``. Only
        meaningful once finalized.
    :ivar finalized: Whether the round has been settled.
    """

    id: int
    start_time: int
    end_time: int
    start_price: int
    end_price: int = 0
    outcome_is_up: bool = False
    finalized: bool = False

    @classmethod
    def open(
        cls,
        round_id: int,
        start_time: int,
        start_price: int,
        duration: int = DEFAULT_ROUND_DURATION,
    ) -> Round:
        """Create a new, active round.

        :param round_id: Identifier of the new round.
        :param start_time: Unix timestamp of the opening.
        :param start_price: Fixed-point opening price.
        :param duration: Round length in seconds.
        :returns: New round.
        :raises ValueError: If duration or price is not positive.
        """
        if duration <= 0:
            raise ValueError("duration must be positive")
        if start_price <= 0:
            raise ValueError("start_price must be positive")
        return cls(
            id=round_id,
            start_time=start_time,
            end_time=start_time + duration,
            start_price=start_price,
        )

    def phase(self, now: int) -> RoundPhase:
        """Classify the round at time ``now``."""
        if self.finalized:
            return RoundPhase.FINALIZED
        if now >= self.end_time:
            return RoundPhase.EXPIRED
        return RoundPhase.ACTIVE

    def needs_transition(self, now: int) -> bool:
        """Check whether the round has expired and awaits finalization."""
        return self.phase(now) is RoundPhase.EXPIRED

    def time_left(self, now: int) -> int:
        """Seconds until betting closes, never negative."""
        return max(0, self.end_time - now)

    def finalize(self, end_price: int) -> Round:
        """Return a finalized copy of this round.

        :param end_price: Fixed-point closing price.
        :returns: Finalized round.
        :raises ValueError: If the round is already finalized or the price
            is not positive.
        """
        if self.finalized:
            raise ValueError(f"Round {self.id} is already finalized")
        if end_price <= 0:
            raise ValueError("end_price must be positive")
        return replace(
            self,
            end_price=end_price,
            outcome_is_up=end_price > self.start_price,
            finalized=True,
        )


@dataclass(frozen=True)
class Stake:
    """A single bet placed by one identity on one round.

    :ivar bettor: Identity (address) of the bettor.
    :ivar round_id: Round the stake targets.
    :ivar amount: Escrowed value in the smallest unit (wei).
    :ivar direction: True for "up", False for "down".
    """

    bettor: str
    round_id: int
    amount: int
    direction: bool


@dataclass(frozen=True)
class RoundStatus:
    """Read-only snapshot returned by ``check_status()``.

    :ivar round: The current round.
    :ivar needs_transition: True if the round expired and is not finalized.
    :ivar time_left: Seconds until the round's end time.
    """

    round: Round
    needs_transition: bool
    time_left: int

    @classmethod
    def of(cls, current: Round, now: int) -> RoundStatus:
        """Build a status snapshot for ``current`` at time ``now``."""
        return cls(
            round=current,
            needs_transition=current.needs_transition(now),
            time_left=current.time_left(now),
        )
