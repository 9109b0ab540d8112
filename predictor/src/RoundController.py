"""RoundController: the round lifecycle state machine.

States of the current round:
    - ACTIVE: not finalized, now < end_time
    - EXPIRED: not finalized, now >= end_time (pure function of time)
    - FINALIZED: terminal; a new ACTIVE round replaces it in the same step

``close_and_open_next()`` moves EXPIRED -> FINALIZED(n) + ACTIVE(n + 1):
    1. Fetch a strict, fresh price (failure leaves the round EXPIRED)
    2. Record the end price and outcome, mark finalized
    3. Credit winners through the SettlementAccountant
    4. Open round n + 1 starting at the same price
    5. Commit all of it as one store transaction

The controller never schedules anything. Callers decide when to poll and
how to retry; redundant calls are cheap and answered with
:class:`RoundNotExpired` or :class:`RoundAlreadyFinalized`.
"""

from __future__ import annotations

import logging
from typing import Callable

from .errors import RoundAlreadyFinalized, RoundEnded, RoundFinalized, RoundNotExpired
from .fixed_point import format_price
from .PriceSource import PriceSource
from .Round import DEFAULT_ROUND_DURATION, Round, RoundPhase, RoundStatus, wall_clock
from .RoundStore import RoundStore
from .SettlementAccountant import SettlementAccountant

logger = logging.getLogger(__name__)


class RoundController:
    """Decides when the current round closes and opens the next one.

    :ivar store: Authoritative state.
    :ivar price_source: Source of strict, fresh prices.
    :ivar accountant: Settles finalized rounds.
    :ivar round_duration: Length of each round in seconds.
    """

    def __init__(
        self,
        store: RoundStore,
        price_source: PriceSource,
        accountant: SettlementAccountant,
        round_duration: int = DEFAULT_ROUND_DURATION,
        clock: Callable[[], int] = wall_clock,
    ) -> None:
        """Initialize the controller.

        :param store: Authoritative state holder.
        :param price_source: Price source used for opening and closing rounds.
        :param accountant: Accountant that settles finalized rounds.
        :param round_duration: Round length in seconds (default: 900).
        :param clock: Callable returning the current Unix time in seconds.
        :raises ValueError: If round_duration is not positive.
        """
        if round_duration <= 0:
            raise ValueError("round_duration must be positive")
        self.store = store
        self.price_source = price_source
        self.accountant = accountant
        self.round_duration = round_duration
        self.clock = clock

    def current_round(self) -> Round:
        """Return the current round.

        :raises LookupError: If no round has been opened yet.
        """
        return self.store.current_round

    def check_status(self) -> RoundStatus:
        """Read-only status of the current round; safe to poll at any rate."""
        return RoundStatus.of(self.store.current_round, self.clock())

    def ensure_accepting_bets(self) -> Round:
        """Return the current round if it still accepts bets.

        :raises RoundFinalized: If the round is already finalized.
        :raises RoundEnded: If the round's end time has passed.
        """
        current = self.store.current_round
        phase = current.phase(self.clock())
        if phase is RoundPhase.FINALIZED:
            raise RoundFinalized(current.id)
        if phase is RoundPhase.EXPIRED:
            raise RoundEnded(current.id)
        return current

    def open_genesis_round(self) -> Round:
        """Open round 1 at the current fresh price.

        :returns: The new round.
        :raises ValueError: If a round already exists.
        :raises PriceFeedTooOld: If the oracle price is stale.
        :raises OracleUnavailable: If the oracle cannot be read.
        """
        with self.store.transaction():
            if self.store.has_round:
                raise ValueError("Genesis round already opened")
            reading = self.price_source.get_price()
            genesis = Round.open(
                round_id=1,
                start_time=self.clock(),
                start_price=reading.value,
                duration=self.round_duration,
            )
            self.store.open_round(genesis)
        logger.info(
            f"Round {genesis.id} opened at {format_price(genesis.start_price)}, "
            f"ends at {genesis.end_time}"
        )
        return genesis

    def start_new_round(self) -> Round:
        """Open the genesis round, or transition the current one.

        The choice is made under the store lock, so a caller that loses a
        genesis race is dispatched to the transition path and gets its
        idempotency signals.

        :returns: The newly opened round.
        :raises RoundNotExpired: The current round is still active.
        """
        with self.store.transaction():
            if not self.store.has_round:
                return self.open_genesis_round()
            return self.trigger_transition()

    def trigger_transition(self, round_id: int | None = None) -> Round:
        """Finalize the expired current round and open the next one.

        :param round_id: Id of the round the caller observed as expired.
            When another caller already transitioned it, the call fails
            with :class:`RoundAlreadyFinalized`. ``None`` targets whatever
            round is current.
        :returns: The newly opened round.
        :raises RoundAlreadyFinalized: The observed round was already closed.
        :raises RoundNotExpired: The current round has not reached its end time.
        :raises PriceFeedTooOld: The oracle price is stale (retryable).
        :raises OracleUnavailable: The oracle cannot be read (retryable).
        """
        with self.store.transaction():
            current = self.store.current_round
            if round_id is not None:
                if round_id > current.id:
                    raise ValueError(f"Unknown round {round_id}")
                if round_id < current.id or current.finalized:
                    raise RoundAlreadyFinalized(round_id)
            now = self.clock()
            phase = current.phase(now)
            if phase is RoundPhase.FINALIZED:
                raise RoundAlreadyFinalized(current.id)
            if phase is RoundPhase.ACTIVE:
                raise RoundNotExpired(current.id, current.time_left(now))
            return self.close_and_open_next()

    def close_and_open_next(self) -> Round:
        """Run the EXPIRED -> FINALIZED + ACTIVE transition as one unit.

        Callers must have checked that the current round is expired;
        :meth:`trigger_transition` does so.

        :returns: The newly opened round.
        """
        with self.store.transaction():
            # Strict read: a stale or missing price aborts before any write.
            reading = self.price_source.get_price()
            now = self.clock()

            finalized = self.store.finalize_current(reading.value)
            payouts = self.accountant.settle(finalized)
            next_round = Round.open(
                round_id=finalized.id + 1,
                start_time=now,
                start_price=finalized.end_price,
                duration=self.round_duration,
            )
            self.store.open_round(next_round)

        logger.info(
            f"Round {finalized.id} finalized: {format_price(finalized.start_price)} -> "
            f"{format_price(finalized.end_price)} "
            f"({'UP' if finalized.outcome_is_up else 'DOWN'}), {len(payouts)} winner(s)"
        )
        logger.info(
            f"Round {next_round.id} opened at {format_price(next_round.start_price)}, "
            f"ends at {next_round.end_time}"
        )
        return next_round
