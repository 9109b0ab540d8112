"""RoundKeeper: async polling shell around a game backend.

Each tick:
    1. Push a fresh observation to the in-memory feed (simulate mode)
    2. Read the round status and render it as a log line
    3. If the round expired, wait a few seconds for the feed to update and
       trigger the transition, retrying stale prices on a fixed schedule
    4. Sleep until the next poll (never less than ``min_poll_interval``)

Failed ticks back off exponentially, never polling faster than
``min_poll_interval``; idempotency signals are not failures.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Protocol

from .errors import RoundAlreadyFinalized, RoundNotExpired, StalenessError
from .fixed_point import format_price
from .PriceSource import ObservedPriceFeed, PriceSource
from .RetryPolicy import RetryPolicy
from .Round import Round, RoundStatus

logger = logging.getLogger(__name__)


class RoundDriver(Protocol):
    """What the keeper needs from a game backend."""

    def check_status(self) -> RoundStatus: ...

    def trigger_transition(self, round_id: int | None = None) -> Round: ...

    def pool_balance(self) -> int: ...


class TransitionOutcome(Enum):
    NOT_DUE = "not_due"
    TRANSITIONED = "transitioned"
    ALREADY_DONE = "already_done"
    GAVE_UP = "gave_up"


class RoundKeeper:
    """Polls a game backend and triggers round transitions.

    :ivar driver: Game backend (PredictionGame or ContractGame).
    :ivar price_source: Used for the display price, optional.
    :ivar observed_feed: In-memory feed refreshed from the fallbacks, optional.
    """

    def __init__(
        self,
        driver: RoundDriver,
        price_source: PriceSource | None = None,
        observed_feed: ObservedPriceFeed | None = None,
        poll_interval: float = 60,
        min_poll_interval: float = 30,
        transition_delay: float = 5,
        initial_delay: float = 10,
        stale_retry: RetryPolicy = RetryPolicy.fixed(120, max_attempts=3),
        failure_backoff: RetryPolicy = RetryPolicy.exponential(5, max_delay=300),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the keeper.

        :param driver: Game backend.
        :param price_source: Price source for display and observations.
        :param observed_feed: Feed to push observations to before each
            transition (simulate mode).
        :param poll_interval: Seconds between regular checks (default: 60).
        :param min_poll_interval: Lower bound for any poll delay (default: 30).
        :param transition_delay: Seconds to wait after expiry before
            triggering, so the oracle can update (default: 5).
        :param initial_delay: Seconds before the first check (default: 10).
        :param stale_retry: Retry schedule for stale prices.
        :param failure_backoff: Backoff schedule for failed ticks.
        :param sleep: Awaitable sleep, replaceable in tests.
        :raises ValueError: If the poll intervals are inconsistent.
        """
        if min_poll_interval <= 0:
            raise ValueError("min_poll_interval must be positive")
        if poll_interval < min_poll_interval:
            raise ValueError(
                f"poll_interval ({poll_interval}s) must be at least "
                f"min_poll_interval ({min_poll_interval}s)"
            )
        if observed_feed is not None and price_source is None:
            raise ValueError("observed_feed requires a price_source to fill it")
        self.driver = driver
        self.price_source = price_source
        self.observed_feed = observed_feed
        self.poll_interval = poll_interval
        self.min_poll_interval = min_poll_interval
        self.transition_delay = transition_delay
        self.initial_delay = initial_delay
        self.stale_retry = stale_retry
        self.failure_backoff = failure_backoff
        self._sleep = sleep
        self._running = False

    async def refresh_observation(self) -> bool:
        """Push the first fallback price to the observed feed.

        :returns: True if an observation was submitted.
        """
        if self.observed_feed is None:
            return False
        reading = await self.price_source.fetch_fallback()
        if reading is None:
            logger.warning("No fallback source returned a price to observe")
            return False
        self.observed_feed.submit_observation(reading.value, reading.updated_at)
        return True

    async def render(self, status: RoundStatus) -> str:
        """Log the state of the current round."""
        price = None
        if self.price_source is not None:
            price = await self.price_source.get_price_with_fallback()
        price_text = format_price(price) if price else "unknown"
        line = (
            f"Round {status.round.id}: {status.time_left}s left, "
            f"start {format_price(status.round.start_price)}, price {price_text}, "
            f"pool {self.driver.pool_balance()} wei"
        )
        logger.info(line)
        return line

    async def check_and_transition(self, status: RoundStatus | None = None) -> TransitionOutcome:
        """Trigger the transition if the current round is expired.

        :param status: Status already read this tick, or None to read it.
        :returns: What happened.
        :raises PredictionError: Non-retryable errors from the backend.
        """
        if status is None:
            status = self.driver.check_status()
        if not status.needs_transition:
            return TransitionOutcome.NOT_DUE

        round_id = status.round.id
        logger.info(
            f"Round {round_id} ended, triggering transition in {self.transition_delay}s"
        )
        await self._sleep(self.transition_delay)

        attempt = 0
        while True:
            await self.refresh_observation()
            try:
                new_round = self.driver.trigger_transition(round_id)
            except RoundNotExpired as exc:
                logger.info(f"Transition not due: {exc}")
                return TransitionOutcome.NOT_DUE
            except RoundAlreadyFinalized as exc:
                logger.info(f"Transition already done elsewhere: {exc}")
                return TransitionOutcome.ALREADY_DONE
            except StalenessError as exc:
                attempt += 1
                delay = self.stale_retry.delay_for(attempt)
                if delay is None:
                    logger.warning(
                        f"Round {round_id}: giving up after {attempt - 1} stale retries ({exc})"
                    )
                    return TransitionOutcome.GAVE_UP
                logger.warning(
                    f"Round {round_id}: {exc}, retry {attempt} in {delay:.0f}s"
                )
                await self._sleep(delay)
                continue

            logger.info(f"Round {round_id} closed, round {new_round.id} is active")
            return TransitionOutcome.TRANSITIONED

    def next_delay(self, status: RoundStatus) -> float:
        """Seconds until the next poll: the regular interval, or sooner
        when the round ends first, but never below ``min_poll_interval``.
        """
        delay = self.poll_interval
        if 0 < status.time_left < delay:
            delay = status.time_left
        return max(delay, self.min_poll_interval)

    async def tick(self) -> float:
        """Run one poll.

        :returns: Seconds to wait before the next poll.
        """
        await self.refresh_observation()
        status = self.driver.check_status()
        await self.render(status)
        if status.needs_transition:
            outcome = await self.check_and_transition(status)
            if outcome in (TransitionOutcome.TRANSITIONED, TransitionOutcome.ALREADY_DONE):
                status = self.driver.check_status()
        return self.next_delay(status)

    async def run(self, max_ticks: int | None = None) -> None:
        """Poll until stopped (or for ``max_ticks`` ticks).

        :raises PredictionError: When failed ticks exhaust the backoff schedule.
        """
        self._running = True
        logger.info(
            f"Keeper starting: poll every {self.poll_interval}s, "
            f"first check in {self.initial_delay}s"
        )
        await self._sleep(self.initial_delay)

        ticks = 0
        failures = 0
        while self._running and (max_ticks is None or ticks < max_ticks):
            ticks += 1
            try:
                delay = await self.tick()
            except Exception as exc:
                failures += 1
                delay = self.failure_backoff.delay_for(failures)
                if delay is None:
                    logger.error(f"Keeper giving up after {failures} failed checks")
                    raise
                delay = max(delay, self.min_poll_interval)
                logger.error(
                    f"Keeper check failed ({failures} in a row): {exc!r}, "
                    f"backing off {delay:.0f}s"
                )
                await self._sleep(delay)
                continue

            failures = 0
            await self._sleep(delay)
        self._running = False

    def stop(self) -> None:
        self._running = False
