"""PriceSource: oracle reads with freshness checks and a degrading fallback.

Two read paths:

- :meth:`PriceSource.get_price` is strict. It is what round transitions
  use, and it refuses stale or missing data so rounds are never settled on
  a bad price.
- :meth:`PriceSource.get_price_with_fallback` is for display. It tries the
  oracle, then each fallback HTTP source in order, then the last known good
  price, then a configured default. It never raises.

Oracle feeds:
    - ContractPriceFeed: Chainlink-compatible aggregator contract via web3
    - ObservedPriceFeed: in-memory feed that a keeper pushes observations to
"""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from .errors import OracleUnavailable, PriceFeedTooOld, StalenessError
from .fetchers import BaseFetcher, FetcherError
from .fixed_point import PRICE_DECIMALS, format_price, rescale, to_fixed
from .Round import wall_clock
from .SourceManager import SourceManager

if TYPE_CHECKING:
    from web3.contract import Contract

logger = logging.getLogger(__name__)

# Readings older than this are never used to settle a round (30 minutes).
DEFAULT_MAX_PRICE_AGE = 1800


def fallback_to_fixed(price: float | None) -> int | None:
    """Convert a fetcher's price to fixed point.

    :returns: Positive fixed-point price, or None for missing, non-finite
        or non-positive prices.
    """
    if not isinstance(price, (int, float)) or not math.isfinite(price) or price <= 0:
        return None
    value = to_fixed(price)
    return value if value > 0 else None


@dataclass(frozen=True)
class PriceReading:
    """A price and the time it was last updated.

    :ivar value: Fixed-point price with :data:`PRICE_DECIMALS` decimals.
    :ivar updated_at: Unix timestamp of the last update.
    :ivar source: Where the reading came from.
    """

    value: int
    updated_at: int
    source: str = "oracle"

    def age(self, now: int) -> int:
        """Seconds since the reading was updated."""
        return now - self.updated_at

    def is_fresh(self, now: int, max_age: int) -> bool:
        """Check the reading against a maximum age."""
        return self.age(now) <= max_age


class PriceFeed(ABC):
    """Read-only oracle capability.

    :cvar name: Label used in logs and readings.
    """

    name = "oracle"

    @abstractmethod
    def latest_price(self) -> PriceReading:
        """Return the feed's latest reading.

        :raises Exception: Any error when the feed cannot be read.
        """
        pass


class ContractPriceFeed(PriceFeed):
    """Chainlink-compatible on-chain aggregator (e.g. Blocksense BTC/USDT).

    :ivar contract: Aggregator contract exposing ``latestRoundData()`` and
        ``decimals()``.
    :ivar decimals: Decimals reported by the contract.
    """

    name = "contract"

    def __init__(self, contract: Contract) -> None:
        self.contract = contract
        self.decimals: int = contract.functions.decimals().call()
        logger.info(
            f"Using price feed {contract.address} (decimals={self.decimals})"
        )

    def latest_price(self) -> PriceReading:
        """Read ``latestRoundData()`` and rescale to 8 decimals.

        :raises OracleUnavailable: If the feed reports a non-positive answer.
        """
        _, answer, _, updated_at, _ = self.contract.functions.latestRoundData().call()
        if answer <= 0:
            raise OracleUnavailable(f"Feed {self.contract.address} returned {answer}")
        return PriceReading(
            value=rescale(answer, self.decimals, PRICE_DECIMALS),
            updated_at=int(updated_at),
            source=self.name,
        )


class ObservedPriceFeed(PriceFeed):
    """In-memory oracle; the latest submitted observation wins."""

    name = "observed"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: PriceReading | None = None

    def submit_observation(self, value: int, updated_at: int) -> None:
        """Store a new observation.

        :param value: Fixed-point price.
        :param updated_at: Unix timestamp of the observation.
        :raises ValueError: If the price is not positive.
        """
        if value <= 0:
            raise ValueError("Observed price must be positive")
        with self._lock:
            self._latest = PriceReading(value, updated_at, source=self.name)

    def latest_price(self) -> PriceReading:
        """Return the latest observation.

        :raises OracleUnavailable: If nothing was observed yet.
        """
        with self._lock:
            latest = self._latest
        if latest is None:
            raise OracleUnavailable("No price observed yet")
        return latest


class PriceSource:
    """Strict and degrading price reads over an oracle feed.

    :ivar feed: Primary oracle feed.
    :ivar fallbacks: Fallback HTTP sources by name, tried in order.
    :ivar max_price_age: Maximum accepted age of an oracle reading (seconds).
    :ivar default_price: Returned when nothing else is available.
    :ivar fetch_timeout: Upper bound for each fallback request (seconds).
    :ivar last_good: Most recent reading that passed validation.
    """

    def __init__(
        self,
        feed: PriceFeed,
        fallbacks: dict[str, BaseFetcher] | None = None,
        max_price_age: int = DEFAULT_MAX_PRICE_AGE,
        default_price: int = 0,
        fetch_timeout: float = 5.0,
        base: str = "btc",
        quote: str = "usd",
        clock: Callable[[], int] = wall_clock,
    ) -> None:
        """Initialize the price source.

        :param feed: Primary oracle feed.
        :param fallbacks: Fallback fetchers in priority order.
        :param max_price_age: Maximum oracle age in seconds (default: 1800).
        :param default_price: Price returned when every source failed and no
            reading was ever seen (default: 0, meaning "unknown").
        :param fetch_timeout: Timeout per fallback request (default: 5.0).
        :param base: Base currency (default: "btc").
        :param quote: Quote currency (default: "usd").
        :param clock: Callable returning the current Unix time.
        :raises ValueError: If max_price_age is not positive.
        """
        if max_price_age <= 0:
            raise ValueError("max_price_age must be positive")
        self.feed = feed
        self.fallbacks = dict(fallbacks or {})
        self.max_price_age = max_price_age
        self.default_price = default_price
        self.fetch_timeout = fetch_timeout
        self.base = base
        self.quote = quote
        self.clock = clock
        self.source_manager = SourceManager(list(self.fallbacks), clock=clock)
        self.last_good: PriceReading | None = None

    def get_price(self) -> PriceReading:
        """Read a fresh price from the oracle.

        :returns: The oracle reading.
        :raises OracleUnavailable: If the feed call failed.
        :raises PriceFeedTooOld: If the reading is older than max_price_age.
        """
        try:
            reading = self.feed.latest_price()
        except StalenessError:
            raise
        except Exception as exc:
            raise OracleUnavailable(f"{self.feed.name} feed failed: {exc}") from exc

        age = reading.age(self.clock())
        if age > self.max_price_age:
            raise PriceFeedTooOld(age=age, max_age=self.max_price_age)

        self.last_good = reading
        return reading

    async def fetch_fallback(self) -> PriceReading | None:
        """Try each active fallback source in order.

        Sources that fail, time out or return an unusable price are benched
        by the SourceManager.

        :returns: First successful reading, or None if all failed.
        """
        for name in self.source_manager.active_sources():
            fetcher = self.fallbacks[name]
            try:
                price = await asyncio.wait_for(
                    fetcher.fetch(self.base, self.quote), timeout=self.fetch_timeout
                )
            except (FetcherError, asyncio.TimeoutError) as exc:
                logger.warning(f"[{name}] fallback fetch failed: {exc!r}")
                price = None
            except Exception as exc:
                logger.error(f"[{name}] unexpected fallback error: {exc!r}")
                price = None

            value = fallback_to_fixed(price)
            if value is None:
                backoff = self.source_manager.record_failure(name)
                logger.debug(f"[{name}] no usable price ({price!r}), backoff {backoff:.1f}s")
                continue

            self.source_manager.record_success(name)
            reading = PriceReading(value, self.clock(), source=name)
            self.last_good = reading
            logger.debug(f"[{name}] fallback price {format_price(reading.value)}")
            return reading
        return None

    async def get_price_with_fallback(self) -> int:
        """Best available price for display. Never raises.

        :returns: Fixed-point price, or ``default_price`` if nothing is known.
        """
        try:
            return self.get_price().value
        except StalenessError as exc:
            logger.warning(f"Oracle unusable for display ({exc}), trying fallbacks")

        reading = await self.fetch_fallback()
        if reading is not None:
            return reading.value

        if self.last_good is not None:
            logger.warning(
                f"All price sources failed, using last known "
                f"{format_price(self.last_good.value)} from {self.last_good.source}"
            )
            return self.last_good.value

        logger.warning("All price sources failed and no price is known")
        return self.default_price
