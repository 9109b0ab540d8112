"""Shared fixtures: a controllable clock and an in-memory oracle feed."""

import pytest

from predictor.src.fixed_point import to_fixed
from predictor.src.PredictionGame import PredictionGame
from predictor.src.PriceSource import PriceFeed, PriceReading, PriceSource


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class FakeFeed(PriceFeed):
    """Oracle feed whose price, update time and failures are set by tests.

    Readings are stamped with the current clock unless ``updated_at`` is set.
    """

    name = "fake"

    def __init__(self, clock: FakeClock, price: int = to_fixed(60000)) -> None:
        self.clock = clock
        self.price = price
        self.updated_at: int | None = None
        self.error: Exception | None = None
        self.calls = 0

    def latest_price(self) -> PriceReading:
        self.calls += 1
        if self.error is not None:
            raise self.error
        updated_at = self.clock() if self.updated_at is None else self.updated_at
        return PriceReading(self.price, updated_at, source=self.name)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(10)


@pytest.fixture
def feed(clock: FakeClock) -> FakeFeed:
    return FakeFeed(clock)


@pytest.fixture
def price_source(feed: FakeFeed, clock: FakeClock) -> PriceSource:
    return PriceSource(feed, max_price_age=1800, clock=clock)


@pytest.fixture
def game(price_source: PriceSource, clock: FakeClock) -> PredictionGame:
    return PredictionGame.create(price_source, round_duration=900, pool_owner="owner", clock=clock)
