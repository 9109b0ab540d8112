"""Unit tests for RoundController, the round state machine."""

import threading

import pytest

from predictor.src.errors import (
    OracleUnavailable,
    PriceFeedTooOld,
    RoundAlreadyFinalized,
    RoundEnded,
    RoundFinalized,
    RoundNotExpired,
)
from predictor.src.fixed_point import to_fixed
from predictor.src.Round import Round, Stake
from predictor.src.RoundController import RoundController
from predictor.src.RoundStore import RoundStore
from predictor.src.SettlementAccountant import SettlementAccountant

ETHER = 10**18


@pytest.fixture
def controller(price_source, clock) -> RoundController:
    store = RoundStore(pool_owner="owner")
    return RoundController(store, price_source, SettlementAccountant(store), round_duration=900, clock=clock)


class TestGenesis:
    """Test opening the first round."""

    def test_open_genesis(self, controller, clock) -> None:
        """Round 1 opens at the current oracle price."""
        genesis = controller.start_new_round()
        assert genesis.id == 1
        assert genesis.start_time == clock()
        assert genesis.start_price == to_fixed(60000)
        assert controller.current_round() == genesis

    def test_genesis_only_once(self, controller) -> None:
        """A second genesis is refused."""
        controller.open_genesis_round()
        with pytest.raises(ValueError):
            controller.open_genesis_round()

    def test_genesis_needs_fresh_price(self, controller, feed, clock) -> None:
        """A stale oracle blocks the genesis round."""
        clock.advance(5000)
        feed.updated_at = 0
        with pytest.raises(PriceFeedTooOld):
            controller.open_genesis_round()
        assert not controller.store.has_round

    def test_status_before_genesis(self, controller) -> None:
        """No status without a round."""
        with pytest.raises(LookupError):
            controller.check_status()


class TestTransition:
    """Test the EXPIRED -> FINALIZED + ACTIVE transition."""

    def test_not_expired(self, controller, clock) -> None:
        """Triggering early is an idempotency signal."""
        controller.start_new_round()
        clock.advance(899)
        with pytest.raises(RoundNotExpired) as exc_info:
            controller.trigger_transition()
        assert exc_info.value.time_left == 1
        assert controller.current_round().id == 1

    def test_continuity(self, controller, feed, clock) -> None:
        """Next round starts at the previous round's end price and time."""
        first = controller.start_new_round()
        clock.advance(903)
        feed.price = to_fixed(61000)

        second = controller.trigger_transition(first.id)
        closed = controller.store.get_round(first.id)

        assert second.id == first.id + 1
        assert second.start_price == closed.end_price == to_fixed(61000)
        assert second.start_time == clock()
        assert second.end_time == clock() + 900
        assert closed.finalized and closed.outcome_is_up

    def test_single_active_round(self, controller, clock) -> None:
        """Exactly one unfinalized round after any number of transitions."""
        controller.start_new_round()
        for _ in range(3):
            clock.advance(900)
            controller.trigger_transition()
        history = controller.store.finalized_rounds()
        assert [r.id for r in history] == [1, 2, 3]
        assert all(r.finalized for r in history)
        assert not controller.current_round().finalized
        assert controller.current_round().id == 4

    def test_stale_price_blocks_finalization(self, controller, feed, clock) -> None:
        """A stale price leaves the round expired and untouched."""
        controller.start_new_round()
        clock.advance(2000)
        feed.updated_at = clock() - 1801

        with pytest.raises(PriceFeedTooOld):
            controller.trigger_transition()
        current = controller.current_round()
        assert current.id == 1
        assert not current.finalized
        assert controller.check_status().needs_transition

        # Recovers once the feed updates
        feed.updated_at = None
        assert controller.trigger_transition().id == 2

    def test_unreadable_oracle(self, controller, feed, clock) -> None:
        """Oracle failures surface as OracleUnavailable."""
        controller.start_new_round()
        clock.advance(900)
        feed.error = ConnectionError("rpc down")
        with pytest.raises(OracleUnavailable):
            controller.trigger_transition()
        assert controller.store.finalized_rounds() == ()

    def test_finalize_once(self, controller, clock) -> None:
        """An observed round that was already closed is not closed again."""
        first = controller.start_new_round()
        clock.advance(900)
        controller.trigger_transition(first.id)

        clock.advance(900)
        with pytest.raises(RoundAlreadyFinalized):
            controller.trigger_transition(first.id)
        assert controller.current_round().id == 2

    def test_unknown_future_round(self, controller) -> None:
        """Round ids ahead of the current one are rejected."""
        controller.start_new_round()
        with pytest.raises(ValueError):
            controller.trigger_transition(7)

    def test_settlement_failure_rolls_back(self, controller, clock) -> None:
        """If settlement fails the round is not finalized."""
        first = controller.start_new_round()
        clock.advance(900)
        with controller.store.transaction():
            controller.store.mark_settled(first.id)

        with pytest.raises(RoundAlreadyFinalized):
            controller.trigger_transition()
        assert not controller.current_round().finalized
        assert controller.store.finalized_rounds() == ()


class TestExampleScenario:
    """Round 5: Alice 0.01 UP, Bob 0.02 DOWN, 60000 -> 61000."""

    def test_round_five(self, price_source, feed, clock) -> None:
        """Alice is credited 0.03, round 6 starts at 61000 at t=910."""
        store = RoundStore()
        accountant = SettlementAccountant(store)
        controller = RoundController(store, price_source, accountant, round_duration=900, clock=clock)
        with store.transaction():
            store.open_round(Round.open(5, 10, to_fixed(60000), 900))

        controller.ensure_accepting_bets()
        accountant.record_stake(Stake("alice", 5, ETHER // 100, True))
        accountant.record_stake(Stake("bob", 5, ETHER // 50, False))

        clock.now = 910
        feed.price = to_fixed(61000)
        next_round = controller.trigger_transition(5)

        assert next_round.id == 6
        assert next_round.start_time == 910
        assert next_round.start_price == to_fixed(61000)
        assert accountant.pending_rewards("alice") == 3 * ETHER // 100
        assert accountant.pending_rewards("bob") == 0


class TestAcceptingBets:
    """Test ensure_accepting_bets()."""

    def test_active(self, controller) -> None:
        """Active round accepts bets."""
        genesis = controller.start_new_round()
        assert controller.ensure_accepting_bets() == genesis

    def test_expired(self, controller, clock) -> None:
        """Expired round refuses bets."""
        controller.start_new_round()
        clock.advance(900)
        with pytest.raises(RoundEnded):
            controller.ensure_accepting_bets()

    def test_finalized(self, controller) -> None:
        """Finalized round refuses bets."""
        controller.start_new_round()
        with controller.store.transaction():
            controller.store.finalize_current(to_fixed(61000))
        with pytest.raises(RoundFinalized):
            controller.ensure_accepting_bets()


class TestConcurrentTriggers:
    """Redundant pollers racing on the same expired round."""

    def test_exactly_one_wins(self, controller, clock) -> None:
        """One caller transitions; all others see RoundAlreadyFinalized."""
        first = controller.start_new_round()
        clock.advance(900)

        barrier = threading.Barrier(8)
        results: list[str] = []
        results_lock = threading.Lock()

        def trigger() -> None:
            barrier.wait()
            try:
                controller.trigger_transition(first.id)
                outcome = "won"
            except RoundAlreadyFinalized:
                outcome = "already"
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=trigger) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("won") == 1
        assert results.count("already") == 7
        assert controller.current_round().id == 2
        assert [r.id for r in controller.store.finalized_rounds()] == [1]

    def test_concurrent_genesis(self, controller) -> None:
        """Racing genesis calls open one round; the rest see it active."""
        barrier = threading.Barrier(8)
        results: list[str] = []
        results_lock = threading.Lock()

        def start() -> None:
            barrier.wait()
            try:
                controller.start_new_round()
                outcome = "opened"
            except RoundNotExpired:
                outcome = "active"
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=start) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("opened") == 1
        assert results.count("active") == 7
        assert controller.current_round().id == 1
