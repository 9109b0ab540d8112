"""Unit tests for RoundStore."""

import pytest

from predictor.src.Round import Round, Stake
from predictor.src.RoundStore import RoundStore

PRICE = 6_000_000_000_000


def _store_with_round(round_id: int = 1) -> RoundStore:
    store = RoundStore(pool_owner="owner")
    with store.transaction():
        store.open_round(Round.open(round_id, 0, PRICE))
    return store


class TestRoundStoreReads:
    """Test read access."""

    def test_empty_store(self) -> None:
        """No round before genesis."""
        store = RoundStore()
        assert not store.has_round
        with pytest.raises(LookupError):
            store.current_round
        assert store.pool_balance == 0
        assert store.escrow == 0

    def test_get_round_history(self) -> None:
        """Finalized rounds stay readable after the next one opens."""
        store = _store_with_round()
        with store.transaction():
            store.finalize_current(PRICE + 1)
            store.open_round(Round.open(2, 900, PRICE + 1))

        assert store.get_round(1).finalized
        assert store.get_round(2) is store.current_round
        assert [r.id for r in store.finalized_rounds()] == [1]
        with pytest.raises(LookupError):
            store.get_round(3)


class TestRoundStoreMutations:
    """Test invariants of the mutation primitives."""

    def test_cannot_open_while_current_unfinalized(self) -> None:
        """Single active round."""
        store = _store_with_round()
        with pytest.raises(ValueError):
            with store.transaction():
                store.open_round(Round.open(2, 900, PRICE))

    def test_next_id_must_follow(self) -> None:
        """Round ids increase by exactly one."""
        store = _store_with_round()
        with pytest.raises(ValueError):
            with store.transaction():
                store.finalize_current(PRICE)
                store.open_round(Round.open(3, 900, PRICE))
        # Rolled back as a whole
        assert not store.current_round.finalized
        assert store.finalized_rounds() == ()

    def test_escrow_moves_to_pool(self) -> None:
        """Stakes sit in escrow until released."""
        store = _store_with_round()
        with store.transaction():
            store.add_stake(Stake("alice", 1, 10, True))
            store.add_stake(Stake("bob", 1, 20, False))
        assert store.escrow == 30
        assert store.pool_balance == 0

        with store.transaction():
            assert store.release_escrow(1) == 30
        assert store.escrow == 0
        assert store.pool_balance == 30

    def test_mark_settled_once(self) -> None:
        """A round can be marked settled only once."""
        store = _store_with_round()
        with store.transaction():
            store.mark_settled(1)
        assert store.is_settled(1)
        with pytest.raises(ValueError):
            with store.transaction():
                store.mark_settled(1)

    def test_pool_cannot_go_negative(self) -> None:
        """Removing more than the pool holds fails."""
        store = RoundStore()
        with store.transaction():
            store.add_to_pool(5)
        with pytest.raises(ValueError):
            with store.transaction():
                store.remove_from_pool(6)
        assert store.pool_balance == 5


class TestRoundStoreTransaction:
    """Test atomicity of transactions."""

    def test_rollback_on_error(self) -> None:
        """Every write in a failed transaction is undone."""
        store = _store_with_round()
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_stake(Stake("alice", 1, 10, True))
                store.credit("alice", 99)
                store.add_to_pool(7)
                raise RuntimeError("boom")

        assert store.stakes_for(1) == ()
        assert store.pending("alice") == 0
        assert store.pool_balance == 0
        assert store.escrow == 0

    def test_nested_rollback_keeps_outer(self) -> None:
        """A failed inner block only undoes its own writes."""
        store = RoundStore()
        with store.transaction():
            store.add_to_pool(10)
            with pytest.raises(RuntimeError):
                with store.transaction():
                    store.add_to_pool(5)
                    raise RuntimeError("inner")
        assert store.pool_balance == 10

    def test_totals(self) -> None:
        """Totals aggregate pending rewards."""
        store = RoundStore()
        with store.transaction():
            store.add_to_pool(100)
            store.credit("alice", 30)
            store.credit("bob", 20)
            store.clear_pending("bob")
        totals = store.totals()
        assert totals.pool_balance == 100
        assert totals.total_pending == 30
        assert totals.pending_by_owner == {"alice": 30}

    def test_undo_log_cleared_on_commit(self) -> None:
        """Committed transactions leave no undo entries behind."""
        store = _store_with_round()
        for n in range(1, 50):
            with store.transaction():
                store.add_stake(Stake("alice", n, 1, True))
                store.finalize_current(PRICE)
                store.open_round(Round.open(n + 1, n * 900, PRICE))
            assert store.undo_depth == 0

        with store.transaction():
            store.add_stake(Stake("bob", 50, 5, False))
            # Only this block's write is logged, not the store's history.
            assert store.undo_depth == 1

    def test_rollback_restores_existing_entries(self) -> None:
        """Rollback restores prior values, not just removes new ones."""
        store = _store_with_round()
        with store.transaction():
            store.add_stake(Stake("alice", 1, 10, True))
            store.credit("alice", 40)
            store.add_to_pool(100)

        with pytest.raises(RuntimeError):
            with store.transaction():
                store.add_stake(Stake("bob", 1, 20, False))
                store.credit("alice", 5)
                assert store.clear_pending("alice") == 45
                store.remove_from_pool(60)
                store.mark_settled(1)
                store.finalize_current(PRICE)
                raise RuntimeError("boom")

        assert store.stakes_for(1) == (Stake("alice", 1, 10, True),)
        assert store.pending("alice") == 40
        assert store.pool_balance == 100
        assert store.escrow == 10
        assert not store.is_settled(1)
        assert not store.current_round.finalized
        assert store.finalized_rounds() == ()
        assert store.undo_depth == 0
