"""RoundStore: the authoritative, serializing state holder.

Holds a single reference to the current round, an append-only log of
finalized rounds, per-round stakes, per-identity pending rewards, the
escrow of unsettled stakes and the pool balance.

Every mutation must run inside :meth:`RoundStore.transaction`. The
transaction holds a re-entrant lock, so mutations never interleave. Each
mutation records its inverse in an undo log; if the body raises, the
entries written since the block began are replayed in reverse, so each
block commits fully or not at all. Rollback cost is proportional to the
writes of the failed block, not to the size of the store.

.. code-block:: python

    >>> store = RoundStore()
    >>> with store.transaction():
    ...     store.open_round(Round.open(1, 0, 6000000000000))
    >>> store.current_round.id
    1
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator

from .Round import Round, Stake

logger = logging.getLogger(__name__)


@dataclass
class LedgerTotals:
    """Aggregate balances, mostly useful for invariant checks.

    :ivar pool_balance: Value available to cover payouts.
    :ivar escrow: Value staked on rounds not yet settled.
    :ivar total_pending: Sum of all pending rewards.
    """

    pool_balance: int = 0
    escrow: int = 0
    total_pending: int = 0
    pending_by_owner: dict[str, int] = field(default_factory=dict)


class RoundStore:
    """Serializing store for rounds, stakes, rewards and the pool.

    :ivar pool_owner: Identity allowed to withdraw from the pool.
    """

    def __init__(self, pool_owner: str | None = None) -> None:
        """Initialize an empty store.

        :param pool_owner: Identity allowed to withdraw from the pool.
        """
        self.pool_owner = pool_owner
        self._lock = threading.RLock()
        self._current: Round | None = None
        self._history: list[Round] = []
        self._stakes: dict[int, list[Stake]] = {}
        self._pending: dict[str, int] = {}
        self._settled: set[int] = set()
        self._pool_balance = 0
        self._escrow = 0
        self._undo: list[Callable[[], None]] = []
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[RoundStore]:
        """Run a block of mutations atomically.

        Nested transactions share the outer lock; an exception in a nested
        block rolls back only that block before propagating.
        """
        with self._lock:
            mark = len(self._undo)
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._rollback(mark)
                raise
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._undo.clear()

    def _rollback(self, mark: int) -> None:
        while len(self._undo) > mark:
            self._undo.pop()()
        logger.debug("Transaction rolled back")

    def _record(self, undo: Callable[[], None]) -> None:
        # Writes outside a transaction cannot be rolled back.
        if self._depth:
            self._undo.append(undo)

    @property
    def undo_depth(self) -> int:
        """Number of undo entries held by the open transaction."""
        return len(self._undo)

    # Reads

    @property
    def has_round(self) -> bool:
        """True once the genesis round has been opened."""
        return self._current is not None

    @property
    def current_round(self) -> Round:
        """The most recent round (active, or finalized mid-transition).

        :raises LookupError: If no round has been opened yet.
        """
        current = self._current
        if current is None:
            raise LookupError("No round has been opened yet")
        return current

    def get_round(self, round_id: int) -> Round:
        """Look up any round by id.

        :raises LookupError: If the round does not exist.
        """
        with self._lock:
            current = self._current
            if current is not None and current.id == round_id:
                return current
            for finalized in self._history:
                if finalized.id == round_id:
                    return finalized
        raise LookupError(f"Unknown round {round_id}")

    def finalized_rounds(self) -> tuple[Round, ...]:
        """All finalized rounds in finalization order."""
        with self._lock:
            return tuple(self._history)

    def stakes_for(self, round_id: int) -> tuple[Stake, ...]:
        """All stakes placed on a round, in placement order."""
        with self._lock:
            return tuple(self._stakes.get(round_id, ()))

    def pending(self, identity: str) -> int:
        """Pending reward owed to ``identity``."""
        return self._pending.get(identity, 0)

    def is_settled(self, round_id: int) -> bool:
        """Whether pending rewards were already credited for a round."""
        return round_id in self._settled

    @property
    def pool_balance(self) -> int:
        """Value available to cover payouts (pending rewards included)."""
        return self._pool_balance

    @property
    def escrow(self) -> int:
        """Value staked on rounds that are not settled yet."""
        return self._escrow

    def totals(self) -> LedgerTotals:
        """Consistent snapshot of the aggregate balances."""
        with self._lock:
            pending = {k: v for k, v in self._pending.items() if v}
            return LedgerTotals(
                pool_balance=self._pool_balance,
                escrow=self._escrow,
                total_pending=sum(pending.values()),
                pending_by_owner=pending,
            )

    # Mutations (call inside transaction())

    def open_round(self, new_round: Round) -> None:
        """Make ``new_round`` the current round.

        :raises ValueError: If the current round is still open or the id
            does not follow the current one.
        """
        current = self._current
        if current is not None:
            if not current.finalized:
                raise ValueError(
                    f"Cannot open round {new_round.id} while round {current.id} is open"
                )
            if new_round.id != current.id + 1:
                raise ValueError(
                    f"Round {new_round.id} does not follow round {current.id}"
                )
        self._current = new_round
        self._record(lambda: setattr(self, "_current", current))

    def finalize_current(self, end_price: int) -> Round:
        """Finalize the current round and append it to the history log.

        :param end_price: Fixed-point closing price.
        :returns: The finalized round.
        """
        previous = self.current_round
        finalized = previous.finalize(end_price)
        self._current = finalized
        self._history.append(finalized)

        def undo() -> None:
            self._history.pop()
            self._current = previous

        self._record(undo)
        return finalized

    def add_stake(self, stake: Stake) -> None:
        """Record a stake and move its amount into escrow."""
        stakes = self._stakes.setdefault(stake.round_id, [])
        stakes.append(stake)
        self._escrow += stake.amount

        def undo() -> None:
            stakes.pop()
            if not stakes:
                del self._stakes[stake.round_id]
            self._escrow -= stake.amount

        self._record(undo)

    def release_escrow(self, round_id: int) -> int:
        """Move a round's escrowed stakes into the pool.

        :returns: Amount moved.
        """
        amount = sum(s.amount for s in self._stakes.get(round_id, ()))
        self._escrow -= amount
        self._pool_balance += amount

        def undo() -> None:
            self._escrow += amount
            self._pool_balance -= amount

        self._record(undo)
        return amount

    def mark_settled(self, round_id: int) -> None:
        """Record that a round's rewards were credited.

        :raises ValueError: If the round was already settled.
        """
        if round_id in self._settled:
            raise ValueError(f"Round {round_id} already settled")
        self._settled.add(round_id)
        self._record(lambda: self._settled.discard(round_id))

    def credit(self, identity: str, amount: int) -> None:
        """Increase the pending reward of ``identity``."""
        self._set_pending(identity, self._pending.get(identity, 0) + amount)

    def clear_pending(self, identity: str) -> int:
        """Zero the pending reward of ``identity``.

        :returns: The amount that was pending.
        """
        amount = self._pending.get(identity, 0)
        self._set_pending(identity, None)
        return amount

    def _set_pending(self, identity: str, amount: int | None) -> None:
        previous = self._pending.get(identity)
        if amount is None:
            self._pending.pop(identity, None)
        else:
            self._pending[identity] = amount

        def undo() -> None:
            if previous is None:
                self._pending.pop(identity, None)
            else:
                self._pending[identity] = previous

        self._record(undo)

    def add_to_pool(self, amount: int) -> None:
        self._pool_balance += amount
        self._record(lambda: self._adjust_pool(-amount))

    def remove_from_pool(self, amount: int) -> None:
        if amount > self._pool_balance:
            raise ValueError("Pool balance cannot go negative")
        self._pool_balance -= amount
        self._record(lambda: self._adjust_pool(amount))

    def _adjust_pool(self, delta: int) -> None:
        self._pool_balance += delta
