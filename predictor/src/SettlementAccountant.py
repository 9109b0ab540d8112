"""SettlementAccountant: pending-reward accounting for finalized rounds.

Algorithm for a finalized round:
    1. Partition stakes into winners (direction == outcome) and losers
    2. W = total winning stake, L = total losing stake
    3. Each winning stake pays ``amount + amount * L // W``
    4. If W == 0 nobody is paid and the losing stakes stay in the pool

Integer division leaves at most a few wei of dust per round in the pool,
so the sum of payouts never exceeds W + L.

.. code-block:: python

    >>> stakes = [Stake("alice", 5, 10, True), Stake("bob", 5, 20, False)]
    >>> compute_payouts(stakes, outcome_is_up=True)
    {'alice': 30}
"""

from __future__ import annotations

import logging

from .errors import (
    InsufficientPoolBalance,
    InvalidAmount,
    NoRewardsAvailable,
    NotPoolOwner,
    RoundAlreadyFinalized,
)
from .Round import Round, Stake
from .RoundStore import RoundStore

logger = logging.getLogger(__name__)


def compute_payouts(stakes: list[Stake] | tuple[Stake, ...], outcome_is_up: bool) -> dict[str, int]:
    """Compute the payout owed to each winning bettor.

    :param stakes: All stakes of one round.
    :param outcome_is_up: The round's outcome.
    :returns: Dict mapping bettor to total payout. Empty if nobody won.
    """
    winners = [s for s in stakes if s.direction == outcome_is_up]
    winning_total = sum(s.amount for s in winners)
    if winning_total == 0:
        return {}
    losing_total = sum(s.amount for s in stakes if s.direction != outcome_is_up)

    payouts: dict[str, int] = {}
    for stake in winners:
        share = stake.amount * losing_total // winning_total
        payouts[stake.bettor] = payouts.get(stake.bettor, 0) + stake.amount + share
    return payouts


def validate_amount(amount: object) -> int:
    """Check that ``amount`` is a positive integer (bools rejected).

    :raises InvalidAmount: Otherwise.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount)
    return amount


class SettlementAccountant:
    """Owns stakes, pending rewards and the pool inside a :class:`RoundStore`.

    :ivar store: The backing store.
    """

    def __init__(self, store: RoundStore) -> None:
        self.store = store

    def record_stake(self, stake: Stake) -> Stake:
        """Escrow a validated stake.

        Round timing checks belong to the controller; this only checks the
        amount.

        :raises InvalidAmount: If the amount is not positive.
        """
        validate_amount(stake.amount)
        with self.store.transaction():
            self.store.add_stake(stake)
        logger.debug(
            f"Stake recorded: {stake.bettor} {stake.amount} "
            f"{'UP' if stake.direction else 'DOWN'} on round {stake.round_id}"
        )
        return stake

    def settle(self, finalized: Round) -> dict[str, int]:
        """Credit winners of a just-finalized round, exactly once.

        :param finalized: The finalized round.
        :returns: Dict mapping bettor to credited amount.
        :raises ValueError: If the round is not finalized.
        :raises RoundAlreadyFinalized: If the round was already settled.
        """
        if not finalized.finalized:
            raise ValueError(f"Round {finalized.id} is not finalized")

        with self.store.transaction():
            if self.store.is_settled(finalized.id):
                raise RoundAlreadyFinalized(finalized.id)

            stakes = self.store.stakes_for(finalized.id)
            released = self.store.release_escrow(finalized.id)
            payouts = compute_payouts(stakes, finalized.outcome_is_up)
            for bettor, amount in payouts.items():
                self.store.credit(bettor, amount)
            self.store.mark_settled(finalized.id)

        paid = sum(payouts.values())
        if stakes and not payouts:
            logger.info(
                f"Round {finalized.id}: no winning stakes, {released} stays in pool"
            )
        elif payouts:
            logger.info(
                f"Round {finalized.id}: credited {paid} to {len(payouts)} winner(s), "
                f"dust {released - paid}"
            )
        return payouts

    def pending_rewards(self, identity: str) -> int:
        """Pending reward owed to ``identity``."""
        return self.store.pending(identity)

    def claim(self, identity: str) -> int:
        """Pay out the pending reward of ``identity`` from the pool.

        :returns: The amount paid.
        :raises NoRewardsAvailable: If nothing is pending.
        :raises InsufficientPoolBalance: If the pool cannot cover the claim.
        """
        with self.store.transaction():
            amount = self.store.pending(identity)
            if amount == 0:
                raise NoRewardsAvailable(identity)
            if amount > self.store.pool_balance:
                logger.error(
                    f"Pool balance {self.store.pool_balance} cannot cover "
                    f"claim of {amount} by {identity}"
                )
                raise InsufficientPoolBalance(amount, self.store.pool_balance)
            self.store.clear_pending(identity)
            self.store.remove_from_pool(amount)
        logger.info(f"{identity} claimed {amount}")
        return amount

    def deposit(self, amount: int) -> int:
        """Add external funds to the pool.

        :returns: The new pool balance.
        """
        validate_amount(amount)
        with self.store.transaction():
            self.store.add_to_pool(amount)
            balance = self.store.pool_balance
        logger.info(f"Pool deposit {amount}, balance {balance}")
        return balance

    def withdraw(self, identity: str, amount: int) -> int:
        """Withdraw pool funds not reserved for pending rewards.

        :returns: The new pool balance.
        :raises NotPoolOwner: If ``identity`` does not own the pool.
        :raises InsufficientPoolBalance: If the unreserved balance is too small.
        """
        validate_amount(amount)
        if self.store.pool_owner is None or identity != self.store.pool_owner:
            raise NotPoolOwner(identity)
        with self.store.transaction():
            totals = self.store.totals()
            available = totals.pool_balance - totals.total_pending
            if amount > available:
                raise InsufficientPoolBalance(amount, available)
            self.store.remove_from_pool(amount)
            balance = self.store.pool_balance
        logger.info(f"Pool withdrawal {amount}, balance {balance}")
        return balance
