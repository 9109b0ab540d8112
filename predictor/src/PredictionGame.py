"""PredictionGame: in-process ledger exposing the game's contract surface.

Wires a :class:`RoundStore`, :class:`RoundController` and
:class:`SettlementAccountant` together and offers the same operations as the
deployed contract (bets, rounds, rewards, pool). Identities are passed in
explicitly since there is no transaction sender.

.. code-block:: python

    game = PredictionGame.create(price_source, round_duration=900, pool_owner="0xOwner")
    game.start_new_round()
    game.place_bet("0xAlice", True, Web3.to_wei(0.01, "ether"))
"""

from __future__ import annotations

import logging
from typing import Callable

from .PriceSource import PriceSource
from .Round import DEFAULT_ROUND_DURATION, Round, RoundStatus, Stake, wall_clock
from .RoundController import RoundController
from .RoundStore import RoundStore
from .SettlementAccountant import SettlementAccountant, validate_amount

logger = logging.getLogger(__name__)


class PredictionGame:
    """Facade over the round controller and settlement accountant.

    :ivar store: Authoritative state.
    :ivar controller: Round state machine.
    :ivar accountant: Stakes, rewards and pool.
    """

    def __init__(
        self,
        store: RoundStore,
        controller: RoundController,
        accountant: SettlementAccountant,
    ) -> None:
        self.store = store
        self.controller = controller
        self.accountant = accountant

    @classmethod
    def create(
        cls,
        price_source: PriceSource,
        round_duration: int = DEFAULT_ROUND_DURATION,
        pool_owner: str | None = None,
        clock: Callable[[], int] = wall_clock,
    ) -> PredictionGame:
        """Build a game with a fresh, empty store.

        :param price_source: Price source for round boundaries.
        :param round_duration: Round length in seconds.
        :param pool_owner: Identity allowed to withdraw from the pool.
        :param clock: Callable returning the current Unix time.
        """
        store = RoundStore(pool_owner=pool_owner)
        accountant = SettlementAccountant(store)
        controller = RoundController(
            store,
            price_source,
            accountant,
            round_duration=round_duration,
            clock=clock,
        )
        return cls(store, controller, accountant)

    # Rounds

    def get_current_round(self) -> Round:
        return self.controller.current_round()

    def get_current_round_id(self) -> int:
        return self.controller.current_round().id

    def get_round(self, round_id: int) -> Round:
        return self.store.get_round(round_id)

    def check_status(self) -> RoundStatus:
        return self.controller.check_status()

    def start_new_round(self) -> Round:
        return self.controller.start_new_round()

    def trigger_transition(self, round_id: int | None = None) -> Round:
        return self.controller.trigger_transition(round_id)

    def get_latest_price(self) -> int:
        """Fresh oracle price.

        :raises PriceFeedTooOld: If the oracle reading is stale.
        :raises OracleUnavailable: If the oracle cannot be read.
        """
        return self.controller.price_source.get_price().value

    # Bets

    def place_bet(self, bettor: str, is_up: bool, amount: int) -> Stake:
        """Stake ``amount`` on the current round.

        :raises InvalidAmount: If the amount is not a positive integer.
        :raises RoundEnded: If the round's end time has passed.
        :raises RoundFinalized: If the round is finalized.
        """
        validate_amount(amount)
        with self.store.transaction():
            current = self.controller.ensure_accepting_bets()
            stake = self.accountant.record_stake(
                Stake(bettor=bettor, round_id=current.id, amount=amount, direction=bool(is_up))
            )
        logger.info(
            f"{bettor} bet {amount} {'UP' if stake.direction else 'DOWN'} "
            f"on round {stake.round_id}"
        )
        return stake

    def get_user_bets(self, round_id: int, identity: str) -> list[Stake]:
        return [s for s in self.store.stakes_for(round_id) if s.bettor == identity]

    # Rewards and pool

    def pending_rewards(self, identity: str) -> int:
        return self.accountant.pending_rewards(identity)

    def claim_rewards(self, identity: str) -> int:
        return self.accountant.claim(identity)

    def pool_balance(self) -> int:
        return self.store.pool_balance

    def deposit_to_pool(self, amount: int) -> int:
        return self.accountant.deposit(amount)

    def withdraw_from_pool(self, identity: str, amount: int) -> int:
        return self.accountant.withdraw(identity, amount)
