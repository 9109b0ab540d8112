"""ContractGame: web3 client for the deployed BitcoinPricePrediction contract.

Offers the same surface as :class:`PredictionGame`, backed by the chain.
The contract orders all state-changing calls; a racing keeper's request
reverts. Revert reasons are mapped onto the game's error taxonomy.

State-changing calls:
    1. Pre-flight with ``call()`` (reverts surface with their reason)
    2. Build with a fixed gas limit, or 120% of the estimate for bets
    3. Sign, send and wait for the receipt through the :class:`Wallet`
    4. Raise :class:`TransactionFailed` if the receipt reports a revert
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from web3 import Web3
from web3.exceptions import ContractLogicError

from .errors import (
    InsufficientPoolBalance,
    InvalidAmount,
    NoRewardsAvailable,
    NotPoolOwner,
    PredictionError,
    PriceFeedTooOld,
    RoundAlreadyFinalized,
    RoundEnded,
    RoundFinalized,
    RoundNotExpired,
    TransactionFailed,
)
from .fixed_point import format_price
from .Round import Round, RoundPhase, RoundStatus, Stake, wall_clock
from .SettlementAccountant import validate_amount

if TYPE_CHECKING:
    from web3.contract import Contract
    from web3.contract.contract import ContractFunction
    from web3.types import TxReceipt

    from .Wallet import Wallet

logger = logging.getLogger(__name__)

START_ROUND_GAS_LIMIT = 500_000
CLAIM_GAS_LIMIT = 300_000
# placeBet is sent with 120% of its gas estimate.
BET_GAS_MARGIN_PERCENT = 120


def revert_to_error(
    reason: str,
    action: str,
    round_id: int = 0,
    identity: str = "",
    amount: int = 0,
) -> PredictionError | None:
    """Translate a contract revert reason into a game error.

    :param reason: Revert message, e.g. "execution reverted: Price feed too old".
    :param action: Contract function that reverted.
    :param round_id: Round the call targeted, for error context.
    :param identity: Caller address, for error context.
    :param amount: Value involved, for error context.
    :returns: Matching error, or None if the reason is not recognized.
    """
    text = reason.lower()
    if "price feed too old" in text:
        return PriceFeedTooOld()
    if "not ended" in text or "still active" in text:
        return RoundNotExpired(round_id, 0)
    if "already finalized" in text:
        if action == "placeBet":
            return RoundFinalized(round_id)
        return RoundAlreadyFinalized(round_id)
    if "already ended" in text:
        return RoundEnded(round_id)
    if "no rewards" in text:
        return NoRewardsAvailable(identity)
    if "insufficient" in text and "balance" in text:
        return InsufficientPoolBalance(amount, 0)
    if "owner" in text:
        return NotPoolOwner(identity)
    if "amount" in text or "must send" in text:
        return InvalidAmount(amount)
    return None


class ContractGame:
    """On-chain game client acting as the wallet's identity.

    :ivar w3: Connected Web3 instance.
    :ivar contract: BitcoinPricePrediction contract.
    :ivar wallet: Signing identity.
    """

    def __init__(
        self,
        w3: Web3,
        contract: Contract,
        wallet: Wallet,
        clock: Callable[[], int] = wall_clock,
    ) -> None:
        self.w3 = w3
        self.contract = contract
        self.wallet = wallet
        self.clock = clock

    def _transact(
        self,
        fn: ContractFunction,
        action: str,
        gas: int | None = None,
        value: int = 0,
        round_id: int = 0,
    ) -> TxReceipt:
        """Pre-flight, submit and check a state-changing call.

        :param fn: Bound contract function.
        :param action: Function name for logs and error mapping.
        :param gas: Fixed gas limit; None estimates with a margin.
        :param value: Wei sent along.
        :param round_id: Round the call targets, for error context.
        :returns: Successful receipt.
        :raises PredictionError: Mapped revert reason, or TransactionFailed.
        """
        params = {"from": self.wallet.address, "value": value}
        try:
            fn.call(params)
            if gas is None:
                gas = fn.estimate_gas(params) * BET_GAS_MARGIN_PERCENT // 100
            tx = fn.build_transaction(
                {**params, "gas": gas, "gasPrice": self.w3.eth.gas_price}
            )
        except ContractLogicError as exc:
            mapped = revert_to_error(
                str(exc), action, round_id=round_id, identity=self.wallet.address, amount=value
            )
            if mapped is None:
                raise
            raise mapped from exc

        receipt = self.wallet.submit_tx(tx)
        tx_hash = receipt.get("transactionHash")
        tx_hash = tx_hash.hex() if hasattr(tx_hash, "hex") else str(tx_hash)
        if receipt.get("status") != 1:
            logger.warning(f"{action} reverted on-chain (tx={tx_hash}, gas={gas})")
            raise TransactionFailed(action, tx_hash)
        logger.info(f"{action} mined (tx={tx_hash}, gasUsed={receipt.get('gasUsed')})")
        return receipt

    def _read(self, fn: ContractFunction, action: str):
        try:
            return fn.call()
        except ContractLogicError as exc:
            mapped = revert_to_error(str(exc), action)
            if mapped is None:
                raise
            raise mapped from exc

    # Rounds

    def get_current_round_id(self) -> int:
        return int(self._read(self.contract.functions.currentRoundId(), "currentRoundId"))

    def get_current_round(self) -> Round:
        round_id = self.get_current_round_id()
        data = self._read(self.contract.functions.getCurrentRound(), "getCurrentRound")
        return self._to_round(round_id, data)

    def get_round(self, round_id: int) -> Round:
        data = self._read(self.contract.functions.rounds(round_id), "rounds")
        return self._to_round(round_id, data)

    @staticmethod
    def _to_round(round_id: int, data) -> Round:
        start_time, end_time, start_price, end_price, is_up, finalized = data
        return Round(
            id=round_id,
            start_time=int(start_time),
            end_time=int(end_time),
            start_price=int(start_price),
            end_price=int(end_price),
            outcome_is_up=bool(is_up),
            finalized=bool(finalized),
        )

    def check_status(self) -> RoundStatus:
        return RoundStatus.of(self.get_current_round(), self.clock())

    def start_new_round(self) -> Round:
        """Send ``startNewRound`` without local pre-checks.

        :returns: The round that is current afterwards.
        """
        current_id = self.get_current_round_id()
        self._transact(
            self.contract.functions.startNewRound(),
            "startNewRound",
            gas=START_ROUND_GAS_LIMIT,
            round_id=current_id,
        )
        return self.get_current_round()

    def trigger_transition(self, round_id: int | None = None) -> Round:
        """Finalize the expired round on-chain and open the next one.

        :param round_id: Id of the round the caller observed as expired.
        :returns: The newly opened round.
        :raises RoundAlreadyFinalized: Another caller already transitioned it.
        :raises RoundNotExpired: The round has not reached its end time.
        :raises PriceFeedTooOld: The contract rejected the oracle price.
        :raises TransactionFailed: The transaction was mined but reverted.
        """
        current = self.get_current_round()
        if round_id is not None and round_id < current.id:
            raise RoundAlreadyFinalized(round_id)
        now = self.clock()
        phase = current.phase(now)
        if phase is RoundPhase.FINALIZED:
            raise RoundAlreadyFinalized(current.id)
        if phase is RoundPhase.ACTIVE:
            raise RoundNotExpired(current.id, current.time_left(now))

        logger.info(f"Round {current.id} ended, starting new round...")
        self._transact(
            self.contract.functions.startNewRound(),
            "startNewRound",
            gas=START_ROUND_GAS_LIMIT,
            round_id=current.id,
        )
        next_round = self.get_current_round()
        logger.info(
            f"Round {next_round.id} started at {format_price(next_round.start_price)}"
        )
        return next_round

    def get_latest_price(self) -> int:
        """Oracle price as validated by the contract.

        :raises PriceFeedTooOld: If the contract considers the feed stale.
        """
        return int(self._read(self.contract.functions.getLatestPrice(), "getLatestPrice"))

    # Bets

    def place_bet(self, is_up: bool, amount: int) -> Stake:
        """Bet ``amount`` wei on the current round as the wallet's identity.

        :raises InvalidAmount: If the amount is not positive.
        :raises RoundEnded: If the round's end time has passed.
        :raises RoundFinalized: If the round is finalized.
        """
        validate_amount(amount)
        current = self.get_current_round()
        phase = current.phase(self.clock())
        if phase is RoundPhase.FINALIZED:
            raise RoundFinalized(current.id)
        if phase is RoundPhase.EXPIRED:
            raise RoundEnded(current.id)

        self._transact(
            self.contract.functions.placeBet(bool(is_up)),
            "placeBet",
            value=amount,
            round_id=current.id,
        )
        return Stake(
            bettor=self.wallet.address,
            round_id=current.id,
            amount=amount,
            direction=bool(is_up),
        )

    def get_user_bets(self, round_id: int, identity: str) -> list[Stake]:
        bets = self._read(
            self.contract.functions.getUserBets(round_id, Web3.to_checksum_address(identity)),
            "getUserBets",
        )
        return [
            Stake(bettor=user, round_id=int(bet_round), amount=int(amount), direction=bool(is_up))
            for user, amount, is_up, bet_round in bets
        ]

    # Rewards and pool

    def pending_rewards(self, identity: str) -> int:
        return int(
            self._read(
                self.contract.functions.pendingRewards(Web3.to_checksum_address(identity)),
                "pendingRewards",
            )
        )

    def claim_rewards(self) -> int:
        """Claim the wallet's pending rewards.

        :returns: The amount claimed.
        :raises NoRewardsAvailable: If nothing is pending.
        :raises InsufficientPoolBalance: If the contract cannot cover it.
        """
        identity = self.wallet.address
        pending = self.pending_rewards(identity)
        if pending == 0:
            raise NoRewardsAvailable(identity)

        contract_balance = self.w3.eth.get_balance(self.contract.address)
        if contract_balance < pending:
            logger.error(
                f"Contract balance {contract_balance} cannot cover claim of {pending}"
            )
            raise InsufficientPoolBalance(pending, contract_balance)

        self._transact(self.contract.functions.claimRewards(), "claimRewards", gas=CLAIM_GAS_LIMIT)
        return pending

    def pool_balance(self) -> int:
        return int(self._read(self.contract.functions.poolBalance(), "poolBalance"))

    def deposit_to_pool(self, amount: int) -> int:
        validate_amount(amount)
        self._transact(self.contract.functions.depositToPool(), "depositToPool", value=amount)
        return self.pool_balance()

    def withdraw_from_pool(self, amount: int) -> int:
        validate_amount(amount)
        self._transact(self.contract.functions.withdrawFromPool(amount), "withdrawFromPool")
        return self.pool_balance()
