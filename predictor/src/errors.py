"""Error taxonomy for round lifecycle, pricing and settlement.

Every error raised by the game derives from :class:`PredictionError` and
belongs to exactly one family:

- :class:`InputError`: caller mistakes, surfaced immediately, never retried.
- :class:`StalenessError`: the oracle could not provide a trustworthy
  price. Retryable after a back-off.
- :class:`IdempotencySignal`: another caller already did the work (or there
  is no work yet). Not a failure; refresh local state and carry on.
- :class:`ConsistencyError`: bookkeeping invariants were violated. Hard
  errors, never retried.

.. code-block:: python

    >>> err = PriceFeedTooOld(age=2000, max_age=1800)
    >>> err.retryable
    True
    >>> isinstance(RoundAlreadyFinalized(5), IdempotencySignal)
    True
"""


class PredictionError(Exception):
    """Base exception for all game errors.

    :cvar retryable: Whether the operation may succeed if attempted again later.
    """

    retryable = False


class InputError(PredictionError):
    """Raised when the caller supplied an invalid request."""

    pass


class InvalidAmount(InputError):
    """Raised when a bet or pool amount is not a positive integer."""

    def __init__(self, amount: object):
        self.amount = amount
        super().__init__(f"Invalid amount: {amount!r} (must be a positive integer)")


class RoundEnded(InputError):
    """Raised when betting on a round whose end time has passed."""

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"Round {round_id} already ended")


class RoundFinalized(InputError):
    """Raised when betting on a round that is already finalized."""

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"Round {round_id} already finalized")


class NotPoolOwner(InputError):
    """Raised when someone other than the pool owner withdraws from the pool."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"{identity} is not the pool owner")


class StalenessError(PredictionError):
    """Raised when no trustworthy price is available right now."""

    retryable = True


class PriceFeedTooOld(StalenessError):
    """Raised when the oracle's last update is older than the allowed age.

    :ivar age: Age of the reading in seconds.
    :ivar max_age: Configured maximum age in seconds.
    """

    def __init__(self, age: int | None = None, max_age: int | None = None):
        self.age = age
        self.max_age = max_age
        if age is None:
            super().__init__("Price feed too old")
        else:
            super().__init__(f"Price feed too old: {age}s > {max_age}s")


# Name used by the price-source layer for the same condition.
OracleStale = PriceFeedTooOld


class OracleUnavailable(StalenessError):
    """Raised when the oracle feed call itself failed."""

    pass


class IdempotencySignal(PredictionError):
    """Signals a redundant transition attempt; callers treat it as a no-op."""

    pass


class RoundNotExpired(IdempotencySignal):
    """Raised when a transition is requested before the round's end time.

    :ivar time_left: Seconds until the round expires.
    """

    def __init__(self, round_id: int, time_left: int):
        self.round_id = round_id
        self.time_left = time_left
        super().__init__(f"Round {round_id} not ended ({time_left}s left)")


class RoundAlreadyFinalized(IdempotencySignal):
    """Raised when the targeted round was already finalized by another caller."""

    def __init__(self, round_id: int):
        self.round_id = round_id
        super().__init__(f"Round {round_id} already finalized")


class ConsistencyError(PredictionError):
    """Raised when ledger bookkeeping does not add up."""

    pass


class NoRewardsAvailable(ConsistencyError):
    """Raised when claiming with nothing pending."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"No rewards to claim for {identity}")


class InsufficientPoolBalance(ConsistencyError):
    """Raised when the pool cannot cover a payout or withdrawal."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient pool balance: requested {requested}, available {available}"
        )


class TransactionFailed(PredictionError):
    """Raised when an on-chain request was mined but reverted.

    :ivar tx_hash: Hash of the reverted transaction, if known.
    """

    retryable = True

    def __init__(self, action: str, tx_hash: str | None = None):
        self.action = action
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {action} reverted (tx={tx_hash})")
