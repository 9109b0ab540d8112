"""
BTC Price Prediction - Round Lifecycle Module

This module provides the round lifecycle and settlement of the prediction game:
- Round: Round and stake records with time-based phases
- RoundStore: Serializing, transactional state holder
- RoundController: EXPIRED -> FINALIZED + ACTIVE state machine
- SettlementAccountant: Winner payouts, claims and the reward pool
- PriceSource: Oracle freshness checks with HTTP fallbacks
- PredictionGame / ContractGame: In-process and on-chain game backends
- RoundKeeper: Async polling loop triggering transitions
- fetchers: Fallback HTTP price sources
"""

from .ContractGame import ContractGame
from .PredictionGame import PredictionGame
from .PriceSource import (
    DEFAULT_MAX_PRICE_AGE,
    ContractPriceFeed,
    ObservedPriceFeed,
    PriceReading,
    PriceSource,
)
from .RetryPolicy import RetryPolicy
from .Round import DEFAULT_ROUND_DURATION, Round, RoundPhase, RoundStatus, Stake
from .RoundController import RoundController
from .RoundKeeper import RoundKeeper, TransitionOutcome
from .RoundStore import RoundStore
from .SettlementAccountant import SettlementAccountant, compute_payouts
from .SourceManager import SourceManager, SourceStatus
from .fixed_point import PRICE_DECIMALS

__all__ = [
    "ContractGame",
    "ContractPriceFeed",
    "DEFAULT_MAX_PRICE_AGE",
    "DEFAULT_ROUND_DURATION",
    "ObservedPriceFeed",
    "PRICE_DECIMALS",
    "PredictionGame",
    "PriceReading",
    "PriceSource",
    "RetryPolicy",
    "Round",
    "RoundController",
    "RoundKeeper",
    "RoundPhase",
    "RoundStatus",
    "RoundStore",
    "SettlementAccountant",
    "SourceManager",
    "SourceStatus",
    "Stake",
    "TransitionOutcome",
    "compute_payouts",
]
