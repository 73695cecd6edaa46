"""Game rules and turn sequencing."""

from .errors import (
    GameError,
    DecisionRejected,
    BidRejected,
    ConcurrencyReject,
    TurnError,
    InvalidPhaseError,
    CorruptStateError,
    UnknownGameError,
)
from .engine import GameEngine
from .turns import TurnController, VALID_TRANSITIONS
from .decisions import DecisionCollector, resolve_target
from .island import VoteTallyEngine, admissible_quotas, baseline_quota, rounds_remaining
from .auction import AuctionEngine, AuctionMutex, construct_value_distribution
from .prizes import PrizeAwardQueue

__all__ = [
    # Errors
    "GameError",
    "DecisionRejected",
    "BidRejected",
    "ConcurrencyReject",
    "TurnError",
    "InvalidPhaseError",
    "CorruptStateError",
    "UnknownGameError",
    # Turn machinery
    "GameEngine",
    "TurnController",
    "VALID_TRANSITIONS",
    "DecisionCollector",
    "resolve_target",
    # Games
    "VoteTallyEngine",
    "admissible_quotas",
    "baseline_quota",
    "rounds_remaining",
    "AuctionEngine",
    "AuctionMutex",
    "construct_value_distribution",
    "PrizeAwardQueue",
]
