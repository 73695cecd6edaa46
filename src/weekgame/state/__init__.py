"""State management for weekgame games."""

from .schema import (
    TurnPhase,
    AuctionType,
    Participant,
    IslandParticipant,
    AuctionParticipant,
    Unowned,
    Removed,
    OwnedBy,
    Piece,
    Auction,
    PrizeQueueState,
    IslandGameState,
    AuctionGameState,
    parse_game_state,
)
from .schemas.decision import Decision, DecisionProcessingResult
from .store import GameStore, JsonGameStore, MemoryGameStore
from .event_bus import (
    EventBus,
    EventType,
    GameEvent,
    get_event_bus,
    reset_event_bus,
)
from .manager import GameManager, GameRuntime

__all__ = [
    # Schema
    "TurnPhase",
    "AuctionType",
    "Participant",
    "IslandParticipant",
    "AuctionParticipant",
    "Unowned",
    "Removed",
    "OwnedBy",
    "Piece",
    "Auction",
    "PrizeQueueState",
    "IslandGameState",
    "AuctionGameState",
    "parse_game_state",
    "Decision",
    "DecisionProcessingResult",
    # Storage
    "GameStore",
    "JsonGameStore",
    "MemoryGameStore",
    # Events
    "EventBus",
    "EventType",
    "GameEvent",
    "get_event_bus",
    "reset_event_bus",
    # Lifecycle
    "GameManager",
    "GameRuntime",
]
