"""
Pytest fixtures for weekgame tests.

Provides in-memory stores, a private event bus, seeded randomness and
prebuilt island and auction games.
"""

import random
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from weekgame.state import (
    AuctionGameState,
    AuctionParticipant,
    EventBus,
    GameManager,
    IslandGameState,
    IslandParticipant,
    MemoryGameStore,
    Piece,
    reset_event_bus,
)
from weekgame.systems import (
    AuctionEngine,
    DecisionCollector,
    TurnController,
    VoteTallyEngine,
)


ISLAND_ROSTER = {
    "alice": "Alice",
    "bob": "Bob",
    "carol": "Carol",
    "dave": "Dave",
    "erin": "Erin",
}

AUCTION_ROSTER = {
    "alice": "Alice",
    "bob": "Bob",
    "carol": "Carol",
}

PIECE_VALUES = {"p1": 5, "p2": 10, "p3": 20, "p4": 40}


@pytest.fixture(autouse=True)
def fresh_global_bus():
    """Keep the process-wide bus from leaking listeners between tests."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def bus():
    """Private event bus."""
    return EventBus()


@pytest.fixture
def rng():
    """Seeded randomness for reproducible games."""
    return random.Random(1234)


@pytest.fixture
def memory_store():
    """In-memory game store for testing."""
    return MemoryGameStore()


@pytest.fixture
def manager(memory_store, bus):
    """Game manager with in-memory store and a fixed seed."""
    return GameManager(memory_store, bus=bus, config={"seed": 42})


@pytest.fixture
def island_state():
    """Five-participant island game, nobody scored yet."""
    return IslandGameState(
        id="isle0001",
        name="Test Island",
        participants={
            pid: IslandParticipant(id=pid, display_name=name)
            for pid, name in ISLAND_ROSTER.items()
        },
    )


@pytest.fixture
def island(island_state, rng, bus):
    """Island engine over island_state."""
    return VoteTallyEngine(island_state, rng=rng, bus=bus)


@pytest.fixture
def island_controller(island):
    return TurnController(island)


@pytest.fixture
def island_collector(island):
    return DecisionCollector(island)


@pytest.fixture
def auction_state():
    """Three collectors with $10 each and four pieces in the bank."""
    return AuctionGameState(
        id="auct0001",
        name="Test Auction",
        participants={
            pid: AuctionParticipant(id=pid, display_name=name, points=10)
            for pid, name in AUCTION_ROSTER.items()
        },
        pieces={
            pid: Piece(id=pid, name=f"Piece {pid[1:]}", value=value)
            for pid, value in PIECE_VALUES.items()
        },
    )


@pytest.fixture
def auction(auction_state, rng, bus):
    """Auction engine over auction_state."""
    return AuctionEngine(auction_state, rng=rng, bus=bus)


@pytest.fixture
def auction_controller(auction):
    return TurnController(auction)


@pytest.fixture
def auction_collector(auction):
    return DecisionCollector(auction)
