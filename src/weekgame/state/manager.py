"""
Game lifecycle management.

Handles create, load, list, save, delete and archive operations, and
wires each loaded game into a GameRuntime: its engine, TurnController
and DecisionCollector, all persisting through the same store.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import TYPE_CHECKING

from ..config import DEFAULT_CONFIG, Config
from .event_bus import EventBus, EventType, GameEvent, get_event_bus
from .schema import (
    AuctionGameState,
    AuctionParticipant,
    IslandGameState,
    IslandParticipant,
)
from .store import GameStore, JsonGameStore

if TYPE_CHECKING:
    from ..systems.decisions import DecisionCollector
    from ..systems.engine import GameEngine
    from ..systems.turns import TurnController

logger = logging.getLogger(__name__)


class GameRuntime:
    """The live objects for one loaded game."""

    def __init__(
        self,
        engine: "GameEngine",
        controller: "TurnController",
        collector: "DecisionCollector",
    ):
        self.engine = engine
        self.controller = controller
        self.collector = collector

    @property
    def state(self) -> IslandGameState | AuctionGameState:
        return self.engine.state

    @property
    def id(self) -> str:
        return self.engine.state.id

    @property
    def game_type(self) -> str:
        return self.engine.state.game_type


class GameManager:
    """
    Manages game lifecycle.

    Storage is delegated to a GameStore implementation:
    - JsonGameStore for production (file-based)
    - MemoryGameStore for testing (in-memory)

    Finished games are archived when the bus reports game.completed.
    """

    def __init__(
        self,
        store: GameStore | Path | str = "games",
        bus: EventBus | None = None,
        config: Config | None = None,
    ):
        if isinstance(store, (str, Path)):
            store = JsonGameStore(store)
        self.store = store
        self.config: Config = {**DEFAULT_CONFIG, **(config or {})}
        self._bus = bus or get_event_bus()
        self._runtimes: dict[str, GameRuntime] = {}
        self._bus.on(EventType.GAME_COMPLETED, self._on_game_completed)

    @property
    def bus(self) -> EventBus:
        return self._bus

    def _rng_for(self, game_id: str) -> random.Random:
        seed = self.config.get("seed")
        if seed is None:
            return random.Random()
        return random.Random(f"{seed}:{game_id}")

    def _build_runtime(self, state: IslandGameState | AuctionGameState) -> GameRuntime:
        # Lazy import: systems depend on state
        from ..systems.auction import AuctionEngine
        from ..systems.decisions import DecisionCollector
        from ..systems.island import VoteTallyEngine
        from ..systems.turns import TurnController

        engine_cls = VoteTallyEngine if state.game_type == "island" else AuctionEngine
        engine = engine_cls(state, rng=self._rng_for(state.id), bus=self._bus, config=self.config)
        controller = TurnController(engine)
        controller.set_persist_fn(self.save_game)
        collector = DecisionCollector(engine, persist_fn=self.save_game)

        runtime = GameRuntime(engine, controller, collector)
        self._runtimes[state.id] = runtime
        return runtime

    # ─── Creation ────────────────────────────────────────────────

    def create_island_game(
        self,
        roster: dict[str, str],
        name: str = "",
        season: int = 1,
    ) -> GameRuntime:
        """
        Start a new island season.

        Args:
            roster: participant ID -> display name
            name: Optional label for listings
            season: Season number
        """
        state = IslandGameState(
            name=name or f"Island season {season}",
            season=season,
            participants={
                pid: IslandParticipant(id=pid, display_name=display_name)
                for pid, display_name in roster.items()
            },
        )
        runtime = self._build_runtime(state)
        self.save_game(state)
        logger.info(f"Created island game {state.id} with {len(roster)} participants")
        return runtime

    def create_auction_game(
        self,
        roster: dict[str, str],
        pieces: list[str | dict],
        name: str = "",
        season: int = 1,
        starting_points: int = 0,
    ) -> GameRuntime:
        """
        Start a new auction season.

        Args:
            roster: participant ID -> display name
            pieces: Piece names, or dicts with "name" and optional "artist"
            starting_points: Cash each participant starts with
        """
        state = AuctionGameState(
            name=name or f"Auction season {season}",
            season=season,
            participants={
                pid: AuctionParticipant(id=pid, display_name=display_name, points=starting_points)
                for pid, display_name in roster.items()
            },
        )
        runtime = self._build_runtime(state)
        for piece in pieces:
            if isinstance(piece, str):
                runtime.engine.add_piece(piece)
            else:
                runtime.engine.add_piece(piece["name"], artist=piece.get("artist"), piece_id=piece.get("id"))
        runtime.engine.assign_values()

        self.save_game(state)
        logger.info(f"Created auction game {state.id} with {len(roster)} participants and {len(pieces)} pieces")
        return runtime

    # ─── Lookup and persistence ──────────────────────────────────

    def get(self, game_id: str) -> GameRuntime:
        """
        Return the runtime for a game, loading it from the store if needed.

        Raises:
            UnknownGameError: If no such game exists
        """
        from ..systems.errors import UnknownGameError

        if game_id in self._runtimes:
            return self._runtimes[game_id]

        state = self.store.load(game_id)
        if state is None:
            raise UnknownGameError(game_id)
        if state.id in self._runtimes:
            return self._runtimes[state.id]
        return self._build_runtime(state)

    def save_game(self, state: IslandGameState | AuctionGameState) -> None:
        self.store.save(state)
        self._bus.emit(EventType.GAME_SAVED, game_id=state.id, turn=state.turn)

    def list_games(self) -> list[dict]:
        return self.store.list_all()

    def delete_game(self, game_id: str) -> bool:
        self._runtimes.pop(game_id, None)
        return self.store.delete(game_id)

    def _on_game_completed(self, event: GameEvent) -> None:
        if event.game_id not in self._runtimes:
            return
        if self.store.archive(event.game_id):
            logger.info(f"Game {event.game_id} complete, winners: {event.data.get('winners')}")
