"""
Shared contract for game engines.

An engine owns the rules of one game variant. It mutates the game state
it was built around and emits events on the bus; it never persists and
never talks to participants directly. The TurnController sequences it
and the DecisionCollector feeds it validated decisions.
"""

from __future__ import annotations

import logging
import math
import random
from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from ..config import DEFAULT_CONFIG, Config
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import AuctionGameState, IslandGameState, Participant, TurnPhase
from ..state.schemas.decision import Decision, DecisionProcessingResult

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT", IslandGameState, AuctionGameState)


def join_names(names: list[str]) -> str:
    """Join names as English prose: "a", "a and b", "a, b, and c"."""
    if not names:
        return "nobody"
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    return ", ".join(names[:-1]) + f", and {names[-1]}"


def plural(n: int | float, word: str) -> str:
    return f"{n:g} {word}" if n == 1 else f"{n:g} {word}s"


class GameEngine(ABC, Generic[StateT]):
    """
    Base class for game engines.

    Subclasses implement the turn hooks and decision validation. Common
    roster and points handling lives here.
    """

    game_type: str = ""

    def __init__(
        self,
        state: StateT,
        rng: random.Random | None = None,
        bus: EventBus | None = None,
        config: Config | None = None,
    ):
        self._state = state
        self._rng = rng or random.Random()
        self._bus = bus or get_event_bus()
        self._config: Config = {**DEFAULT_CONFIG, **(config or {})}

    @property
    def state(self) -> StateT:
        return self._state

    @property
    def rng(self) -> random.Random:
        return self._rng

    @property
    def bus(self) -> EventBus:
        return self._bus

    def emit(self, event_type: EventType, **data) -> None:
        self._bus.emit(event_type, game_id=self._state.id, turn=self._state.turn, **data)

    # ─── Roster ──────────────────────────────────────────────────

    def participants(self) -> list[Participant]:
        return list(self._state.participants.values())

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in self._state.participants

    def get_participant(self, participant_id: str):
        return self._state.participants.get(participant_id)

    def display_name(self, participant_id: str | None) -> str:
        participant = self._state.participants.get(participant_id) if participant_id else None
        if participant is None:
            return f"<unknown {participant_id}>"
        return participant.display_name

    def names(self, participant_ids: list[str]) -> str:
        return join_names([self.display_name(pid) for pid in participant_ids])

    def update_participant(self, participant_id: str, display_name: str) -> None:
        """Refresh a participant's display name."""
        participant = self._state.participants.get(participant_id)
        if participant is None:
            logger.warning(f"Cannot update unknown participant {participant_id} in game {self._state.id}")
            return
        participant.display_name = display_name

    def add_points(self, participant_id: str, points: float) -> None:
        """
        Add to a participant's cumulative score.

        Raises:
            ValueError: If points is NaN
        """
        if isinstance(points, float) and math.isnan(points):
            raise ValueError(f"Cannot award NaN points to {participant_id}")
        participant = self._state.participants.get(participant_id)
        if participant is None:
            logger.warning(f"Cannot award points to unknown participant {participant_id} in game {self._state.id}")
            return
        participant.points += points

    # ─── Decisions ───────────────────────────────────────────────

    def decision_map_for(self, participant_id: str) -> dict[str, Decision]:
        """The DecisionMap a participant's submission is stored in."""
        return self._state.decisions

    def decision_options(self, participant_id: str) -> list[tuple[str, str]]:
        """(id, label) pairs a participant may pick from this turn."""
        return []

    @abstractmethod
    def validate_decision(
        self,
        participant_id: str,
        raw: str,
        option_id: str | None = None,
    ) -> tuple[Decision, str]:
        """
        Check a submission and build the Decision to store.

        Returns:
            (decision, confirmation text)

        Raises:
            DecisionRejected: With the reason shown to the submitter
        """

    def weekly_decision_messages(self) -> dict[str, str]:
        """Private per-participant notes sent when the window opens."""
        return {}

    # ─── Turn hooks ──────────────────────────────────────────────

    @abstractmethod
    def begin_turn(self) -> list[str]:
        """Prepare the new turn and return its opening narrative."""

    @abstractmethod
    def has_pending_work(self) -> bool:
        """Whether process_next_decision has anything left to resolve."""

    @abstractmethod
    def process_next_decision(self) -> DecisionProcessingResult:
        """Resolve exactly one unit of pending work."""

    @abstractmethod
    def end_turn(self) -> list[str]:
        """Apply the turn's consequences and return the closing narrative."""

    # ─── Season ──────────────────────────────────────────────────

    @abstractmethod
    def introduction_text(self) -> str:
        ...

    @abstractmethod
    def instructions_text(self) -> str:
        ...

    @abstractmethod
    def season_completion(self) -> float:
        """Progress through the season in [0, 1]."""

    @abstractmethod
    def ordered_participants(self) -> list[Participant]:
        """Public standings, best first."""

    @abstractmethod
    def add_late_participant(self, participant_id: str, display_name: str) -> Participant:
        ...

    @abstractmethod
    def remove_participant(self, participant_id: str) -> None:
        ...

    @abstractmethod
    def award_prize(self, participant_id: str, intro: str = "", tied: bool = False) -> list[str]:
        """Reward a contest winner. Returns private messages for them."""

    def is_complete(self) -> bool:
        return self._state.phase == TurnPhase.COMPLETE or bool(self._state.winners)

    def winners(self) -> list[str]:
        return list(self._state.winners)

    def add_winner(self, participant_id: str) -> None:
        if len(self._state.winners) >= 3:
            return
        if participant_id not in self._state.winners:
            self._state.winners.append(participant_id)
