"""
Decision collection.

The DecisionCollector is the only way a participant's choice enters a
game. It checks the window is open and the participant is known, lets
the engine validate the content, then stores the result, replacing any
earlier pending decision from the same participant.
"""

from __future__ import annotations

import difflib
import logging
from typing import TYPE_CHECKING, Callable, Iterable

from ..state.event_bus import EventType
from ..state.schema import TurnPhase
from .errors import DecisionRejected

if TYPE_CHECKING:
    from .engine import GameEngine

logger = logging.getLogger(__name__)


def resolve_target(
    raw: str,
    candidates: Iterable[tuple[str, str]],
    option_id: str | None = None,
    cutoff: float = 0.6,
) -> str | None:
    """
    Resolve a submission to a candidate ID.

    An exact ID from the provided option list always wins. Otherwise the
    text is matched against display names: exact (case-insensitive) first,
    then the closest fuzzy match above the cutoff.

    Args:
        raw: Free text typed by the participant
        candidates: (id, display name) pairs that may be chosen
        option_id: ID picked from a menu, if any
        cutoff: Minimum similarity for a fuzzy name match

    Returns:
        The matching candidate ID, or None
    """
    candidates = list(candidates)
    ids = {cid for cid, _ in candidates}

    if option_id is not None:
        return option_id if option_id in ids else None

    text = raw.strip()
    if text in ids:
        return text

    lowered = text.lower()
    by_name: dict[str, str] = {}
    for cid, name in candidates:
        by_name.setdefault(name.lower(), cid)

    if lowered in by_name:
        return by_name[lowered]

    matches = difflib.get_close_matches(lowered, list(by_name), n=1, cutoff=cutoff)
    if matches:
        return by_name[matches[0]]
    return None


class DecisionCollector:
    """
    Accepts one pending decision per participant per turn.

    Storing a decision is its only side effect: scores and ownership are
    untouched until the TurnController resolves the turn.
    """

    def __init__(self, engine: "GameEngine", persist_fn: Callable | None = None):
        self._engine = engine
        self._persist_fn = persist_fn

    def set_persist_fn(self, fn: Callable) -> None:
        self._persist_fn = fn

    @property
    def is_open(self) -> bool:
        return self._engine.state.phase == TurnPhase.DECISION_WINDOW

    def submit(self, participant_id: str, raw: str, option_id: str | None = None) -> str:
        """
        Validate and store a participant's decision.

        Args:
            participant_id: Who is deciding
            raw: Their free-text input
            option_id: An exact option ID, when picked from a menu

        Returns:
            Confirmation text for the participant

        Raises:
            DecisionRejected: If the window is closed or the input is invalid
        """
        if not self.is_open:
            raise DecisionRejected("You can't submit a decision right now, the decision window is closed.")
        if not self._engine.has_participant(participant_id):
            raise DecisionRejected("You aren't in this game!")

        decision, confirmation = self._engine.validate_decision(participant_id, raw, option_id)

        decisions = self._engine.decision_map_for(participant_id)
        replaced = participant_id in decisions
        decisions[participant_id] = decision

        if self._persist_fn:
            self._persist_fn(self._engine.state)

        self._engine.emit(
            EventType.DECISION_SUBMITTED,
            participant_id=participant_id,
            replaced=replaced,
        )
        logger.debug(f"Stored decision for {participant_id}: {decision.raw!r}")
        return confirmation

    def pending(self) -> list[str]:
        """IDs of participants with a stored individual decision this turn."""
        return list(self._engine.state.decisions)

    def withdraw(self, participant_id: str) -> bool:
        """Drop a participant's pending decision. Returns True if one existed."""
        if not self.is_open:
            raise DecisionRejected("The decision window is closed.")
        decisions = self._engine.decision_map_for(participant_id)
        if participant_id not in decisions:
            return False
        del decisions[participant_id]
        if self._persist_fn:
            self._persist_fn(self._engine.state)
        return True
