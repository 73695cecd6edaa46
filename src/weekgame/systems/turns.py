"""
Turn controller for weekgame's weekly lifecycle.

Owns the phase state machine and sequences the engine's turn hooks:
    SETUP → DECISION_WINDOW → RESOLVING → SETTLED → DECISION_WINDOW …

and SETTLED → COMPLETE once the engine reports a terminal condition.

Design principles:
- The controller sequences and delegates. It never resolves a decision.
- Resolution is single-stepped so the caller controls reveal pacing.
- A corrupt resolution step is logged and skipped; the turn carries on.
- State is persisted after every mutation and each transition emits
  an event on the bus.

Usage:
    controller = TurnController(engine)
    controller.set_persist_fn(store.save)

    narrative = controller.begin_turn()
    ...  # DecisionCollector gathers decisions
    for result in controller.resolution_steps():
        reveal(result.summary)
        time.sleep(delay)
    closing = controller.end_turn()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Iterator

from ..state.event_bus import EventType
from ..state.schema import TurnPhase
from ..state.schemas.decision import DecisionProcessingResult
from .errors import CorruptStateError, InvalidPhaseError, TurnError

if TYPE_CHECKING:
    from .engine import GameEngine

logger = logging.getLogger(__name__)


# Valid phase transitions: each phase maps to allowed next phases
VALID_TRANSITIONS: dict[TurnPhase, set[TurnPhase]] = {
    TurnPhase.SETUP: {TurnPhase.DECISION_WINDOW},
    TurnPhase.DECISION_WINDOW: {TurnPhase.RESOLVING},
    TurnPhase.RESOLVING: {TurnPhase.SETTLED},
    TurnPhase.SETTLED: {TurnPhase.DECISION_WINDOW, TurnPhase.COMPLETE},
    TurnPhase.COMPLETE: set(),
}


class TurnController:
    """
    Drives one game through its weekly turns.

    Responsibilities:
    - Phase state machine enforcement
    - Re-entry safety for begin_turn
    - Isolating corrupt resolution steps
    - Persistence and event emission around every step

    NOT responsible for:
    - Validating submissions (DecisionCollector)
    - Game rules (the engine)
    - Pacing and delivery (the adapter)
    """

    def __init__(self, engine: "GameEngine"):
        self._engine = engine
        self._persist_fn: Callable | None = None

    @property
    def engine(self) -> "GameEngine":
        return self._engine

    @property
    def state(self):
        return self._engine.state

    @property
    def phase(self) -> TurnPhase:
        """Current phase, stored on the game state so it survives restarts."""
        return self._engine.state.phase

    def set_persist_fn(self, fn: Callable) -> None:
        """Register the persistence function (called after each mutation)."""
        self._persist_fn = fn

    def persist(self) -> None:
        if self._persist_fn:
            self._persist_fn(self._engine.state)

    def _transition(self, to: TurnPhase) -> None:
        """Transition to a new phase, enforcing valid transitions."""
        current = self.phase
        if to not in VALID_TRANSITIONS.get(current, set()):
            raise InvalidPhaseError(current, f"transition to {to.value}")
        self._engine.state.phase = to

    def _emit(self, event_type: EventType, **data) -> None:
        self._engine.emit(event_type, **data)

    # ─── Turn Pipeline ───────────────────────────────────────────

    def begin_turn(self) -> list[str]:
        """
        Start a new turn and open the decision window.

        Calling this while the window is already open returns the stored
        opening narrative without touching state. Calling it mid-resolution
        finishes the interrupted turn first.

        Raises:
            InvalidPhaseError: If the game is complete
        """
        state = self._engine.state

        if self.phase == TurnPhase.DECISION_WINDOW:
            logger.info(f"Game {state.id}: begin_turn called with window already open, ignoring")
            return list(state.turn_narrative)

        if self.phase == TurnPhase.RESOLVING:
            logger.warning(
                f"Game {state.id}: begin_turn called during resolution of turn {state.turn}, "
                "settling the interrupted turn first"
            )
            for _ in self.resolution_steps():
                pass
            self.end_turn()
            if self.phase == TurnPhase.COMPLETE:
                raise InvalidPhaseError(self.phase, "begin turn")

        if self.phase == TurnPhase.COMPLETE:
            raise InvalidPhaseError(self.phase, "begin turn")

        narrative = self._engine.begin_turn()
        self._transition(TurnPhase.DECISION_WINDOW)
        state.turn_narrative = list(narrative)
        self.persist()

        self._emit(EventType.TURN_BEGAN, narrative=narrative)
        return narrative

    def process_next_decision(self) -> DecisionProcessingResult:
        """
        Resolve exactly one unit of pending work.

        The first call closes the decision window. A step that raises
        CorruptStateError is logged and reported as skipped.

        Raises:
            InvalidPhaseError: If no turn is open for resolution
        """
        if self.phase == TurnPhase.DECISION_WINDOW:
            self._transition(TurnPhase.RESOLVING)
        if self.phase != TurnPhase.RESOLVING:
            raise InvalidPhaseError(self.phase, "process a decision")

        try:
            result = self._engine.process_next_decision()
        except CorruptStateError as e:
            logger.exception(f"Game {self._engine.state.id}: skipping corrupt resolution step")
            result = DecisionProcessingResult(
                summary=f"(A step was skipped: {e})",
                continue_processing=self._engine.has_pending_work(),
                skipped=True,
            )

        self.persist()
        self._emit(
            EventType.DECISION_RESOLVED,
            summary=result.summary,
            continue_processing=result.continue_processing,
            skipped=result.skipped,
            **result.payload,
        )
        return result

    def resolution_steps(self) -> Iterator[DecisionProcessingResult]:
        """
        Yield resolution steps until the engine reports nothing remains.

        The caller paces reveals between steps; the controller owns no timer.
        """
        while True:
            result = self.process_next_decision()
            yield result
            if not result.continue_processing:
                return

    def end_turn(self) -> list[str]:
        """
        Settle the turn and either wait for the next one or end the game.

        Raises:
            InvalidPhaseError: If no turn is open
            TurnError: If resolution has not finished
        """
        if self.phase == TurnPhase.DECISION_WINDOW:
            self._transition(TurnPhase.RESOLVING)
        if self.phase != TurnPhase.RESOLVING:
            raise InvalidPhaseError(self.phase, "end turn")
        if self._engine.has_pending_work():
            raise TurnError("Decisions are still pending; resolve them before ending the turn.")

        narrative = self._engine.end_turn()
        self._transition(TurnPhase.SETTLED)
        complete = self._engine.is_complete()
        if complete:
            self._transition(TurnPhase.COMPLETE)
        self.persist()

        self._emit(EventType.TURN_ENDED, narrative=narrative)
        if complete:
            self._emit(EventType.GAME_COMPLETED, winners=self._engine.winners())
        return narrative
