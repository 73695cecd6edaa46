"""
Error types raised by the game systems.

DecisionRejected and its subclasses carry a human-readable reason that
adapters relay to the participant verbatim. TurnError covers misuse of
the turn lifecycle, and CorruptStateError marks a single resolution
step that cannot be applied.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..state.schema import TurnPhase


class GameError(Exception):
    """Base class for all game errors."""
    pass


class DecisionRejected(GameError):
    """A submission was refused. The message is shown to the submitter."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class BidRejected(DecisionRejected):
    """A bid on a live auction was refused."""
    pass


class ConcurrencyReject(GameError):
    """Another bid held the auction lock; the caller should retry."""

    def __init__(self, reason: str = "Someone else is placing a bid at this exact moment, try again in half a second..."):
        self.reason = reason
        super().__init__(reason)


class TurnError(GameError):
    """Error during turn processing."""
    pass


class InvalidPhaseError(TurnError):
    """Attempted operation not valid in current phase."""

    def __init__(self, current: "TurnPhase", attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} during {current.value} phase.")


class CorruptStateError(GameError):
    """A resolution step referenced state that does not hold together."""
    pass


class UnknownGameError(GameError):
    """No game with the requested ID exists."""

    def __init__(self, game_id: str):
        self.game_id = game_id
        super().__init__(f"No game found with ID {game_id!r}")
