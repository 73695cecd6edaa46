"""
Event bus for weekgame state changes.

Decouples the engines from whatever presents the game (messenger,
API, CLI). Engines emit; adapters subscribe and react.

Usage:
    from .event_bus import get_event_bus, EventType

    bus = get_event_bus()
    bus.on(EventType.BID_PLACED, my_handler)

    # In an engine, when state changes
    bus.emit(EventType.BID_PLACED, game_id="a1b2c3d4", turn=3, piece_id="p1", amount=4)

    def my_handler(event: GameEvent):
        print(f"New bid on {event.data['piece_id']}")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Game events that can be published."""

    # Turn lifecycle
    TURN_BEGAN = "turn.began"
    DECISION_SUBMITTED = "decision.submitted"
    DECISION_RESOLVED = "decision.resolved"
    TURN_ENDED = "turn.ended"
    GAME_COMPLETED = "game.completed"

    # Island events
    PARTICIPANT_ELIMINATED = "participant.eliminated"
    IMMUNITY_GRANTED = "immunity.granted"

    # Auction events
    AUCTION_OPENED = "auction.opened"
    BID_PLACED = "bid.placed"
    BID_CONTROL_RETIRED = "bid.control_retired"
    AUCTION_SETTLED = "auction.settled"
    PIECE_SOLD = "piece.sold"
    PIECE_LIQUIDATED = "piece.liquidated"

    # Prize events
    PRIZE_OFFERED = "prize.offered"
    PRIZE_CLAIMED = "prize.claimed"

    # Persistence
    GAME_SAVED = "game.saved"


@dataclass
class GameEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type (from EventType enum)
        data: Event-specific payload as dict
        game_id: ID of the game this event belongs to
        turn: Turn number when the event occurred
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    game_id: str = ""
    turn: int = 0
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


# Type alias for event handlers
EventHandler = Callable[[GameEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(), in subscription order.
    A failing listener is logged and the remaining listeners still run.
    """

    def __init__(self, history_limit: int = 200):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[GameEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type. Subscribing twice is a no-op."""
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        if handler not in self._listeners[event_type]:
            self._listeners[event_type].append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(
        self,
        event_type: EventType,
        game_id: str = "",
        turn: int = 0,
        **data,
    ) -> GameEvent:
        """
        Emit an event to all subscribers.

        Args:
            event_type: The type of event
            game_id: Game context (optional)
            turn: Turn number (optional)
            **data: Event-specific data

        Returns:
            The emitted GameEvent (for chaining/testing)
        """
        event = GameEvent(
            type=event_type,
            data=data,
            game_id=game_id,
            turn=turn,
        )

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in handler for {event_type.value}")

        return event

    def clear(self) -> None:
        """Clear all listeners. Useful for testing."""
        self._listeners.clear()

    def get_history(
        self,
        event_type: EventType | None = None,
        game_id: str | None = None,
    ) -> list[GameEvent]:
        """
        Get recent event history.

        Args:
            event_type: Filter by type, or None for all events
            game_id: Filter by game, or None for every game
        """
        events = self._history
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        if game_id is not None:
            events = [e for e in events if e.game_id == game_id]
        return list(events)

    def listener_count(self, event_type: EventType) -> int:
        """Get number of listeners for an event type."""
        return len(self._listeners.get(event_type, []))


# Global singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus. Useful for testing."""
    global _event_bus
    _event_bus = None
