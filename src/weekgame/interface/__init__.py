"""Adapters between the game core and the outside world."""

from .messenger import (
    ActionEvent,
    Control,
    Messenger,
    MessengerPayload,
    RecordingMessenger,
)
from .dispatch import ActionDispatcher
from .renderer import RichStateRenderer, StateRenderer

__all__ = [
    "ActionEvent",
    "Control",
    "Messenger",
    "MessengerPayload",
    "RecordingMessenger",
    "ActionDispatcher",
    "RichStateRenderer",
    "StateRenderer",
]
