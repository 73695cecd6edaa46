"""
Messenger adapter boundary.

The core emits narrative and receives actions. This module defines the
shapes crossing that boundary and an in-memory Messenger used by the
CLI and tests. A chat platform integration implements the same
Messenger protocol.
"""

from __future__ import annotations

from typing import Literal, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class Control(BaseModel):
    """An interactive control attached to a payload (a button or menu option)."""
    custom_id: str
    label: str
    style: Literal["primary", "secondary", "success", "danger"] = "primary"


class MessengerPayload(BaseModel):
    """Something to show participants: text, an optional image, optional controls."""
    content: str = ""
    image: bytes | None = None
    controls: list[Control] = Field(default_factory=list)
    participant_id: str | None = None  # Set for private replies

    @property
    def is_private(self) -> bool:
        return self.participant_id is not None


class ActionEvent(BaseModel):
    """An action received from a participant."""
    actor_id: str
    kind: Literal["button", "select", "text"] = "text"
    custom_id: str = ""
    values: list[str] = Field(default_factory=list)
    text: str = ""


@runtime_checkable
class Messenger(Protocol):
    """Delivery interface for a chat platform."""

    def send(self, payload: MessengerPayload) -> None:
        """Post a public payload."""
        ...

    def send_dm(self, participant_id: str, payload: MessengerPayload) -> None:
        """Send a payload privately to one participant."""
        ...

    def retire_control(self, custom_id: str) -> None:
        """Disable a control so it can no longer be pressed."""
        ...


class RecordingMessenger:
    """
    In-memory Messenger.

    Records everything sent and which controls are still live.
    """

    def __init__(self):
        self.public: list[MessengerPayload] = []
        self.direct: dict[str, list[MessengerPayload]] = {}
        self.live_controls: set[str] = set()
        self.retired_controls: list[str] = []

    def send(self, payload: MessengerPayload) -> None:
        self.public.append(payload)
        self.live_controls.update(c.custom_id for c in payload.controls)

    def send_dm(self, participant_id: str, payload: MessengerPayload) -> None:
        self.direct.setdefault(participant_id, []).append(payload)
        self.live_controls.update(c.custom_id for c in payload.controls)

    def retire_control(self, custom_id: str) -> None:
        self.live_controls.discard(custom_id)
        self.retired_controls.append(custom_id)

    def dms_for(self, participant_id: str) -> list[MessengerPayload]:
        return list(self.direct.get(participant_id, []))

    def clear(self) -> None:
        self.public.clear()
        self.direct.clear()
        self.live_controls.clear()
        self.retired_controls.clear()
