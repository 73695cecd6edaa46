"""
Pydantic schemas for the weekgame HTTP API.

These models define the request and response contract. Game state is
returned as the stored model's JSON, so responses here only wrap
operation results.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class CreateIslandRequest(BaseModel):
    """Start an island season."""
    roster: dict[str, str] = Field(..., description="participant ID -> display name")
    name: str = ""
    season: int = 1


class PieceSpec(BaseModel):
    name: str
    artist: str | None = None


class CreateAuctionRequest(BaseModel):
    """Start an auction season."""
    roster: dict[str, str]
    pieces: list[PieceSpec]
    name: str = ""
    season: int = 1
    starting_points: int = 0


class DecisionRequest(BaseModel):
    """Submit a decision as free text or as an exact option ID."""
    participant_id: str
    text: str = ""
    option_id: str | None = None


class ActionRequest(BaseModel):
    """A raw adapter action (button press, menu selection, text reply)."""
    actor_id: str
    kind: Literal["button", "select", "text"] = "text"
    custom_id: str = ""
    values: list[str] = Field(default_factory=list)
    text: str = ""


class PrizeRequest(BaseModel):
    """Award a contest prize."""
    participant_id: str
    intro: str = ""
    tied: bool = False


class PointsRequest(BaseModel):
    participant_id: str
    points: float


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class NarrativeResponse(BaseModel):
    """Narrative lines produced by a turn operation."""
    ok: bool = True
    game_id: str
    phase: str
    turn: int
    narrative: list[str] = Field(default_factory=list)


class StepResponse(BaseModel):
    """One resolution step."""
    ok: bool = True
    game_id: str
    summary: str
    extra_summaries: list[str] = Field(default_factory=list)
    continue_processing: bool
    skipped: bool = False
    payload: dict[str, Any] = Field(default_factory=dict)


class ReplyResponse(BaseModel):
    """Private replies to the submitting participant."""
    ok: bool = True
    replies: list[str] = Field(default_factory=list)


class GameSummary(BaseModel):
    id: str
    name: str
    game_type: str
    season: int
    turn: int
    phase: str
    participants: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    ok: bool = False
    error: str
    code: str | None = None
