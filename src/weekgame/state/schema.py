"""
Pydantic models for weekgame state.

This is the canonical schema for everything that gets persisted:
participants, pieces, auctions, the prize queue and the two game
state variants. The game variants form a discriminated union on
``game_type`` so a stored game loads back into the right model.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from .schemas.decision import Decision


def generate_id() -> str:
    return str(uuid4())[:8]


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class TurnPhase(str, Enum):
    """Phase state machine for a game's weekly turn."""
    SETUP = "setup"                      # Roster built, no turn begun yet
    DECISION_WINDOW = "decision_window"  # Participants may submit decisions
    RESOLVING = "resolving"              # Decisions being revealed one by one
    SETTLED = "settled"                  # Turn ended, waiting for the next week
    COMPLETE = "complete"                # Game over, winners decided


class AuctionType(str, Enum):
    """How an auction came to be."""
    BANK = "bank"      # Queued by the bank at the start of the week
    FORCED = "forced"  # Requested by a participant with a force item
    SILENT = "silent"  # Sealed offers resolved during the turn


# -----------------------------------------------------------------------------
# Participants
# -----------------------------------------------------------------------------


class Participant(BaseModel):
    """Common fields for anyone taking part in a game."""
    id: str
    display_name: str
    points: float = 0.0
    joined_at: datetime = Field(default_factory=datetime.now)

    @field_validator("points")
    @classmethod
    def _reject_nan(cls, v: float) -> float:
        if isinstance(v, float) and math.isnan(v):
            raise ValueError("points cannot be NaN")
        return v


class IslandParticipant(Participant):
    """
    A contestant in the island elimination game.

    Locked participants joined late; they never receive votes and only
    feed the audience bloc. Turn fields (base_votes, incoming_votes,
    revealed_target, assailants) are cleared at the start of every turn,
    while last_assailants carries the previous turn's voters forward.
    """
    eliminated: bool = False
    locked: bool = False
    final_rank: int | None = None

    base_votes: int = 0
    incoming_votes: int = 0
    revealed_target: str | None = None
    assailants: list[str] = Field(default_factory=list)
    last_assailants: list[str] = Field(default_factory=list)

    immunity_granted_by: str | None = None
    may_grant_immunity: bool = False

    @property
    def is_active(self) -> bool:
        return not self.eliminated

    @property
    def is_immune(self) -> bool:
        return self.immunity_granted_by is not None

    def clear_turn_fields(self) -> None:
        self.base_votes = 0
        self.incoming_votes = 0
        self.revealed_target = None
        self.assailants = []


class AuctionParticipant(Participant):
    """A collector in the art auction game. Balances are whole dollars."""
    points: int = 0
    items: dict[str, int] = Field(default_factory=dict)
    buying_price: int | None = None

    def item_count(self, item: str) -> int:
        return self.items.get(item, 0)


# -----------------------------------------------------------------------------
# Pieces and ownership
# -----------------------------------------------------------------------------


class Unowned(BaseModel):
    """Held by the bank and available for auction."""
    kind: Literal["unowned"] = "unowned"


class Removed(BaseModel):
    """Sold to the museum or liquidated; out of play for good."""
    kind: Literal["removed"] = "removed"


class OwnedBy(BaseModel):
    """Held by a participant."""
    kind: Literal["owned"] = "owned"
    participant_id: str


Ownership = Annotated[
    Union[Unowned, Removed, OwnedBy],
    Field(discriminator="kind"),
]


class Piece(BaseModel):
    """A piece of art. Its value stays hidden until the final reveal."""
    id: str
    name: str
    value: int
    artist: str | None = None
    owner: Ownership = Field(default_factory=Unowned)
    to_be_sold: bool = False

    @property
    def owner_id(self) -> str | None:
        if isinstance(self.owner, OwnedBy):
            return self.owner.participant_id
        return None

    @property
    def is_available(self) -> bool:
        return isinstance(self.owner, Unowned)

    @property
    def is_removed(self) -> bool:
        return isinstance(self.owner, Removed)


class Auction(BaseModel):
    """
    A live or silent auction on one piece.

    bidder is the standing high bidder. previous_bidder is whoever held
    that position before the latest bid. control_id names the bid
    control currently offered for this auction; older controls are stale.
    """
    piece_id: str
    type: AuctionType = AuctionType.BANK
    description: str = "Bank Auction"
    bid: int = 0
    bidder: str | None = None
    previous_bidder: str | None = None
    active: bool = False
    forced_by: str | None = None
    control_id: str | None = None


class PrizeQueueState(BaseModel):
    """Winners waiting to claim, in order, and the options still unclaimed."""
    claimants: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Game state
# -----------------------------------------------------------------------------


class GameStateBase(BaseModel):
    """Fields shared by every game variant."""
    id: str = Field(default_factory=generate_id)
    name: str = ""
    season: int = 1
    turn: int = 0
    phase: TurnPhase = TurnPhase.SETUP
    decisions: dict[str, Decision] = Field(default_factory=dict)
    winners: list[str] = Field(default_factory=list)
    turn_narrative: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def touch(self) -> None:
        self.updated_at = datetime.now()


class IslandGameState(GameStateBase):
    """State for the island elimination game."""
    game_type: Literal["island"] = "island"
    participants: dict[str, IslandParticipant] = Field(default_factory=dict)
    elimination_quota: int = 1
    audience_decisions: dict[str, Decision] = Field(default_factory=dict)


class AuctionGameState(GameStateBase):
    """State for the art auction game."""
    game_type: Literal["auction"] = "auction"
    participants: dict[str, AuctionParticipant] = Field(default_factory=dict)
    pieces: dict[str, Piece] = Field(default_factory=dict)
    auctions: list[Auction] = Field(default_factory=list)
    silent_auction: Auction | None = None
    final_reveal: bool = False
    prize_queue: PrizeQueueState | None = None

    def unsold_pieces(self) -> list[Piece]:
        return [p for p in self.pieces.values() if not p.is_removed]

    def available_pieces(self) -> list[Piece]:
        return [p for p in self.pieces.values() if p.is_available]

    def pieces_owned_by(self, participant_id: str) -> list[Piece]:
        return [p for p in self.pieces.values() if p.owner_id == participant_id]


GameState = Annotated[
    Union[IslandGameState, AuctionGameState],
    Field(discriminator="game_type"),
]

_game_state_adapter: TypeAdapter = TypeAdapter(GameState)


def parse_game_state(data: dict | str) -> IslandGameState | AuctionGameState:
    """Validate stored data into the matching game state model."""
    if isinstance(data, str):
        return _game_state_adapter.validate_json(data)
    return _game_state_adapter.validate_python(data)
