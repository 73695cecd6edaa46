"""
State snapshot rendering.

render_state is a pure function of the game state: it reads the state
and returns image bytes, never feeding anything back into the game.
The default renderer draws rich tables and exports them as SVG.
"""

from __future__ import annotations

import io
from typing import Protocol

from rich.console import Console
from rich.table import Table
from rich.box import ROUNDED

from ..state.schema import AuctionGameState, IslandGameState, OwnedBy, Removed

THEME = {
    "primary": "steel_blue",
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "accent": "cyan",
    "dim": "dim",
}


class StateRenderer(Protocol):
    def render_state(self, state: IslandGameState | AuctionGameState) -> bytes:
        """Render a snapshot of the game as image bytes."""
        ...


def island_table(state: IslandGameState) -> Table:
    table = Table(
        title=f"{state.name} · week {state.turn} · {state.elimination_quota} to be voted off",
        box=ROUNDED,
        border_style=THEME["primary"],
    )
    table.add_column("Participant", style="bold")
    table.add_column("Points", justify="right")
    table.add_column("Votes", justify="right")
    table.add_column("Incoming", justify="right")
    table.add_column("Status")

    active = sorted(
        (p for p in state.participants.values() if not p.eliminated),
        key=lambda p: (-p.points, p.display_name.lower()),
    )
    eliminated = sorted(
        (p for p in state.participants.values() if p.eliminated),
        key=lambda p: (p.final_rank or 0, p.display_name.lower()),
    )

    for participant in active + eliminated:
        if participant.locked:
            status = f"[{THEME['dim']}]audience[/]"
        elif participant.eliminated:
            status = f"[{THEME['danger']}]eliminated (#{participant.final_rank})[/]"
        elif participant.final_rank == 1:
            status = f"[{THEME['accent']}]champion[/]"
        elif participant.is_immune:
            status = f"[{THEME['warning']}]immune[/]"
        else:
            status = "active"
        table.add_row(
            participant.display_name,
            f"{participant.points:g}",
            str(participant.base_votes),
            str(participant.incoming_votes),
            status,
        )
    return table


def auction_tables(state: AuctionGameState) -> list[Table]:
    unsold = state.unsold_pieces()
    average = sum(p.value for p in unsold) / len(unsold) if unsold else 0.0

    standings = Table(title=f"{state.name} · week {state.turn}", box=ROUNDED, border_style=THEME["primary"])
    standings.add_column("Collector", style="bold")
    standings.add_column("Cash", justify="right")
    standings.add_column("Pieces", justify="right")
    standings.add_column("Est. wealth", justify="right")

    rows = []
    for participant in state.participants.values():
        owned = len(state.pieces_owned_by(participant.id))
        rows.append((participant.points + owned * average, participant, owned))
    for assumed, participant, owned in sorted(rows, key=lambda r: (-r[0], r[1].display_name.lower())):
        standings.add_row(participant.display_name, f"${participant.points}", str(owned), f"~${assumed:.0f}")

    pieces = Table(title="Pieces", box=ROUNDED, border_style=THEME["secondary"])
    pieces.add_column("Piece")
    pieces.add_column("Owner")
    pieces.add_column("Value", justify="right")

    for piece in sorted(state.pieces.values(), key=lambda p: p.name.lower()):
        if isinstance(piece.owner, OwnedBy):
            owner = state.participants.get(piece.owner.participant_id)
            owner_label = owner.display_name if owner else "?"
        elif isinstance(piece.owner, Removed):
            owner_label = f"[{THEME['dim']}]museum[/]"
        else:
            owner_label = "bank"
        value = f"${piece.value}" if state.final_reveal or piece.is_removed else "?"
        pieces.add_row(piece.name, owner_label, value)

    return [standings, pieces]


class RichStateRenderer:
    """Renders state as SVG bytes using rich's recording console."""

    def __init__(self, width: int = 100):
        self.width = width

    def render_state(self, state: IslandGameState | AuctionGameState) -> bytes:
        console = Console(record=True, width=self.width, file=io.StringIO())
        if isinstance(state, IslandGameState):
            console.print(island_table(state))
        else:
            for table in auction_tables(state):
                console.print(table)
        return console.export_svg(title=state.name or state.id).encode("utf-8")
