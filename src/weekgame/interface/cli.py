"""
Command-line interface for weekgame.

Drives games stored in the data directory one command at a time, so a
scheduler (cron, a chat bot) can call begin, resolve and end at the
right moments. Output goes through a console Messenger.
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Config, load_config
from ..state import GameManager, JsonGameStore
from ..systems.errors import GameError
from .dispatch import ActionDispatcher
from .messenger import ActionEvent, MessengerPayload
from .renderer import THEME, RichStateRenderer

logger = logging.getLogger(__name__)

console = Console()


class ConsoleMessenger:
    """Messenger that prints to the terminal."""

    def send(self, payload: MessengerPayload) -> None:
        self._print(payload, title="public")

    def send_dm(self, participant_id: str, payload: MessengerPayload) -> None:
        self._print(payload, title=f"to {participant_id}")

    def retire_control(self, custom_id: str) -> None:
        console.print(f"[{THEME['dim']}]control retired: {custom_id}[/]")

    def _print(self, payload: MessengerPayload, title: str) -> None:
        body = payload.content or "(no text)"
        if payload.controls:
            body += "\n\n" + "  ".join(f"[{c.label}] ({c.custom_id})" for c in payload.controls)
        if payload.image:
            body += f"\n[{THEME['dim']}]+ snapshot, {len(payload.image)} bytes[/]"
        console.print(Panel(body, title=title, border_style=THEME["primary"]))


def parse_roster(entries: list[str]) -> dict[str, str]:
    """Parse "id=Name" entries. A bare entry uses itself as both."""
    roster = {}
    for entry in entries:
        pid, sep, name = entry.partition("=")
        roster[pid.strip()] = name.strip() if sep else pid.strip()
    return roster


def _open(args: argparse.Namespace, config: Config):
    manager = GameManager(JsonGameStore(config["data_dir"]), config=config)
    runtime = manager.get(args.game)
    dispatcher = ActionDispatcher(runtime, ConsoleMessenger(), renderer=RichStateRenderer())
    return manager, runtime, dispatcher


# ─── Commands ────────────────────────────────────────────────────


def cmd_new_island(args: argparse.Namespace, config: Config) -> None:
    manager = GameManager(JsonGameStore(config["data_dir"]), config=config)
    runtime = manager.create_island_game(parse_roster(args.participants), name=args.name, season=args.season)
    console.print(f"Created island game [bold]{runtime.id}[/]")
    console.print(runtime.engine.introduction_text())


def cmd_new_auction(args: argparse.Namespace, config: Config) -> None:
    manager = GameManager(JsonGameStore(config["data_dir"]), config=config)
    runtime = manager.create_auction_game(
        parse_roster(args.participants),
        pieces=args.piece,
        name=args.name,
        season=args.season,
        starting_points=args.starting_points,
    )
    console.print(f"Created auction game [bold]{runtime.id}[/] with {len(args.piece)} pieces")
    console.print(runtime.engine.introduction_text())


def cmd_list(args: argparse.Namespace, config: Config) -> None:
    manager = GameManager(JsonGameStore(config["data_dir"]), config=config)
    games = manager.list_games()
    if not games:
        console.print(f"[{THEME['dim']}]No games yet.[/]")
        return

    table = Table(border_style=THEME["primary"])
    for column in ("ID", "Name", "Type", "Week", "Phase", "Participants"):
        table.add_column(column)
    for game in games:
        table.add_row(
            game["id"], game["name"], game["game_type"],
            str(game["turn"]), game["phase"], str(game["participants"]),
        )
    console.print(table)


def cmd_show(args: argparse.Namespace, config: Config) -> None:
    _, runtime, _ = _open(args, config)
    renderer = RichStateRenderer()
    if args.svg:
        Path(args.svg).write_bytes(renderer.render_state(runtime.state))
        console.print(f"Wrote snapshot to {args.svg}")
        return

    engine = runtime.engine
    console.print(f"[bold]{runtime.state.name}[/] · week {runtime.state.turn} · {runtime.state.phase.value}")
    console.print(f"Season {engine.season_completion():.0%} complete")
    for i, participant in enumerate(engine.ordered_participants(), start=1):
        console.print(f"{i}. {participant.display_name} ({participant.points:g} pts)")
    if runtime.state.winners:
        console.print(f"Winners: {engine.names(runtime.state.winners)}")


def cmd_begin(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    dispatcher.begin_turn()


def cmd_decide(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    event = ActionEvent(actor_id=args.participant, kind="text", text=" ".join(args.text))
    for reply in dispatcher.dispatch(event):
        ConsoleMessenger().send_dm(args.participant, reply)


def cmd_act(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    kind = "select" if args.value else "button"
    event = ActionEvent(actor_id=args.participant, kind=kind, custom_id=args.custom_id, values=args.value or [])
    for reply in dispatcher.dispatch(event):
        ConsoleMessenger().send_dm(args.participant, reply)


def cmd_open_auction(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    dispatcher.open_auction(args.piece)


def cmd_schedule(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    phases = dispatcher.schedule(args.window_hours * 3600)
    if not phases:
        console.print(f"[{THEME['dim']}]Nothing to schedule.[/]")
        return
    for phase in phases:
        console.print(f"open-auction {phase['piece_id']} after {phase['at_sec'] / 3600:.1f}h ({phase['along']:.0%} of the window)")


def cmd_close_auctions(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    dispatcher.close_auctions()


def cmd_resolve(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    delay = config["reveal_delay_sec"] if args.delay is None else args.delay
    dispatcher.play_resolution(delay=delay)


def cmd_end(args: argparse.Namespace, config: Config) -> None:
    _, _, dispatcher = _open(args, config)
    dispatcher.end_turn()


def cmd_points(args: argparse.Namespace, config: Config) -> None:
    manager, runtime, _ = _open(args, config)
    engine = runtime.engine
    if not engine.has_participant(args.participant):
        console.print(f"[{THEME['warning']}]Unknown participant {args.participant}[/]")
        return
    engine.add_points(args.participant, args.amount)
    manager.save_game(runtime.state)
    console.print(f"{engine.display_name(args.participant)} now has {engine.get_participant(args.participant).points:g} points")


def cmd_award(args: argparse.Namespace, config: Config) -> None:
    manager, runtime, _ = _open(args, config)
    messenger = ConsoleMessenger()
    for text in runtime.engine.award_prize(args.participant, intro=args.intro, tied=args.tied):
        messenger.send_dm(args.participant, MessengerPayload(content=text))
    manager.save_game(runtime.state)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="weekgame", description="Run weekly decision games")
    parser.add_argument("--data-dir", help="Directory holding games and config")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("new-island", help="Create an island elimination game")
    p.add_argument("participants", nargs="+", help="Participants as id=Name")
    p.add_argument("--name", default="")
    p.add_argument("--season", type=int, default=1)
    p.set_defaults(func=cmd_new_island)

    p = sub.add_parser("new-auction", help="Create an art auction game")
    p.add_argument("participants", nargs="+", help="Participants as id=Name")
    p.add_argument("--piece", action="append", required=True, help="Piece name (repeatable)")
    p.add_argument("--name", default="")
    p.add_argument("--season", type=int, default=1)
    p.add_argument("--starting-points", type=int, default=0)
    p.set_defaults(func=cmd_new_auction)

    p = sub.add_parser("list", help="List active games")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="Show a game's standings")
    p.add_argument("game")
    p.add_argument("--svg", help="Write a rendered snapshot to this path")
    p.set_defaults(func=cmd_show)

    for name, func, help_text in (
        ("begin", cmd_begin, "Begin the next turn"),
        ("end", cmd_end, "End the current turn"),
        ("close-auctions", cmd_close_auctions, "Settle live auctions and open the silent auction"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("game")
        p.set_defaults(func=func)

    p = sub.add_parser("resolve", help="Reveal every pending decision, one step at a time")
    p.add_argument("game")
    p.add_argument("--delay", type=float, help="Seconds between steps (default from config)")
    p.set_defaults(func=cmd_resolve)

    p = sub.add_parser("decide", help="Submit a participant's decision as free text")
    p.add_argument("game")
    p.add_argument("participant")
    p.add_argument("text", nargs="+")
    p.set_defaults(func=cmd_decide)

    p = sub.add_parser("act", help="Press a control or pick from a menu")
    p.add_argument("game")
    p.add_argument("participant")
    p.add_argument("custom_id")
    p.add_argument("--value", action="append", help="Selected value (repeatable)")
    p.set_defaults(func=cmd_act)

    p = sub.add_parser("open-auction", help="Open a queued auction for bidding")
    p.add_argument("game")
    p.add_argument("piece")
    p.set_defaults(func=cmd_open_auction)

    p = sub.add_parser("schedule", help="Show when to open each queued auction")
    p.add_argument("game")
    p.add_argument("--window-hours", type=float, default=24.0, help="Length of the decision window")
    p.set_defaults(func=cmd_schedule)

    p = sub.add_parser("points", help="Add points to a participant")
    p.add_argument("game")
    p.add_argument("participant")
    p.add_argument("amount", type=float)
    p.set_defaults(func=cmd_points)

    p = sub.add_parser("award", help="Award a contest prize")
    p.add_argument("game")
    p.add_argument("participant")
    p.add_argument("--intro", default="")
    p.add_argument("--tied", action="store_true")
    p.set_defaults(func=cmd_award)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.data_dir)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, config["log_level"], logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        args.func(args, config)
    except GameError as e:
        console.print(f"[{THEME['danger']}]{e}[/]")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
