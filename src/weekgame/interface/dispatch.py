"""
Action dispatch between a Messenger and a game runtime.

Routes incoming ActionEvents to core operations and turns the results,
including rejections, into reply payloads. Bus events that concern
everyone (new bids, prize offers) are forwarded to the messenger as they
happen, and stale bid controls are retired.

Custom IDs:
    game:bid:<piece>[:<bid>]     press to raise the bid on a live auction
    game:claimPrize:<option>     claim a prize when first in line
    game:useItem                 select "buy", "sell:<piece>" or "force:<piece>"
    game:grant                   select a participant to grant immunity to
    game:decide                  select a decision option
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from ..state.event_bus import EventType, GameEvent
from ..systems.auction import AuctionEngine, ITEM_NAMES, bid_control_id
from ..systems.errors import DecisionRejected, GameError
from ..systems.island import VoteTallyEngine
from .messenger import ActionEvent, Control, Messenger, MessengerPayload

if TYPE_CHECKING:
    from ..state.manager import GameRuntime
    from .renderer import StateRenderer

logger = logging.getLogger(__name__)


def bid_control(piece_id: str, bid: int) -> Control:
    return Control(custom_id=bid_control_id(piece_id, bid), label=f"Bid ${bid + 1}", style="success")


class ActionDispatcher:
    """
    Glue between one game runtime and a messenger.

    Every GameError raised by the core becomes a private reply to the
    actor. Nothing is broadcast on failure.
    """

    def __init__(
        self,
        runtime: "GameRuntime",
        messenger: Messenger,
        renderer: "StateRenderer | None" = None,
    ):
        self._runtime = runtime
        self._messenger = messenger
        self._renderer = renderer
        self._bus = runtime.engine.bus
        self._subscriptions: list[tuple[EventType, Callable]] = [
            (EventType.BID_PLACED, self._on_bid_placed),
            (EventType.BID_CONTROL_RETIRED, self._on_control_retired),
            (EventType.PRIZE_OFFERED, self._on_prize_offered),
        ]
        for event_type, handler in self._subscriptions:
            self._bus.on(event_type, handler)

    def close(self) -> None:
        """Stop forwarding bus events."""
        for event_type, handler in self._subscriptions:
            self._bus.off(event_type, handler)

    @property
    def engine(self):
        return self._runtime.engine

    def _ours(self, event: GameEvent) -> bool:
        return event.game_id == self._runtime.id

    # ─── Bus forwarding ──────────────────────────────────────────

    def _on_bid_placed(self, event: GameEvent) -> None:
        if not self._ours(event):
            return
        self._messenger.send(MessengerPayload(
            content=event.data.get("content", ""),
            controls=[bid_control(event.data["piece_id"], event.data["amount"])],
        ))

    def _on_control_retired(self, event: GameEvent) -> None:
        if not self._ours(event):
            return
        self._messenger.retire_control(event.data["control_id"])

    def _on_prize_offered(self, event: GameEvent) -> None:
        if not self._ours(event):
            return
        controls = [
            Control(custom_id=f"game:claimPrize:{option}", label=ITEM_NAMES.get(option, option))
            for option in event.data.get("options", [])
        ]
        self._messenger.send_dm(
            event.data["participant_id"],
            MessengerPayload(content=event.data.get("content", ""), controls=controls),
        )

    # ─── Incoming actions ────────────────────────────────────────

    def dispatch(self, event: ActionEvent) -> list[MessengerPayload]:
        """
        Handle one action from a participant.

        Returns:
            Private replies for the actor
        """
        try:
            replies = self._route(event)
            self._runtime.controller.persist()
        except GameError as e:
            reason = getattr(e, "reason", None) or str(e)
            logger.debug(f"Rejected {event.kind} from {event.actor_id}: {reason}")
            replies = [reason]

        return [MessengerPayload(content=text, participant_id=event.actor_id) for text in replies]

    def _route(self, event: ActionEvent) -> list[str]:
        engine = self.engine
        actor = event.actor_id

        if event.kind == "text":
            text = event.text.strip()
            if isinstance(engine, VoteTallyEngine) and text.lower().startswith("grant"):
                return [engine.grant_immunity(actor, text[len("grant"):].strip())]
            return [self._runtime.collector.submit(actor, text)]

        root, _, rest = event.custom_id.partition(":")
        if root != "game":
            return ["I don't know what to do with that!"]
        action, _, arg = rest.partition(":")
        value = event.values[0] if event.values else ""

        if action == "bid":
            piece_id, _, bid = arg.partition(":")
            self._require(AuctionEngine)
            control_id = event.custom_id if bid else None
            return [engine.place_bid(piece_id, actor, control_id=control_id)]

        if action == "claimPrize":
            self._require(AuctionEngine)
            return [engine.claim_prize(actor, arg)]

        if action == "useItem":
            self._require(AuctionEngine)
            item, _, piece_id = value.partition(":")
            return [engine.use_item(actor, item, piece_id or None)]

        if action == "grant":
            self._require(VoteTallyEngine)
            return [engine.grant_immunity(actor, "", option_id=value)]

        if action == "decide":
            return [self._runtime.collector.submit(actor, value, option_id=value)]

        return ["I don't know what to do with that!"]

    def _require(self, engine_cls: type) -> None:
        if not isinstance(self.engine, engine_cls):
            raise DecisionRejected("That action doesn't apply to this game.")

    # ─── Turn driving ────────────────────────────────────────────

    def _snapshot(self) -> bytes | None:
        if self._renderer is None:
            return None
        return self._renderer.render_state(self._runtime.state)

    def begin_turn(self) -> list[MessengerPayload]:
        """Open the turn publicly and send each participant their private notes."""
        narrative = self._runtime.controller.begin_turn()
        payload = MessengerPayload(
            content="\n".join(narrative),
            image=self._snapshot(),
        )
        self._messenger.send(payload)
        for participant_id, text in self.engine.weekly_decision_messages().items():
            self._messenger.send_dm(participant_id, MessengerPayload(content=text))
        return [payload]

    def schedule(self, window_sec: float) -> list[dict]:
        """
        When to open each queued auction within a decision window.

        The adapter owns the timer: it should call open_auction(piece_id)
        once `at_sec` seconds of the window have elapsed. Island games
        have nothing to schedule.
        """
        if not isinstance(self.engine, AuctionEngine):
            return []
        return [
            {
                "piece_id": phase["key"].split(":", 1)[1],
                "along": phase["along"],
                "at_sec": phase["along"] * window_sec,
            }
            for phase in self.engine.decision_phases()
        ]

    def open_auction(self, piece_id: str) -> list[MessengerPayload]:
        """Start a queued auction and post it with its first bid control."""
        self._require(AuctionEngine)
        lines = self.engine.open_auction(piece_id)
        if not lines:
            return []
        self._runtime.controller.persist()
        auction = self.engine.find_auction(piece_id)
        payload = MessengerPayload(content="\n".join(lines), controls=[bid_control(piece_id, auction.bid)])
        self._messenger.send(payload)
        return [payload]

    def close_auctions(self) -> list[MessengerPayload]:
        self._require(AuctionEngine)
        lines = self.engine.close_auctions()
        self._runtime.controller.persist()
        if not lines:
            return []
        payload = MessengerPayload(content="\n".join(lines))
        self._messenger.send(payload)
        return [payload]

    def play_resolution(
        self,
        delay: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> list[MessengerPayload]:
        """Reveal each resolution step publicly, pausing between steps."""
        payloads = []
        for result in self._runtime.controller.resolution_steps():
            payload = MessengerPayload(content="\n".join([result.summary, *result.extra_summaries]))
            self._messenger.send(payload)
            payloads.append(payload)
            if result.continue_processing and delay > 0:
                sleep(delay)
        return payloads

    def end_turn(self) -> list[MessengerPayload]:
        narrative = self._runtime.controller.end_turn()
        payload = MessengerPayload(content="\n".join(narrative), image=self._snapshot())
        self._messenger.send(payload)
        return [payload]
