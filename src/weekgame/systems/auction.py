"""
Art auction game.

Participants build wealth by buying hidden-value pieces of art. Each
week the bank queues live auctions, participants may force a rival's
piece into a private auction, sell pieces to the museum, or buy a
random piece at the average price. A silent auction runs alongside the
weekly decisions. Once the bank runs dry every remaining piece is
revealed and liquidated, and the richest collectors win.

Live bids can arrive back-to-back from independent sources, so bid
mutation runs under an AuctionMutex owned by the engine instance.
Contenders are rejected rather than queued.
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from typing import Iterator

from ..state.event_bus import EventType
from ..state.schema import (
    Auction,
    AuctionGameState,
    AuctionParticipant,
    AuctionType,
    OwnedBy,
    Piece,
    Removed,
    Unowned,
    generate_id,
)
from ..state.schemas.decision import Decision, DecisionProcessingResult
from .engine import GameEngine, plural
from .errors import BidRejected, ConcurrencyReject, CorruptStateError, DecisionRejected
from .prizes import PrizeAwardQueue

logger = logging.getLogger(__name__)


# Items wiped at the start of every turn
TEMPORARY_ITEMS = ("buy", "force", "sell")

ITEM_NAMES = {
    "buy": "Buy Piece",
    "force": "Force Auction",
    "sell": "Sell Piece",
}

ITEM_DESCRIPTIONS = {
    "buy": "Buy one piece directly from the bank for an average price",
    "force": "Force any opponent's piece of your choice into a private auction this week",
    "sell": "Sell any piece directly to the museum for its true value",
}

# Value ordering used to fill a season's pieces. Earlier entries are used
# first so small games still get a spread of cheap and expensive pieces.
POSSIBLE_VALUES = [
    15, 30, 0, 20, 10, 25, 5, 40, 50,
    15, 10, 20, 5, 0, 25,
    15, 10, 20,
    30, 25, 15, 20, 0,
    40, 30, 25, 0,
    20, 5, 0,
    0,
]


def construct_value_distribution(n: int, rng) -> list[int]:
    """
    Build n piece values, sorted descending.

    The first values follow POSSIBLE_VALUES; beyond its length, distinct
    values are drawn at random.
    """
    values = POSSIBLE_VALUES[:n]
    distinct = sorted(set(POSSIBLE_VALUES))
    while len(values) < n:
        values.append(rng.choice(distinct))
    return sorted(values, reverse=True)


def bid_control_id(piece_id: str, bid: int) -> str:
    """Custom ID of the control offering the next bid above `bid`."""
    return f"game:bid:{piece_id}:{bid}"


class AuctionMutex:
    """
    Non-blocking exclusive lock around live bid mutation.

    Scoped to one game instance. A caller that finds it held gets a
    ConcurrencyReject immediately.
    """

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise ConcurrencyReject()
        try:
            yield
        finally:
            self._lock.release()


class AuctionEngine(GameEngine[AuctionGameState]):
    """
    Rules for the art auction game.

    Turn flow:
        begin_turn        queue bank auctions, wipe temporary items
        open_auction      called at each decision phase to start bidding
        place_bid         live bids, serialized by the mutex
        close_auctions    settle live auctions, open the silent auction
        process_next_decision   sales, purchases, silent auction, liquidation
        end_turn          standings, winners once every piece is gone
    """

    game_type = "auction"

    def __init__(self, state: AuctionGameState, *args, **kwargs):
        super().__init__(state, *args, **kwargs)
        self._mutex = AuctionMutex()

    @property
    def mutex(self) -> AuctionMutex:
        return self._mutex

    # ─── Lookups ─────────────────────────────────────────────────

    def _p(self, participant_id: str | None) -> AuctionParticipant | None:
        if participant_id is None:
            return None
        return self._state.participants.get(participant_id)

    def get_piece(self, piece_id: str) -> Piece | None:
        return self._state.pieces.get(piece_id)

    def piece_name(self, piece_id: str) -> str:
        piece = self.get_piece(piece_id)
        return f'"{piece.name}"' if piece else f"<unknown piece {piece_id}>"

    def owner_label(self, piece: Piece) -> str:
        if isinstance(piece.owner, OwnedBy):
            return self.display_name(piece.owner.participant_id)
        if isinstance(piece.owner, Removed):
            return "the museum"
        return "the bank"

    def find_auction(self, piece_id: str) -> Auction | None:
        for auction in self._state.auctions:
            if auction.piece_id == piece_id:
                return auction
        return None

    def is_any_auction_active(self) -> bool:
        return any(a.active for a in self._state.auctions)

    def bid_liability(self, participant_id: str) -> int:
        """Sum of standing bids this participant holds across live auctions."""
        return sum(a.bid for a in self._state.auctions if a.bidder == participant_id)

    def average_unsold_value(self) -> float:
        unsold = self._state.unsold_pieces()
        if not unsold:
            return 0.0
        return sum(p.value for p in unsold) / len(unsold)

    def assumed_wealth(self, participant_id: str) -> float:
        """Cash plus owned pieces at the average unsold value. Safe to publish."""
        participant = self._p(participant_id)
        if participant is None:
            return 0.0
        owned = len(self._state.pieces_owned_by(participant_id))
        return participant.points + owned * self.average_unsold_value()

    def true_wealth(self, participant_id: str) -> int:
        """Cash plus the true values of owned pieces. Never published mid-game."""
        participant = self._p(participant_id)
        if participant is None:
            return 0
        return participant.points + sum(p.value for p in self._state.pieces_owned_by(participant_id))

    def ordered_participants(self) -> list[AuctionParticipant]:
        return sorted(
            self._state.participants.values(),
            key=lambda p: (-self.assumed_wealth(p.id), p.display_name.lower()),
        )

    def add_points(self, participant_id: str, points: float) -> None:
        """
        Add whole dollars to a participant's balance.

        Raises:
            ValueError: If points is NaN, not a whole number, or would leave
                the balance below the participant's standing bids
        """
        if isinstance(points, float):
            if math.isnan(points):
                raise ValueError(f"Cannot award NaN points to {participant_id}")
            if not points.is_integer():
                raise ValueError(f"Auction balances are whole dollars, got {points}")
            points = int(points)
        participant = self._p(participant_id)
        if participant is not None and points < 0:
            liability = self.bid_liability(participant_id)
            if participant.points + points < liability:
                raise ValueError(
                    f"{participant.display_name} holds ${liability} in standing bids, "
                    f"can't take their balance to ${participant.points + points}"
                )
        super().add_points(participant_id, points)

    # ─── Season setup ────────────────────────────────────────────

    def add_piece(self, name: str, artist: str | None = None, value: int = 0, piece_id: str | None = None) -> Piece:
        piece = Piece(id=piece_id or generate_id(), name=name, artist=artist, value=value)
        self._state.pieces[piece.id] = piece
        return piece

    def assign_values(self) -> None:
        """Spread the value distribution over pieces in a random order."""
        pieces = list(self._state.pieces.values())
        self._rng.shuffle(pieces)
        for piece, value in zip(pieces, construct_value_distribution(len(pieces), self._rng)):
            piece.value = value

    # ─── Items ───────────────────────────────────────────────────

    def increment_item(self, participant_id: str, item: str, amount: int = 1) -> None:
        participant = self._p(participant_id)
        if participant is None:
            logger.warning(f"Cannot give {item} to unknown participant {participant_id} in game {self._state.id}")
            return
        count = participant.items.get(item, 0) + amount
        if count > 0:
            participant.items[item] = count
        else:
            participant.items.pop(item, None)

    def use_item(self, participant_id: str, item: str, piece_id: str | None = None) -> str:
        """
        Spend one of a participant's items.

        Raises:
            DecisionRejected: If the item can't be used right now
        """
        participant = self._p(participant_id)
        if participant is None:
            raise DecisionRejected("You aren't in this game!")
        if participant.item_count(item) < 1:
            raise DecisionRejected(f"You don't have a **{ITEM_NAMES.get(item, item)}** to use!")
        if self.is_any_auction_active():
            raise DecisionRejected("You can't use items during an active auction!")

        if item == "buy":
            if participant.buying_price is not None:
                raise DecisionRejected("You're already buying a piece this week!")
            price = int(self.average_unsold_value())
            participant.buying_price = price
            self.increment_item(participant_id, "buy", -1)
            logger.info(f"Game {self._state.id}: {participant.display_name} will buy a piece for ${price}")
            reply = f"Ok, you will buy a piece from the bank for **${price}**"
            if participant.points < price:
                reply += " (you don't have enough money yet, so the purchase will be cancelled unless you raise the funds in time)"
            return reply

        piece = self.get_piece(piece_id) if piece_id else None
        if piece is None:
            raise DecisionRejected("Which piece? That one doesn't exist.")

        if item == "sell":
            if piece.owner_id != participant_id:
                raise DecisionRejected(f"You can't sell {self.piece_name(piece.id)}, that piece belongs to **{self.owner_label(piece)}**")
            piece.to_be_sold = True
            self.increment_item(participant_id, "sell", -1)
            logger.info(f"Game {self._state.id}: {participant.display_name} will sell {piece.name}")
            return f"Confirmed! {self.piece_name(piece.id)} will be sold to the museum for **${piece.value}**"

        if item == "force":
            if piece.owner_id is None or piece.owner_id == participant_id:
                raise DecisionRejected(f"You can only force an opponent's piece into auction, not {self.piece_name(piece.id)}")
            if any(a.type == AuctionType.FORCED for a in self._state.auctions):
                raise DecisionRejected("Someone has already forced a piece into auction this week!")
            if self.find_auction(piece.id) is not None:
                raise DecisionRejected(f"{self.piece_name(piece.id)} is already up for auction this week")
            self._state.auctions.append(Auction(
                piece_id=piece.id,
                type=AuctionType.FORCED,
                description="Private Auction",
                forced_by=participant_id,
            ))
            self.increment_item(participant_id, "force", -1)
            logger.info(f"Game {self._state.id}: {participant.display_name} forced {piece.name} into auction")
            return f"Confirmed! {self.piece_name(piece.id)} will be forced into a private auction this week"

        raise DecisionRejected(f"**{item}** isn't an item you can use")

    # ─── Live auctions ───────────────────────────────────────────

    def decision_phases(self) -> list[dict]:
        """
        Schedule points for opening each queued auction.

        `along` is the fraction of the decision window elapsed: the first
        auction opens halfway, the next at three quarters, and so on.
        Adapters run the timer, see ActionDispatcher.schedule.
        """
        return [
            {
                "key": f"beginAuction:{auction.piece_id}",
                "along": 1 - 1 / 2 ** (i + 1) + (self._rng.random() - 0.5) / 20,
            }
            for i, auction in enumerate(self._state.auctions)
        ]

    def open_auction(self, piece_id: str) -> list[str]:
        """Activate a queued auction. Returns the public announcement."""
        auction = self.find_auction(piece_id)
        if auction is None:
            logger.warning(f"Game {self._state.id}: tried to open missing auction for {piece_id}")
            return []
        if auction.active:
            return []

        auction.active = True
        auction.control_id = bid_control_id(piece_id, auction.bid)
        self.emit(
            EventType.AUCTION_OPENED,
            piece_id=piece_id,
            auction_type=auction.type.value,
            control_id=auction.control_id,
        )

        piece = self.get_piece(piece_id)
        if auction.type == AuctionType.FORCED:
            owner = self.owner_label(piece) if piece else "someone"
            return [
                f"**{self.display_name(auction.forced_by)}** has forced {self.piece_name(piece_id)} "
                f"(owned by **{owner}**) into a private auction! Place your bids now"
            ]
        return [f"The bank is auctioning off {self.piece_name(piece_id)}! Place your bids now"]

    def place_bid(self, piece_id: str, bidder_id: str, control_id: str | None = None) -> str:
        """
        Raise an auction's bid by exactly 1.

        Validation and mutation happen while holding the mutex.

        Raises:
            ConcurrencyReject: If another bid is being placed
            BidRejected: If this bid isn't allowed
        """
        with self._mutex.hold():
            auction = self.find_auction(piece_id)
            if auction is None or not auction.active:
                raise BidRejected("You can't bid on a piece that's not being auctioned!")
            if control_id is not None and control_id != auction.control_id:
                raise BidRejected("That bid has already been topped, use the latest bid button!")

            bidder = self._p(bidder_id)
            if bidder is None:
                raise BidRejected("You aren't in this game!")
            if auction.bidder == bidder_id:
                raise BidRejected("You were the last one to bid!")
            piece = self.get_piece(piece_id)
            if piece is None:
                raise BidRejected("That piece no longer exists!")
            if piece.owner_id == bidder_id:
                raise BidRejected("You can't bid on your own piece!")

            amount = auction.bid + 1
            exposure = self.bid_liability(bidder_id) + amount
            if exposure > bidder.points:
                raise BidRejected(
                    f"You can't bid **${amount}**, you only have **${bidder.points}** "
                    f"and **${exposure - amount}** is already tied up in other bids!"
                )

            retired = auction.control_id
            auction.previous_bidder = auction.bidder
            auction.bidder = bidder_id
            auction.bid = amount
            auction.control_id = bid_control_id(piece_id, amount)

            self.emit(
                EventType.BID_PLACED,
                piece_id=piece_id,
                bidder_id=bidder_id,
                amount=amount,
                control_id=auction.control_id,
                content=f"**{bidder.display_name}** has bid **${amount}** on {self.piece_name(piece_id)}!",
            )
            if retired:
                self.emit(EventType.BID_CONTROL_RETIRED, piece_id=piece_id, control_id=retired)

        return f"You've placed a bid of **${amount}** on {self.piece_name(piece_id)}!"

    def close_auctions(self, open_silent: bool = True) -> list[str]:
        """
        Settle every queued auction, then open the silent auction.

        A standing bidder takes the piece and pays the bid, which goes to
        the prior owner when there was one. Auctions that never opened are
        dropped and their forcer gets the force item back.
        """
        text = []

        for auction in list(self._state.auctions):
            self._state.auctions.remove(auction)
            piece = self.get_piece(auction.piece_id)

            if auction.control_id:
                self.emit(EventType.BID_CONTROL_RETIRED, piece_id=auction.piece_id, control_id=auction.control_id)

            if not auction.active:
                logger.warning(f"Game {self._state.id}: auction for {auction.piece_id} was never opened")
                if auction.forced_by:
                    self.increment_item(auction.forced_by, "force", 1)
                continue

            if piece is None or piece.is_removed:
                logger.error(f"Game {self._state.id}: cannot settle auction for unavailable piece {auction.piece_id}")
                continue

            winner = self._p(auction.bidder)
            if auction.bidder is not None and winner is None:
                logger.warning(f"Game {self._state.id}: winning bidder {auction.bidder} has left, auction void")
                winner_id = None
            else:
                winner_id = auction.bidder

            if winner_id is not None:
                previous_owner_id = piece.owner_id
                if previous_owner_id is not None:
                    previous_owner = self._p(previous_owner_id)
                    if previous_owner is not None:
                        previous_owner.points += auction.bid
                    else:
                        logger.warning(f"Game {self._state.id}: prior owner {previous_owner_id} of {piece.id} has left")
                piece.owner = OwnedBy(participant_id=winner_id)
                piece.to_be_sold = False
                winner.points -= auction.bid
                text.append(f"**{winner.display_name}** won {self.piece_name(piece.id)} for **${auction.bid}**!")
            else:
                text.append(f"No one bid on {self.piece_name(piece.id)}, it stays with **{self.owner_label(piece)}**")

            self.emit(
                EventType.AUCTION_SETTLED,
                piece_id=piece.id,
                winner_id=winner_id,
                amount=auction.bid if winner_id else 0,
                auction_type=auction.type.value,
            )

        available = self._state.available_pieces()
        if open_silent and available and self._state.silent_auction is None:
            piece = self._rng.choice(sorted(available, key=lambda p: p.id))
            self._state.silent_auction = Auction(
                piece_id=piece.id,
                type=AuctionType.SILENT,
                description="Silent Auction",
                active=True,
            )
            self.emit(EventType.AUCTION_OPENED, piece_id=piece.id, auction_type=AuctionType.SILENT.value, control_id=None)
            text.append(
                f"A silent auction has opened for {self.piece_name(piece.id)}! "
                "Send me your offer (e.g. `offer 5`) before the results are revealed"
            )

        return text

    # ─── Decisions (silent offers) ───────────────────────────────

    def validate_decision(
        self,
        participant_id: str,
        raw: str,
        option_id: str | None = None,
    ) -> tuple[Decision, str]:
        silent = self._state.silent_auction
        if silent is None:
            raise DecisionRejected("There's no silent auction to make an offer on right now.")

        participant = self._p(participant_id)
        if participant is None:
            raise DecisionRejected("You aren't in this game!")

        text = (option_id or raw).strip().lower().removeprefix("offer").strip().lstrip("$")
        try:
            amount = int(text)
        except ValueError:
            raise DecisionRejected("How much are you offering? For example, `offer 5`")

        if amount < 1:
            raise DecisionRejected("Your offer must be at least **$1**")
        available = participant.points - self.bid_liability(participant_id)
        if amount > available:
            raise DecisionRejected(f"You can't offer **${amount}**, you only have **${available}** to spend!")

        decision = Decision(amount=amount, raw=raw)
        return decision, f"Ok, you've offered **${amount}** for {self.piece_name(silent.piece_id)}"

    # ─── Turn hooks ──────────────────────────────────────────────

    def begin_turn(self) -> list[str]:
        state = self._state
        state.turn += 1
        state.decisions.clear()
        state.prize_queue = None

        for participant in state.participants.values():
            for item in TEMPORARY_ITEMS:
                participant.items.pop(item, None)

        queued = {a.piece_id for a in state.auctions}
        candidates = sorted((p for p in state.available_pieces() if p.id not in queued), key=lambda p: p.id)
        self._rng.shuffle(candidates)
        while len(state.auctions) < self._config["bank_auctions_per_turn"] and candidates:
            piece = candidates.pop()
            state.auctions.append(Auction(piece_id=piece.id, type=AuctionType.BANK, description="Bank Auction"))

        text = []
        if state.auctions:
            names = [self.piece_name(a.piece_id) for a in state.auctions]
            text.append(f"This week, the bank will auction off {' and '.join(names)}")
        else:
            text.append("The bank has nothing left to auction this week")
        text.append(
            f"There {'is' if len(state.available_pieces()) == 1 else 'are'} "
            f"**{len(state.available_pieces())}** pieces left in the bank"
        )
        return text

    def has_pending_work(self) -> bool:
        state = self._state
        if state.auctions:
            return True
        if any(p.to_be_sold for p in state.pieces.values()):
            return True
        if any(p.buying_price is not None for p in state.participants.values()):
            return True
        if state.silent_auction is not None:
            return True
        owned = any(p.owner_id is not None for p in state.pieces.values())
        if not state.available_pieces() and owned:
            return True
        return False

    def process_next_decision(self) -> DecisionProcessingResult:
        result = (
            self._process_unclosed_auctions()
            or self._process_sale()
            or self._process_purchase()
            or self._process_silent_auction()
            or self._process_final_reveal()
            or self._process_liquidation()
            or DecisionProcessingResult(summary="That's all for this week's auction house!")
        )
        result.continue_processing = self.has_pending_work()
        return result

    def _process_unclosed_auctions(self) -> DecisionProcessingResult | None:
        """Settle live auctions nobody closed before resolution began."""
        if not self._state.auctions:
            return None
        lines = self.close_auctions(open_silent=False)
        if not lines:
            return DecisionProcessingResult(summary="This week's auctions were called off")
        return DecisionProcessingResult(summary=lines[0], extra_summaries=lines[1:])

    def _process_sale(self) -> DecisionProcessingResult | None:
        to_sell = sorted((p for p in self._state.pieces.values() if p.to_be_sold), key=lambda p: p.id)
        if not to_sell:
            return None

        piece = self._rng.choice(to_sell)
        piece.to_be_sold = False
        owner = self._p(piece.owner_id)
        if owner is None:
            raise CorruptStateError(f"Piece {piece.id} was flagged for sale with owner {piece.owner.kind}")

        owner.points += piece.value
        piece.owner = Removed()
        logger.info(f"Game {self._state.id}: {owner.display_name} sold {piece.name} for ${piece.value}")
        self.emit(EventType.PIECE_SOLD, piece_id=piece.id, seller_id=owner.id, value=piece.value)
        return DecisionProcessingResult(
            summary=f"**{owner.display_name}** sold {self.piece_name(piece.id)} to the museum for **${piece.value}**",
            payload={"piece_id": piece.id, "seller_id": owner.id, "value": piece.value},
        )

    def _process_purchase(self) -> DecisionProcessingResult | None:
        buyers = sorted(p.id for p in self._state.participants.values() if p.buying_price is not None)
        if not buyers:
            return None

        buyer = self._p(self._rng.choice(buyers))
        price = buyer.buying_price
        buyer.buying_price = None

        if buyer.points < price:
            self.increment_item(buyer.id, "buy", 1)
            return DecisionProcessingResult(
                summary=(
                    f"**{buyer.display_name}** tried to buy a piece from the bank for **${price}** "
                    f"with only **${buyer.points}** in hand... their **{ITEM_NAMES['buy']}** item was refunded"
                ),
            )

        # The silent auction's piece is spoken for
        silent = self._state.silent_auction
        available = sorted(
            (p for p in self._state.available_pieces() if silent is None or p.id != silent.piece_id),
            key=lambda p: p.id,
        )
        if not available:
            self.increment_item(buyer.id, "buy", 1)
            return DecisionProcessingResult(
                summary=f"**{buyer.display_name}** tried to buy a piece from the bank for **${price}**, but none are left...",
            )

        piece = self._rng.choice(available)
        piece.owner = OwnedBy(participant_id=buyer.id)
        buyer.points -= price
        return DecisionProcessingResult(
            summary=f"**{buyer.display_name}** bought {self.piece_name(piece.id)} from the bank for **${price}**",
            payload={"piece_id": piece.id, "buyer_id": buyer.id, "price": price},
        )

    def _process_silent_auction(self) -> DecisionProcessingResult | None:
        silent = self._state.silent_auction
        if silent is None:
            return None

        self._state.silent_auction = None
        offers = sorted(
            ((pid, d) for pid, d in self._state.decisions.items() if d.amount is not None),
            key=lambda item: (-item[1].amount, item[1].timestamp),
        )
        self._state.decisions.clear()

        piece = self.get_piece(silent.piece_id)
        if piece is None or not piece.is_available:
            raise CorruptStateError(f"Silent auction piece {silent.piece_id} is not in the bank")

        for participant_id, decision in offers:
            participant = self._p(participant_id)
            if participant is None:
                logger.warning(f"Game {self._state.id}: dropping silent offer from departed {participant_id}")
                continue
            if decision.amount > participant.points:
                continue
            piece.owner = OwnedBy(participant_id=participant_id)
            participant.points -= decision.amount
            self.emit(
                EventType.AUCTION_SETTLED,
                piece_id=piece.id,
                winner_id=participant_id,
                amount=decision.amount,
                auction_type=AuctionType.SILENT.value,
            )
            return DecisionProcessingResult(
                summary=(
                    f"**{participant.display_name}** won the silent auction for {self.piece_name(piece.id)} "
                    f"with an offer of **${decision.amount}**"
                ),
                payload={"piece_id": piece.id, "winner_id": participant_id, "amount": decision.amount},
            )

        return DecisionProcessingResult(
            summary=f"No one made an offer for {self.piece_name(piece.id)}, it stays in the bank",
        )

    def _process_final_reveal(self) -> DecisionProcessingResult | None:
        state = self._state
        if state.final_reveal or state.available_pieces():
            return None
        if not any(p.owner_id is not None for p in state.pieces.values()):
            return None

        state.final_reveal = True
        return DecisionProcessingResult(
            summary="The bank is empty! Every remaining piece will now be revealed and sold, starting with the cheapest...",
        )

    def _process_liquidation(self) -> DecisionProcessingResult | None:
        state = self._state
        if not state.final_reveal:
            return None
        owned = [p for p in state.pieces.values() if p.owner_id is not None]
        if not owned:
            return None

        lowest = min(p.value for p in owned)
        batch = sorted((p for p in owned if p.value == lowest), key=lambda p: p.id)
        lines = []
        for piece in batch:
            owner = self._p(piece.owner_id)
            if owner is None:
                logger.warning(f"Game {state.id}: owner {piece.owner_id} of {piece.id} has left, nothing credited")
            else:
                owner.points += piece.value
                lines.append(f"**{owner.display_name}** sold {self.piece_name(piece.id)} for **${piece.value}**")
                self.emit(EventType.PIECE_LIQUIDATED, piece_id=piece.id, owner_id=owner.id, value=piece.value)
            piece.owner = Removed()

        return DecisionProcessingResult(
            summary=f"{plural(len(batch), 'piece')} worth **${lowest}** sold to the museum",
            extra_summaries=lines,
            payload={"piece_ids": [p.id for p in batch], "value": lowest},
        )

    def end_turn(self) -> list[str]:
        state = self._state
        state.decisions.clear()
        text = []

        standings = self.ordered_participants()
        if standings:
            text.append("Standings (cash plus estimated collection value):")
            for i, participant in enumerate(standings, start=1):
                text.append(f"{i}. **{participant.display_name}** ~${self.assumed_wealth(participant.id):.0f}")

        if not state.unsold_pieces():
            ranked = sorted(
                state.participants.values(),
                key=lambda p: (-self.true_wealth(p.id), p.display_name.lower()),
            )
            for participant in ranked[:3]:
                self.add_winner(participant.id)
            if state.winners:
                text.append(
                    f"Every piece has been sold! **{self.display_name(state.winners[0])}** is the richest "
                    f"collector with **${self.true_wealth(state.winners[0])}**"
                )
        return text

    # ─── Season ──────────────────────────────────────────────────

    def introduction_text(self) -> str:
        return (
            "Welcome to the auction house! Pieces of art with hidden values will be auctioned off "
            "each week. Bid wisely: once the bank is empty, every piece is revealed and sold, "
            "and the richest collectors win."
        )

    def instructions_text(self) -> str:
        return (
            "Press the bid button during live auctions to raise the bid by $1. "
            "Send `offer N` to bid in the silent auction. "
            "Contest winners earn items that buy, sell, or force pieces into auction."
        )

    def season_completion(self) -> float:
        total = len(self._state.pieces)
        if total == 0:
            return 1.0
        removed = sum(1 for p in self._state.pieces.values() if p.is_removed)
        return removed / total

    def add_late_participant(self, participant_id: str, display_name: str) -> AuctionParticipant:
        existing = self._p(participant_id)
        if existing is not None:
            logger.warning(f"Refusing to add {display_name} to game {self._state.id}, already in it")
            return existing
        participant = AuctionParticipant(id=participant_id, display_name=display_name)
        self._state.participants[participant_id] = participant
        logger.info(f"Game {self._state.id}: added {display_name}")
        return participant

    def remove_participant(self, participant_id: str) -> None:
        """
        Drop a participant mid-season.

        Their pieces return to the bank, their standing bids revert to the
        previous bidder when that bidder can still cover the bid (otherwise
        the auction restarts at $0), and they leave the prize queue.
        """
        state = self._state
        participant = state.participants.pop(participant_id, None)
        if participant is None:
            logger.warning(f"Cannot remove unknown participant {participant_id} from game {state.id}")
            return

        for piece in state.pieces.values():
            if piece.owner_id == participant_id:
                piece.owner = Unowned()
                piece.to_be_sold = False

        # Bids go up by exactly 1, so the previous bidder stood at bid - 1
        for auction in state.auctions:
            if auction.bidder == participant_id:
                previous = self._p(auction.previous_bidder) if auction.previous_bidder else None
                if previous is not None and self.bid_liability(previous.id) + auction.bid - 1 <= previous.points:
                    auction.bidder = previous.id
                    auction.bid -= 1
                else:
                    auction.bidder = None
                    auction.bid = 0
                auction.previous_bidder = None
                if auction.active:
                    retired = auction.control_id
                    auction.control_id = bid_control_id(auction.piece_id, auction.bid)
                    if retired:
                        self.emit(EventType.BID_CONTROL_RETIRED, piece_id=auction.piece_id, control_id=retired)
            elif auction.previous_bidder == participant_id:
                auction.previous_bidder = None

        state.decisions.pop(participant_id, None)
        if state.prize_queue is not None and participant_id in state.prize_queue.claimants:
            state.prize_queue.claimants.remove(participant_id)

        logger.info(f"Game {state.id}: removed {participant.display_name}, pieces returned to the bank")

    # ─── Prizes ──────────────────────────────────────────────────

    def prize_queue(self) -> PrizeAwardQueue:
        state = self._state
        if state.prize_queue is None:
            state.prize_queue = PrizeAwardQueue.new_state(
                list(ITEM_NAMES),
                self._config["prize_option_count"],
                self._rng,
            )
        return PrizeAwardQueue(
            state.prize_queue,
            grant=lambda pid, option: self.increment_item(pid, option, 1),
            display_name=self.display_name,
            option_names=ITEM_NAMES,
            option_descriptions=ITEM_DESCRIPTIONS,
            emit=self.emit,
        )

    def award_prize(self, participant_id: str, intro: str = "", tied: bool = False) -> list[str]:
        if not self.has_participant(participant_id):
            logger.warning(f"Cannot award prize to unknown participant {participant_id} in game {self._state.id}")
            return []
        return self.prize_queue().award(participant_id, intro=intro, tied=tied)

    def claim_prize(self, participant_id: str, option: str) -> str:
        """
        Raises:
            DecisionRejected: If it isn't their turn or the option is gone
        """
        return self.prize_queue().claim(participant_id, option)
