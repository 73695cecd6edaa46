"""
Prize award queue.

When several participants win a contest at once, they claim rewards one
at a time from a shared, shrinking set of options. Only the head of the
queue may claim; each claim removes the option and hands the offer to
the next claimant.
"""

from __future__ import annotations

import logging
import random
from typing import Callable

from ..state.event_bus import EventType
from ..state.schema import PrizeQueueState
from .errors import DecisionRejected

logger = logging.getLogger(__name__)


class PrizeAwardQueue:
    """
    Operates on a PrizeQueueState stored inside a game.

    The queue itself holds no state, so a fresh instance can be built
    around the stored model for every call.
    """

    def __init__(
        self,
        queue: PrizeQueueState,
        grant: Callable[[str, str], None],
        display_name: Callable[[str], str] = str,
        option_names: dict[str, str] | None = None,
        option_descriptions: dict[str, str] | None = None,
        emit: Callable | None = None,
    ):
        self._queue = queue
        self._grant = grant
        self._display_name = display_name
        self._option_names = option_names or {}
        self._option_descriptions = option_descriptions or {}
        self._emit = emit

    @staticmethod
    def new_state(options: list[str], count: int, rng: random.Random) -> PrizeQueueState:
        """Sample `count` options once for the life of the queue."""
        options = list(options)
        rng.shuffle(options)
        return PrizeQueueState(options=options[:count])

    @property
    def claimants(self) -> list[str]:
        return list(self._queue.claimants)

    @property
    def options(self) -> list[str]:
        return list(self._queue.options)

    @property
    def head(self) -> str | None:
        return self._queue.claimants[0] if self._queue.claimants else None

    def _name(self, option: str) -> str:
        return self._option_names.get(option, option)

    def offer_text(self, intro: str = "") -> str:
        """The message shown to whoever is at the head of the queue."""
        options = self._queue.options
        lines = []
        if intro:
            lines.append(intro)
        if len(options) == 1:
            lines.append(f"There's one prize left for you: **{self._name(options[0])}**")
        else:
            lines.append("Choose your prize:")
        for option in options:
            description = self._option_descriptions.get(option)
            lines.append(f"- **{self._name(option)}**" + (f": {description}" if description else ""))
        return "\n".join(lines)

    def _offer(self, participant_id: str, text: str) -> None:
        if self._emit:
            self._emit(
                EventType.PRIZE_OFFERED,
                participant_id=participant_id,
                options=list(self._queue.options),
                content=text,
            )

    def award(self, participant_id: str, intro: str = "", tied: bool = False) -> list[str]:
        """
        Put a contest winner in line for a prize.

        Returns:
            Messages for the participant: an offer if they are at the head
            of the queue, otherwise a note that they are waiting
        """
        intro = intro or "Congrats on winning"
        if not self._queue.options:
            return [f"{intro}! Unfortunately there are no prizes left to choose from."]
        if participant_id in self._queue.claimants:
            return [f"{intro}! You're already in line for a prize."]

        self._queue.claimants.append(participant_id)

        if self.head == participant_id:
            text = self.offer_text(f"{intro}!" if not tied else f"{intro}! You get first pick of the prizes.")
            self._offer(participant_id, text)
            return [text]

        position = self._queue.claimants.index(participant_id)
        if tied:
            return [f"{intro}! You tied with others, so you'll get to pick once the {plural_ahead(position)} ahead of you choose."]
        return [f"{intro}! Another winner is choosing a prize first, I'll let you know when it's your turn."]

    def claim(self, participant_id: str, option: str) -> str:
        """
        Claim an option as the head of the queue.

        Raises:
            DecisionRejected: If the claimant isn't first in line or the option is gone
        """
        if self.head != participant_id:
            if participant_id in self._queue.claimants:
                raise DecisionRejected("Hold on, someone ahead of you is still choosing their prize!")
            raise DecisionRejected("You don't have a prize to claim right now.")
        if option not in self._queue.options:
            raise DecisionRejected(f"**{self._name(option)}** isn't one of the prizes available to you.")

        self._queue.options.remove(option)
        self._queue.claimants.pop(0)
        self._grant(participant_id, option)
        logger.info(f"{participant_id} claimed prize {option}")
        if self._emit:
            self._emit(EventType.PRIZE_CLAIMED, participant_id=participant_id, option=option)

        self._advance()
        return f"Confirmed! You've claimed **{self._name(option)}**"

    def _advance(self) -> None:
        """Offer the remaining options to the new head, skipping anyone left empty-handed."""
        while self._queue.claimants and not self._queue.options:
            skipped = self._queue.claimants.pop(0)
            logger.info(f"No prizes left for {skipped}")
        if self.head is not None:
            self._offer(self.head, self.offer_text("It's your turn to choose a prize!"))


def plural_ahead(n: int) -> str:
    return "winner" if n == 1 else f"{n} winners"
