"""
Island elimination game.

Each week participants vote to eliminate one another. Voting power comes
from the week's points ranking, with a bonus for striking back at last
week's assailants. Late joiners are locked into an audience bloc whose
plurality pick adds a single vote. The most-voted participants are
eliminated until one remains.

Usage:
    engine = VoteTallyEngine(state, rng=random.Random(7))
    controller = TurnController(engine)
    controller.begin_turn()
"""

from __future__ import annotations

import logging
from collections import Counter
from functools import lru_cache

from ..state.event_bus import EventType
from ..state.schema import IslandGameState, IslandParticipant
from ..state.schemas.decision import Decision, DecisionProcessingResult
from .decisions import resolve_target
from .engine import GameEngine, plural
from .errors import DecisionRejected

logger = logging.getLogger(__name__)


# ─── Quota schedule ──────────────────────────────────────────────


def baseline_quota(remaining: int, max_quota: int = 3) -> int:
    """The default number of eliminations for a population."""
    if remaining > 10:
        quota = 3
    elif remaining > 4:
        quota = 2
    else:
        quota = 1
    return max(1, min(quota, max_quota))


@lru_cache(maxsize=None)
def rounds_remaining(remaining: int, max_quota: int = 3) -> int:
    """Turns needed to get from this population to a single winner."""
    rounds = 0
    while remaining > 1:
        remaining -= baseline_quota(remaining, max_quota)
        rounds += 1
    return rounds


def admissible_quotas(remaining: int, max_quota: int = 3) -> list[int]:
    """
    Quotas that keep the season length fixed.

    A quota q is admissible when it leaves at least one participant and
    the rounds still needed drop by exactly one.
    """
    if remaining <= 1:
        return []
    target = rounds_remaining(remaining, max_quota) - 1
    return [
        q for q in range(1, max_quota + 1)
        if remaining - q >= 1 and rounds_remaining(remaining - q, max_quota) == target
    ]


# ─── Engine ──────────────────────────────────────────────────────


class VoteTallyEngine(GameEngine[IslandGameState]):
    """
    Rules for the island elimination game.

    Voting power is assigned at begin_turn, decisions are revealed one
    at a time in random order, and end_turn eliminates the top of the
    incoming-vote table.
    """

    game_type = "island"

    # ─── Roster helpers ──────────────────────────────────────────

    def _p(self, participant_id: str | None) -> IslandParticipant | None:
        if participant_id is None:
            return None
        return self._state.participants.get(participant_id)

    def active_participants(self) -> list[IslandParticipant]:
        return [p for p in self._state.participants.values() if not p.eliminated]

    def remaining_count(self) -> int:
        return len(self.active_participants())

    def voting_order(self) -> list[IslandParticipant]:
        """Non-locked participants: active first, then by points descending."""
        eligible = [p for p in self._state.participants.values() if not p.locked]
        return sorted(
            eligible,
            key=lambda p: (p.eliminated, -p.points, p.display_name.lower(), p.id),
        )

    def ordered_participants(self) -> list[IslandParticipant]:
        """Active participants by points, then the eliminated by final rank."""
        active = sorted(self.active_participants(), key=lambda p: (-p.points, p.display_name.lower()))
        eliminated = sorted(
            (p for p in self._state.participants.values() if p.eliminated),
            key=lambda p: (p.final_rank or 0, p.display_name.lower()),
        )
        return active + eliminated

    # ─── Voting power ────────────────────────────────────────────

    def assign_voting_power(self) -> list[str]:
        """
        Hand out base votes for the turn.

        Two counters, one per elimination status, start at the configured
        constant and step down as participants are assigned. Anyone with
        positive points gets at least 1 vote.

        Returns:
            IDs of participants left voteless
        """
        top = self._config["starting_votes"]
        counters = {False: top, True: top}
        voteless = []

        for participant in self.voting_order():
            if participant.points > 0:
                counter = counters[participant.eliminated]
                participant.base_votes = max(counter, 1)
                counters[participant.eliminated] = counter - 1
            else:
                participant.base_votes = 0
                voteless.append(participant.id)

        return voteless

    def vote_weight(self, voter: IslandParticipant, target_id: str) -> int:
        """
        Actual vote weight for voter against target.

        Active voters double their votes against a last-turn assailant.
        Eliminated voters get exactly one extra vote against one.
        """
        weight = voter.base_votes
        if target_id in voter.last_assailants:
            if voter.eliminated:
                return weight + 1
            return weight * 2
        return weight

    def choose_quota(self) -> int:
        options = admissible_quotas(self.remaining_count(), self._config["max_eliminations_per_turn"])
        if not options:
            return 0
        return self._rng.choice(options)

    # ─── Immunity ────────────────────────────────────────────────

    def immunity_holder(self) -> IslandParticipant | None:
        for participant in self._state.participants.values():
            if participant.is_immune:
                return participant
        return None

    def immunity_granter(self) -> IslandParticipant | None:
        for participant in self._state.participants.values():
            if participant.may_grant_immunity:
                return participant
        return None

    def grant_immunity(self, granter_id: str, raw: str, option_id: str | None = None) -> str:
        """
        Let a contest winner grant immunity to an active participant.

        Granting is irreversible and can happen once per award.

        Raises:
            DecisionRejected: If the granter can't grant or the target is ineligible
        """
        granter = self._p(granter_id)
        if granter is None or not granter.may_grant_immunity:
            holder = self.immunity_holder()
            if holder is not None and holder.immunity_granted_by == granter_id:
                raise DecisionRejected(f"You've already granted immunity to **{holder.display_name}**!")
            raise DecisionRejected("You don't have immunity to grant right now.")

        candidates = [(p.id, p.display_name) for p in self._state.participants.values() if not p.locked]
        target_id = resolve_target(raw, candidates, option_id)
        target = self._p(target_id)
        if target is None:
            raise DecisionRejected("Who are you trying to grant immunity to? For example, `grant Robert`")
        if target.eliminated:
            raise DecisionRejected(f"**{target.display_name}** has already been eliminated, try someone else!")

        target.immunity_granted_by = granter.id
        granter.may_grant_immunity = False
        logger.info(f"Game {self._state.id}: {granter.display_name} granted immunity to {target.display_name}")
        self.emit(EventType.IMMUNITY_GRANTED, granter_id=granter.id, receiver_id=target.id)

        if target.id == granter.id:
            return "Confirmed! You've kept immunity for yourself"
        return f"Confirmed! You've granted immunity to **{target.display_name}**"

    # ─── Decisions ───────────────────────────────────────────────

    def decision_map_for(self, participant_id: str) -> dict[str, Decision]:
        participant = self._p(participant_id)
        if participant is not None and participant.locked:
            return self._state.audience_decisions
        return self._state.decisions

    def decision_options(self, participant_id: str) -> list[tuple[str, str]]:
        return [
            (p.id, p.display_name)
            for p in self.active_participants()
            if p.id != participant_id and not p.is_immune
        ]

    def validate_decision(
        self,
        participant_id: str,
        raw: str,
        option_id: str | None = None,
    ) -> tuple[Decision, str]:
        voter = self._p(participant_id)
        if voter is None:
            raise DecisionRejected("You aren't on the island!")

        candidates = [(p.id, p.display_name) for p in self._state.participants.values() if not p.locked]
        target_id = resolve_target(raw, candidates, option_id)
        target = self._p(target_id)
        if target is None:
            raise DecisionRejected("Who are you trying to vote for? For example, `Robert`")
        if target.id == voter.id:
            raise DecisionRejected("You can't vote for yourself, choose someone else!")
        if target.eliminated:
            raise DecisionRejected(f"**{target.display_name}** has already been eliminated, choose someone else!")
        if target.is_immune:
            raise DecisionRejected(f"**{target.display_name}** has immunity this turn, choose someone else!")

        decision = Decision(target_id=target.id, raw=raw)

        if voter.locked:
            return decision, f"Ok, your pick of **{target.display_name}** goes into the audience vote this week..."

        weight = self.vote_weight(voter, target.id)
        if weight < 1:
            raise DecisionRejected("You don't have any votes to use this week, since you didn't earn any points.")
        return decision, f"Ok, you will use your **{plural(weight, 'vote')}** to eliminate **{target.display_name}** this week..."

    def weekly_decision_messages(self) -> dict[str, str]:
        messages = {}
        for participant in self._state.participants.values():
            if participant.base_votes > 1:
                status = "eliminated" if participant.eliminated else "remaining"
                messages[participant.id] = (
                    f"Due to your performance against the other _{status}_ players this week, "
                    f"you have **{participant.base_votes}** votes at your disposal"
                )
        return messages

    # ─── Turn hooks ──────────────────────────────────────────────

    def begin_turn(self) -> list[str]:
        state = self._state
        state.turn += 1
        state.decisions.clear()
        state.audience_decisions.clear()
        for participant in state.participants.values():
            participant.clear_turn_fields()

        text = []

        # A winner who never chose keeps immunity only while still active
        granter = self.immunity_granter()
        if granter is not None:
            granter.may_grant_immunity = False
            if granter.is_active and self.immunity_holder() is None:
                granter.immunity_granted_by = granter.id
                self.emit(EventType.IMMUNITY_GRANTED, granter_id=granter.id, receiver_id=granter.id)
                logger.info(f"Game {state.id}: {granter.display_name} kept immunity by default")

        state.elimination_quota = self.choose_quota()
        text.append(
            f"This week, **{state.elimination_quota}** "
            f"{'player' if state.elimination_quota == 1 else 'players'} will be voted off the island"
        )

        holder = self.immunity_holder()
        if holder is not None:
            if holder.immunity_granted_by == holder.id:
                text.append(f"This week's contest winner, **{holder.display_name}**, has immunity")
            else:
                text.append(
                    f"This week's contest winner, **{self.display_name(holder.immunity_granted_by)}**, "
                    f"has granted immunity to **{holder.display_name}**"
                )

        voteless = self.assign_voting_power()
        if voteless:
            text.append(f"{self.names(voteless)} cannot vote this week since they didn't earn any points")

        text.append("Send me the name of who you'd like to vote off the island!")
        return text

    def has_pending_work(self) -> bool:
        return bool(self._state.decisions) or bool(self._state.audience_decisions)

    def process_next_decision(self) -> DecisionProcessingResult:
        state = self._state

        if state.decisions:
            voter_id = self._rng.choice(sorted(state.decisions))
            decision = state.decisions.pop(voter_id)
            result = self._resolve_vote(voter_id, decision)
        elif state.audience_decisions:
            result = self._resolve_audience()
        else:
            return DecisionProcessingResult(summary="There are no more votes to count.")

        result.continue_processing = self.has_pending_work()
        return result

    def _resolve_vote(self, voter_id: str, decision: Decision) -> DecisionProcessingResult:
        voter = self._p(voter_id)
        if voter is None:
            logger.warning(f"Game {self._state.id}: dropping decision from departed participant {voter_id}")
            return DecisionProcessingResult(summary="A vote from someone who left the island was discarded...")

        target = self._p(decision.target_id)
        if target is None:
            logger.warning(f"Game {self._state.id}: {voter_id} voted for unknown {decision.target_id}")
            return DecisionProcessingResult(
                summary=f"**{voter.display_name}** tried to vote for someone who isn't on the island...",
            )
        if target.is_immune:
            return DecisionProcessingResult(
                summary=f"**{voter.display_name}** tried to vote for **{target.display_name}**, who's immune...",
            )
        if target.eliminated:
            return DecisionProcessingResult(
                summary=f"**{voter.display_name}** tried to vote for **{target.display_name}**, who's already been eliminated...",
            )

        weight = self.vote_weight(voter, target.id)
        if weight < 1:
            return DecisionProcessingResult(
                summary=f"**{voter.display_name}** tried to vote for **{target.display_name}** without any votes...",
            )

        target.incoming_votes += weight
        if voter.id not in target.assailants:
            target.assailants.append(voter.id)
        voter.revealed_target = target.id

        if target.id in voter.last_assailants:
            flavor = " in revenge" if voter.eliminated else " in retaliation"
        else:
            flavor = ""
        return DecisionProcessingResult(
            summary=f"**{voter.display_name}** cast **{plural(weight, 'vote')}** for **{target.display_name}**{flavor}",
            payload={"voter_id": voter.id, "target_id": target.id, "weight": weight},
        )

    def _resolve_audience(self) -> DecisionProcessingResult:
        state = self._state
        tally: Counter[str] = Counter()
        for decision in state.audience_decisions.values():
            target = self._p(decision.target_id)
            if target is None or target.eliminated or target.is_immune or target.locked:
                continue
            tally[target.id] += 1
        state.audience_decisions.clear()

        if not tally:
            return DecisionProcessingResult(summary="The audience couldn't agree on anyone to vote for...")

        # Plurality; ties go to whoever already has the most incoming votes, then by ID
        top = max(tally.values())
        tied = [self._p(pid) for pid in tally if tally[pid] == top]
        chosen = sorted(tied, key=lambda p: (-p.incoming_votes, p.id))[0]
        chosen.incoming_votes += 1

        return DecisionProcessingResult(
            summary=f"The audience cast **1 vote** for **{chosen.display_name}**",
            payload={"target_id": chosen.id, "weight": 1, "audience": True},
        )

    def elimination_order(self) -> list[IslandParticipant]:
        """Active, non-immune participants, most endangered first."""
        candidates = [p for p in self.active_participants() if not p.is_immune]
        return sorted(candidates, key=lambda p: (-p.incoming_votes, p.points, p.id))

    def end_turn(self) -> list[str]:
        state = self._state
        text = []

        voted_off = self.elimination_order()[:state.elimination_quota]
        for participant in voted_off:
            participant.final_rank = self.remaining_count()
            participant.eliminated = True
            self.emit(
                EventType.PARTICIPANT_ELIMINATED,
                participant_id=participant.id,
                final_rank=participant.final_rank,
                incoming_votes=participant.incoming_votes,
            )

        if voted_off:
            verb = "has" if len(voted_off) == 1 else "have"
            text.append(f"{self.names([p.id for p in voted_off])} {verb} been voted off the island")
        else:
            text.append("No one was voted off the island this week")

        # Roll this turn's assailants into next turn's memory
        for participant in state.participants.values():
            participant.last_assailants = list(participant.assailants)
            participant.clear_turn_fields()
            participant.immunity_granted_by = None

        remaining = self.active_participants()
        if len(remaining) <= 1:
            if remaining:
                remaining[0].final_rank = 1
            self._compact_ranks()
            # Locked late joiners never make the podium
            ranked = sorted(
                (p for p in state.participants.values() if p.final_rank is not None and not p.locked),
                key=lambda p: p.final_rank,
            )
            for participant in ranked[:3]:
                self.add_winner(participant.id)
            text.append(self._podium_text())
        else:
            text.append(f"**{len(remaining)}** dear participants remain...")

        state.decisions.clear()
        state.audience_decisions.clear()
        return text

    def _compact_ranks(self) -> None:
        """Renumber final ranks 1..N in order, closing gaps left by departures."""
        ranked = sorted(
            (p for p in self._state.participants.values() if p.final_rank is not None),
            key=lambda p: (p.final_rank, p.locked, p.joined_at),
        )
        for rank, participant in enumerate(ranked, start=1):
            participant.final_rank = rank

    def _podium_text(self) -> str:
        winners = self._state.winners
        if not winners:
            return "No one survived the island..."
        text = f"**{self.display_name(winners[0])}** has survived the island and is crowned champion!"
        if len(winners) >= 3:
            text += (
                f" **{self.display_name(winners[1])}** and **{self.display_name(winners[2])}** "
                "take _2nd_ and _3rd_, respectively"
            )
        elif len(winners) == 2:
            text += f" **{self.display_name(winners[1])}** takes _2nd_"
        return text

    # ─── Season ──────────────────────────────────────────────────

    def introduction_text(self) -> str:
        return (
            "Welcome to the island! Each week, everyone votes to eliminate someone. "
            "The more points you earn during the week, the more votes you hold. "
            "The last one standing is crowned champion."
        )

    def instructions_text(self) -> str:
        return (
            "DM me the name of who you'd like to vote off the island. "
            "Votes against someone who voted for you last week count double, "
            "and even eliminated players can take their revenge."
        )

    def season_completion(self) -> float:
        contenders = [p for p in self._state.participants.values() if not p.locked]
        if len(contenders) <= 1 or self.is_complete():
            return 1.0
        eliminated = sum(1 for p in contenders if p.eliminated)
        return eliminated / (len(contenders) - 1)

    def add_late_participant(self, participant_id: str, display_name: str) -> IslandParticipant:
        """
        Add someone after the season started.

        They join eliminated and locked, ranked behind everyone else,
        and vote only through the audience bloc.
        """
        existing = self._p(participant_id)
        if existing is not None:
            logger.warning(f"Refusing to add {display_name} to game {self._state.id}, already in it")
            return existing

        participant = IslandParticipant(
            id=participant_id,
            display_name=display_name,
            eliminated=True,
            locked=True,
            final_rank=len(self._state.participants) + 1,
        )
        self._state.participants[participant_id] = participant
        logger.info(f"Game {self._state.id}: added {display_name} at final rank {participant.final_rank}")
        return participant

    def remove_participant(self, participant_id: str) -> None:
        participant = self._state.participants.pop(participant_id, None)
        if participant is None:
            logger.warning(f"Cannot remove unknown participant {participant_id} from game {self._state.id}")
            return

        self._state.decisions.pop(participant_id, None)
        self._state.audience_decisions.pop(participant_id, None)
        for other in self._state.participants.values():
            if other.immunity_granted_by == participant_id:
                other.immunity_granted_by = None
            if participant_id in other.assailants:
                other.assailants.remove(participant_id)
            if participant_id in other.last_assailants:
                other.last_assailants.remove(participant_id)
        logger.info(f"Game {self._state.id}: removed {participant.display_name}")

    def award_prize(self, participant_id: str, intro: str = "", tied: bool = False) -> list[str]:
        participant = self._p(participant_id)
        if participant is None:
            logger.warning(f"Cannot award prize to unknown participant {participant_id} in game {self._state.id}")
            return []
        if participant.locked:
            return []

        intro = intro or "Congrats"
        if self.remaining_count() <= 2:
            return [f"{intro}, but it's the final week so no one can be granted immunity. Sorry!"]

        if self.immunity_granter() is not None or self.immunity_holder() is not None:
            return [f"{intro}, but immunity has already been claimed this week."]

        participant.may_grant_immunity = True
        logger.info(f"Game {self._state.id}: {participant.display_name} may grant immunity")

        if participant.eliminated:
            return [f"{intro}! If you so desire, you may choose one remaining player to grant immunity to (e.g. `grant Robert`)"]
        return [
            f"{intro}, you'll have immunity this week! No one will be able to vote to eliminate you until next week",
            "Alternatively, you can grant someone else immunity (e.g. `grant Robert`), but doing so is irreversible",
        ]
