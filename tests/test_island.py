"""Tests for the island elimination game."""

import random

import pytest

from weekgame.state import Decision, EventType, IslandGameState, IslandParticipant, TurnPhase
from weekgame.systems import (
    DecisionCollector,
    DecisionRejected,
    TurnController,
    VoteTallyEngine,
    admissible_quotas,
    baseline_quota,
    rounds_remaining,
)


def give_points(engine, points: dict):
    for pid, amount in points.items():
        engine.add_points(pid, amount)


def everyone(engine, amount=5):
    give_points(engine, {p.id: amount for p in engine.participants()})


# -----------------------------------------------------------------------------
# Quota schedule
# -----------------------------------------------------------------------------


class TestQuotaSchedule:
    """Tests for the elimination quota schedule."""

    def test_baseline_bands(self):
        """Baseline quota is 3 above 10, 2 above 4, else 1."""
        assert baseline_quota(11) == 3
        assert baseline_quota(10) == 2
        assert baseline_quota(5) == 2
        assert baseline_quota(4) == 1
        assert baseline_quota(2) == 1

    def test_rounds_remaining(self):
        """Rounds follow the baseline schedule down to one survivor."""
        assert rounds_remaining(1) == 0
        assert rounds_remaining(2) == 1
        assert rounds_remaining(5) == 3
        assert rounds_remaining(7) == 4

    def test_ambiguous_band_offers_two_quotas(self):
        """Seven remaining can lose two or three without changing season length."""
        assert admissible_quotas(7) == [2, 3]

    def test_small_populations(self):
        """Four or fewer always lose exactly one."""
        assert admissible_quotas(4) == [1]
        assert admissible_quotas(2) == [1]
        assert admissible_quotas(1) == []

    def test_season_length_is_fixed(self):
        """Any sequence of admissible quotas finishes in the baseline round count."""
        rng = random.Random(99)
        for start in range(2, 40):
            for _ in range(5):
                remaining, rounds = start, 0
                while remaining > 1:
                    options = admissible_quotas(remaining)
                    assert options
                    remaining -= rng.choice(options)
                    rounds += 1
                assert remaining == 1
                assert rounds == rounds_remaining(start)

    def test_max_quota_caps_schedule(self):
        """A lower cap never yields a quota above it."""
        for n in range(2, 30):
            assert all(q <= 2 for q in admissible_quotas(n, max_quota=2))
            assert admissible_quotas(n, max_quota=2)


# -----------------------------------------------------------------------------
# Voting power
# -----------------------------------------------------------------------------


class TestVotingPower:
    """Tests for per-turn base vote assignment."""

    def test_descending_votes_with_floor(self, island):
        """Top scorers get 3, 2, 1 and everyone else with points gets 1."""
        give_points(island, {"alice": 10, "bob": 8, "carol": 5, "dave": 0, "erin": 3})
        narrative = island.begin_turn()

        votes = {p.id: p.base_votes for p in island.participants()}
        assert votes == {"alice": 3, "bob": 2, "carol": 1, "erin": 1, "dave": 0}
        assert any("Dave cannot vote" in line for line in narrative)

    def test_eliminated_have_own_counter(self, island):
        """Eliminated participants count down from 3 separately."""
        give_points(island, {"alice": 10, "bob": 8, "carol": 5, "dave": 1, "erin": 4})
        island.state.participants["dave"].eliminated = True
        island.state.participants["dave"].final_rank = 5
        island.state.participants["erin"].eliminated = True
        island.state.participants["erin"].final_rank = 4

        island.begin_turn()

        votes = {p.id: p.base_votes for p in island.participants()}
        assert votes == {"alice": 3, "bob": 2, "carol": 1, "erin": 3, "dave": 2}

    def test_negative_points_are_voteless(self, island):
        """Zero or negative points means no votes."""
        give_points(island, {"alice": -2, "bob": 1})
        voteless = island.assign_voting_power()
        assert "alice" in voteless
        assert island.state.participants["alice"].base_votes == 0
        assert island.state.participants["bob"].base_votes == 3

    def test_locked_participants_get_no_votes(self, island):
        """Late joiners are neither counted nor reported voteless."""
        zed = island.add_late_participant("zed", "Zed")
        zed.points = 50
        everyone(island)
        voteless = island.assign_voting_power()
        assert zed.base_votes == 0
        assert "zed" not in voteless

    def test_monotonic_within_status(self):
        """Higher-ranked qualifying participants never hold fewer votes."""
        rng = random.Random(7)
        for _ in range(25):
            state = IslandGameState(participants={
                f"p{i}": IslandParticipant(
                    id=f"p{i}",
                    display_name=f"P{i}",
                    points=rng.randint(-2, 10),
                    eliminated=rng.random() < 0.4,
                )
                for i in range(12)
            })
            engine = VoteTallyEngine(state, rng=rng)
            engine.assign_voting_power()

            for eliminated in (False, True):
                group = [p for p in engine.voting_order() if p.eliminated == eliminated]
                qualifying = [p for p in group if p.points > 0]
                for p in qualifying:
                    assert 1 <= p.base_votes <= 3
                for higher, lower in zip(qualifying, qualifying[1:]):
                    assert higher.base_votes >= lower.base_votes

    def test_weekly_messages_only_for_multiple_votes(self, island):
        """Only participants holding more than one vote get a note."""
        give_points(island, {"alice": 10, "bob": 8, "carol": 5})
        island.begin_turn()
        messages = island.weekly_decision_messages()
        assert set(messages) == {"alice", "bob"}
        assert "**3** votes" in messages["alice"]


class TestVoteWeight:
    """Tests for retaliation and revenge."""

    def test_retaliation_doubles(self, island):
        """An active voter doubles against a last-turn assailant."""
        alice = island.state.participants["alice"]
        alice.base_votes = 3
        alice.last_assailants = ["bob"]
        assert island.vote_weight(alice, "bob") == 6
        assert island.vote_weight(alice, "carol") == 3

    def test_revenge_adds_one(self, island):
        """An eliminated voter gets exactly one extra vote."""
        erin = island.state.participants["erin"]
        erin.eliminated = True
        erin.base_votes = 2
        erin.last_assailants = ["bob"]
        assert island.vote_weight(erin, "bob") == 3
        assert island.vote_weight(erin, "carol") == 2

    def test_voteless_eliminated_can_take_revenge(self, island, island_collector):
        """A voteless eliminated voter may still vote against an assailant."""
        erin = island.state.participants["erin"]
        erin.eliminated = True
        erin.final_rank = 5
        erin.last_assailants = ["bob"]
        give_points(island, {"alice": 3, "bob": 2, "carol": 1, "dave": 1})
        TurnController(island).begin_turn()

        assert erin.base_votes == 0
        confirmation = island_collector.submit("erin", "Bob")
        assert "1 vote" in confirmation

        with pytest.raises(DecisionRejected, match="don't have any votes"):
            island_collector.submit("erin", "Carol")


# -----------------------------------------------------------------------------
# Submissions
# -----------------------------------------------------------------------------


class TestIslandDecisions:
    """Tests for validating island votes."""

    @pytest.fixture
    def open_window(self, island, island_controller):
        everyone(island)
        island_controller.begin_turn()
        return island

    def test_vote_by_name(self, open_window, island_collector):
        """A display name resolves to the participant."""
        confirmation = island_collector.submit("alice", "bob")
        assert "**3 votes**" in confirmation
        assert open_window.state.decisions["alice"].target_id == "bob"

    def test_fuzzy_name(self, open_window, island_collector):
        """A close misspelling still resolves."""
        island_collector.submit("alice", "Carrol")
        assert open_window.state.decisions["alice"].target_id == "carol"

    def test_option_id_preferred(self, open_window, island_collector):
        """An exact option ID wins over the free text."""
        island_collector.submit("alice", "Bob", option_id="dave")
        assert open_window.state.decisions["alice"].target_id == "dave"

    def test_unknown_target_rejected(self, open_window, island_collector):
        """Unresolvable names are rejected."""
        with pytest.raises(DecisionRejected, match="Who are you trying to vote for"):
            island_collector.submit("alice", "Zebediah")

    def test_self_vote_rejected(self, open_window, island_collector):
        """Participants can't vote for themselves."""
        with pytest.raises(DecisionRejected, match="yourself"):
            island_collector.submit("alice", "Alice")

    def test_eliminated_target_rejected(self, open_window, island_collector):
        """Eliminated participants can't be targeted."""
        open_window.state.participants["bob"].eliminated = True
        with pytest.raises(DecisionRejected, match="already been eliminated"):
            island_collector.submit("alice", "Bob")

    def test_immune_target_rejected(self, open_window, island_collector):
        """Immune participants can't be targeted."""
        open_window.state.participants["bob"].immunity_granted_by = "bob"
        with pytest.raises(DecisionRejected, match="immunity"):
            island_collector.submit("alice", "Bob")

    def test_locked_target_rejected(self, open_window, island_collector):
        """Audience members can't be voted for."""
        open_window.add_late_participant("zed", "Zed")
        with pytest.raises(DecisionRejected):
            island_collector.submit("alice", "Zed")

    def test_locked_vote_goes_to_audience(self, open_window, island_collector):
        """A late joiner's pick lands in the audience map."""
        open_window.add_late_participant("zed", "Zed")
        confirmation = island_collector.submit("zed", "Bob")
        assert "audience" in confirmation
        assert "zed" in open_window.state.audience_decisions
        assert "zed" not in open_window.state.decisions


# -----------------------------------------------------------------------------
# Resolution
# -----------------------------------------------------------------------------


class TestResolution:
    """Tests for revealing votes one at a time."""

    def test_vote_conservation(self, island, island_controller, island_collector):
        """Incoming votes equal the sum of applied weights."""
        everyone(island)
        island.state.participants["bob"].last_assailants = ["carol"]
        island_controller.begin_turn()

        for voter, target in [("alice", "bob"), ("bob", "carol"), ("carol", "bob"), ("dave", "alice"), ("erin", "bob")]:
            island_collector.submit(voter, target)

        results = list(island_controller.resolution_steps())
        applied = sum(r.payload.get("weight", 0) for r in results)
        incoming = sum(p.incoming_votes for p in island.participants())

        assert applied == incoming == 10
        assert island.state.participants["bob"].incoming_votes == 5
        assert island.state.participants["carol"].incoming_votes == 4
        assert results[-1].continue_processing is False
        assert all(r.continue_processing for r in results[:-1])

    def test_records_assailants_and_reveal(self, island, island_controller, island_collector):
        """Resolved votes record the voter on the target and the target on the voter."""
        everyone(island)
        island_controller.begin_turn()
        island_collector.submit("alice", "bob")
        island_controller.process_next_decision()

        assert island.state.participants["bob"].assailants == ["alice"]
        assert island.state.participants["alice"].revealed_target == "bob"

    def test_departed_target_skipped(self, island, island_controller, island_collector):
        """A vote for someone who left is logged and skipped."""
        everyone(island)
        island_controller.begin_turn()
        island_collector.submit("alice", "bob")
        island.remove_participant("bob")

        result = island_controller.process_next_decision()
        assert "isn't on the island" in result.summary
        assert sum(p.incoming_votes for p in island.participants()) == 0

    def test_target_immune_by_resolution(self, island, island_controller, island_collector):
        """Immunity granted after submission voids the vote."""
        everyone(island)
        island_controller.begin_turn()
        island_collector.submit("alice", "bob")
        island.state.participants["bob"].immunity_granted_by = "carol"

        result = island_controller.process_next_decision()
        assert "immune" in result.summary
        assert island.state.participants["bob"].incoming_votes == 0

    def test_audience_tie_goes_to_lowest_id(self, island, island_controller, island_collector):
        """With equal picks and no votes yet, the earliest ID wins the tie."""
        everyone(island)
        island.add_late_participant("zed", "Zed")
        island.add_late_participant("yan", "Yan")
        island_controller.begin_turn()
        island_collector.submit("zed", "Carol")
        island_collector.submit("yan", "Bob")

        result = island_controller.process_next_decision()
        assert result.payload == {"target_id": "bob", "weight": 1, "audience": True}
        assert island.state.participants["bob"].incoming_votes == 1
        assert not result.continue_processing

    def test_audience_plurality(self, island, island_controller, island_collector):
        """The most-picked target gets exactly one vote."""
        everyone(island)
        for pid in ("xav", "yan", "zed"):
            island.add_late_participant(pid, pid.title())
        island_controller.begin_turn()
        island_collector.submit("xav", "Carol")
        island_collector.submit("yan", "Dave")
        island_collector.submit("zed", "Dave")

        island_controller.process_next_decision()
        assert island.state.participants["dave"].incoming_votes == 1
        assert island.state.participants["carol"].incoming_votes == 0

    def test_individual_votes_before_audience(self, island, island_controller, island_collector):
        """The audience bloc is resolved last."""
        everyone(island)
        island.add_late_participant("zed", "Zed")
        island_controller.begin_turn()
        island_collector.submit("zed", "Carol")
        island_collector.submit("alice", "Bob")
        island_collector.submit("bob", "Alice")

        results = list(island_controller.resolution_steps())
        assert len(results) == 3
        assert results[-1].payload.get("audience") is True

    def test_no_votes(self, island, island_controller):
        """Resolving with nothing submitted finishes immediately."""
        island_controller.begin_turn()
        result = island_controller.process_next_decision()
        assert not result.continue_processing


# -----------------------------------------------------------------------------
# Settlement
# -----------------------------------------------------------------------------


class TestEndTurn:
    """Tests for eliminations and turn rollover."""

    def test_most_voted_eliminated(self, island, bus):
        """The top of the incoming table is voted off with the remaining-count rank."""
        everyone(island)
        island.begin_turn()
        island.state.elimination_quota = 1
        island.state.participants["bob"].incoming_votes = 4
        island.state.participants["carol"].incoming_votes = 2

        narrative = island.end_turn()

        bob = island.state.participants["bob"]
        assert bob.eliminated
        assert bob.final_rank == 5
        assert not island.state.participants["carol"].eliminated
        assert narrative[0] == "Bob has been voted off the island"
        events = bus.get_history(EventType.PARTICIPANT_ELIMINATED)
        assert [e.data["participant_id"] for e in events] == ["bob"]

    def test_ties_eliminate_fewer_points_first(self, island):
        """Equal incoming votes fall to the lower scorer."""
        give_points(island, {"alice": 9, "bob": 9, "carol": 5, "dave": 1, "erin": 9})
        island.begin_turn()
        island.state.elimination_quota = 1
        island.state.participants["carol"].incoming_votes = 2
        island.state.participants["dave"].incoming_votes = 2

        island.end_turn()
        assert island.state.participants["dave"].eliminated
        assert not island.state.participants["carol"].eliminated

    def test_immune_survive(self, island):
        """Immune participants are never eliminated."""
        everyone(island)
        island.begin_turn()
        island.state.elimination_quota = 1
        island.state.participants["alice"].immunity_granted_by = "alice"
        island.state.participants["alice"].incoming_votes = 9
        island.state.participants["bob"].incoming_votes = 1

        island.end_turn()
        assert not island.state.participants["alice"].eliminated
        assert island.state.participants["bob"].eliminated

    def test_simultaneous_eliminations_get_distinct_ranks(self):
        """With ten remaining and a quota of two, ranks are 10 then 9."""
        state = IslandGameState(participants={
            f"p{i}": IslandParticipant(id=f"p{i}", display_name=f"P{i}", points=1)
            for i in range(10)
        })
        engine = VoteTallyEngine(state, rng=random.Random(3))
        engine.begin_turn()
        state.elimination_quota = 2
        state.participants["p4"].incoming_votes = 7
        state.participants["p8"].incoming_votes = 5

        engine.end_turn()
        assert state.participants["p4"].final_rank == 10
        assert state.participants["p8"].final_rank == 9

    def test_assailants_roll_over(self, island, island_controller, island_collector):
        """This turn's assailants become next turn's memory and turn fields reset."""
        everyone(island)
        island_controller.begin_turn()
        island_collector.submit("alice", "bob")
        island_collector.submit("carol", "bob")
        island_collector.submit("bob", "carol")
        list(island_controller.resolution_steps())
        island.state.elimination_quota = 1
        island_controller.end_turn()

        bob = island.state.participants["bob"]
        carol = island.state.participants["carol"]
        assert bob.eliminated
        assert set(bob.last_assailants) == {"alice", "carol"}
        assert carol.last_assailants == ["bob"]
        assert all(p.incoming_votes == 0 and p.assailants == [] for p in island.participants())

    def test_immunity_cleared(self, island):
        """Immunity lasts only until the end of the turn."""
        everyone(island)
        island.begin_turn()
        island.state.participants["alice"].immunity_granted_by = "alice"
        island.end_turn()
        assert not island.state.participants["alice"].is_immune


class TestFullSeason:
    """Tests for playing an island game to completion."""

    def test_ranks_form_permutation(self, island, island_controller, island_collector, rng):
        """Every participant ends with a distinct rank, later eliminations ranked better."""
        everyone(island, 1)
        eliminated_on = {}

        while island_controller.phase != TurnPhase.COMPLETE:
            island_controller.begin_turn()
            active = [p.id for p in island.active_participants()]
            for voter in active:
                island_collector.submit(voter, rng.choice([t for t in active if t != voter]))
            for _ in island_controller.resolution_steps():
                pass
            island_controller.end_turn()
            for p in island.participants():
                if p.eliminated and p.id not in eliminated_on:
                    eliminated_on[p.id] = island.state.turn

        ranks = {p.id: p.final_rank for p in island.participants()}
        assert sorted(ranks.values()) == [1, 2, 3, 4, 5]

        for a, turn_a in eliminated_on.items():
            for b, turn_b in eliminated_on.items():
                if turn_a < turn_b:
                    assert ranks[a] > ranks[b]

        champion = next(pid for pid, rank in ranks.items() if rank == 1)
        assert champion not in eliminated_on
        assert island.winners() == sorted(ranks, key=ranks.get)[:3]
        assert island.season_completion() == 1.0

    def test_turn_count_matches_schedule(self, island, island_controller):
        """A five-participant season always takes the baseline number of turns."""
        everyone(island, 1)
        while island_controller.phase != TurnPhase.COMPLETE:
            island_controller.begin_turn()
            island_controller.end_turn()
        assert island.state.turn == rounds_remaining(5)

    def test_late_joiners_ranked_last(self, island, island_controller):
        """Audience members finish behind every original participant."""
        everyone(island, 1)
        island.add_late_participant("zed", "Zed")
        while island_controller.phase != TurnPhase.COMPLETE:
            island_controller.begin_turn()
            island_controller.end_turn()

        ranks = sorted(p.final_rank for p in island.participants())
        assert ranks == [1, 2, 3, 4, 5, 6]
        assert island.state.participants["zed"].final_rank == 6


# -----------------------------------------------------------------------------
# Immunity
# -----------------------------------------------------------------------------


class TestImmunity:
    """Tests for contest-winner immunity."""

    def test_active_winner_keeps_immunity_by_default(self, island):
        """A winner who never grants is immune at the next turn."""
        replies = island.award_prize("alice", "Congrats")
        assert len(replies) == 2
        narrative = island.begin_turn()

        alice = island.state.participants["alice"]
        assert alice.is_immune
        assert alice.immunity_granted_by == "alice"
        assert not alice.may_grant_immunity
        assert any("**Alice**, has immunity" in line for line in narrative)

    def test_eliminated_winner_grants_nobody_by_default(self, island):
        """An eliminated winner who never grants leaves nobody immune."""
        erin = island.state.participants["erin"]
        erin.eliminated = True
        erin.final_rank = 5
        replies = island.award_prize("erin")
        assert "grant immunity" in replies[0]

        island.begin_turn()
        assert island.immunity_holder() is None

    def test_grant_to_other(self, island, bus):
        """A winner may hand immunity to someone else, once."""
        island.award_prize("alice")
        reply = island.grant_immunity("alice", "Bob")

        assert "**Bob**" in reply
        assert island.state.participants["bob"].immunity_granted_by == "alice"
        assert not island.state.participants["alice"].may_grant_immunity
        assert bus.get_history(EventType.IMMUNITY_GRANTED)[-1].data == {"granter_id": "alice", "receiver_id": "bob"}

        with pytest.raises(DecisionRejected, match="already granted"):
            island.grant_immunity("alice", "Carol")

        narrative = island.begin_turn()
        assert island.state.participants["bob"].is_immune
        assert any("has granted immunity to **Bob**" in line for line in narrative)

    def test_grant_without_award_rejected(self, island):
        """Only a contest winner may grant."""
        with pytest.raises(DecisionRejected):
            island.grant_immunity("bob", "Carol")

    def test_grant_to_eliminated_rejected(self, island):
        """Immunity can't go to an eliminated participant."""
        island.state.participants["carol"].eliminated = True
        island.award_prize("alice")
        with pytest.raises(DecisionRejected, match="eliminated"):
            island.grant_immunity("alice", "Carol")

    def test_no_immunity_in_final_week(self, island):
        """With two remaining nobody may be granted immunity."""
        for pid in ("carol", "dave", "erin"):
            island.state.participants[pid].eliminated = True
        replies = island.award_prize("alice")
        assert "final week" in replies[0]
        assert not island.state.participants["alice"].may_grant_immunity

    def test_award_unknown_is_noop(self, island):
        """Awarding a stranger returns nothing."""
        assert island.award_prize("nobody") == []


# -----------------------------------------------------------------------------
# Roster changes
# -----------------------------------------------------------------------------


class TestRoster:
    """Tests for late joins, removals and points."""

    def test_late_join(self, island):
        """Late joiners are locked, eliminated and ranked behind everyone."""
        zed = island.add_late_participant("zed", "Zed")
        assert zed.locked and zed.eliminated
        assert zed.final_rank == 6

    def test_late_join_twice(self, island):
        """Adding an existing participant changes nothing."""
        first = island.add_late_participant("alice", "Alice Again")
        assert first.display_name == "Alice"
        assert len(island.participants()) == 5

    def test_nan_points_rejected(self, island):
        """NaN points are a programming error."""
        with pytest.raises(ValueError):
            island.add_points("alice", float("nan"))

    def test_points_for_unknown_ignored(self, island, caplog):
        """Unknown participants are logged and skipped."""
        island.add_points("ghost", 5)
        assert "ghost" in caplog.text

    def test_points_accumulate(self, island):
        """Points carry over between turns."""
        island.add_points("alice", 2)
        island.begin_turn()
        island.add_points("alice", 3)
        assert island.state.participants["alice"].points == 5

    def test_update_participant(self, island):
        """Display names can be refreshed."""
        island.update_participant("alice", "Alicia")
        assert island.display_name("alice") == "Alicia"

    def test_remove_clears_references(self, island):
        """Removing someone drops their decision and their place in assailant lists."""
        island.state.participants["bob"].last_assailants = ["alice"]
        island.state.decisions["alice"] = Decision(target_id="bob")
        island.remove_participant("alice")
        assert not island.has_participant("alice")
        assert "alice" not in island.state.decisions
        assert island.state.participants["bob"].last_assailants == []

    def test_ordered_participants(self, island):
        """Active by points first, then eliminated by rank."""
        give_points(island, {"alice": 1, "bob": 5, "carol": 3})
        island.state.participants["dave"].eliminated = True
        island.state.participants["dave"].final_rank = 5
        island.state.participants["erin"].eliminated = True
        island.state.participants["erin"].final_rank = 4

        order = [p.id for p in island.ordered_participants()]
        assert order == ["bob", "carol", "alice", "erin", "dave"]
