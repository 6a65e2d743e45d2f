"""
Reconciliation: group qualifiers into bracket slots, bye cascades, winner
propagation, fixed point and idempotence. Pure, no database.
"""
import logging

import pytest

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import MatchPhase, MatchStatus
from bracket_engine.services.bracket_topology import build_placeholder_bracket
from bracket_engine.services.reconciliation import auto_complete_bye, reconcile_matches
from bracket_engine.services.slot_source import SlotSource


def _group(label, players, start):
    """Round robin of 3 where players[0] beats everyone and players[1] beats players[2]."""
    first, second, third = players
    pairs = [(first, second), (first, third), (second, third)]
    return [
        Match(
            tournament_id="t1",
            category_id="c1",
            phase=MatchPhase.group,
            group_name=label,
            match_number=start + i,
            player1_id=p1,
            player2_id=p2,
        )
        for i, (p1, p2) in enumerate(pairs)
    ]


def _finish(match, winner_slot=1):
    match.sets = [{"player1_score": 11, "player2_score": 5}] * 2 if winner_slot == 1 else [
        {"player1_score": 5, "player2_score": 11}
    ] * 2
    match.winner_id = match.player_id(winner_slot)
    match.status = MatchStatus.completed


def _phase(matches, phase):
    return [m for m in matches if m.phase == phase]


class TestTwoGroupsOfThree:
    def setup_method(self):
        self.group_a = _group("A", ["a1", "a2", "a3"], 1)
        self.group_b = _group("B", ["b1", "b2", "b3"], 4)
        self.bracket = build_placeholder_bracket(4, ["A", "B"], tournament_id="t1", category_id="c1")
        self.matches = self.group_a + self.group_b + self.bracket
        self.semis = _phase(self.bracket, MatchPhase.semifinal)
        self.final = _phase(self.bracket, MatchPhase.final)[0]

    def test_nothing_resolves_before_groups_finish(self):
        _finish(self.group_a[0])
        result = reconcile_matches(self.matches, 2)

        assert result.writes == 0
        assert result.groups_resolved == 0
        assert result.unresolved_slots == 6
        assert result.converged

    def test_one_finished_group_fills_its_slots_only(self):
        for m in self.group_a:
            _finish(m)
        result = reconcile_matches(self.matches, 2)

        assert result.slots_filled == 2
        assert self.semis[0].participants == ("a1", None)
        assert self.semis[1].participants == (None, "a2")

    def test_full_cascade_to_champion(self):
        for m in self.group_a + self.group_b:
            _finish(m)
        result = reconcile_matches(self.matches, 2)

        assert result.slots_filled == 4
        assert result.groups_resolved == 2
        assert self.semis[0].participants == ("a1", "b2")
        assert self.semis[1].participants == ("b1", "a2")
        assert self.final.participants == (None, None)

        _finish(self.semis[0], winner_slot=2)
        _finish(self.semis[1], winner_slot=1)
        result = reconcile_matches(self.matches, 2)

        assert result.winners_propagated == 2
        assert self.final.participants == ("b2", "b1")
        assert result.unresolved_slots == 0

    def test_second_run_performs_zero_writes(self):
        for m in self.group_a + self.group_b:
            _finish(m)
        first = reconcile_matches(self.matches, 2)
        second = reconcile_matches(self.matches, 2)

        assert first.writes > 0
        assert second.writes == 0
        assert second.changed_match_ids == set()
        assert second.passes == 1

    def test_changed_group_result_corrects_unstarted_semifinal(self):
        for m in self.group_a + self.group_b:
            _finish(m)
        reconcile_matches(self.matches, 2)

        # Corrected result: a3 beat a2, so a3 finishes second
        _finish(self.group_a[2], winner_slot=2)
        result = reconcile_matches(self.matches, 2)

        assert result.slots_filled == 1
        assert self.semis[1].player2_id == "a3"
        assert self.semis[1].needs_attention is False


class TestByes:
    def test_bye_cascade_reaches_the_final(self):
        groups = _group("A", ["a1", "a2", "a3"], 1) + _group("B", ["b1", "b2", "b3"], 4) + _group(
            "C", ["c1", "c2", "c3"], 7
        )
        bracket = build_placeholder_bracket(3, ["A", "B", "C"])
        semis = _phase(bracket, MatchPhase.semifinal)
        final = _phase(bracket, MatchPhase.final)[0]
        # Seed 1 (winner of A) gets the bye
        assert semis[0].is_bye_slot(2)

        for m in groups:
            if m.group_name == "A":
                _finish(m)
        result = reconcile_matches(groups + bracket, 1)

        assert result.slots_filled == 1
        assert result.byes_completed == 1
        assert result.winners_propagated == 1
        assert semis[0].status == MatchStatus.completed
        assert semis[0].winner_id == "a1"
        assert semis[0].completed_at is not None
        assert final.participants == ("a1", None)
        assert result.passes == 2

    @pytest.mark.parametrize("second_qf_winner", [1, 2])
    @pytest.mark.parametrize("fourth_qf_winner", [1, 2])
    def test_three_groups_never_rematch_before_final(self, second_qf_winner, fourth_qf_winner):
        groups = _group("A", ["a1", "a2", "a3"], 1) + _group("B", ["b1", "b2", "b3"], 4) + _group(
            "C", ["c1", "c2", "c3"], 7
        )
        bracket = build_placeholder_bracket(6, ["A", "B", "C"])
        matches = groups + bracket
        quarters = _phase(bracket, MatchPhase.quarterfinal)
        semis = _phase(bracket, MatchPhase.semifinal)

        for m in groups:
            _finish(m)
        reconcile_matches(matches, 2)

        # Group winners A and B walk through their byes
        assert [q.winner_id for q in quarters if q.status == MatchStatus.completed] == ["a1", "b1"]

        _finish(quarters[1], winner_slot=second_qf_winner)
        _finish(quarters[3], winner_slot=fourth_qf_winner)
        reconcile_matches(matches, 2)

        for semi in semis:
            first, second = semi.participants
            assert first is not None and second is not None
            assert first[0] != second[0], semi.participants

    def test_auto_complete_only_touches_pending_single_participant_matches(self):
        bye = Match(tournament_id="t1", category_id="c1", phase=MatchPhase.semifinal, match_number=1)
        bye.set_source(2, SlotSource.bye())
        assert auto_complete_bye(bye) is False  # no participant yet

        bye.player1_id = "x"
        assert auto_complete_bye(bye) is True
        assert bye.winner_id == "x"
        assert auto_complete_bye(bye) is False


class TestInconsistentData:
    def test_missing_group_is_left_unresolved(self):
        group_a = _group("A", ["a1", "a2", "a3"], 1)
        for m in group_a:
            _finish(m)
        bracket = build_placeholder_bracket(4, ["A", "B"])

        result = reconcile_matches(group_a + bracket, 2)

        assert result.slots_filled == 2
        assert result.unresolved_slots == 4
        assert result.converged

    def test_dangling_next_match_is_logged_not_raised(self, caplog):
        orphan = Match(
            tournament_id="t1",
            category_id="c1",
            phase=MatchPhase.knockout,
            match_number=1,
            player1_id="x",
            player2_id="y",
            winner_id="x",
            status=MatchStatus.completed,
            next_match_id="does-not-exist",
            next_match_slot=1,
        )
        with caplog.at_level(logging.WARNING):
            result = reconcile_matches([orphan], 2)

        assert result.writes == 0
        assert "does-not-exist" in caplog.text
