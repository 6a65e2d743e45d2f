"""
Single-edge winner propagation and the set-if-different slot guard.
"""
import pytest

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import MatchPhase, MatchStatus
from bracket_engine.services.propagation import assign_slot, propagate_winner
from bracket_engine.services.slot_source import SlotSource


def _final(**kwargs):
    return Match(tournament_id="t1", category_id="c1", phase=MatchPhase.final, match_number=1, **kwargs)


def _semi(final, slot, winner="a", loser="b"):
    return Match(
        tournament_id="t1",
        category_id="c1",
        phase=MatchPhase.semifinal,
        match_number=slot,
        player1_id=winner,
        player2_id=loser,
        winner_id=winner,
        status=MatchStatus.completed,
        next_match_id=final.id,
        next_match_slot=slot,
    )


def test_empty_slot_is_written():
    final = _final()
    assert assign_slot(final, 1, "a") is True
    assert final.player1_id == "a"


def test_same_value_is_a_no_op():
    final = _final(player1_id="a")
    assert assign_slot(final, 1, "a") is False
    assert final.needs_attention is False


def test_untouched_downstream_is_corrected():
    final = _final(player1_id="a", player2_id="c")
    assert assign_slot(final, 1, "b") is True
    assert final.player1_id == "b"
    assert final.needs_attention is False


@pytest.mark.parametrize("status", [MatchStatus.in_progress, MatchStatus.completed])
def test_started_downstream_is_flagged_not_overwritten(status):
    final = _final(player1_id="a", player2_id="c", status=status)

    assert assign_slot(final, 1, "b") is True
    assert final.player1_id == "a"
    assert final.needs_attention is True

    # Flag already raised: nothing more to write
    assert assign_slot(final, 1, "b") is False


def test_bye_advancer_is_replaced_with_winner():
    final = _final(player1_id="a", status=MatchStatus.completed, winner_id="a")
    final.set_source(2, SlotSource.bye())

    assert assign_slot(final, 1, "b") is True
    assert final.player1_id == "b"
    assert final.winner_id == "b"


def test_propagate_winner_fills_next_slot():
    final = _final()
    left = _semi(final, 1, winner="a", loser="b")
    right = _semi(final, 2, winner="c", loser="d")

    assert propagate_winner(left, final) is True
    assert propagate_winner(right, final) is True
    assert final.participants == ("a", "c")

    # Idempotent
    assert propagate_winner(left, final) is False
    assert propagate_winner(right, final) is False


def test_undecided_match_does_not_propagate():
    final = _final()
    semi = _semi(final, 1)
    semi.status = MatchStatus.in_progress
    assert propagate_winner(semi, final) is False
    assert final.player1_id is None


def test_missing_downstream_is_not_an_error():
    final = _final()
    assert propagate_winner(_semi(final, 1), None) is False


def test_wrong_downstream_raises():
    final = _final()
    other = _final()
    with pytest.raises(ValueError):
        propagate_winner(_semi(final, 1), other)
