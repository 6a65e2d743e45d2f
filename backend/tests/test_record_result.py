"""
Service-level flow against the database: setup, results, propagation,
regeneration lock, corrections and the attention flag.
"""
import random

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from bracket_engine.models.bracket_config import BracketConfig
from bracket_engine.models.match import Match
from bracket_engine.services import bracket_service
from bracket_engine.services.bracket_rules import BracketFormat, MatchPhase, MatchStatus
from bracket_engine.services.bracket_service import (
    clear_attention,
    compute_group_standings,
    get_bracket,
    get_champion,
    record_result,
    setup_category,
    start_match,
)
from bracket_engine.services.errors import (
    BracketLockedError,
    ConfigurationError,
    InvalidResultError,
    MatchNotFoundError,
)
from bracket_engine.services.pairing import generate_round_robin_matches
from bracket_engine.services.reconciliation import reconcile
from bracket_engine.utils.match_queries import load_category_matches

P1_WINS = [{"player1_score": 11, "player2_score": 7}, {"player1_score": 11, "player2_score": 8}]
P2_WINS = [{"player1_score": 7, "player2_score": 11}, {"player1_score": 8, "player2_score": 11}]

TID = "t1"
CID = "c1"


def _matches(session: Session, phase=None):
    matches = load_category_matches(session, TID, CID)
    if phase is None:
        return matches
    return [m for m in matches if m.phase == phase]


def _setup_groups(session: Session, roster_size=6, seed=7):
    return setup_category(
        session,
        TID,
        CID,
        [f"p{i}" for i in range(1, roster_size + 1)],
        format=BracketFormat.group_stage_knockout,
        num_groups=2,
        qualifiers_per_group=2,
        rng=random.Random(seed),
    )


def _setup_knockout(session: Session, roster_size, seed=3):
    return setup_category(
        session,
        TID,
        CID,
        [f"p{i}" for i in range(1, roster_size + 1)],
        format=BracketFormat.single_elimination,
        rng=random.Random(seed),
    )


class TestSetup:
    def test_group_stage_knockout(self, session: Session):
        matches = _setup_groups(session)

        assert len(_matches(session, MatchPhase.group)) == 6
        assert len(_matches(session, MatchPhase.semifinal)) == 2
        assert len(_matches(session, MatchPhase.final)) == 1
        assert len(matches) == 9

        config = session.exec(select(BracketConfig)).one()
        assert config.format == BracketFormat.group_stage_knockout
        assert config.num_groups == 2
        assert config.participant_count == 6

    def test_group_format_requires_num_groups(self, session: Session):
        with pytest.raises(ConfigurationError):
            setup_category(session, TID, CID, ["a", "b", "c", "d"], format=BracketFormat.group_stage_knockout)
        assert _matches(session) == []

    def test_even_best_of_rejected(self, session: Session):
        with pytest.raises(ConfigurationError):
            setup_category(session, TID, CID, ["a", "b"], format=BracketFormat.round_robin, best_of_sets=4)

    def test_regeneration_replaces_unstarted_draw(self, session: Session):
        first_ids = {m.id for m in _setup_groups(session, seed=1)}
        second_ids = {m.id for m in _setup_groups(session, seed=2)}

        assert len(second_ids) == 9
        assert first_ids.isdisjoint(second_ids)
        assert len(session.exec(select(BracketConfig)).all()) == 1

    @pytest.mark.parametrize("action", ["start", "result"])
    def test_regeneration_locked_once_play_starts(self, session: Session, action):
        _setup_groups(session)
        first = _matches(session, MatchPhase.group)[0]
        if action == "start":
            start_match(session, first.id)
        else:
            record_result(session, first.id, sets=P1_WINS)

        with pytest.raises(BracketLockedError):
            _setup_groups(session, seed=99)
        assert len(_matches(session)) == 9

    def test_failed_regeneration_keeps_previous_draw(self, session: Session, monkeypatch):
        first_ids = {m.id for m in _setup_groups(session)}

        def clashing_draw(roster, format, **kwargs):
            matches = generate_round_robin_matches(roster, tournament_id=TID, category_id=CID)
            matches[1].round = matches[0].round
            matches[1].match_number = matches[0].match_number
            return matches

        monkeypatch.setattr(bracket_service, "_generate", clashing_draw)
        with pytest.raises(IntegrityError):
            setup_category(session, TID, CID, ["a", "b", "c", "d"], format=BracketFormat.round_robin)

        assert {m.id for m in _matches(session)} == first_ids
        config = session.exec(select(BracketConfig)).one()
        assert config.format == BracketFormat.group_stage_knockout
        assert config.participant_count == 6

    def test_knockout_byes_do_not_lock_the_draw(self, session: Session):
        _setup_knockout(session, 5)
        _setup_knockout(session, 5, seed=4)
        assert len(_matches(session)) == 7

    def test_round_robin_has_no_bracket(self, session: Session):
        setup_category(session, TID, CID, ["a", "b", "c", "d"], format=BracketFormat.round_robin)
        matches = _matches(session)
        assert len(matches) == 6
        assert all(m.phase == MatchPhase.league for m in matches)


class TestGroupToBracket:
    def test_groups_feed_semifinals_then_final(self, session: Session):
        _setup_groups(session)
        for m in _matches(session, MatchPhase.group):
            record_result(session, m.id, sets=P1_WINS)

        standings = {g["group"]: g["standings"] for g in compute_group_standings(session, TID, CID)}
        first = {label: rows[0].participant_id for label, rows in standings.items()}
        second = {label: rows[1].participant_id for label, rows in standings.items()}

        semis = _matches(session, MatchPhase.semifinal)
        assert semis[0].participants == (first["A"], second["B"])
        assert semis[1].participants == (first["B"], second["A"])

        record_result(session, semis[0].id, sets=P1_WINS)
        record_result(session, semis[1].id, sets=P2_WINS)
        final = _matches(session, MatchPhase.final)[0]
        assert final.participants == (first["A"], second["A"])
        assert final.best_of_sets == 5

        record_result(session, final.id, winner_id=second["A"])
        assert get_champion(_matches(session)) == second["A"]
        assert get_bracket(session, TID, CID)["champion_id"] == second["A"]

        # Everything is already resolved
        assert reconcile(session, TID, CID).writes == 0


class TestKnockout:
    def test_bye_winner_waits_in_next_round(self, session: Session):
        _setup_knockout(session, 3)
        semis = _matches(session, MatchPhase.semifinal)
        played = [m for m in semis if m.status == MatchStatus.pending][0]
        bye = [m for m in semis if m.status == MatchStatus.bye][0]
        final = _matches(session, MatchPhase.final)[0]

        assert final.player_id(bye.next_match_slot) == bye.player1_id
        assert final.player_id(played.next_match_slot) is None

        record_result(session, played.id, sets=P2_WINS)
        session.refresh(final)
        assert final.player_id(played.next_match_slot) == played.player2_id
        assert final.player_id(bye.next_match_slot) == bye.player1_id

        record_result(session, final.id, winner_id=played.player2_id)
        assert get_champion(_matches(session)) == played.player2_id

    def test_bye_holders_still_play_the_semifinal(self, session: Session):
        _setup_knockout(session, 5)
        quarters = _matches(session, MatchPhase.quarterfinal)
        semis = _matches(session, MatchPhase.semifinal)
        final = _matches(session, MatchPhase.final)[0]

        assert [q.status for q in quarters].count(MatchStatus.bye) == 3
        assert all(s.status == MatchStatus.pending and s.winner_id is None for s in semis)
        assert final.participants == (None, None)
        # the two lower bye holders already face each other
        assert None not in semis[1].participants

        played = [q for q in quarters if q.status == MatchStatus.pending][0]
        record_result(session, played.id, sets=P1_WINS)
        session.refresh(semis[0])

        assert semis[0].participants == (quarters[0].player1_id, played.player1_id)
        assert semis[0].status == MatchStatus.pending
        session.refresh(final)
        assert final.participants == (None, None)

class TestResultValidation:
    def test_unknown_match(self, session: Session):
        with pytest.raises(MatchNotFoundError):
            record_result(session, "nope", sets=P1_WINS)

    def test_winner_must_be_a_participant(self, session: Session):
        _setup_groups(session)
        m = _matches(session, MatchPhase.group)[0]
        with pytest.raises(InvalidResultError):
            record_result(session, m.id, winner_id="stranger")
        session.refresh(m)
        assert m.status == MatchStatus.pending
        assert m.winner_id is None

    def test_level_sets_rejected(self, session: Session):
        _setup_groups(session)
        m = _matches(session, MatchPhase.group)[0]
        with pytest.raises(InvalidResultError):
            record_result(session, m.id, sets=[P1_WINS[0], P2_WINS[0]])

    def test_winner_contradicting_sets_rejected(self, session: Session):
        _setup_groups(session)
        m = _matches(session, MatchPhase.group)[0]
        with pytest.raises(InvalidResultError):
            record_result(session, m.id, sets=P1_WINS, winner_id=m.player2_id)

    def test_too_many_sets_rejected(self, session: Session):
        _setup_groups(session)
        m = _matches(session, MatchPhase.group)[0]
        with pytest.raises(InvalidResultError):
            record_result(session, m.id, sets=P1_WINS + P1_WINS)

    def test_unresolved_bracket_match_rejected(self, session: Session):
        _setup_groups(session)
        semi = _matches(session, MatchPhase.semifinal)[0]
        with pytest.raises(InvalidResultError):
            record_result(session, semi.id, sets=P1_WINS)

    def test_bye_match_rejected(self, session: Session):
        _setup_knockout(session, 3)
        bye = [m for m in _matches(session) if m.status == MatchStatus.bye][0]
        with pytest.raises(InvalidResultError):
            record_result(session, bye.id, sets=P1_WINS)

    def test_recording_twice_is_idempotent(self, session: Session):
        _setup_groups(session)
        m = _matches(session, MatchPhase.group)[0]
        once = record_result(session, m.id, sets=P1_WINS, table_number=4)
        winner, completed_at = once.winner_id, once.completed_at

        twice = record_result(session, m.id, sets=P1_WINS, table_number=4)
        assert twice.winner_id == winner
        assert twice.completed_at == completed_at
        assert twice.table_number == 4


class TestCorrections:
    def test_correction_after_downstream_started_flags_attention(self, session: Session):
        _setup_knockout(session, 4)
        first_round = _matches(session, MatchPhase.semifinal)
        for m in first_round:
            record_result(session, m.id, sets=P1_WINS)
        final = _matches(session, MatchPhase.final)[0]
        start_match(session, final.id)

        corrected = record_result(session, first_round[0].id, sets=P2_WINS)
        session.refresh(final)

        assert corrected.winner_id == first_round[0].player2_id
        assert final.player1_id == first_round[0].player1_id
        assert final.needs_attention is True
        assert final.id in get_bracket(session, TID, CID)["needs_attention"]

        cleared = clear_attention(session, final.id)
        assert cleared.needs_attention is False

    def test_correction_before_downstream_starts_is_applied(self, session: Session):
        _setup_knockout(session, 4)
        first_round = _matches(session, MatchPhase.semifinal)
        for m in first_round:
            record_result(session, m.id, sets=P1_WINS)

        record_result(session, first_round[0].id, sets=P2_WINS)
        final = _matches(session, MatchPhase.final)[0]

        assert final.player1_id == first_round[0].player2_id
        assert final.needs_attention is False


class TestStartMatch:
    def test_start_sets_timestamp_and_table(self, session: Session):
        _setup_groups(session)
        m = _matches(session, MatchPhase.group)[0]
        started = start_match(session, m.id, table_number=2)

        assert started.status == MatchStatus.in_progress
        assert started.started_at is not None
        assert started.table_number == 2

    def test_cannot_start_unresolved_match(self, session: Session):
        _setup_groups(session)
        final = _matches(session, MatchPhase.final)[0]
        with pytest.raises(InvalidResultError):
            start_match(session, final.id)


def test_match_rows_keep_source_json(session: Session):
    _setup_groups(session)
    semi = session.exec(select(Match).where(Match.phase == MatchPhase.semifinal, Match.match_number == 1)).one()
    assert semi.player1_source == {"kind": "group", "group": "A", "position": 1}
    assert semi.source(2).code == "group_2B"
