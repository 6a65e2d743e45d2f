"""
Category-level bracket operations.

Setup (draw generation), result recording, and read views for one
(tournament, category). Each operation loads the category's matches,
mutates, commits, and, when a result can unlock downstream slots, runs
reconciliation.

Services raise BracketError subclasses; routes translate them to HTTP.
"""
from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session

from bracket_engine.models.bracket_config import BracketConfig
from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import (
    DEFAULT_BEST_OF_SETS,
    DEFAULT_QUALIFIERS_PER_GROUP,
    GROUP_LABELS,
    BracketFormat,
    MatchPhase,
    MatchStatus,
    is_elimination_phase,
    phase_sort_key,
)
from bracket_engine.services.bracket_topology import build_placeholder_bracket
from bracket_engine.services.errors import (
    BracketLockedError,
    ConfigurationError,
    InvalidResultError,
    MatchNotFoundError,
)
from bracket_engine.services.pairing import (
    generate_group_matches,
    generate_knockout_matches,
    generate_round_robin_matches,
)
from bracket_engine.services.propagation import propagate_result
from bracket_engine.services.reconciliation import reconcile
from bracket_engine.services.score import normalize_sets, summarize_sets
from bracket_engine.services.standings import calculate_standings, standings_by_group
from bracket_engine.utils.match_queries import get_bracket_config, load_category_matches

logger = logging.getLogger(__name__)


# ============================================================================
# Lookups
# ============================================================================

def get_match(session: Session, match_id: str, tournament_id: Optional[str] = None) -> Match:
    match = session.get(Match, match_id)
    if not match or (tournament_id is not None and match.tournament_id != tournament_id):
        raise MatchNotFoundError(f"Match {match_id} not found")
    return match


def has_play_started(match: Match) -> bool:
    """In progress, or completed by actually playing (not by a bye walkover)."""
    if match.status == MatchStatus.in_progress:
        return True
    if match.status != MatchStatus.completed:
        return False
    return not (match.is_bye_slot(1) or match.is_bye_slot(2))


# ============================================================================
# Setup
# ============================================================================

def _generate(
    roster: Sequence[str],
    format: BracketFormat,
    *,
    tournament_id: str,
    category_id: str,
    num_groups: Optional[int],
    qualifiers_per_group: int,
    best_of_sets: int,
    rng: random.Random,
) -> List[Match]:
    if format == BracketFormat.round_robin:
        return generate_round_robin_matches(
            roster, tournament_id=tournament_id, category_id=category_id, best_of_sets=best_of_sets
        )
    if format == BracketFormat.round_robin_double:
        return generate_round_robin_matches(
            roster, double=True, tournament_id=tournament_id, category_id=category_id, best_of_sets=best_of_sets
        )
    if format == BracketFormat.single_elimination:
        return generate_knockout_matches(
            roster, tournament_id=tournament_id, category_id=category_id, best_of_sets=best_of_sets, rng=rng
        )

    if num_groups is None:
        raise ConfigurationError("num_groups is required for the group_stage_knockout format")
    matches = generate_group_matches(
        roster,
        num_groups,
        qualifiers_per_group,
        tournament_id=tournament_id,
        category_id=category_id,
        best_of_sets=best_of_sets,
        rng=rng,
    )
    matches.extend(
        build_placeholder_bracket(
            num_groups * qualifiers_per_group,
            GROUP_LABELS[:num_groups],
            tournament_id=tournament_id,
            category_id=category_id,
            best_of_sets=best_of_sets,
        )
    )
    return matches


def setup_category(
    session: Session,
    tournament_id: str,
    category_id: str,
    roster: Sequence[str],
    format: BracketFormat = BracketFormat.group_stage_knockout,
    num_groups: Optional[int] = None,
    qualifiers_per_group: int = DEFAULT_QUALIFIERS_PER_GROUP,
    best_of_sets: int = DEFAULT_BEST_OF_SETS,
    rng: Optional[random.Random] = None,
) -> List[Match]:
    """
    Generate (or regenerate) the draw for a category.

    Rules:
    - Nothing is written if the roster or format parameters are invalid
    - Regeneration is refused once any match has started or been played
    - Matches of the previous draw are deleted before the new draw is inserted
    - Byes are resolved immediately by reconciliation
    """
    format = BracketFormat(format)
    if best_of_sets < 1 or best_of_sets % 2 == 0:
        raise ConfigurationError(f"best_of_sets must be a positive odd number, got {best_of_sets}")

    # Generation is pure: configuration errors surface before any write
    matches = _generate(
        roster,
        format,
        tournament_id=tournament_id,
        category_id=category_id,
        num_groups=num_groups,
        qualifiers_per_group=qualifiers_per_group,
        best_of_sets=best_of_sets,
        rng=rng or random.Random(),
    )

    existing = load_category_matches(session, tournament_id, category_id)
    started = [m for m in existing if has_play_started(m)]
    if started:
        raise BracketLockedError(
            f"Category {category_id} has {len(started)} started or completed matches; "
            f"the draw can no longer be regenerated"
        )

    try:
        if existing:
            for m in existing:
                session.delete(m)
            # Old rows share unique keys with the new draw; the flush must delete them first
            session.flush()

        config = get_bracket_config(session, tournament_id, category_id)
        if config is None:
            config = BracketConfig(tournament_id=tournament_id, category_id=category_id, format=format)
        config.format = format
        config.num_groups = num_groups if format == BracketFormat.group_stage_knockout else None
        config.qualifiers_per_group = qualifiers_per_group
        config.best_of_sets = best_of_sets
        config.participant_count = len(roster)
        config.updated_at = datetime.utcnow()
        session.add(config)

        # Downstream rows first so next_match_id always points at an existing row
        for m in reversed(matches):
            session.add(m)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception(f"Draw setup failed for category {category_id}; previous draw kept")
        raise

    logger.info(
        f"Set up category {category_id} (tournament {tournament_id}): format={format.value}, "
        f"{len(roster)} participants, {len(matches)} matches, replaced {len(existing)}"
    )

    reconcile(session, tournament_id, category_id, qualifiers_per_group=qualifiers_per_group)
    return load_category_matches(session, tournament_id, category_id)


# ============================================================================
# Match lifecycle
# ============================================================================

def start_match(session: Session, match_id: str, table_number: Optional[int] = None) -> Match:
    """pending -> in_progress. Calling it on an in-progress match only updates the table."""
    match = get_match(session, match_id)
    if match.status == MatchStatus.in_progress:
        if table_number is not None and match.table_number != table_number:
            match.table_number = table_number
            session.add(match)
            session.commit()
            session.refresh(match)
        return match
    if match.status != MatchStatus.pending:
        raise InvalidResultError(f"Match {match_id} is {MatchStatus(match.status).value}; only pending matches can start")
    if match.player1_id is None or match.player2_id is None:
        raise InvalidResultError(f"Match {match_id} cannot start before both participants are known")

    match.status = MatchStatus.in_progress
    match.started_at = datetime.utcnow()
    if table_number is not None:
        match.table_number = table_number
    session.add(match)
    session.commit()
    session.refresh(match)
    logger.info(f"Match {match_id} started (table={match.table_number})")
    return match


def _resolve_winner(match: Match, sets: List[Dict[str, int]], winner_id: Optional[str]) -> str:
    """Winner from sets and/or an explicit id; raises InvalidResultError on any inconsistency."""
    if winner_id is not None and winner_id not in (match.player1_id, match.player2_id):
        raise InvalidResultError(f"Winner {winner_id} is not a participant of match {match.id}")

    if len(sets) > match.best_of_sets:
        raise InvalidResultError(
            f"Match {match.id} is best of {match.best_of_sets}; {len(sets)} sets submitted"
        )

    slot = summarize_sets(sets).winner_slot if sets else None
    from_sets = match.player_id(slot) if slot is not None else None

    if winner_id is None:
        if from_sets is None:
            raise InvalidResultError(f"Result for match {match.id} has no winner: sets are level or missing")
        return from_sets
    if sets and from_sets != winner_id:
        raise InvalidResultError(f"Winner {winner_id} contradicts the set scores of match {match.id}")
    return winner_id


def record_result(
    session: Session,
    match_id: str,
    sets: Optional[Sequence[Any]] = None,
    table_number: Optional[int] = None,
    winner_id: Optional[str] = None,
) -> Match:
    """
    Record a match result and advance the winner.

    All validation happens before the match is touched. Recording the same
    result twice is a no-op; recording a different result is a correction
    and is propagated downstream under the same guards as any other write.
    """
    match = get_match(session, match_id)

    if match.status == MatchStatus.bye or match.is_bye_slot(1) or match.is_bye_slot(2):
        raise InvalidResultError(f"Match {match_id} is a bye and cannot take a result")
    if match.player1_id is None or match.player2_id is None:
        raise InvalidResultError(f"Match {match_id} does not have both participants yet")

    try:
        normalized = normalize_sets(sets)
    except (TypeError, ValueError) as e:
        raise InvalidResultError(f"Invalid set scores for match {match_id}: {e}") from e

    winner = _resolve_winner(match, normalized, winner_id)

    match.sets = normalized or None
    match.winner_id = winner
    match.status = MatchStatus.completed
    if match.completed_at is None:
        match.completed_at = datetime.utcnow()
    if table_number is not None:
        match.table_number = table_number
    session.add(match)
    session.commit()
    session.refresh(match)
    logger.info(f"Recorded result for match {match_id}: winner={winner}, sets={len(normalized)}")

    propagate_result(session, match.id)

    needs_reconcile = MatchPhase(match.phase) == MatchPhase.group
    if not needs_reconcile and match.next_match_id is not None:
        downstream = session.get(Match, match.next_match_id)
        needs_reconcile = downstream is not None and (downstream.is_bye_slot(1) or downstream.is_bye_slot(2))
    if needs_reconcile:
        reconcile(session, match.tournament_id, match.category_id)

    session.refresh(match)
    return match


def clear_attention(session: Session, match_id: str) -> Match:
    match = get_match(session, match_id)
    if match.needs_attention:
        match.needs_attention = False
        session.add(match)
        session.commit()
        session.refresh(match)
        logger.info(f"Cleared attention flag on match {match_id}")
    return match


# ============================================================================
# Read views
# ============================================================================

def compute_group_standings(session: Session, tournament_id: str, category_id: str) -> List[Dict[str, Any]]:
    """[{"group": "A", "complete": bool, "standings": [GroupStanding, ...]}, ...]"""
    return standings_by_group(load_category_matches(session, tournament_id, category_id))


def get_champion(matches: Sequence[Match]) -> Optional[str]:
    """
    Winner of the deciding match, if decided.

    Elimination draws: the elimination match with no next match. League
    draws: the league leader once every league match is completed.
    """
    terminal = [m for m in matches if is_elimination_phase(m.phase) and m.next_match_id is None]
    if terminal:
        deciding = max(terminal, key=lambda m: (phase_sort_key(m.phase), m.round, m.match_number))
        return deciding.winner_id if deciding.is_decided else None

    league = [m for m in matches if MatchPhase(m.phase) == MatchPhase.league]
    if league and all(m.status == MatchStatus.completed for m in league):
        return calculate_standings(league)[0].participant_id
    return None


def get_bracket(session: Session, tournament_id: str, category_id: str) -> Dict[str, Any]:
    matches = load_category_matches(session, tournament_id, category_id)
    config = get_bracket_config(session, tournament_id, category_id)

    phases: List[Dict[str, Any]] = []
    for m in matches:
        phase = MatchPhase(m.phase).value
        if not phases or phases[-1]["phase"] != phase:
            phases.append({"phase": phase, "matches": []})
        phases[-1]["matches"].append(m)

    return {
        "tournament_id": tournament_id,
        "category_id": category_id,
        "format": BracketFormat(config.format).value if config else None,
        "phases": phases,
        "champion_id": get_champion(matches),
        "needs_attention": [m.id for m in matches if m.needs_attention],
    }
