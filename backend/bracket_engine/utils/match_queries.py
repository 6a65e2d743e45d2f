"""
Category-scoped match queries.

Every engine operation works on the match collection of a single
(tournament, category). These helpers load it in a stable order.
"""
from typing import List, Optional

from sqlmodel import Session, select

from bracket_engine.models.bracket_config import BracketConfig
from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import DEFAULT_QUALIFIERS_PER_GROUP, phase_sort_key


def load_category_matches(session: Session, tournament_id: str, category_id: str) -> List[Match]:
    """All matches of a category ordered by phase depth, round, match number."""
    matches = session.exec(
        select(Match).where(
            Match.tournament_id == tournament_id,
            Match.category_id == category_id,
        )
    ).all()
    return sorted(matches, key=lambda m: (phase_sort_key(m.phase), m.round, m.group_name or "", m.match_number))


def get_bracket_config(session: Session, tournament_id: str, category_id: str) -> Optional[BracketConfig]:
    return session.exec(
        select(BracketConfig).where(
            BracketConfig.tournament_id == tournament_id,
            BracketConfig.category_id == category_id,
        )
    ).first()


def qualifiers_per_group_for(session: Session, tournament_id: str, category_id: str) -> int:
    config = get_bracket_config(session, tournament_id, category_id)
    if config is None:
        return DEFAULT_QUALIFIERS_PER_GROUP
    return config.qualifiers_per_group
