"""
Category draws: generate, view, standings, reconcile.
"""
import random
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from bracket_engine.database import get_session
from bracket_engine.routes.matches import MatchResponse, match_to_response
from bracket_engine.services import bracket_service
from bracket_engine.services.bracket_rules import (
    DEFAULT_BEST_OF_SETS,
    DEFAULT_QUALIFIERS_PER_GROUP,
    BracketFormat,
)
from bracket_engine.services.errors import BracketError
from bracket_engine.services.reconciliation import reconcile
from bracket_engine.utils.match_guards import http_error
from bracket_engine.utils.match_queries import load_category_matches

router = APIRouter()


class BracketCreate(BaseModel):
    roster: List[str]
    format: BracketFormat = BracketFormat.group_stage_knockout
    num_groups: Optional[int] = Field(default=None, ge=1)
    qualifiers_per_group: int = Field(default=DEFAULT_QUALIFIERS_PER_GROUP, ge=1)
    best_of_sets: int = Field(default=DEFAULT_BEST_OF_SETS, ge=1)
    seed: Optional[int] = None  # fixes the shuffle for reproducible draws


class PhaseView(BaseModel):
    phase: str
    matches: List[MatchResponse]


class BracketView(BaseModel):
    tournament_id: str
    category_id: str
    format: Optional[str] = None
    phases: List[PhaseView]
    champion_id: Optional[str] = None
    needs_attention: List[str] = []


class StandingRow(BaseModel):
    participant_id: str
    position: int
    played: int
    won: int
    lost: int
    sets_won: int
    sets_lost: int
    set_differential: int
    points_scored: int
    points_conceded: int
    point_differential: int
    points: int


class GroupStandingsView(BaseModel):
    group: str
    complete: bool
    standings: List[StandingRow]


class ReconcileResponse(BaseModel):
    passes: int
    groups_resolved: int
    slots_filled: int
    byes_completed: int
    winners_propagated: int
    unresolved_slots: int
    writes: int
    converged: bool


def _bracket_view(session: Session, tournament_id: str, category_id: str) -> BracketView:
    bracket = bracket_service.get_bracket(session, tournament_id, category_id)
    return BracketView(
        tournament_id=bracket["tournament_id"],
        category_id=bracket["category_id"],
        format=bracket["format"],
        phases=[
            PhaseView(phase=p["phase"], matches=[match_to_response(m) for m in p["matches"]])
            for p in bracket["phases"]
        ],
        champion_id=bracket["champion_id"],
        needs_attention=bracket["needs_attention"],
    )


@router.post(
    "/tournaments/{tournament_id}/categories/{category_id}/bracket",
    response_model=BracketView,
    status_code=201,
)
def create_bracket(
    tournament_id: str,
    category_id: str,
    payload: BracketCreate,
    session: Session = Depends(get_session),
) -> BracketView:
    """Generate the draw. Regenerating replaces a draw whose matches have not started (409 otherwise)."""
    try:
        bracket_service.setup_category(
            session,
            tournament_id,
            category_id,
            payload.roster,
            format=payload.format,
            num_groups=payload.num_groups,
            qualifiers_per_group=payload.qualifiers_per_group,
            best_of_sets=payload.best_of_sets,
            rng=random.Random(payload.seed) if payload.seed is not None else None,
        )
    except BracketError as e:
        raise http_error(e)
    return _bracket_view(session, tournament_id, category_id)


@router.get(
    "/tournaments/{tournament_id}/categories/{category_id}/bracket",
    response_model=BracketView,
)
def get_bracket(
    tournament_id: str,
    category_id: str,
    session: Session = Depends(get_session),
) -> BracketView:
    return _bracket_view(session, tournament_id, category_id)


@router.get(
    "/tournaments/{tournament_id}/categories/{category_id}/matches",
    response_model=List[MatchResponse],
)
def list_matches(
    tournament_id: str,
    category_id: str,
    session: Session = Depends(get_session),
) -> List[MatchResponse]:
    """Flat match list. Stable order: phase, round, group, match_number."""
    return [match_to_response(m) for m in load_category_matches(session, tournament_id, category_id)]


@router.get(
    "/tournaments/{tournament_id}/categories/{category_id}/standings",
    response_model=List[GroupStandingsView],
)
def get_standings(
    tournament_id: str,
    category_id: str,
    session: Session = Depends(get_session),
) -> List[GroupStandingsView]:
    groups = bracket_service.compute_group_standings(session, tournament_id, category_id)
    return [
        GroupStandingsView(
            group=g["group"],
            complete=g["complete"],
            standings=[StandingRow(**s.to_dict()) for s in g["standings"]],
        )
        for g in groups
    ]


@router.post(
    "/tournaments/{tournament_id}/categories/{category_id}/reconcile",
    response_model=ReconcileResponse,
)
def reconcile_category(
    tournament_id: str,
    category_id: str,
    session: Session = Depends(get_session),
) -> ReconcileResponse:
    """
    Resolve every slot the current results allow.

    Guarantees:
    - Idempotent (a second call reports writes=0)
    - Never fails on an incomplete bracket; unresolved slots are counted
    """
    result = reconcile(session, tournament_id, category_id)
    return ReconcileResponse(**result.to_dict())
