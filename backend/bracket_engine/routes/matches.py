"""
Match runtime: start, score, manual advancement, attention flag.

When a result is recorded the winner is pushed into the downstream slot;
group results and bye-adjacent results additionally trigger a category
reconciliation (see bracket_service.record_result).
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from bracket_engine.database import get_session
from bracket_engine.models.match import Match
from bracket_engine.services import bracket_service
from bracket_engine.services.bracket_rules import MatchPhase, MatchStatus
from bracket_engine.services.errors import BracketError
from bracket_engine.services.propagation import propagate_result
from bracket_engine.services.score import parse_score_string, score_display, summarize_sets
from bracket_engine.utils.match_guards import http_error, require_match

router = APIRouter()


class SetScore(BaseModel):
    player1_score: int = Field(ge=0)
    player2_score: int = Field(ge=0)


class MatchUpdate(BaseModel):
    status: Optional[str] = None
    sets: Optional[List[SetScore]] = None
    score: Optional[str] = None  # "11-9, 7-11, 11-5" shorthand for sets
    winner_id: Optional[str] = None
    table_number: Optional[int] = Field(default=None, ge=1)


class MatchResponse(BaseModel):
    id: str
    tournament_id: str
    category_id: str
    phase: str
    round: int
    group_name: Optional[str] = None
    match_number: int
    player1_id: Optional[str] = None
    player2_id: Optional[str] = None
    player1_source: Optional[str] = None
    player2_source: Optional[str] = None
    winner_id: Optional[str] = None
    status: str
    sets: Optional[List[Dict[str, int]]] = None
    player1_sets_won: int = 0
    player2_sets_won: int = 0
    score: Optional[str] = None
    best_of_sets: int
    next_match_id: Optional[str] = None
    next_match_slot: Optional[int] = None
    table_number: Optional[int] = None
    needs_attention: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def match_to_response(m: Match) -> MatchResponse:
    summary = summarize_sets(m.sets)
    src1 = m.source(1)
    src2 = m.source(2)
    return MatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        category_id=m.category_id,
        phase=MatchPhase(m.phase).value,
        round=m.round,
        group_name=m.group_name,
        match_number=m.match_number,
        player1_id=m.player1_id,
        player2_id=m.player2_id,
        player1_source=src1.code if src1 else None,
        player2_source=src2.code if src2 else None,
        winner_id=m.winner_id,
        status=MatchStatus(m.status).value,
        sets=m.sets,
        player1_sets_won=summary.player1_sets_won,
        player2_sets_won=summary.player2_sets_won,
        score=score_display(m.sets),
        best_of_sets=m.best_of_sets,
        next_match_id=m.next_match_id,
        next_match_slot=m.next_match_slot,
        table_number=m.table_number,
        needs_attention=m.needs_attention,
        started_at=m.started_at,
        completed_at=m.completed_at,
    )


@router.patch(
    "/tournaments/{tournament_id}/matches/{match_id}",
    response_model=MatchResponse,
)
def update_match(
    tournament_id: str,
    match_id: str,
    payload: MatchUpdate,
    session: Session = Depends(get_session),
) -> MatchResponse:
    """Record a result (sets / score / winner_id) or start the match (status=in_progress)."""
    require_match(session, match_id, tournament_id)

    sets: Optional[List[Any]] = payload.sets
    if payload.score is not None:
        if sets is not None:
            raise HTTPException(status_code=422, detail="Send either sets or score, not both")
        sets = parse_score_string(payload.score)
        if sets is None:
            raise HTTPException(status_code=422, detail=f"Could not parse score: {payload.score!r}")

    is_result = sets is not None or payload.winner_id is not None
    if payload.status is not None and payload.status not in (MatchStatus.in_progress, MatchStatus.completed):
        raise HTTPException(status_code=422, detail=f"Invalid status: {payload.status}")
    if payload.status == MatchStatus.completed and not is_result:
        raise HTTPException(status_code=422, detail="sets, score or winner_id required to complete a match")

    try:
        if is_result:
            match = bracket_service.record_result(
                session,
                match_id,
                sets=sets,
                table_number=payload.table_number,
                winner_id=payload.winner_id,
            )
        elif payload.status == MatchStatus.in_progress:
            match = bracket_service.start_match(session, match_id, table_number=payload.table_number)
        else:
            raise HTTPException(status_code=422, detail="Nothing to update")
    except BracketError as e:
        raise http_error(e)

    return match_to_response(match)


@router.post(
    "/tournaments/{tournament_id}/matches/{match_id}/advance",
    response_model=Dict[str, int],
)
def advance_match(
    tournament_id: str,
    match_id: str,
    session: Session = Depends(get_session),
) -> Dict[str, int]:
    """Manually push a decided match's winner into its downstream slot (repair/testing)."""
    match = require_match(session, match_id, tournament_id)
    if not match.is_decided:
        raise HTTPException(status_code=422, detail="Match must be decided to run advancement")

    advanced_count = propagate_result(session, match_id)
    return {"advanced_count": advanced_count}


@router.patch(
    "/tournaments/{tournament_id}/matches/{match_id}/clear-attention",
    response_model=MatchResponse,
)
def clear_match_attention(
    tournament_id: str,
    match_id: str,
    session: Session = Depends(get_session),
) -> MatchResponse:
    require_match(session, match_id, tournament_id)
    try:
        match = bracket_service.clear_attention(session, match_id)
    except BracketError as e:
        raise http_error(e)
    return match_to_response(match)
