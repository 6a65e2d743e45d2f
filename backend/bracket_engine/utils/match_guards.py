"""
Route-level guards and error translation.

Services raise BracketError subclasses; routes call these helpers so the
mapping to HTTP status codes lives in one place:
- MatchNotFoundError   -> 404
- BracketLockedError   -> 409
- ConfigurationError   -> 422
- InvalidResultError   -> 422
"""

from fastapi import HTTPException
from sqlmodel import Session

from bracket_engine.models.match import Match
from bracket_engine.services.errors import BracketError, BracketLockedError, MatchNotFoundError


def http_error(error: BracketError) -> HTTPException:
    """Translate an engine error into the HTTPException a route should raise."""
    if isinstance(error, MatchNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, BracketLockedError):
        return HTTPException(status_code=409, detail=f"BRACKET_LOCKED: {error}")
    return HTTPException(status_code=422, detail=str(error))


def require_match(session: Session, match_id: str, tournament_id: str) -> Match:
    """
    Require that a match exists and belongs to the tournament, otherwise raise 404.

    Returns:
        Match

    Raises:
        HTTPException 404: Match not found, or it belongs to another tournament
    """
    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail="Match not found")
    return match
