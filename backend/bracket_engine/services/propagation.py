"""
Result Propagator: push a decided match's winner into the one downstream slot it feeds.

Single-edge and cheap; used on every score submission. Full reconciliation
(reconciliation.reconcile) is the authoritative fallback for anything a
single edge cannot reach (group completions, bye cascades).

Slot writes are set-if-different:
  - slot empty                       -> write
  - slot already holds the winner    -> no-op
  - slot holds someone else:
      downstream not started         -> overwrite (corrected upstream result)
      downstream decided by a bye    -> overwrite, winner follows
      downstream started / completed -> leave it, flag needs_attention
Calling twice produces the same state as calling once.
"""
import logging
from typing import Optional

from sqlmodel import Session

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import MatchStatus

logger = logging.getLogger(__name__)


def _other(slot: int) -> int:
    return 2 if slot == 1 else 1


def assign_slot(downstream: Match, slot: int, participant_id: str) -> bool:
    """Write participant_id into downstream's slot. Returns True if the match changed."""
    current = downstream.player_id(slot)
    if current == participant_id:
        return False

    if current is None:
        downstream.set_player_id(slot, participant_id)
        return True

    if downstream.is_bye_slot(_other(slot)):
        logger.info(
            f"Match {downstream.id}: replacing bye advancer {current} -> {participant_id} in slot {slot}"
        )
        downstream.set_player_id(slot, participant_id)
        if downstream.winner_id is not None:
            downstream.winner_id = participant_id
        return True

    untouched = (
        downstream.status == MatchStatus.pending
        and downstream.winner_id is None
        and not downstream.sets
    )
    if untouched:
        logger.info(
            f"Match {downstream.id}: correcting slot {slot} {current} -> {participant_id}"
        )
        downstream.set_player_id(slot, participant_id)
        return True

    if not downstream.needs_attention:
        logger.warning(
            f"Match {downstream.id} already started with {current} in slot {slot}; "
            f"upstream now says {participant_id}. Flagging for attention."
        )
        downstream.needs_attention = True
        return True
    return False


def propagate_winner(match: Match, downstream: Optional[Match]) -> bool:
    """Pure single-edge propagation between two loaded matches."""
    if not match.is_decided or match.next_match_id is None or match.next_match_slot is None:
        return False
    if downstream is None:
        logger.warning(f"Match {match.id} points at missing next match {match.next_match_id}")
        return False
    if downstream.id != match.next_match_id:
        raise ValueError(f"Match {downstream.id} is not the next match of {match.id}")
    return assign_slot(downstream, match.next_match_slot, match.winner_id)


def propagate_result(session: Session, match_id: str) -> int:
    """
    Given a decided match, advance its winner into next_match_id / next_match_slot.
    Returns 1 if the downstream match was updated, else 0.
    Idempotent: only writes when the slot differs.
    """
    match = session.get(Match, match_id)
    if not match:
        return 0
    if not match.is_decided:
        return 0
    if match.next_match_id is None or match.next_match_slot is None:
        return 0

    downstream = session.get(Match, match.next_match_id)
    changed = propagate_winner(match, downstream)
    if not changed:
        return 0

    session.add(downstream)
    session.commit()
    if downstream.player_id(match.next_match_slot) == match.winner_id:
        logger.info(
            f"Advanced winner {match.winner_id} of match {match.id} into match {downstream.id} "
            f"slot {match.next_match_slot}"
        )
    return 1
