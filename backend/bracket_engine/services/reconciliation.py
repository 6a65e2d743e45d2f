"""
Slot Resolver / Reconciliation Engine.

One idempotent pass that resolves as many pending knockout slots as the
current match data allows. Safe to call after every mutation, from any
number of concurrent requests: every write is set-if-different, so
interleaved runs converge to the same state, and a run on converged data
writes nothing.

Per category:
  1. Complete groups -> standings -> top qualifiers_per_group
  2. group_<pos><label> slots -> the qualifier at that position
  3. Pending match with one participant and one BYE -> completed, that participant wins
  4. Decided match with next_match_id -> winner written into next_match_slot
  5. Repeat 2-4 until a pass changes nothing (bye cascades can run several phases deep)

Unresolvable slots (unfinished group, group missing entirely, dangling
next_match_id) are left as they are: "not yet", never an error.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set

from sqlmodel import Session

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import (
    DEFAULT_QUALIFIERS_PER_GROUP,
    MAX_RECONCILE_PASSES,
    MatchStatus,
    is_elimination_phase,
    phase_sort_key,
)
from bracket_engine.services.propagation import assign_slot, propagate_winner
from bracket_engine.services.slot_source import SourceKind
from bracket_engine.services.standings import group_qualifiers
from bracket_engine.utils.match_queries import load_category_matches, qualifiers_per_group_for

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    passes: int = 0
    groups_resolved: int = 0
    slots_filled: int = 0
    byes_completed: int = 0
    winners_propagated: int = 0
    unresolved_slots: int = 0
    converged: bool = True
    changed_match_ids: Set[str] = field(default_factory=set)

    @property
    def writes(self) -> int:
        return self.slots_filled + self.byes_completed + self.winners_propagated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passes": self.passes,
            "groups_resolved": self.groups_resolved,
            "slots_filled": self.slots_filled,
            "byes_completed": self.byes_completed,
            "winners_propagated": self.winners_propagated,
            "unresolved_slots": self.unresolved_slots,
            "writes": self.writes,
            "converged": self.converged,
        }


def auto_complete_bye(match: Match) -> bool:
    """Complete a pending match whose only opponent is a BYE. Returns True if it changed."""
    if match.status != MatchStatus.pending:
        return False
    for slot, other in ((1, 2), (2, 1)):
        participant = match.player_id(slot)
        if participant is not None and match.is_bye_slot(other):
            match.status = MatchStatus.completed
            match.winner_id = participant
            match.completed_at = datetime.utcnow()
            return True
    return False


def _fill_group_slots(
    knockout: Sequence[Match],
    qualifiers: Dict[str, List[str]],
    result: ReconcileResult,
) -> bool:
    changed = False
    for m in knockout:
        for slot in (1, 2):
            src = m.source(slot)
            if src is None or src.kind != SourceKind.GROUP:
                continue
            ranked = qualifiers.get(src.group_label)
            if ranked is None or src.position > len(ranked):
                continue
            if assign_slot(m, slot, ranked[src.position - 1]):
                result.slots_filled += 1
                result.changed_match_ids.add(m.id)
                changed = True
    return changed


def reconcile_matches(
    matches: Sequence[Match],
    qualifiers_per_group: int = DEFAULT_QUALIFIERS_PER_GROUP,
) -> ReconcileResult:
    """
    Run reconciliation in memory over one category's matches.

    Mutates the Match objects in place; the ids of every changed match are
    reported in result.changed_match_ids so the caller can persist them.
    """
    result = ReconcileResult()
    by_id = {m.id: m for m in matches}
    knockout = sorted(
        (m for m in matches if is_elimination_phase(m.phase)),
        key=lambda m: (phase_sort_key(m.phase), m.round, m.match_number),
    )

    # Step 1: qualifiers from complete groups (per-group failures isolated inside)
    qualifiers = group_qualifiers(matches, qualifiers_per_group)
    result.groups_resolved = len(qualifiers)

    dangling: Set[str] = set()
    result.converged = False

    for pass_num in range(1, MAX_RECONCILE_PASSES + 1):
        result.passes = pass_num
        changed = False

        # Step 2
        if _fill_group_slots(knockout, qualifiers, result):
            changed = True

        # Step 3
        for m in knockout:
            if auto_complete_bye(m):
                result.byes_completed += 1
                result.changed_match_ids.add(m.id)
                changed = True

        # Step 4
        for m in knockout:
            if not m.is_decided or m.next_match_id is None:
                continue
            downstream = by_id.get(m.next_match_id)
            if downstream is None:
                dangling.add(m.id)
                continue
            if propagate_winner(m, downstream):
                result.winners_propagated += 1
                result.changed_match_ids.add(downstream.id)
                changed = True

        # Step 5
        if not changed:
            result.converged = True
            break

    if not result.converged:
        logger.warning(
            f"Reconciliation stopped after {MAX_RECONCILE_PASSES} passes without converging; "
            f"the bracket graph is likely malformed"
        )
    for match_id in sorted(dangling):
        logger.warning(f"Match {match_id} points at next match {by_id[match_id].next_match_id} which does not exist")

    result.unresolved_slots = sum(
        1
        for m in knockout
        for slot in (1, 2)
        if m.player_id(slot) is None and not m.is_bye_slot(slot)
    )
    return result


def reconcile(
    session: Session,
    tournament_id: str,
    category_id: str,
    qualifiers_per_group: Optional[int] = None,
) -> ReconcileResult:
    """
    Reconcile one category and persist every changed match.

    Guarantees:
        - Idempotent (second call on unchanged data performs zero writes)
        - Deterministic processing order (phase depth, round, match number)
        - Never raises for incomplete or inconsistent brackets
    """
    if qualifiers_per_group is None:
        qualifiers_per_group = qualifiers_per_group_for(session, tournament_id, category_id)

    matches = load_category_matches(session, tournament_id, category_id)
    result = reconcile_matches(matches, qualifiers_per_group)

    if result.changed_match_ids:
        by_id = {m.id: m for m in matches}
        for match_id in sorted(result.changed_match_ids):
            session.add(by_id[match_id])
        session.commit()

    logger.info(
        f"Reconciled category {category_id} (tournament {tournament_id}): "
        f"{result.writes} writes in {result.passes} passes, "
        f"{result.unresolved_slots} slots unresolved"
    )
    return result
