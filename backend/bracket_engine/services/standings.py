"""
Group Standings Calculator.

Ranking keys, all descending:
  1. points (POINTS_PER_WIN per match won)
  2. set differential (sets won - sets lost)
  3. sets won
  4. point differential (rally points scored - conceded)

Ties that survive all four keys keep insertion order, i.e. the order in
which participants first appear in the group's matches by match number.
There is deliberately no head-to-head or lot-drawing step.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import POINTS_PER_WIN, MatchStatus
from bracket_engine.services.pairing import groups_from_matches
from bracket_engine.services.score import summarize_sets

logger = logging.getLogger(__name__)


@dataclass
class GroupStanding:
    participant_id: str
    group: Optional[str] = None
    position: int = 0
    played: int = 0
    won: int = 0
    lost: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    points_scored: int = 0
    points_conceded: int = 0
    points: int = 0

    @property
    def set_differential(self) -> int:
        return self.sets_won - self.sets_lost

    @property
    def point_differential(self) -> int:
        return self.points_scored - self.points_conceded

    def sort_key(self):
        return (-self.points, -self.set_differential, -self.sets_won, -self.point_differential)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["set_differential"] = self.set_differential
        data["point_differential"] = self.point_differential
        return data


def _match_winner_slot(match: Match) -> Optional[int]:
    """Winner slot from winner_id when present, otherwise from the sets."""
    if match.winner_id is not None:
        if match.winner_id == match.player1_id:
            return 1
        if match.winner_id == match.player2_id:
            return 2
        return None
    return summarize_sets(match.sets).winner_slot


def calculate_standings(matches: Sequence[Match], group: Optional[str] = None) -> List[GroupStanding]:
    """
    Rank the participants of one group.

    Every participant appearing in any of the matches is listed; only
    matches with status=completed contribute to the stats.
    """
    table: Dict[str, GroupStanding] = {}
    ordered = sorted(matches, key=lambda m: (m.round, m.match_number))

    for m in ordered:
        for pid in (m.player1_id, m.player2_id):
            if pid is not None and pid not in table:
                table[pid] = GroupStanding(participant_id=pid, group=group)

    for m in ordered:
        if m.status != MatchStatus.completed:
            continue
        if m.player1_id is None or m.player2_id is None:
            continue

        summary = summarize_sets(m.sets)
        p1 = table[m.player1_id]
        p2 = table[m.player2_id]

        p1.played += 1
        p2.played += 1
        p1.sets_won += summary.player1_sets_won
        p1.sets_lost += summary.player2_sets_won
        p2.sets_won += summary.player2_sets_won
        p2.sets_lost += summary.player1_sets_won
        p1.points_scored += summary.player1_points
        p1.points_conceded += summary.player2_points
        p2.points_scored += summary.player2_points
        p2.points_conceded += summary.player1_points

        winner_slot = _match_winner_slot(m)
        if winner_slot == 1:
            p1.won += 1
            p1.points += POINTS_PER_WIN
            p2.lost += 1
        elif winner_slot == 2:
            p2.won += 1
            p2.points += POINTS_PER_WIN
            p1.lost += 1

    # sorted() is stable: full ties keep insertion order
    ranked = sorted(table.values(), key=lambda s: s.sort_key())
    for index, standing in enumerate(ranked, start=1):
        standing.position = index
    return ranked


def is_group_complete(matches: Sequence[Match]) -> bool:
    return bool(matches) and all(m.status == MatchStatus.completed for m in matches)


def standings_by_group(matches: Sequence[Match]) -> List[Dict[str, Any]]:
    """[{"group": "A", "complete": bool, "standings": [GroupStanding, ...]}, ...] in label order."""
    result: List[Dict[str, Any]] = []
    for label, group_matches in groups_from_matches(matches).items():
        result.append(
            {
                "group": label,
                "complete": is_group_complete(group_matches),
                "standings": calculate_standings(group_matches, group=label),
            }
        )
    return result


def group_qualifiers(
    matches: Sequence[Match],
    qualifiers_per_group: int,
) -> Dict[str, List[str]]:
    """
    Top qualifiers_per_group participant ids for each *complete* group.

    Groups with unfinished matches are skipped (not yet decided, not an
    error). A failure computing one group is logged and does not affect
    the others.
    """
    qualified: Dict[str, List[str]] = {}
    for label, group_matches in groups_from_matches(matches).items():
        if not is_group_complete(group_matches):
            continue
        try:
            ranked = calculate_standings(group_matches, group=label)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Standings for group {label} could not be computed: {e}")
            continue
        qualified[label] = [s.participant_id for s in ranked[:qualifiers_per_group]]
    return qualified
