"""
Set-score arithmetic for table-tennis style matches.

Sets are stored as a list of {"player1_score": int, "player2_score": int}.
Everything else (sets won, score string, winner slot) is derived here and
never stored as a second source of truth.

Also accepts score strings like:
  "11-9"                 → 1 set
  "11-9 7-11 11-5"       → 3 sets
  "11-9, 7-11, 11-5"     → comma-separated variant
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

SetDict = Dict[str, int]


@dataclass
class ParsedScore:
    sets: List[SetDict]
    player1_sets_won: int
    player2_sets_won: int
    player1_points: int
    player2_points: int

    @property
    def display(self) -> str:
        """Set count string, e.g. '3-1'."""
        return f"{self.player1_sets_won}-{self.player2_sets_won}"

    @property
    def winner_slot(self) -> Optional[int]:
        """1 or 2 for the player with more sets; None when level."""
        if self.player1_sets_won > self.player2_sets_won:
            return 1
        if self.player2_sets_won > self.player1_sets_won:
            return 2
        return None


def normalize_sets(sets: Optional[Sequence[Any]]) -> List[SetDict]:
    """Coerce set entries (dicts or objects with player1_score/player2_score) to plain dicts."""
    result: List[SetDict] = []
    for s in sets or []:
        if isinstance(s, dict):
            a = s.get("player1_score", s.get("player1Score", 0))
            b = s.get("player2_score", s.get("player2Score", 0))
        else:
            a = getattr(s, "player1_score", 0)
            b = getattr(s, "player2_score", 0)
        a = int(a)
        b = int(b)
        if a < 0 or b < 0:
            raise ValueError(f"set scores cannot be negative: {a}-{b}")
        result.append({"player1_score": a, "player2_score": b})
    return result


def summarize_sets(sets: Optional[Sequence[Any]]) -> ParsedScore:
    normalized = normalize_sets(sets)
    return ParsedScore(
        sets=normalized,
        player1_sets_won=sum(1 for s in normalized if s["player1_score"] > s["player2_score"]),
        player2_sets_won=sum(1 for s in normalized if s["player2_score"] > s["player1_score"]),
        player1_points=sum(s["player1_score"] for s in normalized),
        player2_points=sum(s["player2_score"] for s in normalized),
    )


def parse_score_string(raw: Optional[str]) -> Optional[List[SetDict]]:
    """Parse '11-9, 7-11, 11-5' into set dicts. Returns None on parse failure."""
    if not raw or not raw.strip():
        return None

    parts = raw.replace(",", " ").split()
    sets: List[SetDict] = []
    for part in parts:
        pair = part.split("-")
        if len(pair) != 2:
            return None
        try:
            a = int(pair[0])
            b = int(pair[1])
        except ValueError:
            return None
        if a < 0 or b < 0:
            return None
        sets.append({"player1_score": a, "player2_score": b})

    return sets or None


def score_display(sets: Optional[Sequence[Any]]) -> Optional[str]:
    """Per-set string for display, e.g. '11-9,7-11,11-5'."""
    normalized = normalize_sets(sets)
    if not normalized:
        return None
    return ",".join(f"{s['player1_score']}-{s['player2_score']}" for s in normalized)
