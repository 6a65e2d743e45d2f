"""
Bracket Rules: fixed tables and constants (Single Source of Truth)

Phase tables, seeding labels, and scoring constants used by generation,
standings and reconciliation. All other modules must import from here.
Do NOT duplicate these rules elsewhere.
"""

import string
from enum import Enum
from typing import Dict, List, Tuple


class MatchPhase(str, Enum):
    group = "group"
    round_of_32 = "round_of_32"
    round_of_16 = "round_of_16"
    quarterfinal = "quarterfinal"
    semifinal = "semifinal"
    final = "final"
    league = "league"
    knockout = "knockout"


class MatchStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    bye = "bye"


class BracketFormat(str, Enum):
    round_robin = "round_robin"
    round_robin_double = "round_robin_double"
    single_elimination = "single_elimination"
    group_stage_knockout = "group_stage_knockout"


# =============================================================================
# Scoring
# =============================================================================

POINTS_PER_WIN = 2

DEFAULT_QUALIFIERS_PER_GROUP = 2
DEFAULT_BEST_OF_SETS = 3
FINAL_BEST_OF_SETS = 5


# =============================================================================
# Groups
# =============================================================================

GROUP_LABELS: Tuple[str, ...] = tuple(string.ascii_uppercase)

MIN_PARTICIPANTS = 2
MIN_GROUP_SIZE = 2


# =============================================================================
# Elimination tree
# =============================================================================

MAX_BRACKET_SIZE = 32

PHASES_BY_BRACKET_SIZE: Dict[int, List[MatchPhase]] = {
    2: [MatchPhase.final],
    4: [MatchPhase.semifinal, MatchPhase.final],
    8: [MatchPhase.quarterfinal, MatchPhase.semifinal, MatchPhase.final],
    16: [MatchPhase.round_of_16, MatchPhase.quarterfinal, MatchPhase.semifinal, MatchPhase.final],
    32: [
        MatchPhase.round_of_32,
        MatchPhase.round_of_16,
        MatchPhase.quarterfinal,
        MatchPhase.semifinal,
        MatchPhase.final,
    ],
}

ELIMINATION_PHASES = frozenset(
    {
        MatchPhase.round_of_32,
        MatchPhase.round_of_16,
        MatchPhase.quarterfinal,
        MatchPhase.semifinal,
        MatchPhase.final,
        MatchPhase.knockout,
    }
)

# Display / processing order, earliest phase first
PHASE_ORDER: Dict[MatchPhase, int] = {
    MatchPhase.group: 0,
    MatchPhase.league: 0,
    MatchPhase.knockout: 1,
    MatchPhase.round_of_32: 2,
    MatchPhase.round_of_16: 3,
    MatchPhase.quarterfinal: 4,
    MatchPhase.semifinal: 5,
    MatchPhase.final: 6,
}


# =============================================================================
# Reconciliation
# =============================================================================

# Upper bound on fixed-point passes. A well-formed tree converges in at most
# (number of phases + 2) passes; anything beyond this means a malformed graph.
MAX_RECONCILE_PASSES = 64


def is_elimination_phase(phase: MatchPhase) -> bool:
    return MatchPhase(phase) in ELIMINATION_PHASES


def phase_sort_key(phase: MatchPhase) -> int:
    return PHASE_ORDER.get(MatchPhase(phase), 99)
