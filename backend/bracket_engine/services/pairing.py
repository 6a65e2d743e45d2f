"""
Pairing Generator: round robin, group stage, and straight knockout draws.

Round robin uses the circle method: the first entry stays fixed, the rest
rotate one position per round. An odd roster gets a virtual bye that
cancels one pairing per round, so every round has floor(N/2) matches and
the round count is minimal (N-1 for even N, N for odd N).

All generators are pure: they return unsaved Match objects with ids already
assigned and never touch a session.
"""
from __future__ import annotations

import logging
import random
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Tuple

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import (
    DEFAULT_BEST_OF_SETS,
    FINAL_BEST_OF_SETS,
    GROUP_LABELS,
    MAX_BRACKET_SIZE,
    MIN_GROUP_SIZE,
    MIN_PARTICIPANTS,
    MatchPhase,
    MatchStatus,
)
from bracket_engine.services.bracket_topology import (
    bracket_positions,
    build_elimination_tree,
    padded_size,
)
from bracket_engine.services.errors import ConfigurationError
from bracket_engine.services.slot_source import SlotSource

logger = logging.getLogger(__name__)


def validate_roster(roster: Sequence[str]) -> List[str]:
    """Return the roster as a list, or raise ConfigurationError."""
    participants = list(roster or [])
    if len(participants) < MIN_PARTICIPANTS:
        raise ConfigurationError(
            f"At least {MIN_PARTICIPANTS} participants are required, got {len(participants)}"
        )
    if any(p is None or str(p).strip() == "" for p in participants):
        raise ConfigurationError("Roster contains an empty participant id")
    seen = set()
    duplicates = []
    for p in participants:
        if p in seen:
            duplicates.append(p)
        seen.add(p)
    if duplicates:
        raise ConfigurationError(f"Roster contains duplicate participants: {sorted(set(duplicates))}")
    return participants


def round_robin_pairings(n: int) -> List[Tuple[int, int, int]]:
    """
    Circle-method pairings for n entries.

    Returns (round, idx_a, idx_b) tuples with 1-based rounds and 0-based
    indexes into the roster. Pairings against the virtual bye are skipped.

    Example (n=4):
      round 1: (0,3) (1,2)
      round 2: (0,2) (3,1)
      round 3: (0,1) (2,3)
    """
    if n < 2:
        return []

    slots: List[Optional[int]] = list(range(n))
    if n % 2 == 1:
        slots.append(None)  # virtual bye

    total = len(slots)
    pairings: List[Tuple[int, int, int]] = []

    for round_num in range(1, total):
        for i in range(total // 2):
            a = slots[i]
            b = slots[total - 1 - i]
            if a is None or b is None:
                continue
            pairings.append((round_num, a, b))
        # Fix the first entry; last rotating entry moves to second position
        slots = [slots[0], slots[-1]] + slots[1:-1]

    return pairings


def round_robin_round_count(n: int) -> int:
    if n < 2:
        return 0
    return n - 1 if n % 2 == 0 else n


def _round_robin(
    participants: List[str],
    *,
    phase: MatchPhase,
    tournament_id: Optional[str],
    category_id: Optional[str],
    best_of_sets: int,
    start_number: int,
    group_name: Optional[str] = None,
) -> List[Match]:
    matches: List[Match] = []
    number = start_number
    for round_num, idx_a, idx_b in round_robin_pairings(len(participants)):
        matches.append(
            Match(
                tournament_id=tournament_id,
                category_id=category_id,
                phase=phase,
                round=round_num,
                group_name=group_name,
                match_number=number,
                player1_id=participants[idx_a],
                player2_id=participants[idx_b],
                status=MatchStatus.pending,
                best_of_sets=best_of_sets,
            )
        )
        number += 1
    return matches


def generate_round_robin_matches(
    roster: Sequence[str],
    double: bool = False,
    *,
    tournament_id: Optional[str] = None,
    category_id: Optional[str] = None,
    best_of_sets: int = DEFAULT_BEST_OF_SETS,
    start_number: int = 1,
) -> List[Match]:
    """
    League draw: every pair meets once (single) or twice with home/away
    reversed (double). The mirrored pass reuses the base round structure,
    renumbered as base_rounds + k.
    """
    participants = validate_roster(roster)

    matches = _round_robin(
        participants,
        phase=MatchPhase.league,
        tournament_id=tournament_id,
        category_id=category_id,
        best_of_sets=best_of_sets,
        start_number=start_number,
    )

    if double:
        base_rounds = round_robin_round_count(len(participants))
        number = start_number + len(matches)
        mirrored: List[Match] = []
        for m in matches:
            mirrored.append(
                Match(
                    tournament_id=tournament_id,
                    category_id=category_id,
                    phase=MatchPhase.league,
                    round=base_rounds + m.round,
                    match_number=number,
                    player1_id=m.player2_id,
                    player2_id=m.player1_id,
                    status=MatchStatus.pending,
                    best_of_sets=best_of_sets,
                )
            )
            number += 1
        matches.extend(mirrored)

    logger.info(
        f"Generated {len(matches)} {'double ' if double else ''}round-robin matches "
        f"for {len(participants)} participants (category={category_id})"
    )
    return matches


def assign_groups(
    roster: Sequence[str],
    num_groups: int,
    rng: Optional[random.Random] = None,
) -> "OrderedDict[str, List[str]]":
    """
    Shuffle the roster and deal it into groups: entry k goes to group k mod num_groups.

    Dealing (rather than slicing) keeps group sizes within one of each other.
    """
    if num_groups < 1:
        raise ConfigurationError(f"num_groups must be >= 1, got {num_groups}")
    if num_groups > len(GROUP_LABELS):
        raise ConfigurationError(f"num_groups must be <= {len(GROUP_LABELS)}, got {num_groups}")

    shuffled = list(roster)
    (rng or random.Random()).shuffle(shuffled)

    groups: "OrderedDict[str, List[str]]" = OrderedDict((GROUP_LABELS[i], []) for i in range(num_groups))
    for index, participant in enumerate(shuffled):
        groups[GROUP_LABELS[index % num_groups]].append(participant)
    return groups


def validate_group_config(participant_count: int, num_groups: int, qualifiers_per_group: int) -> None:
    if num_groups < 1:
        raise ConfigurationError(f"num_groups must be >= 1, got {num_groups}")
    if num_groups > len(GROUP_LABELS):
        raise ConfigurationError(f"num_groups must be <= {len(GROUP_LABELS)}, got {num_groups}")
    if participant_count < MIN_GROUP_SIZE * num_groups:
        raise ConfigurationError(
            f"{num_groups} groups need at least {MIN_GROUP_SIZE * num_groups} participants, "
            f"got {participant_count}"
        )
    smallest_group = participant_count // num_groups
    if qualifiers_per_group < 1:
        raise ConfigurationError(f"qualifiers_per_group must be >= 1, got {qualifiers_per_group}")
    if qualifiers_per_group > smallest_group:
        raise ConfigurationError(
            f"qualifiers_per_group ({qualifiers_per_group}) exceeds the smallest group size ({smallest_group})"
        )
    total_qualified = num_groups * qualifiers_per_group
    if total_qualified < 2:
        raise ConfigurationError(f"At least 2 qualifiers are needed for a knockout stage, got {total_qualified}")
    if total_qualified > MAX_BRACKET_SIZE:
        raise ConfigurationError(
            f"{total_qualified} qualifiers exceed the largest supported bracket ({MAX_BRACKET_SIZE})"
        )


def generate_group_matches(
    roster: Sequence[str],
    num_groups: int,
    qualifiers_per_group: int,
    *,
    tournament_id: Optional[str] = None,
    category_id: Optional[str] = None,
    best_of_sets: int = DEFAULT_BEST_OF_SETS,
    rng: Optional[random.Random] = None,
    start_number: int = 1,
) -> List[Match]:
    """
    Group stage draw: deal the roster into groups A, B, C, ... and play a
    single round robin inside each group. Match numbers run across all
    groups. Only group matches are returned; the knockout tree is built
    by bracket_topology.build_placeholder_bracket.
    """
    participants = validate_roster(roster)
    validate_group_config(len(participants), num_groups, qualifiers_per_group)

    groups = assign_groups(participants, num_groups, rng)

    matches: List[Match] = []
    number = start_number
    for label, members in groups.items():
        group_matches = _round_robin(
            members,
            phase=MatchPhase.group,
            tournament_id=tournament_id,
            category_id=category_id,
            best_of_sets=best_of_sets,
            start_number=number,
            group_name=label,
        )
        matches.extend(group_matches)
        number += len(group_matches)

    logger.info(
        f"Generated {len(matches)} group stage matches across {num_groups} groups "
        f"({qualifiers_per_group} qualify per group, category={category_id})"
    )
    return matches


def generate_knockout_matches(
    roster: Sequence[str],
    *,
    tournament_id: Optional[str] = None,
    category_id: Optional[str] = None,
    best_of_sets: int = DEFAULT_BEST_OF_SETS,
    final_best_of_sets: int = FINAL_BEST_OF_SETS,
    rng: Optional[random.Random] = None,
) -> List[Match]:
    """
    Straight knockout draw on the smallest power-of-two tree.

    The shuffled roster is seeded in draw order and laid out in bracket
    positions (seed 1 vs seed N). Missing seeds are BYE, so only first
    phase matches can be byes: those get status=bye and the entry is
    already the winner. Later phases are placeholders wired to the
    matches that feed them; phase names come from the bracket size.
    """
    participants = validate_roster(roster)
    shuffled = list(participants)
    (rng or random.Random()).shuffle(shuffled)

    size = padded_size(len(shuffled))
    positions = bracket_positions(size)
    matches = build_elimination_tree(
        size,
        tournament_id=tournament_id,
        category_id=category_id,
        best_of_sets=best_of_sets,
        final_best_of_sets=final_best_of_sets,
    )

    byes = 0
    for k, m in enumerate(matches[: size // 2]):
        seed_a, seed_b = positions[2 * k], positions[2 * k + 1]
        m.player1_id = shuffled[seed_a - 1]
        if seed_b <= len(shuffled):
            m.player2_id = shuffled[seed_b - 1]
        else:
            m.set_source(2, SlotSource.bye())
            m.status = MatchStatus.bye
            m.winner_id = m.player1_id
            byes += 1

    logger.info(
        f"Generated {len(matches)} knockout matches (bracket size {size}, {byes} byes) "
        f"for {len(participants)} participants (category={category_id})"
    )
    return matches


def groups_from_matches(matches: Sequence[Match]) -> Dict[str, List[Match]]:
    """Group-phase matches keyed by group label, in match-number order."""
    groups: Dict[str, List[Match]] = OrderedDict()
    ordered = sorted(
        (m for m in matches if m.phase == MatchPhase.group and m.group_name),
        key=lambda m: (m.group_name, m.match_number),
    )
    for m in ordered:
        groups.setdefault(m.group_name, []).append(m)
    return groups
