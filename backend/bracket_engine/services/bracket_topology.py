"""
Bracket Topology Builder: minimal power-of-two elimination tree.

Leaves are laid out in standard bracket order: seed 1 meets seed N,
seed 2 meets seed N-1, and seeds 1 and 2 sit in opposite halves. Seed
numbers beyond the entry count are BYE, so byes go to the top seeds and
only ever appear in the first phase.

Group qualifiers are seeded pass by pass (all group winners, then all
runners-up, and so on, groups in label order). Each qualifier takes the
free leaf that puts its earliest possible meeting with a qualifier from
its own group as late as possible, lowest seed number first. With two
qualifiers per group, winner and runner-up land in opposite halves and
can only meet in the final.

Later phases: matches 2k-1 and 2k of a phase feed match k of the next
(slot 1 and slot 2 respectively).
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from bracket_engine.models.match import Match
from bracket_engine.services.bracket_rules import (
    DEFAULT_BEST_OF_SETS,
    FINAL_BEST_OF_SETS,
    MAX_BRACKET_SIZE,
    PHASES_BY_BRACKET_SIZE,
    MatchPhase,
    MatchStatus,
)
from bracket_engine.services.errors import ConfigurationError
from bracket_engine.services.slot_source import SlotSource

logger = logging.getLogger(__name__)


def padded_size(entry_count: int) -> int:
    """Smallest power of two >= entry_count (minimum 2)."""
    if entry_count < 2:
        raise ConfigurationError(f"A bracket needs at least 2 entries, got {entry_count}")
    size = 2
    while size < entry_count:
        size *= 2
    if size > MAX_BRACKET_SIZE:
        raise ConfigurationError(
            f"{entry_count} entries exceed the largest supported bracket ({MAX_BRACKET_SIZE})"
        )
    return size


def phases_for_size(size: int) -> List[MatchPhase]:
    if size not in PHASES_BY_BRACKET_SIZE:
        raise ConfigurationError(f"Unsupported bracket size: {size}")
    return list(PHASES_BY_BRACKET_SIZE[size])


def bracket_positions(size: int) -> List[int]:
    """
    Seed numbers in leaf order. Consecutive pairs meet in the first phase.

      4 -> [1, 4, 2, 3]             (1v4), (2v3)
      8 -> [1, 8, 4, 5, 2, 7, 3, 6] (1v8), (4v5), (2v7), (3v6)
    """
    positions = [1]
    while len(positions) < size:
        n = len(positions) * 2
        positions = [seed for s in positions for seed in (s, n + 1 - s)]
    return positions


def meeting_phase(leaf_a: int, leaf_b: int) -> int:
    """1-based phase in which two leaves can first meet (1 = first phase)."""
    return (leaf_a ^ leaf_b).bit_length()


def seed_sources(qualifier_count: int, group_labels: Sequence[str]) -> List[SlotSource]:
    """
    Qualifier slots in seed order.

    2 groups, 4 qualifiers -> [1A, 1B, 2A, 2B]
    3 groups, 6 qualifiers -> [1A, 1B, 1C, 2A, 2B, 2C]
    """
    labels = list(group_labels)
    if not labels:
        raise ConfigurationError("At least one group label is required")
    if len(set(labels)) != len(labels):
        raise ConfigurationError(f"Duplicate group labels: {labels}")

    seeds: List[SlotSource] = []
    position = 1
    while len(seeds) < qualifier_count:
        for label in labels:
            if len(seeds) == qualifier_count:
                break
            seeds.append(SlotSource.group_position(position, label))
        position += 1
    return seeds


def place_qualifiers(qualifier_count: int, group_labels: Sequence[str]) -> List[Optional[SlotSource]]:
    """
    Leaf-indexed qualifier sources for the first phase; None marks a BYE leaf.

    2 groups, 4 qualifiers -> [1A, 2B, 1B, 2A]
    3 groups, 6 qualifiers -> [1A, BYE, 2B, 2C, 1B, BYE, 1C, 2A]
    """
    size = padded_size(qualifier_count)
    positions = bracket_positions(size)
    free = [leaf for leaf in range(size) if positions[leaf] <= qualifier_count]

    leaves: List[Optional[SlotSource]] = [None] * size
    placed: Dict[str, List[int]] = {}
    for source in seed_sources(qualifier_count, group_labels):
        mates = placed.setdefault(source.group_label, [])
        leaf = max(
            free,
            key=lambda candidate: (
                min((meeting_phase(candidate, m) for m in mates), default=size),
                -positions[candidate],
            ),
        )
        free.remove(leaf)
        leaves[leaf] = source
        mates.append(leaf)
    return leaves


def build_elimination_tree(
    size: int,
    *,
    tournament_id: Optional[str] = None,
    category_id: Optional[str] = None,
    best_of_sets: int = DEFAULT_BEST_OF_SETS,
    final_best_of_sets: int = FINAL_BEST_OF_SETS,
) -> List[Match]:
    """
    Empty, fully wired tree for a padded size. The first size/2 matches
    are the first phase, in leaf order; callers fill their slots.
    """
    phases = phases_for_size(size)

    all_matches: List[Match] = []
    previous: List[Match] = []
    for phase in phases:
        is_final = phase == MatchPhase.final
        phase_best_of = max(best_of_sets, final_best_of_sets) if is_final else best_of_sets
        count = size // 2 if not previous else len(previous) // 2

        current = [
            _placeholder(tournament_id, category_id, phase, k + 1, phase_best_of) for k in range(count)
        ]
        for k, m in enumerate(current if previous else []):
            _wire(previous[2 * k], m, 1)
            _wire(previous[2 * k + 1], m, 2)

        all_matches.extend(current)
        previous = current
    return all_matches


def build_placeholder_bracket(
    qualifier_count: int,
    group_labels: Sequence[str],
    *,
    tournament_id: Optional[str] = None,
    category_id: Optional[str] = None,
    best_of_sets: int = DEFAULT_BEST_OF_SETS,
    final_best_of_sets: int = FINAL_BEST_OF_SETS,
) -> List[Match]:
    """
    Materialize the whole elimination tree with symbolic slot sources.

    No participant ids are set; reconciliation fills them in as groups
    finish and matches are decided. Match numbers restart at 1 in every
    phase; round is 1 for every match (the phase encodes depth).
    """
    leaves = place_qualifiers(qualifier_count, group_labels)
    size = len(leaves)
    matches = build_elimination_tree(
        size,
        tournament_id=tournament_id,
        category_id=category_id,
        best_of_sets=best_of_sets,
        final_best_of_sets=final_best_of_sets,
    )

    for k, m in enumerate(matches[: size // 2]):
        m.set_source(1, leaves[2 * k])
        m.set_source(2, leaves[2 * k + 1] or SlotSource.bye())

    logger.info(
        f"Built placeholder bracket: {qualifier_count} qualifiers, size {size}, "
        f"phases {[p.value for p in phases_for_size(size)]}, {len(matches)} matches (category={category_id})"
    )
    return matches


def _placeholder(
    tournament_id: Optional[str],
    category_id: Optional[str],
    phase: MatchPhase,
    match_number: int,
    best_of_sets: int,
) -> Match:
    return Match(
        tournament_id=tournament_id,
        category_id=category_id,
        phase=phase,
        round=1,
        match_number=match_number,
        status=MatchStatus.pending,
        best_of_sets=best_of_sets,
    )


def _wire(upstream: Match, downstream: Match, slot: int) -> None:
    upstream.next_match_id = downstream.id
    upstream.next_match_slot = slot
    downstream.set_source(slot, SlotSource.winner_of(upstream.id))


def bracket_shape(matches: Sequence[Match]) -> Dict[str, int]:
    """Match count per elimination phase, e.g. {"semifinal": 2, "final": 1}."""
    shape: Dict[str, int] = {}
    for m in matches:
        key = MatchPhase(m.phase).value
        shape[key] = shape.get(key, 0) + 1
    return shape
