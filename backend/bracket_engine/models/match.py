from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from sqlalchemy import JSON, String, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel

from bracket_engine.services.bracket_rules import DEFAULT_BEST_OF_SETS, MatchPhase, MatchStatus
from bracket_engine.services.slot_source import SlotSource


def new_match_id() -> str:
    return uuid4().hex


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint(
            "tournament_id",
            "category_id",
            "phase",
            "round",
            "match_number",
            name="uq_match_category_phase_number",
        ),
    )

    # Assigned at construction so generators can wire next_match_id before persisting
    id: str = Field(default_factory=new_match_id, primary_key=True)
    tournament_id: str = Field(index=True)
    category_id: str = Field(index=True)
    phase: MatchPhase = Field(sa_column=Column(String, nullable=False))
    round: int = Field(default=1)
    group_name: Optional[str] = Field(default=None)  # only for phase == group
    match_number: int

    # Participants (null = not yet resolved, unless the slot source is BYE)
    player1_id: Optional[str] = Field(default=None)
    player2_id: Optional[str] = Field(default=None)

    # SlotSource JSON; inert once the matching player id is set
    player1_source: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    player2_source: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    winner_id: Optional[str] = Field(default=None)
    status: MatchStatus = Field(default=MatchStatus.pending, sa_column=Column(String, nullable=False))
    sets: Optional[List[Dict[str, int]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    best_of_sets: int = Field(default=DEFAULT_BEST_OF_SETS)

    # Bracket edge: winner of this match feeds slot next_match_slot of next_match_id
    next_match_id: Optional[str] = Field(default=None, foreign_key="match.id")
    next_match_slot: Optional[int] = Field(default=None)  # 1 | 2

    table_number: Optional[int] = Field(default=None)
    needs_attention: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    def player_id(self, slot: int) -> Optional[str]:
        _check_slot(slot)
        return self.player1_id if slot == 1 else self.player2_id

    def set_player_id(self, slot: int, participant_id: Optional[str]) -> None:
        _check_slot(slot)
        if slot == 1:
            self.player1_id = participant_id
        else:
            self.player2_id = participant_id

    def source(self, slot: int) -> Optional[SlotSource]:
        _check_slot(slot)
        return SlotSource.from_json(self.player1_source if slot == 1 else self.player2_source)

    def set_source(self, slot: int, source: Optional[SlotSource]) -> None:
        _check_slot(slot)
        value = source.to_json() if source is not None else None
        if slot == 1:
            self.player1_source = value
        else:
            self.player2_source = value

    def is_bye_slot(self, slot: int) -> bool:
        """Slot is permanently empty: BYE source and no participant."""
        if self.player_id(slot) is not None:
            return False
        src = self.source(slot)
        return src is not None and src.is_bye

    @property
    def participants(self) -> Tuple[Optional[str], Optional[str]]:
        return self.player1_id, self.player2_id

    @property
    def is_decided(self) -> bool:
        return self.winner_id is not None and self.status in (MatchStatus.completed, MatchStatus.bye)


def _check_slot(slot: int) -> None:
    if slot not in (1, 2):
        raise ValueError(f"slot must be 1 or 2, got {slot}")
