from datetime import datetime
from typing import Optional

from sqlalchemy import String, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel

from bracket_engine.services.bracket_rules import (
    DEFAULT_BEST_OF_SETS,
    DEFAULT_QUALIFIERS_PER_GROUP,
    BracketFormat,
)


class BracketConfig(SQLModel, table=True):
    """Format selection for one (tournament, category) draw."""

    __table_args__ = (SAUniqueConstraint("tournament_id", "category_id", name="uq_bracket_config_category"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: str = Field(index=True)
    category_id: str = Field(index=True)
    format: BracketFormat = Field(sa_column=Column(String, nullable=False))
    num_groups: Optional[int] = Field(default=None)  # group_stage_knockout only
    qualifiers_per_group: int = Field(default=DEFAULT_QUALIFIERS_PER_GROUP)
    best_of_sets: int = Field(default=DEFAULT_BEST_OF_SETS)
    participant_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
