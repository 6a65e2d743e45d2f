"""
Slot sources: how an unresolved knockout slot will be filled.

A slot is in exactly one of four states:
  GROUP: "Nth place of group X", filled once the group finishes
  MATCH: "winner of match <id>", filled when that match is decided
  BYE: permanently empty; the opponent advances without playing
  resolved: player id present; any stored source is historical only

Sources are stored as small JSON objects on the match row. The legacy
display codes ("group_1A", "match_<id>", "BYE") are rendered from the
structured value, never parsed back.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

BYE_CODE = "BYE"


class SourceKind(str, Enum):
    GROUP = "group"
    MATCH = "match"
    BYE = "bye"


@dataclass(frozen=True)
class SlotSource:
    kind: SourceKind
    group_label: Optional[str] = None
    position: Optional[int] = None
    match_id: Optional[str] = None

    @classmethod
    def group_position(cls, position: int, group_label: str) -> "SlotSource":
        if position < 1:
            raise ValueError(f"group position must be >= 1, got {position}")
        return cls(kind=SourceKind.GROUP, group_label=group_label, position=position)

    @classmethod
    def winner_of(cls, match_id: str) -> "SlotSource":
        return cls(kind=SourceKind.MATCH, match_id=match_id)

    @classmethod
    def bye(cls) -> "SlotSource":
        return cls(kind=SourceKind.BYE)

    @property
    def is_bye(self) -> bool:
        return self.kind == SourceKind.BYE

    @property
    def code(self) -> str:
        if self.kind == SourceKind.GROUP:
            return f"group_{self.position}{self.group_label}"
        if self.kind == SourceKind.MATCH:
            return f"match_{self.match_id}"
        return BYE_CODE

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value}
        if self.kind == SourceKind.GROUP:
            data["group"] = self.group_label
            data["position"] = self.position
        elif self.kind == SourceKind.MATCH:
            data["match_id"] = self.match_id
        return data

    @classmethod
    def from_json(cls, data: Optional[Dict[str, Any]]) -> Optional["SlotSource"]:
        if not data:
            return None
        kind = SourceKind(data["kind"])
        if kind == SourceKind.GROUP:
            return cls.group_position(int(data["position"]), str(data["group"]))
        if kind == SourceKind.MATCH:
            return cls.winner_of(str(data["match_id"]))
        return cls.bye()

    def __str__(self) -> str:
        return self.code
