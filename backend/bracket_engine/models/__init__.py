from bracket_engine.models.bracket_config import BracketConfig
from bracket_engine.models.match import Match

__all__ = [
    "BracketConfig",
    "Match",
]
