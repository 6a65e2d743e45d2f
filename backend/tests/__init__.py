# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from bracket_engine.models.bracket_config import BracketConfig  # noqa: F401
from bracket_engine.models.match import Match  # noqa: F401
