"""
Bracket engine errors.

Services raise these; routes translate them to HTTP status codes.
All derive from ValueError so callers that only know about ValueError
keep working.
"""


class BracketError(ValueError):
    """Base class for all engine errors."""


class ConfigurationError(BracketError):
    """Roster or format parameters cannot produce a valid draw."""


class InvalidResultError(BracketError):
    """A submitted result is inconsistent with the match it targets."""


class BracketLockedError(BracketError):
    """The draw cannot be regenerated because play has already started."""


class MatchNotFoundError(BracketError, LookupError):
    """No match with the given id exists in the requested scope."""
