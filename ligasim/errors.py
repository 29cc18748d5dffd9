from __future__ import annotations

from typing import Optional


class CompetitionError(Exception):
    """Base class for everything the engine raises on purpose."""


class ConfigurationError(CompetitionError, ValueError):
    """Setup rejected before any fixture is generated."""


class UnsupportedBracketSize(ConfigurationError):
    def __init__(self, size: int):
        super().__init__(f"No knockout stage for {size} competitors")
        self.size = size


class InvariantViolation(CompetitionError):
    pass


class UnresolvedTieError(InvariantViolation):
    """A knockout tie reached progression without a decidable winner."""

    def __init__(self, match_id: str, reason: str):
        super().__init__(f"Tie {match_id} cannot be resolved: {reason}")
        self.match_id = match_id
        self.reason = reason


class InvalidResultError(CompetitionError, ValueError):
    def __init__(self, message: str, match_id: Optional[str] = None):
        super().__init__(message)
        self.match_id = match_id


class UnknownMatchError(CompetitionError, KeyError):
    def __init__(self, match_id: str):
        super().__init__(match_id)
        self.match_id = match_id

    def __str__(self) -> str:
        return f"Unknown match: {self.match_id}"
