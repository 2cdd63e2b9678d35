"""
Error types raised by the recall engine.

Only two conditions are recoverable by callers: bad input (reject and fix the
call site) and optimistic-lock contention (retry later or report per concept).
Store transport errors are never wrapped.
"""

from __future__ import annotations


class RecallError(Exception):
    """Base class for recall engine errors."""
    pass


class InvalidInputError(RecallError, ValueError):
    """Raised when a caller passes a malformed rating, interval or config value."""
    pass


class ConcurrencyExhaustedError(RecallError):
    """Raised when an optimistic-lock update keeps losing the race."""

    def __init__(self, user_id: str, concept_id: str, attempts: int):
        self.user_id = user_id
        self.concept_id = concept_id
        self.attempts = attempts
        super().__init__(
            f"Mastery update for user={user_id} concept={concept_id} "
            f"lost the version race {attempts} times"
        )
