"""Shared domain types, errors and infrastructure helpers."""

from recall.core.errors import ConcurrencyExhaustedError, InvalidInputError, RecallError
from recall.core.models import (
    CardMemoryState,
    CardState,
    CardWithPriority,
    ConceptMasteryRecord,
    MasteryLevel,
    PracticeSession,
    PracticeSessionConfig,
    Rating,
    ReviewCard,
    ReviewOutcome,
    SessionStats,
)
from recall.core.retry import optimistic_retry

__all__ = [
    "RecallError",
    "InvalidInputError",
    "ConcurrencyExhaustedError",
    "Rating",
    "CardState",
    "CardMemoryState",
    "ReviewCard",
    "ReviewOutcome",
    "MasteryLevel",
    "ConceptMasteryRecord",
    "CardWithPriority",
    "PracticeSessionConfig",
    "SessionStats",
    "PracticeSession",
    "optimistic_retry",
]
