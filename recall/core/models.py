"""
Core Domain Models.

Canonical representations shared by the scheduler, the session builder and the
concept mastery updater:

- Rating / CardState: review grade and card lifecycle enums
- CardMemoryState: FSRS memory state for one (user, card)
- ReviewCard: a card plus the course/lesson it belongs to
- ConceptMasteryRecord: per (user, concept) mastery with a version counter
- CardWithPriority / PracticeSessionConfig / PracticeSession: session building
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, IntEnum
from typing import TYPE_CHECKING

from recall.core.errors import InvalidInputError

if TYPE_CHECKING:
    from config import Settings


# Forgetting-curve constant: R(t) = (1 + t / (DECAY_FACTOR * S)) ** -1,
# which puts R at exactly 0.9 when t == S.
DECAY_FACTOR = 9.0


def forgetting_curve(elapsed_days: float, stability: float) -> float:
    """Probability of recall after ``elapsed_days`` for a memory of ``stability`` days."""
    if stability <= 0:
        return 0.0
    return 1.0 / (1.0 + max(0.0, elapsed_days) / (DECAY_FACTOR * stability))


class Rating(IntEnum):
    """Review grade, ordinal 1-4."""

    AGAIN = 1  # Complete failure
    HARD = 2   # Correct but difficult
    GOOD = 3   # Correct with normal effort
    EASY = 4   # Correct with little effort

    @property
    def label(self) -> str:
        return self.name.title()


class CardState(str, Enum):
    """Card lifecycle. There is no terminal state; cards cycle indefinitely."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


@dataclass
class CardMemoryState:
    """Memory state for one (user, card). Mutated only by the scheduler."""

    state: CardState = CardState.NEW
    stability: float = 1.0              # Days until recall drops to 90%
    difficulty: float = 0.3             # 0.1 (easy) to 1.0 (hard)
    due_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    scheduled_interval_days: float = 0.0
    elapsed_days: float = 0.0           # Set by the caller at review time
    reps: int = 0
    lapses: int = 0
    last_reviewed_at: datetime | None = None

    @classmethod
    def new(cls, now: datetime | None = None) -> CardMemoryState:
        """A freshly created card, due immediately."""
        created = now or datetime.now(UTC)
        return cls(state=CardState.NEW, due_at=created)

    @property
    def retrievability(self) -> float:
        """Current recall probability (0-1) at ``elapsed_days``."""
        return forgetting_curve(self.elapsed_days, self.stability)


@dataclass
class ReviewCard:
    """A reviewable card and the lesson it was generated from."""

    card_id: str
    course_id: str
    lesson_index: int
    memory: CardMemoryState = field(default_factory=CardMemoryState.new)
    concept_ids: list[str] = field(default_factory=list)

    @property
    def topic_key(self) -> str:
        """Composite course+lesson key used for interleaving."""
        return f"{self.course_id}:{self.lesson_index}"


@dataclass
class ReviewOutcome:
    """Transient input for a single review."""

    rating: Rating
    elapsed_days: float = 0.0
    target_retention: float = 0.9


class MasteryLevel(str, Enum):
    """
    Mastery level categorization.

    Buckets a 0-1 concept mastery score for progress displays.
    """

    BEGINNER = "beginner"          # 0-19%
    DEVELOPING = "developing"      # 20-39%
    INTERMEDIATE = "intermediate"  # 40-59%
    ADVANCED = "advanced"          # 60-79%
    MASTERED = "mastered"          # 80-100%

    @classmethod
    def from_score(cls, score: float) -> MasteryLevel:
        """
        Convert a 0-1 mastery score to a level.

        Args:
            score: Mastery score between 0 and 1

        Returns:
            Corresponding MasteryLevel
        """
        if score >= 0.8:
            return cls.MASTERED
        elif score >= 0.6:
            return cls.ADVANCED
        elif score >= 0.4:
            return cls.INTERMEDIATE
        elif score >= 0.2:
            return cls.DEVELOPING
        else:
            return cls.BEGINNER

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.title()


@dataclass
class ConceptMasteryRecord:
    """
    Mastery of one concept for one user.

    ``total_exposures`` doubles as the optimistic-lock version: every write
    increments it, and writers condition on the value they read.
    """

    user_id: str
    concept_id: str
    mastery_level: float = 0.0
    peak_mastery: float = 0.0
    total_exposures: int = 0
    successful_recalls: int = 0
    failed_recalls: int = 0
    last_reviewed_at: datetime | None = None

    @property
    def level(self) -> MasteryLevel:
        return MasteryLevel.from_score(self.mastery_level)

    @property
    def is_decaying(self) -> bool:
        """Had solid mastery once and has since lost more than 30% of it."""
        return self.peak_mastery >= 0.6 and self.mastery_level < self.peak_mastery * 0.7


@dataclass
class CardWithPriority:
    """A card annotated for session building."""

    card: ReviewCard
    topic_key: str
    lesson_mastery: float
    priority_score: float

    @property
    def card_id(self) -> str:
        return self.card.card_id

    @property
    def state(self) -> CardState:
        return self.card.memory.state


@dataclass
class PracticeSessionConfig:
    """Configuration for building an interleaved practice session."""

    card_count: int = 20
    max_consecutive_same_topic: int = 2
    max_new_cards: int = 5
    prioritize_low_mastery: bool = True

    def __post_init__(self) -> None:
        if self.card_count < 0:
            raise InvalidInputError(f"card_count must be >= 0, got {self.card_count}")
        if self.max_consecutive_same_topic < 1:
            raise InvalidInputError(
                f"max_consecutive_same_topic must be >= 1, got {self.max_consecutive_same_topic}"
            )
        if self.max_new_cards < 0:
            raise InvalidInputError(f"max_new_cards must be >= 0, got {self.max_new_cards}")

    @classmethod
    def from_settings(cls, settings: Settings) -> PracticeSessionConfig:
        return cls(
            card_count=settings.session_card_count,
            max_consecutive_same_topic=settings.session_max_consecutive_same_topic,
            max_new_cards=settings.session_max_new_cards,
        )


@dataclass
class SessionStats:
    """Summary of a built practice session."""

    total_cards: int = 0
    due_today: int = 0
    new_cards: int = 0
    from_low_mastery: int = 0
    course_breakdown: dict[str, int] = field(default_factory=dict)

    @property
    def estimated_minutes(self) -> int:
        """Estimate study time (30 seconds per card average)."""
        return max(1, math.ceil(self.total_cards * 30 / 60))


@dataclass
class PracticeSession:
    """Ordered session cards plus their summary."""

    cards: list[CardWithPriority] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
