"""
FSRS Card Scheduler.

Converts a card's memory state plus a review rating into the next memory state
and due date. Pure computation: no I/O, no shared mutable state.

State transitions:
- new -> learning (Again/Hard/Good, short step) or review (Easy)
- learning -> learning (Again, or Hard below graduation) or review
- review -> relearning (Again, counts a lapse) or review (stability grows)
- relearning -> relearning (Again) or review (recovered)

Forgetting curve (FSRS power form):
    R(t) = (1 + t / (9 * S)) ** -1
so the interval that lands on a target retention r is
    t = 9 * S * (1 / r - 1)
which equals S at r = 0.9.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from recall.core.errors import InvalidInputError
from recall.core.models import (
    DECAY_FACTOR,
    CardMemoryState,
    CardState,
    Rating,
    forgetting_curve,
)

if TYPE_CHECKING:
    from config import Settings

MINUTES_PER_DAY = 24 * 60


@dataclass
class SchedulerConfig:
    """Tunable FSRS coefficients. Defaults keep easy > good > hard > again."""

    # First-review values per rating
    initial_stability: dict[Rating, float] = field(default_factory=lambda: {
        Rating.AGAIN: 0.5,  # review in 12 hours
        Rating.HARD: 1.0,
        Rating.GOOD: 3.0,
        Rating.EASY: 7.0,   # review in 1 week
    })
    initial_difficulty: dict[Rating, float] = field(default_factory=lambda: {
        Rating.AGAIN: 0.7,
        Rating.HARD: 0.6,
        Rating.GOOD: 0.3,
        Rating.EASY: 0.1,
    })

    # Difficulty drift per rating, clamped to [min_difficulty, max_difficulty]
    difficulty_delta: dict[Rating, float] = field(default_factory=lambda: {
        Rating.AGAIN: 0.15,
        Rating.HARD: 0.08,
        Rating.GOOD: -0.05,
        Rating.EASY: -0.10,
    })
    min_difficulty: float = 0.1
    max_difficulty: float = 1.0

    # Stability growth on successful recall in review state
    recall_growth: dict[Rating, float] = field(default_factory=lambda: {
        Rating.HARD: 0.2,
        Rating.GOOD: 1.5,
        Rating.EASY: 2.5,
    })
    easy_bonus: float = 1.3

    # Stability shrink on Again
    forget_factor: float = 0.2
    learning_forget_factor: float = 0.5
    minimum_stability: float = 0.5

    # Learning / relearning
    graduation_stability: float = 1.0
    learning_steps_minutes: dict[Rating, float] = field(default_factory=lambda: {
        Rating.AGAIN: 1,
        Rating.HARD: 6,
        Rating.GOOD: 10,
    })

    maximum_interval: float = 36500
    request_retention: float = 0.9

    @classmethod
    def from_settings(cls, settings: Settings) -> SchedulerConfig:
        return cls(
            maximum_interval=settings.fsrs_maximum_interval,
            request_retention=settings.fsrs_desired_retention,
        )


@dataclass
class _Transition:
    state: CardState
    stability: float
    difficulty: float
    step_minutes: float | None = None  # None = schedule from target retention


# =============================================================================
# Curve helpers
# =============================================================================

def retrievability(stability: float, elapsed_days: float) -> float:
    """Recall probability (0-1] after ``elapsed_days`` for a memory of ``stability`` days."""
    return forgetting_curve(elapsed_days, stability)


def next_interval(
    stability: float,
    target_retention: float,
    maximum_interval: float = 36500,
) -> float:
    """Days until retrievability falls to ``target_retention``."""
    interval = DECAY_FACTOR * stability * (1.0 / target_retention - 1.0)
    return min(maximum_interval, max(0.0, interval))


def is_due(card: CardMemoryState, now: datetime | None = None) -> bool:
    """Check if a card is due for review."""
    return card.due_at <= (now or datetime.now(UTC))


def rating_from_response(
    is_correct: bool,
    response_time_ms: int,
    expected_time_ms: int = 15000,
    hint_used: bool = False,
) -> Rating:
    """
    Convert an answered question into a review rating.

    Factors:
    - Correctness (primary)
    - Response time relative to expected
    - Hint usage
    """
    if not is_correct:
        return Rating.AGAIN

    # Time ratio: <0.5 = fast, >1.5 = slow
    time_ratio = response_time_ms / expected_time_ms if expected_time_ms > 0 else 1.0

    if hint_used:
        return Rating.HARD
    elif time_ratio < 0.5:
        return Rating.EASY
    elif time_ratio < 1.5:
        return Rating.GOOD
    else:
        return Rating.HARD


# =============================================================================
# Validation
# =============================================================================

def _coerce_rating(rating: Rating | int) -> Rating:
    # bool is an int subclass; True would silently mean Again
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InvalidInputError(f"rating must be an int in 1-4, got {rating!r}")
    if isinstance(rating, Rating):
        return rating
    try:
        return Rating(rating)
    except ValueError:
        raise InvalidInputError(f"rating must be in 1-4, got {rating}") from None


def _check_real(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError(f"{name} must be a finite number, got {value!r}")
    return float(value)


def _validate(
    card: CardMemoryState,
    rating: Rating | int,
    elapsed_days: float,
    target_retention: float,
) -> tuple[Rating, float, float]:
    rating = _coerce_rating(rating)

    elapsed_days = _check_real("elapsed_days", elapsed_days)
    if elapsed_days < 0:
        raise InvalidInputError(f"elapsed_days must be >= 0, got {elapsed_days}")

    target_retention = _check_real("target_retention", target_retention)
    if not 0.0 < target_retention < 1.0:
        raise InvalidInputError(f"target_retention must be in (0, 1), got {target_retention}")

    if card.state != CardState.NEW and not card.stability > 0:
        raise InvalidInputError(f"stability must be > 0 for a {card.state.value} card, got {card.stability}")

    return rating, elapsed_days, target_retention


# =============================================================================
# Scheduler
# =============================================================================

class CardScheduler:
    """
    FSRS spaced repetition scheduler.

    Calculates the next memory state and review interval from the current
    state, a rating and the desired retention rate.
    """

    def __init__(self, config: SchedulerConfig | None = None):
        """
        Initialize scheduler.

        Args:
            config: Custom coefficients (uses defaults if None)
        """
        self.config = config or SchedulerConfig()

    def review(
        self,
        card: CardMemoryState,
        rating: Rating | int,
        elapsed_days: float,
        target_retention: float | None = None,
        now: datetime | None = None,
    ) -> CardMemoryState:
        """
        Process a review and return the new memory state.

        Args:
            card: Current memory state
            rating: 1-4 (Again, Hard, Good, Easy)
            elapsed_days: Days since the last review, computed by the caller
            target_retention: Desired recall probability at the due date
            now: Review instant (defaults to the current UTC time)

        Returns:
            New CardMemoryState; the input is not modified

        Raises:
            InvalidInputError: rating, elapsed_days or target_retention out of range
        """
        if target_retention is None:
            target_retention = self.config.request_retention
        rating, elapsed_days, target_retention = _validate(card, rating, elapsed_days, target_retention)
        now = now or datetime.now(UTC)

        if card.state == CardState.NEW:
            transition = self._from_new(rating)
        elif card.state in (CardState.LEARNING, CardState.RELEARNING):
            transition = self._from_learning(card, rating)
        else:
            transition = self._from_review(card, rating, elapsed_days)

        if transition.step_minutes is not None:
            scheduled_days = transition.step_minutes / MINUTES_PER_DAY
        else:
            scheduled_days = next_interval(
                transition.stability, target_retention, self.config.maximum_interval
            )

        lapsed = card.state == CardState.REVIEW and rating == Rating.AGAIN

        return replace(
            card,
            state=transition.state,
            stability=transition.stability,
            difficulty=transition.difficulty,
            due_at=now + timedelta(days=scheduled_days),
            scheduled_interval_days=scheduled_days,
            elapsed_days=0.0,
            reps=card.reps + 1,
            lapses=card.lapses + 1 if lapsed else card.lapses,
            last_reviewed_at=now,
        )

    def preview_intervals(
        self,
        card: CardMemoryState,
        elapsed_days: float = 0.0,
        target_retention: float | None = None,
        now: datetime | None = None,
    ) -> dict[Rating, str]:
        """Human-readable next interval for each rating (for rating buttons)."""
        now = now or datetime.now(UTC)
        return {
            rating: format_interval(
                self.review(card, rating, elapsed_days, target_retention, now).scheduled_interval_days
            )
            for rating in Rating
        }

    # -------------------------------------------------------------------------
    # Per-state transitions
    # -------------------------------------------------------------------------

    def _from_new(self, rating: Rating) -> _Transition:
        stability = self.config.initial_stability[rating]
        difficulty = self.config.initial_difficulty[rating]

        if rating == Rating.EASY:
            return _Transition(CardState.REVIEW, stability, difficulty)

        return _Transition(
            CardState.LEARNING, stability, difficulty, self.config.learning_steps_minutes[rating]
        )

    def _from_learning(self, card: CardMemoryState, rating: Rating) -> _Transition:
        cfg = self.config
        difficulty = self._next_difficulty(card.difficulty, rating)

        if rating == Rating.AGAIN:
            stability = self._shrink(card.stability, cfg.learning_forget_factor)
            return _Transition(card.state, stability, difficulty, cfg.learning_steps_minutes[Rating.AGAIN])

        if rating == Rating.HARD:
            if card.stability >= cfg.graduation_stability:
                return _Transition(CardState.REVIEW, card.stability, difficulty)
            return _Transition(card.state, card.stability, difficulty, cfg.learning_steps_minutes[Rating.HARD])

        stability = max(card.stability, cfg.graduation_stability)
        if rating == Rating.EASY:
            stability *= cfg.easy_bonus
        return _Transition(CardState.REVIEW, min(stability, cfg.maximum_interval), difficulty)

    def _from_review(self, card: CardMemoryState, rating: Rating, elapsed_days: float) -> _Transition:
        cfg = self.config
        difficulty = self._next_difficulty(card.difficulty, rating)

        if rating == Rating.AGAIN:
            stability = self._shrink(card.stability, cfg.forget_factor)
            return _Transition(
                CardState.RELEARNING, stability, difficulty, cfg.learning_steps_minutes[Rating.AGAIN]
            )

        stability = self._next_recall_stability(card.stability, card.difficulty, rating, elapsed_days)
        return _Transition(CardState.REVIEW, stability, difficulty)

    # -------------------------------------------------------------------------
    # Formulas
    # -------------------------------------------------------------------------

    def _next_difficulty(self, difficulty: float, rating: Rating) -> float:
        new_d = difficulty + self.config.difficulty_delta[rating]
        return max(self.config.min_difficulty, min(self.config.max_difficulty, new_d))

    def _shrink(self, stability: float, factor: float) -> float:
        # Floor, but never above where the card already was
        return min(stability, max(self.config.minimum_stability, stability * factor))

    def _next_recall_stability(
        self, stability: float, difficulty: float, rating: Rating, elapsed_days: float
    ) -> float:
        """New stability after a successful recall from review state."""
        # Harder cards grow slower: 1.0 (easiest) down to 0.5 (hardest)
        difficulty = max(self.config.min_difficulty, min(self.config.max_difficulty, difficulty))
        difficulty_penalty = 1.0 - difficulty * 0.5
        # Recalling close to forgetting strengthens memory more
        review_bonus = 1.0 + (1.0 - retrievability(stability, elapsed_days)) * 0.5

        growth = self.config.recall_growth[rating] * difficulty_penalty * review_bonus
        new_s = stability * (1.0 + growth)
        if rating == Rating.EASY:
            new_s *= self.config.easy_bonus

        return min(new_s, self.config.maximum_interval)


def format_interval(days: float) -> str:
    """Format an interval for display: 1m, 6h, 3d, 2mo, 1.5y."""
    if days < 1 / 24:
        return f"{max(1, round(days * MINUTES_PER_DAY))}m"
    if days < 1:
        return f"{round(days * 24)}h"
    if days < 30:
        return f"{round(days)}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    return f"{days / 365:.1f}y"


def schedule(
    card: CardMemoryState,
    rating: Rating | int,
    elapsed_days: float,
    target_retention: float | None = None,
    *,
    now: datetime | None = None,
    config: SchedulerConfig | None = None,
) -> CardMemoryState:
    """Schedule ``card`` after a review rated ``rating``. See ``CardScheduler.review``."""
    return CardScheduler(config).review(card, rating, elapsed_days, target_retention, now)


def preview_intervals(
    card: CardMemoryState,
    elapsed_days: float = 0.0,
    target_retention: float | None = None,
    now: datetime | None = None,
    config: SchedulerConfig | None = None,
) -> dict[Rating, str]:
    """Interval labels for all four ratings. See ``CardScheduler.preview_intervals``."""
    return CardScheduler(config).preview_intervals(card, elapsed_days, target_retention, now)
