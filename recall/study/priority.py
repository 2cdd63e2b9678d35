"""
Session Priority Scorer.

Assigns an urgency score to each candidate card. Higher = more urgent.

Priority order produced by the default weights:
1. Overdue cards (more overdue first)
2. Cards due today
3. Cards from low-mastery lessons
4. New cards
5. Recently reviewed cards that are not due yet
Struggling cards (many lapses) get an extra nudge on top.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from recall.core.models import CardState, CardWithPriority, ReviewCard

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass
class PriorityConfig:
    """Priority weights and thresholds for card selection."""

    due_today: float = 100
    overdue: float = 150
    overdue_per_day: float = 5
    overdue_cap: float = 50
    low_mastery: float = 80
    low_mastery_threshold: float = 0.4  # Below this a lesson is "weak"
    new_card: float = 40
    recently_reviewed: float = 10
    lapse_threshold: int = 2
    lapse_per_count: float = 10
    lapse_cap: float = 30
    default_lesson_mastery: float = 0.5  # Used when a lesson has no mastery yet


def days_until_due(card: ReviewCard, now: datetime) -> int:
    """Whole days until the card is due; 0 for later today, negative when overdue."""
    delta = (card.memory.due_at - now).total_seconds()
    return math.floor(delta / SECONDS_PER_DAY)


def score(
    card: ReviewCard,
    lesson_mastery: float,
    now: datetime | None = None,
    config: PriorityConfig | None = None,
) -> float:
    """
    Calculate priority score for a card.

    Args:
        card: Candidate card
        lesson_mastery: Mastery snapshot (0-1) for the card's lesson
        now: Reference instant (defaults to the current UTC time)
        config: Weights (uses defaults if None)

    Returns:
        Finite priority score; deterministic for identical inputs
    """
    cfg = config or PriorityConfig()
    now = now or datetime.now(UTC)

    if not math.isfinite(lesson_mastery):
        lesson_mastery = cfg.default_lesson_mastery
    lesson_mastery = max(0.0, min(1.0, lesson_mastery))

    total = 0.0
    days = days_until_due(card, now)

    # Due today or overdue
    if days <= 0:
        total += cfg.overdue if days < 0 else cfg.due_today
        # Extra weight for more overdue cards
        total += min(abs(days) * cfg.overdue_per_day, cfg.overdue_cap)

    # Low mastery bonus
    if lesson_mastery < cfg.low_mastery_threshold:
        total += cfg.low_mastery * (1 - lesson_mastery)

    if card.memory.state == CardState.NEW:
        total += cfg.new_card

    # Reviewed before but not due: small bump, well below any due card
    if days > 0 and card.memory.last_reviewed_at is not None:
        total += cfg.recently_reviewed

    # Struggling cards
    if card.memory.lapses > cfg.lapse_threshold:
        total += min(card.memory.lapses * cfg.lapse_per_count, cfg.lapse_cap)

    return float(total)


def build_mastery_map(entries: Iterable[tuple[str, int, float]]) -> dict[str, float]:
    """Create a topic_key -> mastery lookup from (course_id, lesson_index, mastery) rows."""
    return {f"{course_id}:{lesson_index}": mastery for course_id, lesson_index, mastery in entries}


def enrich(
    card: ReviewCard,
    mastery_map: dict[str, float],
    now: datetime | None = None,
    config: PriorityConfig | None = None,
) -> CardWithPriority:
    """Annotate a card with its topic key, lesson mastery and priority score."""
    cfg = config or PriorityConfig()
    topic_key = card.topic_key
    lesson_mastery = mastery_map.get(topic_key, cfg.default_lesson_mastery)

    return CardWithPriority(
        card=card,
        topic_key=topic_key,
        lesson_mastery=lesson_mastery,
        priority_score=score(card, lesson_mastery, now, cfg),
    )
