"""
Interleaved Practice Generator.

Builds mixed practice sessions from cards across courses and lessons:

1. Score every candidate (see ``recall.study.priority``)
2. Select the highest-priority cards, capping new cards
3. Shuffle so that no lesson appears more than N times in a row

Interleaving (ABCBAC rather than AAABBBCCC) improves long-term retention over
blocked practice. The constrained shuffle meets the limit whenever any order
can. When one lesson dominates the pool so much that none can, an order with
the fewest cards over the limit is returned and a warning is logged.
"""

from __future__ import annotations

import math
import random
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from itertools import chain

from loguru import logger

from recall.core.errors import InvalidInputError
from recall.core.models import (
    CardState,
    CardWithPriority,
    PracticeSession,
    PracticeSessionConfig,
    ReviewCard,
    SessionStats,
)
from recall.study.priority import PriorityConfig, enrich

# Repair attempts allowed per card before settling for the best order seen
REPAIR_ITERATIONS_PER_CARD = 3


# =============================================================================
# Stage A: bounded priority selection
# =============================================================================

def select_by_priority(
    cards: Iterable[CardWithPriority],
    config: PracticeSessionConfig,
) -> list[CardWithPriority]:
    """
    Select cards based on priority score.

    New cards are limited to ``max_new_cards``; the ones over the cap are
    deferred and only used to backfill when the session would otherwise fall
    short of ``card_count``. Output size is min(card_count, len(cards)).
    """
    ranked = sorted(cards, key=lambda c: c.priority_score, reverse=True)

    selected: list[CardWithPriority] = []
    deferred_new: list[CardWithPriority] = []
    new_count = 0

    for card in ranked:
        if len(selected) >= config.card_count:
            break

        if card.state == CardState.NEW:
            if new_count >= config.max_new_cards:
                deferred_new.append(card)
                continue
            new_count += 1

        selected.append(card)

    # Relax the new card cap rather than return a short session
    shortfall = config.card_count - len(selected)
    if shortfall > 0 and deferred_new:
        backfill = deferred_new[:shortfall]
        selected.extend(backfill)
        logger.debug(f"Backfilled {len(backfill)} new cards past the cap of {config.max_new_cards}")

    return selected


# =============================================================================
# Stage B: constrained interleaving
# =============================================================================

def count_violations(cards: list[CardWithPriority], max_consecutive: int) -> int:
    """Total number of cards sitting beyond the allowed run length."""
    excess = 0
    run = 0
    previous = None
    for card in cards:
        run = run + 1 if card.topic_key == previous else 1
        previous = card.topic_key
        if run > max_consecutive:
            excess += 1
    return excess


def _find_violation(cards: list[CardWithPriority], max_consecutive: int) -> int | None:
    """Index of the first card that pushes a run past the limit."""
    run = 0
    previous = None
    for i, card in enumerate(cards):
        run = run + 1 if card.topic_key == previous else 1
        previous = card.topic_key
        if run > max_consecutive:
            return i
    return None


def _run_length_at(cards: list[CardWithPriority], index: int) -> int:
    topic = cards[index].topic_key
    start = index
    while start > 0 and cards[start - 1].topic_key == topic:
        start -= 1
    end = index
    while end < len(cards) - 1 and cards[end + 1].topic_key == topic:
        end += 1
    return end - start + 1


def _swap_is_safe(cards: list[CardWithPriority], i: int, j: int, max_consecutive: int) -> bool:
    """Would swapping i and j leave both neighbourhoods within the limit?"""
    cards[i], cards[j] = cards[j], cards[i]
    try:
        return (
            _run_length_at(cards, i) <= max_consecutive
            and _run_length_at(cards, j) <= max_consecutive
        )
    finally:
        cards[i], cards[j] = cards[j], cards[i]


def _forward_candidates(cards: list[CardWithPriority], index: int) -> Iterator[int]:
    topic = cards[index].topic_key
    for j in range(index + 1, len(cards)):
        if cards[j].topic_key != topic:
            yield j


def _backward_candidates(cards: list[CardWithPriority], index: int, max_consecutive: int) -> Iterator[int]:
    # Positions inside the offending run share its topic, so start before it
    topic = cards[index].topic_key
    for j in range(index - max_consecutive - 1, -1, -1):
        if cards[j].topic_key != topic:
            yield j


def _find_safe_swap(cards: list[CardWithPriority], index: int, max_consecutive: int) -> int | None:
    candidates = chain(
        _forward_candidates(cards, index),
        _backward_candidates(cards, index, max_consecutive),
    )
    return next((j for j in candidates if _swap_is_safe(cards, index, j, max_consecutive)), None)


def _find_improving_swap(cards: list[CardWithPriority], index: int, max_consecutive: int) -> int | None:
    """Swap partner for ``index`` that lowers the total excess the most, if any does."""
    best_j, best_excess = None, count_violations(cards, max_consecutive)
    topic = cards[index].topic_key
    for j, card in enumerate(cards):
        if card.topic_key == topic:
            continue
        cards[index], cards[j] = cards[j], cards[index]
        excess = count_violations(cards, max_consecutive)
        cards[index], cards[j] = cards[j], cards[index]
        if excess < best_excess:
            best_j, best_excess = j, excess
    return best_j


def _greedy_interleave(
    cards: list[CardWithPriority],
    max_consecutive: int,
    rng: random.Random,
) -> list[CardWithPriority]:
    """
    Build an order by always placing the topic with the most cards left.

    Topics that would push the current run past the limit are skipped unless
    nothing else is left. This meets the limit whenever the largest topic fits
    (count <= limit x (other cards + 1)); otherwise the leftover cards of the
    dominant topic end up in one trailing run, which is the smallest possible
    excess.
    """
    groups = _group_by_topic(cards)
    for group in groups.values():
        rng.shuffle(group)

    result: list[CardWithPriority] = []
    previous = None
    run = 0

    while groups:
        eligible = [t for t in groups if t != previous or run < max_consecutive]
        if not eligible:
            # Only the current run's topic is left
            eligible = list(groups)
        most = max(len(groups[t]) for t in eligible)
        topic = rng.choice([t for t in eligible if len(groups[t]) == most])

        result.append(groups[topic].pop())
        if not groups[topic]:
            del groups[topic]
        run = run + 1 if topic == previous else 1
        previous = topic

    return result


def shuffle_with_constraint(
    cards: Iterable[CardWithPriority],
    max_consecutive: int = 2,
    rng: random.Random | None = None,
) -> list[CardWithPriority]:
    """
    Shuffle cards so no topic appears more than ``max_consecutive`` times in a row.

    Algorithm:
    1. Shuffle the cards
    2. Find the first card that breaks the run limit
    3. Swap it with the nearest later card of another topic, falling back to
       an earlier one, taking the first swap that creates no new violation
    4. If no swap is safe, take the swap that lowers the total excess most,
       or reshuffle a small window around the violation if none does
    5. Stop once clean, or after 3 x len(cards) repairs
    6. Still violating: build a greedy most-cards-left order and keep
       whichever of the two has less excess

    The greedy build meets the limit whenever that is possible at all. When it
    is not (e.g. ten cards from one lesson with a limit of 2) the result has
    the smallest achievable excess and a warning is logged.

    Args:
        cards: Cards to order
        max_consecutive: Maximum allowed consecutive same-topic cards
        rng: Random source; pass a seeded ``random.Random`` for reproducible output

    Returns:
        A permutation of ``cards``
    """
    if max_consecutive < 1:
        raise InvalidInputError(f"max_consecutive must be >= 1, got {max_consecutive}")

    rng = rng or random.Random()
    result = list(cards)
    rng.shuffle(result)

    if len(result) <= max_consecutive:
        return result

    excess = count_violations(result, max_consecutive)
    best, best_excess = list(result), excess
    max_iterations = len(result) * REPAIR_ITERATIONS_PER_CARD
    iterations = 0

    while excess and iterations < max_iterations:
        index = _find_violation(result, max_consecutive)
        swap_index = _find_safe_swap(result, index, max_consecutive)
        if swap_index is None:
            swap_index = _find_improving_swap(result, index, max_consecutive)

        if swap_index is not None:
            result[index], result[swap_index] = result[swap_index], result[index]
        else:
            start = max(0, index - max_consecutive)
            end = min(len(result), index + max_consecutive + 1)
            window = result[start:end]
            rng.shuffle(window)
            result[start:end] = window

        excess = count_violations(result, max_consecutive)
        if excess < best_excess:
            best, best_excess = list(result), excess
        iterations += 1

    if best_excess:
        fallback = _greedy_interleave(best, max_consecutive, rng)
        fallback_excess = count_violations(fallback, max_consecutive)
        if fallback_excess < best_excess:
            best, best_excess = fallback, fallback_excess

    if best_excess:
        logger.warning(
            f"Interleaving left {best_excess} card(s) over the run limit of {max_consecutive} "
            f"after {iterations} repairs ({len(result)} cards); returning best effort"
        )

    return best


# =============================================================================
# Session generation
# =============================================================================

def generate_mixed_practice(
    cards: Iterable[ReviewCard],
    mastery: Mapping[str, float],
    config: PracticeSessionConfig | None = None,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
    priority_config: PriorityConfig | None = None,
) -> PracticeSession:
    """
    Generate a mixed practice session from multiple courses.

    Args:
        cards: All available review cards for the user
        mastery: topic_key -> lesson mastery snapshot (see ``build_mastery_map``)
        config: Session configuration options
        now: Reference instant for due-date scoring
        rng: Random source for the interleaving shuffle
        priority_config: Scoring weights

    Returns:
        PracticeSession with interleaved cards and stats
    """
    config = config or PracticeSessionConfig()
    priority_config = priority_config or PriorityConfig()
    now = now or datetime.now(UTC)

    if not config.prioritize_low_mastery:
        priority_config = replace(priority_config, low_mastery=0)

    mastery_map = dict(mastery)
    enriched = [enrich(card, mastery_map, now, priority_config) for card in cards]
    selected = select_by_priority(enriched, config)
    ordered = shuffle_with_constraint(selected, config.max_consecutive_same_topic, rng)
    stats = calculate_session_stats(ordered, now, priority_config.low_mastery_threshold)

    logger.info(
        f"Built practice session: {stats.total_cards} cards from {len(enriched)} candidates "
        f"({stats.due_today} due, {stats.new_cards} new, {stats.from_low_mastery} low mastery)"
    )

    return PracticeSession(cards=ordered, stats=stats)


def calculate_session_stats(
    cards: list[CardWithPriority],
    now: datetime | None = None,
    low_mastery_threshold: float = 0.4,
) -> SessionStats:
    """Calculate statistics for the practice session."""
    now = now or datetime.now(UTC)
    stats = SessionStats(total_cards=len(cards))

    for card in cards:
        course_id = card.card.course_id
        stats.course_breakdown[course_id] = stats.course_breakdown.get(course_id, 0) + 1

        if card.card.memory.due_at <= now:
            stats.due_today += 1
        if card.state == CardState.NEW:
            stats.new_cards += 1
        if card.lesson_mastery < low_mastery_threshold:
            stats.from_low_mastery += 1

    return stats


# =============================================================================
# Alternative strategies and filters
# =============================================================================

def _group_by_topic(cards: Iterable[CardWithPriority]) -> dict[str, list[CardWithPriority]]:
    groups: dict[str, list[CardWithPriority]] = {}
    for card in cards:
        groups.setdefault(card.topic_key, []).append(card)
    return groups


def generate_spaced_interleaving(
    cards: list[CardWithPriority],
    config: PracticeSessionConfig,
) -> list[CardWithPriority]:
    """
    Balanced round-robin over topics ("ABCABC" instead of "AAABBBCCC").

    Takes the top ceil(card_count / topics) cards of every topic by priority,
    then deals them out one topic at a time.
    """
    groups = _group_by_topic(cards)

    if len(groups) <= 1:
        # Can't interleave a single topic
        return list(cards)[: config.card_count]

    per_topic = math.ceil(config.card_count / len(groups))
    queues = [
        sorted(group, key=lambda c: c.priority_score, reverse=True)[:per_topic]
        for group in groups.values()
    ]

    result: list[CardWithPriority] = []
    depth = 0
    while len(result) < config.card_count and any(depth < len(q) for q in queues):
        for queue in queues:
            if depth < len(queue) and len(result) < config.card_count:
                result.append(queue[depth])
        depth += 1

    return result


def get_due_cards(cards: Iterable[ReviewCard], now: datetime | None = None) -> list[ReviewCard]:
    """Cards due for review at ``now`` across all courses."""
    now = now or datetime.now(UTC)
    return [card for card in cards if card.memory.due_at <= now]


def get_weak_area_cards(
    cards: Iterable[CardWithPriority],
    threshold: float = 0.4,
) -> list[CardWithPriority]:
    """Cards from lessons whose mastery is below ``threshold``."""
    return [card for card in cards if card.lesson_mastery < threshold]


def balance_across_courses(
    cards: Iterable[CardWithPriority],
    max_per_course: int,
) -> list[CardWithPriority]:
    """Keep at most ``max_per_course`` highest-priority cards from each course."""
    by_course: dict[str, list[CardWithPriority]] = {}
    for card in cards:
        by_course.setdefault(card.card.course_id, []).append(card)

    balanced: list[CardWithPriority] = []
    for course_cards in by_course.values():
        ranked = sorted(course_cards, key=lambda c: c.priority_score, reverse=True)
        balanced.extend(ranked[:max_per_course])

    return balanced
