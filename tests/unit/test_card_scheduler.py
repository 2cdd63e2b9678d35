"""
Unit tests for the FSRS card scheduler.

Covers state transitions, the stability/interval math, input validation
and the display helpers. Pure functions only, no DB.
"""

import math
from datetime import timedelta

import pytest

from config import Settings
from recall.core.errors import InvalidInputError
from recall.core.models import CardMemoryState, CardState, Rating
from recall.study.scheduler import (
    CardScheduler,
    SchedulerConfig,
    format_interval,
    is_due,
    next_interval,
    preview_intervals,
    rating_from_response,
    retrievability,
    schedule,
)


def review_card(now, stability=10.0, difficulty=0.3, lapses=0, state=CardState.REVIEW):
    return CardMemoryState(
        state=state,
        stability=stability,
        difficulty=difficulty,
        due_at=now,
        scheduled_interval_days=stability,
        reps=5,
        lapses=lapses,
        last_reviewed_at=now - timedelta(days=stability),
    )


class TestForgettingCurve:
    def test_retrievability_is_one_at_zero_elapsed(self):
        assert retrievability(5.0, 0.0) == pytest.approx(1.0)

    def test_retrievability_is_ninety_percent_at_stability(self):
        assert retrievability(12.0, 12.0) == pytest.approx(0.9)

    def test_retrievability_decreases_with_time(self):
        assert retrievability(5.0, 10.0) < retrievability(5.0, 2.0)

    def test_retrievability_increases_with_stability(self):
        assert retrievability(20.0, 10.0) > retrievability(5.0, 10.0)

    @pytest.mark.parametrize("target", [0.7, 0.8, 0.9, 0.95])
    def test_interval_lands_on_target_retention(self, target):
        interval = next_interval(8.0, target)
        assert retrievability(8.0, interval) == pytest.approx(target)

    def test_interval_equals_stability_at_ninety_percent(self):
        assert next_interval(4.0, 0.9) == pytest.approx(4.0)

    def test_interval_capped_at_maximum(self):
        assert next_interval(1_000_000.0, 0.9, maximum_interval=365) == 365


class TestNewCards:
    @pytest.mark.parametrize(
        "rating,minutes,stability,difficulty",
        [
            (Rating.AGAIN, 1, 0.5, 0.7),
            (Rating.HARD, 6, 1.0, 0.6),
            (Rating.GOOD, 10, 3.0, 0.3),
        ],
    )
    def test_new_card_enters_learning_step(self, now, rating, minutes, stability, difficulty):
        result = schedule(CardMemoryState.new(now), rating, 0, now=now)

        assert result.state == CardState.LEARNING
        assert result.scheduled_interval_days == pytest.approx(minutes / 1440)
        assert result.stability == pytest.approx(stability)
        assert result.difficulty == pytest.approx(difficulty)

    def test_easy_new_card_goes_straight_to_review(self, now):
        result = schedule(CardMemoryState.new(now), Rating.EASY, 0, now=now)

        assert result.state == CardState.REVIEW
        assert result.stability == pytest.approx(7.0)
        assert result.difficulty == pytest.approx(0.1)
        assert result.scheduled_interval_days == pytest.approx(7.0)

    def test_first_review_counts(self, now):
        result = schedule(CardMemoryState.new(now), Rating.GOOD, 0, now=now)

        assert result.reps == 1
        assert result.lapses == 0
        assert result.last_reviewed_at == now
        assert result.elapsed_days == 0


class TestLearningCards:
    def test_again_stays_in_learning_with_shrunk_stability(self, now):
        card = review_card(now, stability=3.0, state=CardState.LEARNING)
        result = schedule(card, Rating.AGAIN, 0.01, now=now)

        assert result.state == CardState.LEARNING
        assert result.stability == pytest.approx(1.5)
        assert result.scheduled_interval_days == pytest.approx(1 / 1440)
        assert result.lapses == 0

    def test_hard_below_graduation_repeats_step(self, now):
        card = review_card(now, stability=0.5, state=CardState.LEARNING)
        result = schedule(card, Rating.HARD, 0.01, now=now)

        assert result.state == CardState.LEARNING
        assert result.scheduled_interval_days == pytest.approx(6 / 1440)

    def test_hard_at_graduation_moves_to_review(self, now):
        card = review_card(now, stability=3.0, state=CardState.LEARNING)
        result = schedule(card, Rating.HARD, 0.01, now=now)

        assert result.state == CardState.REVIEW
        assert result.stability == pytest.approx(3.0)

    def test_relearning_good_recovers_to_review(self, now):
        card = review_card(now, stability=0.5, state=CardState.RELEARNING)
        result = schedule(card, Rating.GOOD, 0.01, now=now)

        assert result.state == CardState.REVIEW
        assert result.stability == pytest.approx(1.0)

    def test_relearning_again_stays_in_relearning(self, now):
        card = review_card(now, stability=2.0, state=CardState.RELEARNING, lapses=1)
        result = schedule(card, Rating.AGAIN, 0.01, now=now)

        assert result.state == CardState.RELEARNING
        assert result.lapses == 1

    def test_easy_from_learning_beats_good(self, now):
        card = review_card(now, stability=3.0, state=CardState.LEARNING)
        good = schedule(card, Rating.GOOD, 0.01, now=now)
        easy = schedule(card, Rating.EASY, 0.01, now=now)

        assert easy.stability == pytest.approx(good.stability * 1.3)


class TestReviewCards:
    def test_stability_ordering_for_all_ratings(self, now):
        card = review_card(now, stability=10.0, difficulty=0.3)
        results = {rating: schedule(card, rating, 10.0, now=now) for rating in Rating}

        assert results[Rating.EASY].stability >= results[Rating.GOOD].stability
        assert results[Rating.GOOD].stability >= results[Rating.HARD].stability
        assert results[Rating.HARD].stability >= results[Rating.AGAIN].stability
        assert results[Rating.HARD].stability > card.stability

    def test_recall_stability_values(self, now):
        # R(10, 10) = 0.9 -> review bonus 1.05; difficulty 0.3 -> penalty 0.85
        card = review_card(now, stability=10.0, difficulty=0.3)

        assert schedule(card, Rating.HARD, 10.0, now=now).stability == pytest.approx(11.785)
        assert schedule(card, Rating.GOOD, 10.0, now=now).stability == pytest.approx(23.3875)
        assert schedule(card, Rating.EASY, 10.0, now=now).stability == pytest.approx(42.00625)

    @pytest.mark.parametrize("elapsed", [0.0, 3.0, 30.0, 400.0])
    @pytest.mark.parametrize("difficulty", [0.1, 0.5, 1.0])
    def test_ordering_holds_across_elapsed_and_difficulty(self, now, elapsed, difficulty):
        card = review_card(now, stability=6.0, difficulty=difficulty)
        s = [schedule(card, rating, elapsed, now=now).stability for rating in Rating]
        assert s == sorted(s)

    def test_lapse_scenario(self, now):
        card = review_card(now, stability=10.0, difficulty=5, lapses=0)
        result = schedule(card, Rating.AGAIN, 12, 0.9, now=now)

        assert result.state == CardState.RELEARNING
        assert result.lapses == 1
        assert result.stability < 10
        assert result.difficulty == pytest.approx(1.0)

    def test_again_stability_floor(self, now):
        card = review_card(now, stability=1.0)
        result = schedule(card, Rating.AGAIN, 1.0, now=now)

        assert result.stability == pytest.approx(0.5)

    def test_lapses_only_count_from_review(self, now):
        card = review_card(now, stability=5.0, lapses=2)
        assert schedule(card, Rating.GOOD, 5.0, now=now).lapses == 2
        assert schedule(card, Rating.AGAIN, 5.0, now=now).lapses == 3

    def test_difficulty_moves_with_rating(self, now):
        card = review_card(now, stability=5.0, difficulty=0.5)
        assert schedule(card, Rating.AGAIN, 5.0, now=now).difficulty == pytest.approx(0.65)
        assert schedule(card, Rating.EASY, 5.0, now=now).difficulty == pytest.approx(0.4)

    def test_difficulty_clamped(self, now):
        card = review_card(now, stability=5.0, difficulty=0.1)
        assert schedule(card, Rating.EASY, 5.0, now=now).difficulty == pytest.approx(0.1)

    def test_interval_respects_target_retention(self, now):
        card = review_card(now, stability=10.0)
        result = schedule(card, Rating.GOOD, 10.0, 0.8, now=now)

        r = retrievability(result.stability, result.scheduled_interval_days)
        assert r == pytest.approx(0.8)

    def test_input_card_not_modified(self, now):
        card = review_card(now, stability=10.0)
        schedule(card, Rating.GOOD, 10.0, now=now)

        assert card.stability == 10.0
        assert card.reps == 5


class TestDueDateConsistency:
    @pytest.mark.parametrize("state", list(CardState))
    @pytest.mark.parametrize("rating", list(Rating))
    def test_due_at_matches_scheduled_days(self, now, state, rating):
        card = review_card(now, stability=4.0, state=state)
        result = schedule(card, rating, 4.0, now=now)

        assert result.scheduled_interval_days >= 0
        assert result.due_at == now + timedelta(days=result.scheduled_interval_days)
        assert result.due_at >= result.last_reviewed_at


class TestValidation:
    @pytest.mark.parametrize("rating", [0, 5, -1, True, "3", 2.5, None])
    def test_rejects_bad_rating(self, now, rating):
        with pytest.raises(InvalidInputError):
            schedule(review_card(now), rating, 1.0, now=now)

    def test_accepts_plain_int_rating(self, now):
        result = schedule(review_card(now), 3, 10.0, now=now)
        assert result.state == CardState.REVIEW

    @pytest.mark.parametrize("elapsed", [-1.0, math.nan, math.inf])
    def test_rejects_bad_elapsed_days(self, now, elapsed):
        with pytest.raises(InvalidInputError):
            schedule(review_card(now), Rating.GOOD, elapsed, now=now)

    @pytest.mark.parametrize("retention", [0.0, 1.0, 1.5, -0.2])
    def test_rejects_bad_target_retention(self, now, retention):
        with pytest.raises(InvalidInputError):
            schedule(review_card(now), Rating.GOOD, 1.0, retention, now=now)

    def test_rejects_non_positive_stability(self, now):
        with pytest.raises(InvalidInputError):
            schedule(review_card(now, stability=0.0), Rating.GOOD, 1.0, now=now)

    def test_invalid_input_is_value_error(self, now):
        with pytest.raises(ValueError):
            schedule(review_card(now), 9, 1.0, now=now)


class TestHelpers:
    def test_is_due(self, now):
        card = review_card(now)
        assert is_due(card, now)
        assert not is_due(card, now - timedelta(hours=1))

    @pytest.mark.parametrize(
        "is_correct,time_ms,hint,expected",
        [
            (False, 1000, False, Rating.AGAIN),
            (True, 5000, False, Rating.EASY),
            (True, 15000, False, Rating.GOOD),
            (True, 30000, False, Rating.HARD),
            (True, 2000, True, Rating.HARD),
        ],
    )
    def test_rating_from_response(self, is_correct, time_ms, hint, expected):
        assert rating_from_response(is_correct, time_ms, hint_used=hint) == expected

    @pytest.mark.parametrize(
        "days,label",
        [
            (1 / 1440, "1m"),
            (0.25, "6h"),
            (3.0, "3d"),
            (60.0, "2mo"),
            (547.5, "1.5y"),
        ],
    )
    def test_format_interval(self, days, label):
        assert format_interval(days) == label

    def test_preview_intervals_for_new_card(self, now):
        preview = preview_intervals(CardMemoryState.new(now), now=now)

        assert preview == {
            Rating.AGAIN: "1m",
            Rating.HARD: "6m",
            Rating.GOOD: "10m",
            Rating.EASY: "7d",
        }

    def test_config_from_settings(self):
        settings = Settings(fsrs_desired_retention=0.85, fsrs_maximum_interval=365)
        config = SchedulerConfig.from_settings(settings)

        assert config.request_retention == 0.85
        assert config.maximum_interval == 365

    def test_scheduler_uses_config_retention(self, now):
        scheduler = CardScheduler(SchedulerConfig(request_retention=0.8))
        result = scheduler.review(review_card(now, stability=10.0), Rating.GOOD, 10.0, now=now)

        assert retrievability(result.stability, result.scheduled_interval_days) == pytest.approx(0.8)
