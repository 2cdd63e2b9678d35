"""
Concept Mastery Updater with Optimistic Locking.

Every answered question moves the learner's mastery of each linked concept:

- Flashcard reviews (no score): fixed +0.05 / -0.10 steps
- AI-graded answers (score ratio 0-1): the step scales with the score, and
  fast correct answers earn a small bonus

Mastery rows are shared between concurrent requests (two tabs, a batch grader
and a live session), so updates use ``total_exposures`` as a version number:
read, compute, then write only if nobody else bumped the version in between.
Losing the race means re-reading and trying again, up to ``max_attempts``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from recall.core.errors import ConcurrencyExhaustedError, InvalidInputError
from recall.core.models import ConceptMasteryRecord
from recall.core.retry import optimistic_retry

if TYPE_CHECKING:
    from config import Settings
    from recall.learning.gap_detector import DetectedGap


@dataclass
class MasteryConfig:
    """Step sizes for mastery updates."""

    initial_correct: float = 0.3
    initial_incorrect: float = 0.1

    # Flashcard path
    correct_delta: float = 0.05
    incorrect_delta: float = 0.10

    # Score-weighted path
    scored_correct_base: float = 0.05
    scored_correct_weight: float = 0.10
    fast_response_bonus: float = 0.02
    fast_response_ms: int = 10_000
    scored_incorrect_base: float = 0.10
    scored_incorrect_weight: float = 0.10

    max_attempts: int = 3
    gap_resolution_threshold: float = 0.5  # Correct answers at or above this close open gaps

    @classmethod
    def from_settings(cls, settings: Settings) -> MasteryConfig:
        return cls(max_attempts=settings.mastery_max_attempts)


@dataclass
class MasteryUpdateOutcome:
    """Result of one concept mastery update."""

    concept_id: str
    mastery_level: float
    peak_mastery: float
    total_exposures: int
    attempts: int  # Optimistic-lock cycles it took
    created: bool  # True when this update created the record


@dataclass
class BatchMasteryResult:
    """Per-concept results of ``update_many``."""

    outcomes: dict[str, MasteryUpdateOutcome] = field(default_factory=dict)
    failures: dict[str, ConcurrencyExhaustedError] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures


class MasteryStore(Protocol):
    """Storage primitives the updater needs. Implementations must be atomic per call."""

    async def read(self, user_id: str, concept_id: str) -> ConceptMasteryRecord | None:
        ...

    async def insert_if_absent(self, record: ConceptMasteryRecord) -> bool:
        """Insert the record; False if one already exists for (user, concept)."""
        ...

    async def conditional_update(
        self,
        user_id: str,
        concept_id: str,
        expected_version: int,
        record: ConceptMasteryRecord,
    ) -> int:
        """Overwrite the record if its total_exposures still equals expected_version; rows affected."""
        ...

    async def resolve_gaps(self, user_id: str, concept_id: str, now: datetime) -> int:
        """Mark unresolved knowledge gaps for the concept resolved; rows affected."""
        ...

    async def open_gap(
        self,
        user_id: str,
        concept_id: str,
        gap_type: str = "weak_foundation",
        severity: str = "moderate",
    ) -> None:
        """Record a knowledge gap, reopening it if it was resolved before."""
        ...


def compute_mastery_change(
    is_correct: bool,
    score_ratio: float | None = None,
    response_time_ms: int | None = None,
    config: MasteryConfig | None = None,
) -> float:
    """
    Signed mastery delta for one answer.

    Args:
        is_correct: Whether the answer was accepted
        score_ratio: AI-graded score as a fraction (None for flashcards)
        response_time_ms: Answer latency, used for the fast-answer bonus
        config: Step sizes (uses defaults if None)

    Returns:
        Delta to add to the current mastery (before clamping)
    """
    cfg = config or MasteryConfig()

    if score_ratio is None:
        return cfg.correct_delta if is_correct else -cfg.incorrect_delta

    if not math.isfinite(score_ratio) or not 0.0 <= score_ratio <= 1.0:
        raise InvalidInputError(f"score_ratio must be within [0, 1], got {score_ratio}")

    if is_correct:
        change = cfg.scored_correct_base + score_ratio * cfg.scored_correct_weight
        if response_time_ms is not None and response_time_ms < cfg.fast_response_ms:
            change += cfg.fast_response_bonus
        return change

    return -cfg.scored_incorrect_base - (1 - score_ratio) * cfg.scored_incorrect_weight


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ConceptMasteryUpdater:
    """
    Apply answer outcomes to concept mastery records.

    Safe to share across coroutines: it holds no state of its own, and every
    attempt works from a fresh read of the store.
    """

    def __init__(self, store: MasteryStore, config: MasteryConfig | None = None):
        """
        Initialize updater.

        Args:
            store: Backing store (``InMemoryMasteryStore`` or ``SqlMasteryStore``)
            config: Step sizes and retry budget
        """
        self.store = store
        self.config = config or MasteryConfig()

    def _next_record(
        self,
        current: ConceptMasteryRecord | None,
        user_id: str,
        concept_id: str,
        is_correct: bool,
        change: float,
        now: datetime,
    ) -> ConceptMasteryRecord:
        if current is None:
            initial = self.config.initial_correct if is_correct else self.config.initial_incorrect
            return ConceptMasteryRecord(
                user_id=user_id,
                concept_id=concept_id,
                mastery_level=initial,
                peak_mastery=initial,
                total_exposures=1,
                successful_recalls=1 if is_correct else 0,
                failed_recalls=0 if is_correct else 1,
                last_reviewed_at=now,
            )

        mastery = _clamp(current.mastery_level + change)
        return replace(
            current,
            mastery_level=mastery,
            peak_mastery=max(current.peak_mastery, mastery),
            total_exposures=current.total_exposures + 1,
            successful_recalls=current.successful_recalls + (1 if is_correct else 0),
            failed_recalls=current.failed_recalls + (0 if is_correct else 1),
            last_reviewed_at=now,
        )

    async def _write(self, current: ConceptMasteryRecord | None, new: ConceptMasteryRecord) -> bool:
        if current is None:
            # A concurrent insert wins the race; next attempt takes the update path
            return await self.store.insert_if_absent(new)
        affected = await self.store.conditional_update(
            new.user_id, new.concept_id, current.total_exposures, new
        )
        return affected > 0

    async def update_mastery(
        self,
        user_id: str,
        concept_id: str,
        is_correct: bool,
        score_ratio: float | None = None,
        response_time_ms: int | None = None,
        *,
        now: datetime | None = None,
    ) -> MasteryUpdateOutcome:
        """
        Update mastery for one concept after an answer.

        Args:
            user_id: Learner ID
            concept_id: Concept ID
            is_correct: Whether the answer was accepted
            score_ratio: AI-graded score fraction, or None for flashcards
            response_time_ms: Answer latency in milliseconds
            now: Review timestamp (defaults to the current UTC time)

        Returns:
            MasteryUpdateOutcome for the committed write

        Raises:
            InvalidInputError: score_ratio outside [0, 1]
            ConcurrencyExhaustedError: every attempt lost the version race
        """
        now = now or datetime.now(UTC)
        change = compute_mastery_change(is_correct, score_ratio, response_time_ms, self.config)
        created = False

        async def read() -> ConceptMasteryRecord | None:
            return await self.store.read(user_id, concept_id)

        def compute(current: ConceptMasteryRecord | None) -> ConceptMasteryRecord:
            nonlocal created
            created = current is None
            return self._next_record(current, user_id, concept_id, is_correct, change, now)

        record, attempts = await optimistic_retry(
            read,
            compute,
            self._write,
            self.config.max_attempts,
            key=(user_id, concept_id),
        )

        logger.debug(
            f"Mastery {user_id}/{concept_id}: {record.mastery_level:.2f} "
            f"(peak {record.peak_mastery:.2f}, exposures {record.total_exposures})"
        )

        if is_correct and record.mastery_level >= self.config.gap_resolution_threshold:
            await self._resolve_gaps(user_id, concept_id, now)

        return MasteryUpdateOutcome(
            concept_id=concept_id,
            mastery_level=record.mastery_level,
            peak_mastery=record.peak_mastery,
            total_exposures=record.total_exposures,
            attempts=attempts,
            created=created,
        )

    async def _resolve_gaps(self, user_id: str, concept_id: str, now: datetime) -> None:
        # Best effort: the mastery write already committed
        try:
            resolved = await self.store.resolve_gaps(user_id, concept_id, now)
        except Exception as e:
            logger.warning(f"Failed to resolve knowledge gaps for {user_id}/{concept_id}: {e}")
            return
        if resolved:
            logger.info(f"Resolved {resolved} knowledge gap(s) for {user_id}/{concept_id}")

    async def record_gaps(self, user_id: str, gaps: list[DetectedGap]) -> int:
        """
        Open a knowledge gap row for each detected gap.

        Gaps already open are refreshed with the new severity. Store errors
        propagate; nothing else depends on this write.

        Returns:
            Number of gaps written
        """
        for gap in gaps:
            await self.store.open_gap(user_id, gap.concept_id, gap.gap_type.value, gap.severity.value)

        if gaps:
            logger.info(f"Recorded {len(gaps)} knowledge gap(s) for {user_id}")
        return len(gaps)

    async def update_many(
        self,
        user_id: str,
        concept_ids: list[str],
        is_correct: bool,
        score_ratio: float | None = None,
        response_time_ms: int | None = None,
        *,
        now: datetime | None = None,
    ) -> BatchMasteryResult:
        """
        Update every concept linked to an answered card.

        Contention on one concept is recorded in ``failures`` and does not stop
        the remaining concepts. Other errors propagate.
        """
        now = now or datetime.now(UTC)
        result = BatchMasteryResult()

        for concept_id in concept_ids:
            try:
                result.outcomes[concept_id] = await self.update_mastery(
                    user_id,
                    concept_id,
                    is_correct,
                    score_ratio,
                    response_time_ms,
                    now=now,
                )
            except ConcurrencyExhaustedError as e:
                result.failures[concept_id] = e

        if result.failures:
            logger.warning(
                f"Mastery update for {user_id} gave up on {len(result.failures)} of "
                f"{len(concept_ids)} concepts: {', '.join(result.failures)}"
            )

        return result


class InMemoryMasteryStore:
    """
    Dict-backed ``MasteryStore``.

    Records are copied on the way in and out, so callers can never mutate
    stored state behind the store's back. Each method body runs without an
    ``await`` in the middle, which makes it atomic under asyncio.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], ConceptMasteryRecord] = {}
        # (user_id, concept_id, gap_type) -> resolved_at (None while open)
        self._gaps: dict[tuple[str, str, str], datetime | None] = {}
        self._severities: dict[tuple[str, str, str], str] = {}

    async def read(self, user_id: str, concept_id: str) -> ConceptMasteryRecord | None:
        record = self._records.get((user_id, concept_id))
        return replace(record) if record is not None else None

    async def insert_if_absent(self, record: ConceptMasteryRecord) -> bool:
        key = (record.user_id, record.concept_id)
        if key in self._records:
            return False
        self._records[key] = replace(record)
        return True

    async def conditional_update(
        self,
        user_id: str,
        concept_id: str,
        expected_version: int,
        record: ConceptMasteryRecord,
    ) -> int:
        current = self._records.get((user_id, concept_id))
        if current is None or current.total_exposures != expected_version:
            return 0
        self._records[(user_id, concept_id)] = replace(record)
        return 1

    async def resolve_gaps(self, user_id: str, concept_id: str, now: datetime) -> int:
        resolved = 0
        for key, resolved_at in self._gaps.items():
            if key[:2] == (user_id, concept_id) and resolved_at is None:
                self._gaps[key] = now
                resolved += 1
        return resolved

    async def open_gap(
        self,
        user_id: str,
        concept_id: str,
        gap_type: str = "weak_foundation",
        severity: str = "moderate",
    ) -> None:
        self._gaps[(user_id, concept_id, gap_type)] = None
        self._severities[(user_id, concept_id, gap_type)] = severity

    def gap_severity(self, user_id: str, concept_id: str, gap_type: str) -> str | None:
        return self._severities.get((user_id, concept_id, gap_type))

    def open_gaps(self, user_id: str) -> list[tuple[str, str]]:
        """(concept_id, gap_type) pairs still unresolved for the user."""
        return [
            (concept_id, gap_type)
            for (uid, concept_id, gap_type), resolved_at in self._gaps.items()
            if uid == user_id and resolved_at is None
        ]
