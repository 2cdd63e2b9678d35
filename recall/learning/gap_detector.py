"""
Knowledge Gap Detector.

Finds concepts a learner is missing or losing, from three signals:

- Prerequisites: a concept's (transitive) prerequisites still below 0.3 mastery
- Weak foundation: two or more failures in a row, or a failure rate over 50%
- Decay: mastery fell more than 30% below its peak and the concept has not
  been reviewed for a week

Detection is pure: it works on records and answer histories the caller has
already loaded. ``ConceptMasteryUpdater.record_gaps`` persists the result, and
a strong enough correct answer resolves the gaps again.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from loguru import logger

from recall.core.models import ConceptMasteryRecord


class GapType(str, Enum):
    NEVER_LEARNED = "never_learned"
    MISSING_PREREQUISITE = "missing_prerequisite"
    WEAK_FOUNDATION = "weak_foundation"
    DECAY = "decay"


class GapSeverity(str, Enum):
    CRITICAL = "critical"
    MODERATE = "moderate"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        """Sort key, most severe first."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {GapSeverity.CRITICAL: 0, GapSeverity.MODERATE: 1, GapSeverity.MINOR: 2}


@dataclass
class GapDetectorConfig:
    """Detection thresholds."""

    mastery_threshold: float = 0.3  # Prerequisites below this count as missing
    consecutive_failures: int = 2
    critical_consecutive_failures: int = 3
    failure_rate: float = 0.5  # Strictly above this is a weak foundation
    decay_days: int = 7

    prerequisite_confidence: float = 0.9
    weak_foundation_confidence: float = 0.85
    decay_confidence: float = 0.8


@dataclass
class DetectedGap:
    """One knowledge gap and the evidence behind it."""

    concept_id: str
    gap_type: GapType
    severity: GapSeverity
    confidence: float
    blocked_concepts: list[str] = field(default_factory=list)
    recent_failures: int = 0
    consecutive_failures: int = 0
    days_since_review: int | None = None
    mastery_decay: float | None = None

    @property
    def is_blocking(self) -> bool:
        return self.severity == GapSeverity.CRITICAL and self.gap_type in (
            GapType.NEVER_LEARNED,
            GapType.MISSING_PREREQUISITE,
        )


@dataclass
class GapReport:
    """Gaps for a set of target concepts, most severe first."""

    gaps: list[DetectedGap]
    analyzed_concepts: int

    @property
    def has_blocking_gaps(self) -> bool:
        return any(g.is_blocking for g in self.gaps)

    @property
    def recommended_action(self) -> str:
        """'review' for blocking gaps, 'practice' for weak or decayed concepts, else 'continue'."""
        if self.has_blocking_gaps:
            return "review"
        if any(g.gap_type in (GapType.WEAK_FOUNDATION, GapType.DECAY) for g in self.gaps):
            return "practice"
        return "continue"


def all_prerequisites(concept_id: str, prerequisites: Mapping[str, Iterable[str]]) -> list[str]:
    """Transitive prerequisites of a concept, nearest first. Cycles are ignored."""
    found: list[str] = []
    seen = {concept_id}
    frontier = [concept_id]
    while frontier:
        next_frontier = []
        for current in frontier:
            for prereq in prerequisites.get(current, ()):
                if prereq not in seen:
                    seen.add(prereq)
                    found.append(prereq)
                    next_frontier.append(prereq)
        frontier = next_frontier
    return found


def count_consecutive_failures(outcomes: Sequence[bool]) -> int:
    """Failures at the end of an oldest-first answer history."""
    count = 0
    for is_correct in reversed(outcomes):
        if is_correct:
            break
        count += 1
    return count


def detect_gaps(
    target_concepts: Iterable[str],
    mastery: Mapping[str, ConceptMasteryRecord],
    recent_outcomes: Mapping[str, Sequence[bool]] | None = None,
    prerequisites: Mapping[str, Iterable[str]] | None = None,
    *,
    now: datetime | None = None,
    config: GapDetectorConfig | None = None,
) -> GapReport:
    """
    Detect knowledge gaps around a set of concepts.

    A concept gets at most one gap; prerequisite gaps are found first, then
    weak foundations, then decay.

    Args:
        target_concepts: Concepts the learner is about to study
        mastery: The learner's records by concept ID (missing means never seen)
        recent_outcomes: Oldest-first correctness history per concept
        prerequisites: Direct prerequisites per concept
        now: Reference time for decay (defaults to the current UTC time)
        config: Thresholds (uses defaults if None)

    Returns:
        GapReport with gaps sorted by severity, then confidence
    """
    cfg = config or GapDetectorConfig()
    now = now or datetime.now(UTC)
    targets = list(dict.fromkeys(target_concepts))
    prerequisites = prerequisites or {}
    recent_outcomes = recent_outcomes or {}

    if not targets:
        return GapReport(gaps=[], analyzed_concepts=0)

    gaps: dict[str, DetectedGap] = {}
    relevant = set(targets)

    # 1. Prerequisites below the mastery threshold block their dependents
    for concept_id in targets:
        for prereq_id in all_prerequisites(concept_id, prerequisites):
            relevant.add(prereq_id)
            record = mastery.get(prereq_id)
            level = record.mastery_level if record else 0.0
            if level >= cfg.mastery_threshold:
                continue
            if prereq_id in gaps:
                gaps[prereq_id].blocked_concepts.append(concept_id)
                continue
            gaps[prereq_id] = DetectedGap(
                concept_id=prereq_id,
                gap_type=GapType.NEVER_LEARNED if level == 0 else GapType.MISSING_PREREQUISITE,
                severity=GapSeverity.CRITICAL,
                confidence=cfg.prerequisite_confidence,
                blocked_concepts=[concept_id],
            )

    # 2. Recent answer history
    for concept_id, outcomes in recent_outcomes.items():
        if not outcomes or concept_id in gaps:
            continue
        failures = sum(1 for is_correct in outcomes if not is_correct)
        consecutive = count_consecutive_failures(outcomes)
        if consecutive < cfg.consecutive_failures and failures / len(outcomes) <= cfg.failure_rate:
            continue
        gaps[concept_id] = DetectedGap(
            concept_id=concept_id,
            gap_type=GapType.WEAK_FOUNDATION,
            severity=(
                GapSeverity.CRITICAL
                if consecutive >= cfg.critical_consecutive_failures
                else GapSeverity.MODERATE
            ),
            confidence=cfg.weak_foundation_confidence,
            recent_failures=failures,
            consecutive_failures=consecutive,
        )

    # 3. Decay since the last review
    for concept_id in sorted(relevant):
        record = mastery.get(concept_id)
        if record is None or concept_id in gaps:
            continue
        if not record.is_decaying or record.last_reviewed_at is None:
            continue
        days_since = (now - record.last_reviewed_at).days
        if days_since < cfg.decay_days:
            continue
        gaps[concept_id] = DetectedGap(
            concept_id=concept_id,
            gap_type=GapType.DECAY,
            severity=GapSeverity.MODERATE if record.mastery_level < cfg.mastery_threshold else GapSeverity.MINOR,
            confidence=cfg.decay_confidence,
            days_since_review=days_since,
            mastery_decay=record.peak_mastery - record.mastery_level,
        )

    ordered = sorted(gaps.values(), key=lambda g: (g.severity.rank, -g.confidence))
    report = GapReport(gaps=ordered, analyzed_concepts=len(targets))

    if ordered:
        logger.debug(
            f"Found {len(ordered)} knowledge gap(s) across {len(targets)} concepts; "
            f"recommending {report.recommended_action}"
        )

    return report
