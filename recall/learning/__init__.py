"""Concept mastery tracking and knowledge gap detection."""

from recall.learning.concept_mastery import (
    BatchMasteryResult,
    ConceptMasteryUpdater,
    InMemoryMasteryStore,
    MasteryConfig,
    MasteryStore,
    MasteryUpdateOutcome,
    compute_mastery_change,
)
from recall.learning.gap_detector import (
    DetectedGap,
    GapDetectorConfig,
    GapReport,
    GapSeverity,
    GapType,
    detect_gaps,
)

__all__ = [
    "ConceptMasteryUpdater",
    "MasteryConfig",
    "MasteryStore",
    "InMemoryMasteryStore",
    "MasteryUpdateOutcome",
    "BatchMasteryResult",
    "compute_mastery_change",
    "detect_gaps",
    "DetectedGap",
    "GapReport",
    "GapType",
    "GapSeverity",
    "GapDetectorConfig",
]
