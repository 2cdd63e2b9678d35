"""
Study Module.

Provides:
- FSRS card scheduling (review state transitions, due dates)
- Priority scoring for practice session candidates
- Interleaved practice session generation
"""

from recall.study.interleaver import (
    generate_mixed_practice,
    generate_spaced_interleaving,
    select_by_priority,
    shuffle_with_constraint,
)
from recall.study.priority import PriorityConfig, build_mastery_map, enrich, score
from recall.study.scheduler import CardScheduler, SchedulerConfig, preview_intervals, schedule

__all__ = [
    "CardScheduler",
    "SchedulerConfig",
    "schedule",
    "preview_intervals",
    "PriorityConfig",
    "score",
    "enrich",
    "build_mastery_map",
    "select_by_priority",
    "shuffle_with_constraint",
    "generate_mixed_practice",
    "generate_spaced_interleaving",
]
