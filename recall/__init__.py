"""
Recall: spaced-repetition scheduling core.

- recall.study: FSRS card scheduler, session priority scoring, interleaving
- recall.learning: concept mastery updates with optimistic locking
- recall.db: SQLAlchemy persistence for concept mastery
"""

__version__ = "0.1.0"
