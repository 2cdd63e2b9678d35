"""
Concept Mastery Models.

SQLAlchemy models backing the concept mastery updater:
- Per learner, per concept mastery with its optimistic-lock version
- Knowledge gaps that a strong enough correct answer resolves

Column types stay portable so the same models run on PostgreSQL (asyncpg)
and on SQLite (aiosqlite) in tests.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all recall tables."""


class ConceptMasteryRow(Base):
    """
    Mastery of one concept for one user.

    ``total_exposures`` is the version column: every update increments it and
    is conditioned on the value the writer read.
    """

    __tablename__ = "user_concept_mastery"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    concept_id: Mapped[str] = mapped_column(Text, nullable=False)

    # Mastery scores (0-1 scale)
    mastery_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    peak_mastery: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Activity tracking
    total_exposures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_recalls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_recalls: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "concept_id", name="uq_user_concept_mastery"),
        Index("idx_concept_mastery_level", "user_id", "mastery_level"),
    )

    def __repr__(self) -> str:
        return (
            f"<ConceptMasteryRow user={self.user_id} concept={self.concept_id} "
            f"mastery={self.mastery_level} v={self.total_exposures}>"
        )


class KnowledgeGapRow(Base):
    """A detected weakness in one concept (weak, decaying or missing prerequisite)."""

    __tablename__ = "user_knowledge_gaps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    concept_id: Mapped[str] = mapped_column(Text, nullable=False)
    gap_type: Mapped[str] = mapped_column(Text, nullable=False)  # 'never_learned', 'missing_prerequisite', 'weak_foundation', 'decay'
    severity: Mapped[str] = mapped_column(Text, nullable=False, default="moderate")

    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "concept_id", "gap_type", name="uq_user_concept_gap"),
        Index("idx_knowledge_gaps_unresolved", "user_id", "resolved"),
    )

    def __repr__(self) -> str:
        return f"<KnowledgeGapRow user={self.user_id} concept={self.concept_id} type={self.gap_type} resolved={self.resolved}>"
