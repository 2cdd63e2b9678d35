"""
SQL-backed concept mastery store.

Implements the ``MasteryStore`` primitives on top of SQLAlchemy async sessions.
Each primitive runs in its own short transaction; the version check lives in
the UPDATE's WHERE clause, so no row locks are held between read and write.
"""

from __future__ import annotations

from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recall.core.models import ConceptMasteryRecord
from recall.db.database import async_session_scope, get_session_factory
from recall.db.models import ConceptMasteryRow, KnowledgeGapRow


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_record(row: ConceptMasteryRow) -> ConceptMasteryRecord:
    return ConceptMasteryRecord(
        user_id=row.user_id,
        concept_id=row.concept_id,
        mastery_level=row.mastery_level,
        peak_mastery=row.peak_mastery,
        total_exposures=row.total_exposures,
        successful_recalls=row.successful_recalls,
        failed_recalls=row.failed_recalls,
        last_reviewed_at=_as_utc(row.last_reviewed_at),
    )


class SqlMasteryStore:
    """Mastery store over the ``user_concept_mastery`` and ``user_knowledge_gaps`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        """
        Initialize store.

        Args:
            session_factory: Async session factory (defaults to the configured database)
        """
        self.session_factory = session_factory or get_session_factory()

    async def read(self, user_id: str, concept_id: str) -> ConceptMasteryRecord | None:
        async with async_session_scope(self.session_factory) as session:
            row = await session.scalar(
                select(ConceptMasteryRow).where(
                    ConceptMasteryRow.user_id == user_id,
                    ConceptMasteryRow.concept_id == concept_id,
                )
            )
            return _to_record(row) if row is not None else None

    async def insert_if_absent(self, record: ConceptMasteryRecord) -> bool:
        try:
            async with async_session_scope(self.session_factory) as session:
                session.add(
                    ConceptMasteryRow(
                        user_id=record.user_id,
                        concept_id=record.concept_id,
                        mastery_level=record.mastery_level,
                        peak_mastery=record.peak_mastery,
                        total_exposures=record.total_exposures,
                        successful_recalls=record.successful_recalls,
                        failed_recalls=record.failed_recalls,
                        last_reviewed_at=record.last_reviewed_at,
                    )
                )
        except IntegrityError:
            logger.debug(f"Mastery row for {record.user_id}/{record.concept_id} already exists")
            return False
        return True

    async def conditional_update(
        self,
        user_id: str,
        concept_id: str,
        expected_version: int,
        record: ConceptMasteryRecord,
    ) -> int:
        stmt = (
            update(ConceptMasteryRow)
            .where(
                ConceptMasteryRow.user_id == user_id,
                ConceptMasteryRow.concept_id == concept_id,
                ConceptMasteryRow.total_exposures == expected_version,
            )
            .values(
                mastery_level=record.mastery_level,
                peak_mastery=record.peak_mastery,
                total_exposures=record.total_exposures,
                successful_recalls=record.successful_recalls,
                failed_recalls=record.failed_recalls,
                last_reviewed_at=record.last_reviewed_at,
            )
            .execution_options(synchronize_session=False)
        )
        async with async_session_scope(self.session_factory) as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def resolve_gaps(self, user_id: str, concept_id: str, now: datetime) -> int:
        stmt = (
            update(KnowledgeGapRow)
            .where(
                KnowledgeGapRow.user_id == user_id,
                KnowledgeGapRow.concept_id == concept_id,
                KnowledgeGapRow.resolved.is_(False),
            )
            .values(resolved=True, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        async with async_session_scope(self.session_factory) as session:
            result = await session.execute(stmt)
            return result.rowcount

    async def open_gap(
        self,
        user_id: str,
        concept_id: str,
        gap_type: str = "weak_foundation",
        severity: str = "moderate",
    ) -> None:
        """Record a knowledge gap, reopening it if it was resolved before."""
        async with async_session_scope(self.session_factory) as session:
            gap = await session.scalar(
                select(KnowledgeGapRow).where(
                    KnowledgeGapRow.user_id == user_id,
                    KnowledgeGapRow.concept_id == concept_id,
                    KnowledgeGapRow.gap_type == gap_type,
                )
            )
            if gap is None:
                session.add(
                    KnowledgeGapRow(
                        user_id=user_id,
                        concept_id=concept_id,
                        gap_type=gap_type,
                        severity=severity,
                    )
                )
            else:
                gap.resolved = False
                gap.resolved_at = None
                gap.severity = severity

    async def count_open_gaps(self, user_id: str, concept_id: str) -> int:
        async with async_session_scope(self.session_factory) as session:
            rows = await session.scalars(
                select(KnowledgeGapRow.id).where(
                    KnowledgeGapRow.user_id == user_id,
                    KnowledgeGapRow.concept_id == concept_id,
                    KnowledgeGapRow.resolved.is_(False),
                )
            )
            return len(rows.all())
