"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from recall.core.models import CardMemoryState, CardState, CardWithPriority, ReviewCard  # noqa: E402

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite via aiosqlite)")
    config.addinivalue_line("markers", "learning: Concept mastery tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "learning" in str(item.fspath):
            item.add_marker(pytest.mark.learning)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def caplog(caplog):
    """Route loguru records into pytest's caplog."""
    handler_id = logger.add(caplog.handler, format="{message}", level=0)
    yield caplog
    logger.remove(handler_id)


@pytest.fixture
def now():
    """Fixed reference instant."""
    return NOW


@pytest.fixture
def rng():
    """Seeded random source for reproducible shuffles."""
    return random.Random(1234)


def make_card(
    card_id: str,
    course_id: str = "course-a",
    lesson_index: int = 0,
    state: CardState = CardState.REVIEW,
    due_in_days: float = 0.0,
    lapses: int = 0,
    reviewed: bool = True,
    stability: float = 3.0,
) -> ReviewCard:
    """Build a review card due ``due_in_days`` after NOW."""
    memory = CardMemoryState(
        state=state,
        stability=stability,
        due_at=NOW + timedelta(days=due_in_days),
        lapses=lapses,
        last_reviewed_at=NOW - timedelta(days=1) if reviewed and state != CardState.NEW else None,
    )
    return ReviewCard(card_id=card_id, course_id=course_id, lesson_index=lesson_index, memory=memory)


def make_prioritized(
    card_id: str,
    topic: str = "course-a:0",
    priority: float = 100.0,
    state: CardState = CardState.REVIEW,
    mastery: float = 0.5,
) -> CardWithPriority:
    """Build a scored card for selector tests; topic is 'course:lesson'."""
    course_id, lesson = topic.split(":")
    card = make_card(card_id, course_id=course_id, lesson_index=int(lesson), state=state)
    return CardWithPriority(card=card, topic_key=topic, lesson_mastery=mastery, priority_score=priority)


@pytest.fixture
def card_factory():
    return make_card


@pytest.fixture
def prioritized_factory():
    return make_prioritized
