"""
Unit tests for settings and logging setup.
"""

import pytest
from loguru import logger
from pydantic import ValidationError

from config import Settings, get_settings
from recall.core.log_setup import configure_logging
from recall.core.models import MasteryLevel, PracticeSessionConfig
from recall.learning.concept_mastery import MasteryConfig


class TestSettings:
    def test_defaults(self):
        settings = Settings()

        assert settings.fsrs_desired_retention == 0.9
        assert settings.session_card_count == 20
        assert settings.session_max_consecutive_same_topic == 2
        assert settings.session_max_new_cards == 5
        assert settings.mastery_max_attempts == 3

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("SESSION_CARD_COUNT", "12")
        monkeypatch.setenv("MASTERY_MAX_ATTEMPTS", "5")
        settings = Settings()

        assert settings.session_card_count == 12
        assert settings.mastery_max_attempts == 5

    @pytest.mark.parametrize("retention", [0.0, 1.0, 1.2])
    def test_rejects_bad_retention(self, retention):
        with pytest.raises(ValidationError):
            Settings(fsrs_desired_retention=retention)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()

    def test_configs_from_settings(self):
        settings = Settings(session_card_count=8, session_max_new_cards=1, mastery_max_attempts=4)

        session = PracticeSessionConfig.from_settings(settings)
        assert session.card_count == 8
        assert session.max_new_cards == 1
        assert MasteryConfig.from_settings(settings).max_attempts == 4


class TestMasteryLevel:
    @pytest.mark.parametrize(
        "score,level",
        [
            (0.0, MasteryLevel.BEGINNER),
            (0.2, MasteryLevel.DEVELOPING),
            (0.45, MasteryLevel.INTERMEDIATE),
            (0.79, MasteryLevel.ADVANCED),
            (0.8, MasteryLevel.MASTERED),
        ],
    )
    def test_from_score(self, score, level):
        assert MasteryLevel.from_score(score) == level

    def test_display_name(self):
        assert MasteryLevel.ADVANCED.display_name == "Advanced"


class TestConfigureLogging:
    def test_writes_to_log_file(self, tmp_path):
        log_file = tmp_path / "recall.log"
        configure_logging(Settings(log_level="DEBUG", log_file=str(log_file)))
        try:
            logger.info("session built")
        finally:
            logger.remove()

        assert "session built" in log_file.read_text(encoding="utf-8")

    def test_level_filters_records(self, tmp_path):
        log_file = tmp_path / "recall.log"
        configure_logging(Settings(log_level="WARNING", log_file=str(log_file)))
        try:
            logger.info("quiet")
            logger.warning("loud")
        finally:
            logger.remove()

        text = log_file.read_text(encoding="utf-8")
        assert "loud" in text
        assert "quiet" not in text
