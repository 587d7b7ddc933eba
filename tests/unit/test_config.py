"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from governance.core.config import Settings, get_settings


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DECISION_REASON_MAX_LENGTH", raising=False)
        monkeypatch.delenv("EVENTS_PAGE_LIMIT", raising=False)
        settings = Settings(_env_file=None)

        assert settings.decision_reason_max_length == 5000
        assert settings.events_page_limit == 250
        assert settings.log_to_file is False

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DECISION_REASON_MAX_LENGTH", "100")
        monkeypatch.setenv("log_level", "DEBUG")

        settings = Settings(_env_file=None)

        assert settings.decision_reason_max_length == 100
        assert settings.log_level == "DEBUG"

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("EVENTS_PAGE_LIMIT=50\nUNRELATED_SETTING=1\n")

        settings = Settings(_env_file=str(env_file))

        assert settings.events_page_limit == 50

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_page_limit_bounds(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, events_page_limit=5000)
