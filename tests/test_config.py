"""
Unit tests for configuration management.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from edubot.config.settings import ConfigManager, Settings, normalize_wait_until


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Test default settings values."""
        settings = Settings(_env_file=None)

        assert settings.browser_headless is False
        assert settings.resolver_max_attempts == 4
        assert settings.resolver_attempt_delay_ms == 400
        assert settings.resolver_timeout_ms == 30000
        assert settings.step_retry_delay_ms == 1000
        assert settings.type_delay_ms == 50
        assert settings.min_type_timeout_ms == 5000
        assert settings.navigation_wait_until == "networkidle"
        assert settings.login_poll_interval_ms == 1000
        assert settings.login_wait_timeout_ms == 120000
        assert settings.auto_resume_on_login is False
        assert settings.log_level == "INFO"
        assert settings.log_format == "text"
        assert settings.database_path == Path("data/edubot.db")

    def test_settings_from_env(self):
        """Test loading settings from environment variables."""
        with patch.dict(os.environ, {
            "BROWSER_HEADLESS": "true",
            "RESOLVER_MAX_ATTEMPTS": "6",
            "AUTO_RESUME_ON_LOGIN": "1",
            "LOG_LEVEL": "DEBUG",
        }):
            settings = Settings(_env_file=None)

            assert settings.browser_headless is True
            assert settings.resolver_max_attempts == 6
            assert settings.auto_resume_on_login is True
            assert settings.log_level == "DEBUG"

    def test_log_level_validation(self):
        """Test log level validation."""
        settings = Settings(_env_file=None, log_level="debug")
        assert settings.log_level == "DEBUG"

        with pytest.raises(ValueError, match="Invalid log level"):
            Settings(_env_file=None, log_level="LOUD")

    def test_log_format_validation(self):
        """Test log format validation."""
        assert Settings(_env_file=None, log_format="json").log_format == "json"

        with pytest.raises(ValueError, match="Invalid log format"):
            Settings(_env_file=None, log_format="xml")

    def test_poll_interval_lower_bound(self):
        """Test the login poll interval cannot be set below 100ms."""
        with pytest.raises(ValueError):
            Settings(_env_file=None, login_poll_interval_ms=10)

    def test_login_markers(self):
        """Test URL markers are split, trimmed and lowercased."""
        settings = Settings(_env_file=None, login_url_markers=" Login , SSO,,giris ")
        assert settings.login_markers == ["login", "sso", "giris"]

    def test_wait_until_aliases(self):
        """Test Puppeteer-style load conditions are accepted."""
        settings = Settings(_env_file=None, navigation_wait_until="networkidle2")
        assert settings.navigation_wait_until == "networkidle"

        with pytest.raises(ValueError, match="Invalid navigation wait condition"):
            Settings(_env_file=None, navigation_wait_until="whenever")

    def test_create_directories(self, tmp_path):
        """Test directory creation."""
        settings = Settings(
            _env_file=None,
            data_dir=tmp_path / "data",
            screenshots_dir=tmp_path / "shots",
            database_path=tmp_path / "db" / "edubot.db",
        )

        settings.create_directories()

        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "shots").is_dir()
        assert (tmp_path / "db").is_dir()


class TestNormalizeWaitUntil:
    """Tests for load condition normalization."""

    @pytest.mark.parametrize("value, expected", [
        (None, "networkidle"),
        ("", "networkidle"),
        ("networkidle0", "networkidle"),
        ("DOMContentLoaded", "domcontentloaded"),
        ("load", "load"),
    ])
    def test_normalize(self, value, expected):
        """Test stored values map onto Playwright conditions."""
        assert normalize_wait_until(value) == expected


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_get(self, settings):
        """Test getting configuration values."""
        manager = ConfigManager(settings)

        assert manager.get("resolver_max_attempts") == 2
        assert manager.get("missing_key", "fallback") == "fallback"

    def test_get_required(self, settings):
        """Test required values raise for unknown keys."""
        manager = ConfigManager(settings)

        assert manager.get_required("type_delay_ms") == 0
        with pytest.raises(KeyError, match="Required configuration key not found"):
            manager.get_required("missing_key")

    def test_get_all(self, settings):
        """Test dumping all values."""
        values = ConfigManager(settings).get_all()

        assert values["login_url_markers"] == "login,auth,ekampus"
        assert "database_path" in values
