"""
Tests for settings module.

Tests settings validation and environment variable loading.
"""
from __future__ import annotations

import logging

import pytest

from registry_image_check.settings import Settings, create_settings_from_env


class TestSettings:
    """Test Settings dataclass validation."""

    def test_defaults(self):
        """Test the documented defaults."""
        settings = Settings()
        assert settings.http_timeout_s == 30.0
        assert settings.http_retry == 4
        assert settings.attempts == 5
        assert settings.backoff_min_s == 1.0
        assert settings.backoff_max_s == 10.0
        assert settings.insecure_registries == frozenset()
        assert settings.level == logging.INFO

    def test_no_retry(self):
        """Test that zero retries still makes one attempt."""
        assert Settings(http_retry=0).attempts == 1

    @pytest.mark.parametrize("kwargs,match", [
        ({"http_timeout_s": 0}, "http_timeout_s must be positive"),
        ({"http_timeout_s": -1.0}, "http_timeout_s must be positive"),
        ({"http_retry": -1}, "http_retry must be non-negative"),
        ({"backoff_min_s": -0.5}, "backoff_min_s must be non-negative"),
        ({"backoff_min_s": 5.0, "backoff_max_s": 2.0}, "must not be below"),
        ({"log_level": "LOUD"}, "Invalid log_level"),
    ])
    def test_invalid_values_raise(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            Settings(**kwargs)

    def test_log_level_case_insensitive(self):
        assert Settings(log_level="debug").level == logging.DEBUG

    def test_settings_are_frozen(self):
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.http_retry = 9  # type: ignore[misc]

    @pytest.mark.parametrize("registry,expected", [
        ("localhost", True),
        ("localhost:5000", True),
        ("127.0.0.1:5000", True),
        ("index.docker.io", False),
        ("registry.internal:5000", True),
        ("registry.internal", False),
    ])
    def test_is_insecure(self, registry, expected):
        """Test which registries are reached over plain HTTP."""
        settings = Settings(insecure_registries=frozenset({"registry.internal:5000"}))
        assert settings.is_insecure(registry) is expected


class TestCreateSettingsFromEnv:
    """Test loading settings from environment variables."""

    def test_empty_environment_gives_defaults(self, monkeypatch):
        monkeypatch.delenv("REGISTRY_CHECK_LOG_LEVEL", raising=False)

        assert create_settings_from_env() == Settings()

    def test_all_variables(self, monkeypatch):
        """Test that every variable is honored."""
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_TIMEOUT", "12.5")
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_RETRY", "2")
        monkeypatch.setenv("REGISTRY_CHECK_BACKOFF_MIN", "0.5")
        monkeypatch.setenv("REGISTRY_CHECK_BACKOFF_MAX", "3")
        monkeypatch.setenv("REGISTRY_CHECK_INSECURE_REGISTRIES", "a.local:5000, b.local ,")
        monkeypatch.setenv("REGISTRY_CHECK_LOG_LEVEL", "DEBUG")

        settings = create_settings_from_env()

        assert settings.http_timeout_s == 12.5
        assert settings.http_retry == 2
        assert settings.backoff_min_s == 0.5
        assert settings.backoff_max_s == 3.0
        assert settings.insecure_registries == frozenset({"a.local:5000", "b.local"})
        assert settings.level == logging.DEBUG

    def test_empty_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_RETRY", "")
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_TIMEOUT", "")

        settings = create_settings_from_env()

        assert settings.http_retry == 4
        assert settings.http_timeout_s == 30.0

    def test_invalid_number_raises(self, monkeypatch):
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_RETRY", "many")

        with pytest.raises(ValueError):
            create_settings_from_env()

    def test_invalid_value_fails_fast(self, monkeypatch):
        monkeypatch.setenv("REGISTRY_CHECK_BACKOFF_MAX", "0.1")

        with pytest.raises(ValueError, match="must not be below"):
            create_settings_from_env()

    def test_fresh_instance_each_call(self, monkeypatch):
        """Test that settings are not cached between calls."""
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_RETRY", "1")
        first = create_settings_from_env()
        monkeypatch.setenv("REGISTRY_CHECK_HTTP_RETRY", "3")

        assert create_settings_from_env().http_retry == 3
        assert first.http_retry == 1
