"""Tests for httpguard.settings.

Tests cover defaults, environment overrides, fail-fast validation and Problem Details
conversion of settings errors.
"""

from __future__ import annotations

import pytest

from httpguard.errors import SettingsError
from httpguard.settings import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_S, HttpClientSettings, load_settings


class TestHttpClientSettings:
    """Tests for HttpClientSettings."""

    def test_defaults(self) -> None:
        """Defaults are a 15s timeout and three exponential retries."""
        settings = HttpClientSettings()
        assert settings.timeout_s == DEFAULT_TIMEOUT_S == 15.0
        assert settings.max_retries == DEFAULT_MAX_RETRIES == 3
        assert settings.backoff_initial_s == 0.1
        assert settings.backoff_base == 2.0
        assert settings.backoff_jitter == 0.2
        assert settings.backoff_max_s is None
        assert settings.base_url is None
        assert settings.respect_retry_after
        assert not settings.retry_keyed_posts
        assert settings.default_headers == {}

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """HTTPGUARD_* variables populate fields."""
        monkeypatch.setenv("HTTPGUARD_BASE_URL", "https://api.test")
        monkeypatch.setenv("HTTPGUARD_MAX_RETRIES", "5")
        monkeypatch.setenv("HTTPGUARD_DEFAULT_HEADERS", '{"Accept": "application/json"}')
        settings = HttpClientSettings()
        assert settings.base_url == "https://api.test"
        assert settings.max_retries == 5
        assert settings.default_headers == {"Accept": "application/json"}

    def test_extra_fields_forbidden(self) -> None:
        with pytest.raises(ValueError, match="Extra inputs are not permitted"):
            HttpClientSettings(retries=3)  # type: ignore[call-arg]  # Intentionally invalid

    def test_frozen(self) -> None:
        settings = HttpClientSettings()
        with pytest.raises(ValueError, match="frozen"):
            settings.timeout_s = 1.0  # type: ignore[misc]  # frozen model


class TestLoadSettings:
    """Tests for load_settings."""

    def test_overrides(self) -> None:
        settings = load_settings(service="billing", timeout_s=2.5)
        assert settings.service == "billing"
        assert settings.timeout_s == 2.5

    def test_invalid_value_raises_settings_error(self) -> None:
        with pytest.raises(SettingsError) as exc_info:
            load_settings(timeout_s=0)
        errors = exc_info.value.context["validation_errors"]
        assert isinstance(errors, list)
        assert errors[0]["field"] == "timeout_s"

    def test_invalid_env_raises_settings_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HTTPGUARD_MAX_RETRIES", "-1")
        with pytest.raises(SettingsError, match="Configuration validation failed"):
            load_settings()

    def test_problem_details(self) -> None:
        """Settings errors render as configuration-error Problem Details."""
        with pytest.raises(SettingsError) as exc_info:
            load_settings(backoff_jitter=2)
        problem = exc_info.value.to_problem_details(instance="urn:httpguard:settings")
        assert problem["code"] == "configuration-error"
        assert problem["status"] == 500
        assert problem["type"] == "https://httpguard.dev/problems/configuration-error"
        assert problem["extensions"]["validation_errors"][0]["field"] == "backoff_jitter"
