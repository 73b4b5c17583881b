"""Tests for configuration management module.

Tests cover:
- Settings defaults
- Environment variable overrides
- Field validators (log_level, log_format, search defaults)
- Settings caching (lru_cache)
"""

from __future__ import annotations

import os

import pytest
from pydantic import ValidationError

from kbsync_common.config import Settings, get_settings

pytestmark = pytest.mark.unit


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clean_env():
    """Provide a clean environment without config-related vars."""
    env_vars = [
        "LOG_LEVEL",
        "LOG_FORMAT",
        "DAEMON_SOCKET_PATH",
        "OWNER_SOCKET_PATH",
        "RETRIEVAL_SOCKET_PATH",
        "REQUEST_TIMEOUT",
        "METRICS_PORT",
        "MAX_CONNECTIONS",
        "DEFAULT_DOCUMENT_COUNT",
        "DEFAULT_THRESHOLD",
    ]
    original_values = {var: os.environ.get(var) for var in env_vars}

    for var in env_vars:
        if var in os.environ:
            del os.environ[var]

    yield

    for var, value in original_values.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]


@pytest.fixture
def clear_settings_cache():
    """Clear the settings cache before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Test Default Values
# =============================================================================


class TestSettingsDefaults:
    """Test Settings has correct default values."""

    def test_log_defaults(self, clean_env):
        settings = Settings()

        assert settings.log_level == "INFO"
        assert settings.log_format == "console"

    def test_socket_paths_are_per_user(self, clean_env):
        """Test owner and daemon sockets include the user name."""
        settings = Settings()
        user = os.getenv("USER", "unknown")

        assert settings.daemon_socket_path == f"/tmp/kbsync_daemon_{user}.sock"
        assert settings.owner_socket_path == f"/tmp/kbsync_owner_{user}.sock"
        assert settings.retrieval_socket_path == "/tmp/kbsync_retrieval.sock"

    def test_daemon_defaults(self, clean_env):
        settings = Settings()

        assert settings.request_timeout == 10.0
        assert settings.metrics_port == 9101
        assert settings.max_connections == 50

    def test_search_defaults(self, clean_env):
        """Test fallback document count and threshold."""
        settings = Settings()

        assert settings.default_document_count == 6
        assert settings.default_threshold == 0.0


# =============================================================================
# Test Environment Variable Overrides
# =============================================================================


class TestEnvironmentOverrides:
    """Test Settings can be overridden via environment variables."""

    def test_daemon_socket_path_override(self, clean_env):
        os.environ["DAEMON_SOCKET_PATH"] = "/var/run/kbsync.sock"

        settings = Settings()

        assert settings.daemon_socket_path == "/var/run/kbsync.sock"

    def test_numeric_overrides(self, clean_env):
        os.environ["METRICS_PORT"] = "9200"
        os.environ["REQUEST_TIMEOUT"] = "2.5"
        os.environ["DEFAULT_DOCUMENT_COUNT"] = "12"

        settings = Settings()

        assert settings.metrics_port == 9200
        assert settings.request_timeout == 2.5
        assert settings.default_document_count == 12

    def test_case_insensitive_env_vars(self, clean_env):
        """Test environment variables are case insensitive."""
        os.environ["owner_socket_path"] = "/tmp/lower.sock"

        try:
            settings = Settings()
        finally:
            del os.environ["owner_socket_path"]

        assert settings.owner_socket_path == "/tmp/lower.sock"


# =============================================================================
# Test Field Validators
# =============================================================================


class TestLogLevelValidator:
    """Test log_level validator."""

    @pytest.mark.parametrize("level", ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    def test_valid_levels(self, clean_env, level):
        assert Settings(log_level=level).log_level == level

    def test_lowercase_converted(self, clean_env):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_raises(self, clean_env):
        with pytest.raises(ValidationError) as exc_info:
            Settings(log_level="INVALID")

        assert any("log_level" in str(e) for e in exc_info.value.errors())

    def test_invalid_via_env(self, clean_env):
        os.environ["LOG_LEVEL"] = "TRACE"

        with pytest.raises(ValidationError):
            Settings()


class TestLogFormatValidator:
    """Test log_format validator."""

    def test_uppercase_converted(self, clean_env):
        assert Settings(log_format="JSON").log_format == "json"

    def test_invalid_raises(self, clean_env):
        with pytest.raises(ValidationError) as exc_info:
            Settings(log_format="xml")

        assert any("log_format" in str(e) for e in exc_info.value.errors())


class TestRangeValidation:
    """Test numeric bounds."""

    def test_threshold_above_one_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(default_threshold=1.5)

    def test_negative_document_count_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(default_document_count=-1)

    def test_zero_timeout_rejected(self, clean_env):
        with pytest.raises(ValidationError):
            Settings(request_timeout=0)


# =============================================================================
# Test Settings Caching
# =============================================================================


class TestGetSettings:
    """Test get_settings function and caching."""

    def test_get_settings_cached(self, clean_env, clear_settings_cache):
        settings1 = get_settings()
        settings2 = get_settings()

        assert isinstance(settings1, Settings)
        assert settings1 is settings2

    def test_cache_clear_reloads_settings(self, clean_env, clear_settings_cache):
        """Test clearing cache causes reload."""
        settings1 = get_settings()
        os.environ["LOG_LEVEL"] = "DEBUG"

        assert get_settings() is settings1

        get_settings.cache_clear()
        settings2 = get_settings()

        assert settings2 is not settings1
        assert settings2.log_level == "DEBUG"
