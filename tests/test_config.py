"""Tests for configuration loading."""

import os
from unittest.mock import patch

import pytest

from oxide_provider.config import (
    DEFAULT_HOST,
    DEFAULT_OPERATION_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    Config,
    ConfigurationError,
    parse_duration,
)


class TestConfig:
    """Tests for Config class."""

    def test_valid_config(self) -> None:
        """Test creating a valid configuration with defaults."""
        config = Config(token="secret")

        assert config.host == DEFAULT_HOST
        assert config.default_timeout_seconds == DEFAULT_OPERATION_TIMEOUT_SECONDS
        assert config.user_agent == DEFAULT_USER_AGENT

    def test_empty_token(self) -> None:
        """Test that an empty token raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(token="")

        assert "OXIDE_TOKEN" in str(exc_info.value)

    def test_empty_host(self) -> None:
        """Test that an empty host raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(token="secret", host="")

        assert "OXIDE_HOST" in str(exc_info.value)

    def test_host_without_scheme(self) -> None:
        """Test that a host must be an http(s) URL."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(token="secret", host="rack.example.com")

        assert "scheme" in str(exc_info.value)

    def test_invalid_timeout(self) -> None:
        """Test that out-of-range default timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(token="secret", default_timeout_seconds=0)

        assert "default timeout" in str(exc_info.value)

    def test_errors_are_collected(self) -> None:
        """Test that every problem is reported at once."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(token="", host="ftp://rack")

        message = str(exc_info.value)
        assert "token" in message
        assert "host" in message

    def test_base_url_strips_trailing_slash(self) -> None:
        """Test that base_url has no trailing slash."""
        config = Config(token="secret", host="https://rack.example.com/")

        assert config.base_url == "https://rack.example.com"

    def test_from_env(self) -> None:
        """Test loading configuration from environment variables."""
        env = {
            "OXIDE_HOST": "https://rack.example.com",
            "OXIDE_TOKEN": "secret",
            "OXIDE_DEFAULT_TIMEOUT": "10m",
        }

        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.host == "https://rack.example.com"
        assert config.token == "secret"
        assert config.default_timeout_seconds == 600

    def test_from_env_defaults(self) -> None:
        """Test that only the token is needed from the environment."""
        with patch.dict(os.environ, {"OXIDE_TOKEN": "secret"}, clear=True):
            config = Config.from_env()

        assert config.host == DEFAULT_HOST
        assert config.default_timeout_seconds == DEFAULT_OPERATION_TIMEOUT_SECONDS

    def test_from_env_test_fallbacks(self) -> None:
        """Test that the test variables are used when the primary ones are unset."""
        env = {
            "OXIDE_TEST_HOST": "http://10.0.0.1:12220",
            "OXIDE_TEST_TOKEN": "test-secret",
        }

        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.host == "http://10.0.0.1:12220"
        assert config.token == "test-secret"

    def test_from_env_primary_wins(self) -> None:
        """Test that the primary variable wins over the test fallback."""
        env = {"OXIDE_TOKEN": "primary", "OXIDE_TEST_TOKEN": "fallback"}

        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.token == "primary"

    def test_from_env_missing_token(self) -> None:
        """Test that a missing token fails at startup."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigurationError):
                Config.from_env()

    def test_from_env_invalid_timeout(self) -> None:
        """Test that an unparseable default timeout is reported with its variable."""
        env = {"OXIDE_TOKEN": "secret", "OXIDE_DEFAULT_TIMEOUT": "soon"}

        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                Config.from_env()

        assert "OXIDE_DEFAULT_TIMEOUT" in str(exc_info.value)

    def test_config_is_frozen(self) -> None:
        """Test that configuration cannot be modified after creation."""
        config = Config(token="secret")

        with pytest.raises(AttributeError):
            config.token = "other"  # type: ignore[misc]


class TestParseDuration:
    """Tests for duration parsing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (30, 30),
            (2.5, 2),
            ("45", 45),
            ("90s", 90),
            ("10m", 600),
            ("1h30m", 5400),
            ("1h", 3600),
            (" 5M ", 300),
        ],
    )
    def test_valid_durations(self, value: object, expected: int) -> None:
        """Test accepted duration forms."""
        assert parse_duration(value) == expected  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", ["", "soon", "10 minutes", "-5", 0, -1, True, None, [5]])
    def test_invalid_durations(self, value: object) -> None:
        """Test rejected duration forms."""
        with pytest.raises(ConfigurationError):
            parse_duration(value)  # type: ignore[arg-type]
