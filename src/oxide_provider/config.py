"""Configuration management with validation.

The API base address and credential token are resolved once at process
start and shared read-only by every reconciliation engine.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from urllib.parse import urlparse

PROVIDER_VERSION = "0.1.0"


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_HOST = "http://127.0.0.1:12220"
DEFAULT_OPERATION_TIMEOUT_SECONDS = 600
MIN_OPERATION_TIMEOUT_SECONDS = 1
MAX_OPERATION_TIMEOUT_SECONDS = 86400

DEFAULT_USER_AGENT = f"oxide-provider/{PROVIDER_VERSION}"

# Environment variables, first non-empty wins
HOST_ENV_VARS: tuple[str, ...] = ("OXIDE_HOST", "OXIDE_TEST_HOST")
TOKEN_ENV_VARS: tuple[str, ...] = ("OXIDE_TOKEN", "OXIDE_TEST_TOKEN")
TIMEOUT_ENV_VAR = "OXIDE_DEFAULT_TIMEOUT"

ALLOWED_HOST_SCHEMES = ("http", "https")

DURATION_PATTERN = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")


def parse_duration(value: int | float | str) -> int:
    """Convert a timeout value into whole seconds.

    Accepts plain numbers (seconds), digit strings, and duration strings
    made of hour/minute/second components such as ``"90s"``, ``"10m"`` or
    ``"1h30m"``.

    Raises:
        ConfigurationError: If the value cannot be interpreted or is not positive.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ConfigurationError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = int(value)
    else:
        text = value.strip().lower()
        if text.isdigit():
            seconds = int(text)
        else:
            match = DURATION_PATTERN.match(text)
            if not text or match is None:
                raise ConfigurationError(f"Invalid duration: {value!r}")
            hours, minutes, secs = (int(g) if g else 0 for g in match.groups())
            seconds = hours * 3600 + minutes * 60 + secs

    if seconds <= 0:
        raise ConfigurationError(f"Duration must be positive: {value!r}")
    return seconds


@dataclass(frozen=True)
class Config:
    """Provider configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    token: str
    host: str = DEFAULT_HOST
    default_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.host:
            errors.append("host must not be empty (OXIDE_HOST)")
        else:
            parsed = urlparse(self.host)
            if parsed.scheme not in ALLOWED_HOST_SCHEMES or not parsed.netloc:
                errors.append(
                    f"host must be a URL with scheme {list(ALLOWED_HOST_SCHEMES)}: {self.host}"
                )

        if not self.token:
            errors.append("token must not be empty (OXIDE_TOKEN)")

        if not (
            MIN_OPERATION_TIMEOUT_SECONDS
            <= self.default_timeout_seconds
            <= MAX_OPERATION_TIMEOUT_SECONDS
        ):
            errors.append(
                f"default timeout must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def base_url(self) -> str:
        """Host without a trailing slash."""
        return self.host.rstrip("/")

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            OXIDE_HOST / OXIDE_TEST_HOST: API base address
                (default: http://127.0.0.1:12220)
            OXIDE_TOKEN / OXIDE_TEST_TOKEN: API credential token (required)
            OXIDE_DEFAULT_TIMEOUT: Default operation timeout, seconds or a
                duration string like "10m" (default: 600)
        """

        def first_env(keys: tuple[str, ...], default: str) -> str:
            for key in keys:
                value = os.environ.get(key)
                if value:
                    return value
            return default

        def get_timeout() -> int:
            value = os.environ.get(TIMEOUT_ENV_VAR)
            if not value:
                return DEFAULT_OPERATION_TIMEOUT_SECONDS
            try:
                return parse_duration(value)
            except ConfigurationError as e:
                raise ConfigurationError(f"{TIMEOUT_ENV_VAR} {e}") from e

        return cls(
            host=first_env(HOST_ENV_VARS, DEFAULT_HOST),
            token=first_env(TOKEN_ENV_VARS, ""),
            default_timeout_seconds=get_timeout(),
        )
