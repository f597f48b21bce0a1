"""
Settings and configuration for the registry image check.

Centralizes configuration values and provides validation with fail-fast behavior.
Request-specific configuration (repository, credentials) arrives in the check
request itself; these settings cover the HTTP behaviour of the check and are
loaded from environment variables when the CLI starts.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import FrozenSet

__all__ = ["Settings", "create_settings_from_env"]

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for registry access.

    Registry/HTTP Settings:
        http_timeout_s: Per-attempt HTTP timeout in seconds
        http_retry: Number of retries after the first attempt (0=no retry)
        backoff_min_s: Delay before the first retry
        backoff_max_s: Upper bound for any single retry delay
        insecure_registries: Registry hosts reached over plain HTTP

    Diagnostics:
        log_level: Level for diagnostics written to stderr
    """
    http_timeout_s: float = 30.0
    http_retry: int = 4
    backoff_min_s: float = 1.0
    backoff_max_s: float = 10.0
    insecure_registries: FrozenSet[str] = field(default_factory=frozenset)
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate settings on construction."""
        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

        if self.backoff_min_s < 0:
            raise ValueError(f"backoff_min_s must be non-negative, got {self.backoff_min_s}")

        if self.backoff_max_s < self.backoff_min_s:
            raise ValueError(
                f"backoff_max_s ({self.backoff_max_s}) must not be below "
                f"backoff_min_s ({self.backoff_min_s})"
            )

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level {self.log_level!r}. Expected one of: {', '.join(sorted(_LOG_LEVELS))}"
            )

    @property
    def attempts(self) -> int:
        """Total attempts per request, first try included."""
        return self.http_retry + 1

    @property
    def level(self) -> int:
        """Numeric logging level."""
        return logging.getLevelName(self.log_level.upper())

    def is_insecure(self, registry: str) -> bool:
        """Whether registry should be reached over plain HTTP."""
        host = registry.split(":", 1)[0]
        return (
            registry in self.insecure_registries
            or host in ("localhost", "127.0.0.1")
        )


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - REGISTRY_CHECK_HTTP_TIMEOUT (default: 30.0)
        - REGISTRY_CHECK_HTTP_RETRY (default: 4)
        - REGISTRY_CHECK_BACKOFF_MIN (default: 1.0)
        - REGISTRY_CHECK_BACKOFF_MAX (default: 10.0)
        - REGISTRY_CHECK_INSECURE_REGISTRIES (comma-separated hosts, default: none)
        - REGISTRY_CHECK_LOG_LEVEL (default: INFO)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    insecure = os.getenv("REGISTRY_CHECK_INSECURE_REGISTRIES", "")

    return Settings(
        http_timeout_s=get_float("REGISTRY_CHECK_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("REGISTRY_CHECK_HTTP_RETRY", 4),
        backoff_min_s=get_float("REGISTRY_CHECK_BACKOFF_MIN", 1.0),
        backoff_max_s=get_float("REGISTRY_CHECK_BACKOFF_MAX", 10.0),
        insecure_registries=frozenset(h.strip() for h in insecure.split(",") if h.strip()),
        log_level=os.getenv("REGISTRY_CHECK_LOG_LEVEL", "INFO"),
    )
