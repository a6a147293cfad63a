"""Configuration error types."""

from __future__ import annotations


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


class MissingConfigurationError(ConfigError):
    """One or more required environment variables are absent or empty."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required environment variables: {', '.join(missing)}")
