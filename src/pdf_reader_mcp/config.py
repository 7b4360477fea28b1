"""Configuration loading for pdf-reader-mcp.

Configuration is supplied by the host environment (e.g., MCP client config),
loaded once at startup and passed explicitly to the validators and the
processor. Validation code never reads the environment itself.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import ConfigError

_LOG_LEVELS = {
    "error": "ERROR",
    "warn": "WARNING",
    "warning": "WARNING",
    "info": "INFO",
    "debug": "DEBUG",
}


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Processing limits and server settings."""

    max_file_size: int = 100 * 1024 * 1024
    processing_timeout_ms: int = 60_000
    # Advisory only; reported in server status but not enforced.
    max_memory_usage: int = 500 * 1024 * 1024
    concurrent_processing_limit: int = 10
    log_level: str = "INFO"

    # Path limits
    max_path_length: int = 255
    max_path_depth: int = 20

    @property
    def processing_timeout_s(self) -> float:
        return self.processing_timeout_ms / 1000.0


def _parse_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be a positive integer")
    return value


def _parse_log_level(raw: str | None) -> str:
    if raw is None or not raw.strip():
        return "INFO"
    level = _LOG_LEVELS.get(raw.strip().lower())
    if level is None:
        raise ConfigError(f"LOG_LEVEL must be one of: {', '.join(sorted(_LOG_LEVELS))}")
    return level


def load_config_from_env() -> ServerConfig:
    """Load and validate configuration from environment variables.

    Raises:
        ConfigError: If a variable is set to an invalid value.
    """
    defaults = ServerConfig()
    return ServerConfig(
        max_file_size=_parse_positive_int("PDF_MAX_FILE_SIZE", defaults.max_file_size),
        processing_timeout_ms=_parse_positive_int("PDF_PROCESSING_TIMEOUT", defaults.processing_timeout_ms),
        max_memory_usage=_parse_positive_int("PDF_MAX_MEMORY_USAGE", defaults.max_memory_usage),
        concurrent_processing_limit=_parse_positive_int(
            "PDF_CONCURRENT_PROCESSING_LIMIT", defaults.concurrent_processing_limit
        ),
        log_level=_parse_log_level(os.getenv("LOG_LEVEL")),
    )
