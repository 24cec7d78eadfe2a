"""Configuration management for the webhook relay.

Settings come from dataclass defaults overridden by environment variables.
Values that cannot be parsed fall back to their defaults instead of failing
startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from loguru import logger

from ..core.supervisor import FatalPolicy

T = TypeVar("T")


@dataclass
class BatchingConfig:
    """Configuration for batch accumulation."""

    batch_size: int = 10  # Events per batch before a size flush
    batch_interval_seconds: int = 60  # Time flush delay after a batch's first event


@dataclass
class DeliveryConfig:
    """Configuration for downstream delivery."""

    endpoint: str = "http://requestbin.net"
    timeout_seconds: float = 10.0
    max_attempts: int = 3
    retry_delay_seconds: float = 2.0
    fatal_policy: FatalPolicy = FatalPolicy.TERMINATE
    shutdown_timeout_seconds: float = 30.0


@dataclass
class ServerConfig:
    """Configuration for the HTTP listener."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LoggingConfig:
    """Configuration for log output."""

    level: str = "INFO"
    json: bool = True


def _positive_int(value: str) -> int:
    parsed = int(value)
    if parsed <= 0:
        raise ValueError(f"{parsed} is not positive")
    return parsed


def _positive_float(value: str) -> float:
    parsed = float(value)
    if parsed <= 0:
        raise ValueError(f"{parsed} is not positive")
    return parsed


def _port(value: str) -> int:
    parsed = int(value)
    if not 0 < parsed < 65536:
        raise ValueError(f"{parsed} is not a valid port")
    return parsed


def _flag(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{value!r} is not a boolean")


def _log_level(value: str) -> str:
    level = value.strip().upper()
    logger.level(level)  # raises ValueError for unknown levels
    return level


@dataclass
class RelayConfig:
    """Complete webhook relay configuration."""

    batching: BatchingConfig = field(default_factory=BatchingConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Apply environment variable overrides."""
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        """Apply configuration overrides from environment variables."""
        # Batching
        self.batching.batch_size = _env("BATCH_SIZE", _positive_int, self.batching.batch_size)
        self.batching.batch_interval_seconds = _env("BATCH_INTERVAL", _positive_int, self.batching.batch_interval_seconds)

        # Delivery
        if endpoint := os.getenv("POST_ENDPOINT"):
            self.delivery.endpoint = endpoint
        self.delivery.timeout_seconds = _env("DELIVERY_TIMEOUT", _positive_float, self.delivery.timeout_seconds)
        self.delivery.max_attempts = _env("MAX_DELIVERY_ATTEMPTS", _positive_int, self.delivery.max_attempts)
        self.delivery.retry_delay_seconds = _env("RETRY_DELAY", _positive_float, self.delivery.retry_delay_seconds)
        self.delivery.fatal_policy = _env("FATAL_POLICY", lambda v: FatalPolicy(v.strip().lower()), self.delivery.fatal_policy)

        # Server
        if host := os.getenv("HOST"):
            self.server.host = host
        self.server.port = _env("PORT", _port, self.server.port)

        # Logging
        self.logging.level = _env("LOG_LEVEL", _log_level, self.logging.level)
        self.logging.json = _env("LOG_JSON", _flag, self.logging.json)

    def validate(self) -> tuple[bool, list[str]]:
        """Validate the configuration.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        errors = []

        if not self.delivery.endpoint:
            errors.append("Delivery endpoint is required")
        elif not self.delivery.endpoint.startswith(("http://", "https://")):
            errors.append("Delivery endpoint must be an http(s) URL")

        if self.batching.batch_size <= 0:
            errors.append("Batch size must be positive")

        if self.batching.batch_interval_seconds <= 0:
            errors.append("Batch interval must be positive")

        if self.delivery.max_attempts <= 0:
            errors.append("Max delivery attempts must be positive")

        if self.delivery.retry_delay_seconds < 0:
            errors.append("Retry delay cannot be negative")

        return len(errors) == 0, errors


def _env(name: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return parse(raw)
    except ValueError:
        logger.debug(f"Ignoring invalid {name}={raw!r}, using default {default!r}")
        return default


class ConfigManager:
    """Manages webhook relay configuration."""

    def __init__(self):
        """Initialize configuration manager."""
        self._config: Optional[RelayConfig] = None

    def load_config(self, **overrides: Any) -> RelayConfig:
        """Load configuration from the environment with optional overrides.

        Args:
            **overrides: ``section__field`` keyword overrides, e.g. ``batching__batch_size=5``

        Returns:
            Configured RelayConfig instance
        """
        config = RelayConfig()

        for key, value in overrides.items():
            if value is None:
                continue
            section_name, _, field_name = key.partition("__")
            section = getattr(config, section_name, None)
            if section is None or not hasattr(section, field_name):
                raise ValueError(f"Unknown configuration override: {key}")
            setattr(section, field_name, value)

        self._config = config
        return config

    def get_config(self) -> Optional[RelayConfig]:
        """Get current configuration."""
        return self._config

    def validate_config(self) -> tuple[bool, list[str]]:
        """Validate current configuration.

        Returns:
            Tuple of (is_valid, error_messages)
        """
        if not self._config:
            return False, ["No configuration loaded"]

        return self._config.validate()


# Global configuration manager instance
_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager."""
    return _config_manager


def get_current_config() -> Optional[RelayConfig]:
    """Get the current configuration."""
    return _config_manager.get_config()
