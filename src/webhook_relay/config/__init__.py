"""Configuration module for the webhook relay."""

from .logger_config import setup_logging
from .settings import BatchingConfig, ConfigManager, DeliveryConfig, LoggingConfig, RelayConfig, ServerConfig, get_config_manager, get_current_config

__all__ = ["RelayConfig", "BatchingConfig", "DeliveryConfig", "ServerConfig", "LoggingConfig", "ConfigManager", "get_config_manager", "get_current_config", "setup_logging"]
