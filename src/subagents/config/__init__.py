"""Configuration models and loader for subagents.yaml and the environment."""

from subagents.config.models import LogLevel, ServerConfig
from subagents.config.parser import ConfigError, load_config

__all__ = [
    "ConfigError",
    "LogLevel",
    "ServerConfig",
    "load_config",
]
