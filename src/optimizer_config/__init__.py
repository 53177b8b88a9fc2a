"""Configuration management for the budget optimizer."""

from .models import (
    AppConfig,
    SolverConfig,
    OptimizerConfig,
    HeuristicConfig,
    EnhancedConfig,
    CacheConfig,
    LoggingConfig,
)
from .loader import load_config, get_config, reset_config

__all__ = [
    "AppConfig",
    "SolverConfig",
    "OptimizerConfig",
    "HeuristicConfig",
    "EnhancedConfig",
    "CacheConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "reset_config",
]
