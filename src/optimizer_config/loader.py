"""Configuration loader with validation and singleton access."""

import logging
import yaml
from pathlib import Path
from typing import Optional

from .models import AppConfig

logger = logging.getLogger(__name__)

# Global config singleton
_config: Optional[AppConfig] = None


def load_config(config_path: str | Path) -> AppConfig:
    """
    Load and validate configuration from YAML file.

    Args:
        config_path: Path to config.yaml file

    Returns:
        Validated AppConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config validation fails
        yaml.YAMLError: If YAML parsing fails
    """
    global _config

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    try:
        _config = AppConfig(**raw_config)
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        raise ValueError(f"Invalid configuration: {e}") from e

    # Log loaded configuration for audit trail
    logger.info("Configuration loaded successfully:")
    logger.info(f"  Solver timeout: {_config.solver.timeout_seconds}s")
    logger.info(f"  Solver workers: {_config.solver.num_workers}")
    logger.info(f"  Fallback threshold: {_config.optimizer.fallback_threshold_percent}%")
    logger.info(f"  Heuristic fallback enabled: {_config.optimizer.heuristic_fallback_enabled}")
    logger.info(f"  Heuristic phase iteration cap: {_config.heuristics.max_phase_iterations}")
    logger.info(f"  Enhanced max iterations: {_config.enhanced.max_iterations}")
    logger.info(
        f"  Enhanced deviation clamp: [{_config.enhanced.min_deviation_percent}%, "
        f"{_config.enhanced.max_deviation_percent}%]"
    )
    logger.info(f"  Cache backend: {_config.cache.backend} (TTL {_config.cache.ttl_seconds}s)")

    return _config


def get_config() -> AppConfig:
    """
    Get the current loaded configuration.

    Returns:
        Current AppConfig instance

    Raises:
        RuntimeError: If config hasn't been loaded yet
    """
    if _config is None:
        raise RuntimeError(
            "Configuration not loaded. Call load_config() or reset_config() first."
        )
    return _config


def reset_config(config: Optional[AppConfig] = None) -> AppConfig:
    """Install an already-built configuration, or the defaults when none is given."""
    global _config
    _config = config if config is not None else AppConfig()
    return _config
