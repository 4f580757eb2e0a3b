"""
Configuration package for the study platform.
Provides centralized configuration management with environment overrides and feature flags.
"""

from .config import (
    Config,
    DatabaseConfig,
    FeatureFlags,
    PersistenceSettings,
    SecurityConfig,
    StorageConfig,
    config,
)
from .environments import EnvironmentManager, environment_manager

__all__ = [
    "config",
    "Config",
    "DatabaseConfig",
    "StorageConfig",
    "SecurityConfig",
    "PersistenceSettings",
    "FeatureFlags",
    "EnvironmentManager",
    "environment_manager",
]
