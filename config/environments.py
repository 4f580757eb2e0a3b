"""
Environment-specific configuration management.
Loads per-environment overrides from config/environments/*.yaml|*.json.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .config import Config

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent


@dataclass
class EnvironmentConfig:
    """Environment-specific configuration overrides."""

    name: str
    overrides: dict[str, Any] = field(default_factory=dict)

    def apply_to_config(self, config: Config) -> Config:
        """Apply environment-specific overrides to the base configuration."""
        for key, value in self.overrides.items():
            if not hasattr(config, key):
                logger.warning("Ignoring unknown config key '%s' for %s", key, self.name)
                continue
            if isinstance(value, dict) and hasattr(getattr(config, key), "__dict__"):
                # Nested configuration section
                nested_config = getattr(config, key)
                for nested_key, nested_value in value.items():
                    if hasattr(nested_config, nested_key):
                        setattr(nested_config, nested_key, nested_value)
            else:
                setattr(config, key, value)
        return config


class EnvironmentManager:
    """Manages environment-specific configurations."""

    def __init__(self, config_dir: str | Path = DEFAULT_CONFIG_DIR):
        self.config_dir = Path(config_dir)
        self.environments: dict[str, EnvironmentConfig] = {}
        self._load_environment_configs()

    def _load_environment_configs(self) -> None:
        """Load environment-specific configuration files."""
        env_dir = self.config_dir / "environments"
        if not env_dir.exists():
            return

        for env_file in sorted(env_dir.glob("*.json")):
            with open(env_file) as f:
                overrides = json.load(f)
            self.environments[env_file.stem] = EnvironmentConfig(
                name=env_file.stem, overrides=overrides
            )

        for env_file in sorted(env_dir.glob("*.yaml")):
            with open(env_file) as f:
                overrides = yaml.safe_load(f)
            self.environments[env_file.stem] = EnvironmentConfig(
                name=env_file.stem, overrides=overrides or {}
            )

    def get_environment_config(self, environment: str) -> EnvironmentConfig | None:
        """Get configuration for a specific environment."""
        return self.environments.get(environment)

    def apply_environment(self, config: Config, environment: str) -> Config:
        """Apply environment-specific configuration to base config."""
        env_config = self.get_environment_config(environment)
        if env_config:
            return env_config.apply_to_config(config)
        return config

    def list_environments(self) -> list[str]:
        """List available environment configurations."""
        return list(self.environments.keys())


# Global environment manager
environment_manager = EnvironmentManager()
