import os
import yaml
import json
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ConfigurationError


class ConfigManager:
    """Manages configuration for stepwise"""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config = self._load_config()

    def _get_default_config_path(self) -> Path:
        """Get default configuration path"""
        # Check environment variable first
        if env_path := os.getenv("STEPWISE_CONFIG"):
            return Path(env_path)

        # Check common locations
        locations = [
            Path.cwd() / "stepwise.yaml",
            Path.cwd() / ".stepwise" / "config.yaml",
            Path.home() / ".stepwise" / "config.yaml",
        ]

        for location in locations:
            if location.exists():
                return location

        # Return default location
        return Path.home() / ".stepwise" / "config.yaml"

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file, layered over the defaults"""
        config = self._get_default_config()
        if not self.config_path.exists():
            return config

        with open(self.config_path, 'r') as f:
            if self.config_path.suffix in ('.yaml', '.yml'):
                loaded = yaml.safe_load(f)
            elif self.config_path.suffix == '.json':
                loaded = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config format: {self.config_path.suffix}")

        if loaded is None:
            return config
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {self.config_path}")

        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        return config

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            "general": {
                "log_level": "INFO",
                "step_paths": ["features/steps"],
            },
            "executor": {
                "dry_run": False,
                "strict": False,
                "full_trace": False,
                "truncate_trace": False,
                "ignore_case": False,
                "backtrace_patterns": [],
                "output_dir": "test-results",
                "report_formats": ["json"],
                "tags": [],
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self) -> None:
        """Save configuration to file"""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self.config_path, 'w') as f:
            if self.config_path.suffix in ('.yaml', '.yml'):
                yaml.dump(self._config, f, default_flow_style=False)
            elif self.config_path.suffix == '.json':
                json.dump(self._config, f, indent=2)
            else:
                raise ConfigurationError(f"Unsupported config format: {self.config_path.suffix}")

    def get_module_config(self, module_name: str) -> Dict[str, Any]:
        """Get configuration for a specific module"""
        return self.get(module_name, {})
