"""
Strongroom Configuration Manager.

Centralized configuration with:
- Schema-driven type conversion and validation
- Environment variable override (.env loaded via python-dotenv)
- Persistent overrides in data/config.json
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from croniter import croniter
from dotenv import load_dotenv

from strongroom.shared.gate import GateLogger

_log = GateLogger.get("Config")

from strongroom.Config.schema import (
    CONFIG_SCHEMA,
    ConfigField,
    ConfigType,
    ConfigCategory,
)


# Config file paths
PROJECT_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = PROJECT_ROOT / ".env"
CONFIG_JSON = PROJECT_ROOT / "data" / "config.json"


class ConfigManager:
    """
    Manages Strongroom configuration.

    Priority order:
    1. Environment variables
    2. config.json
    3. Schema defaults
    """

    def __init__(self, config_json: Optional[Path] = None, env_file: Optional[Path] = None):
        self.config_json = Path(config_json) if config_json else CONFIG_JSON
        self.env_file = Path(env_file) if env_file else ENV_FILE
        self._cache: Dict[str, Any] = {}
        self._loaded = False
        self._load()

    def _load(self):
        """Load configuration from all sources."""
        load_dotenv(self.env_file)

        json_config = {}
        if self.config_json.exists():
            try:
                with open(self.config_json, encoding="utf-8") as f:
                    json_config = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                _log.warning(f"Ignoring unreadable {self.config_json}: {e}")

        for field in CONFIG_SCHEMA:
            value = os.environ.get(field.env_var)

            if value is None and field.key in json_config:
                value = json_config[field.key]

            if value is None:
                value = field.default

            self._cache[field.key] = self._convert_type(value, field.config_type)

        self._loaded = True

    def _convert_type(self, value: Any, config_type: ConfigType) -> Any:
        """Convert value to appropriate type."""
        if value is None:
            return None

        try:
            if config_type == ConfigType.INTEGER:
                return int(value)
            elif config_type == ConfigType.BOOLEAN:
                if isinstance(value, bool):
                    return value
                return str(value).lower() in ("true", "1", "yes", "on")
            elif config_type == ConfigType.LIST:
                if isinstance(value, list):
                    return value
                return [v.strip() for v in str(value).split(",") if v.strip()]
            elif config_type == ConfigType.JSON:
                if isinstance(value, (dict, list)):
                    return value
                return json.loads(value)
            else:
                return str(value) if value else None
        except (ValueError, TypeError):
            return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        if not self._loaded:
            self._load()
        value = self._cache.get(key)
        return default if value is None else value


    def _check_field(self, field: ConfigField, value: Any) -> Optional[str]:
        """Return an error message if value does not satisfy the field."""
        if field.validation and not re.match(field.validation, str(value)):
            return f"Invalid format for {field.key}"
        if field.options and value not in field.options:
            return f"Invalid option for {field.key}: {value}"
        if field.config_type == ConfigType.CRON and not croniter.is_valid(str(value)):
            return f"Invalid cron expression for {field.key}: {value}"
        if field.config_type == ConfigType.JSON and not isinstance(value, (dict, list)):
            return f"{field.key} is not valid JSON"
        if field.config_type == ConfigType.INTEGER and not isinstance(value, int):
            return f"{field.key} must be an integer"
        return None

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate configuration.

        Returns:
            (is_valid, list of error messages)
        """
        errors = []

        for field in CONFIG_SCHEMA:
            value = self._cache.get(field.key)

            if field.required and (value is None or value == ""):
                errors.append(f"Required config missing: {field.key}")
                continue

            if value is not None and value != "":
                error = self._check_field(field, value)
                if error:
                    errors.append(error)

        return len(errors) == 0, errors


# Global instance
_manager: Optional[ConfigManager] = None


def get_manager() -> ConfigManager:
    """Get or create the global ConfigManager."""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def reload():
    """Reload configuration from files and environment."""
    global _manager
    _manager = ConfigManager()


def get(key: str, default: Any = None) -> Any:
    """Get a config value."""
    return get_manager().get(key, default)


def validate() -> Tuple[bool, List[str]]:
    """Validate configuration."""
    return get_manager().validate()


__all__ = [
    "ConfigManager",
    "ConfigField",
    "ConfigType",
    "ConfigCategory",
    "get_manager",
    "reload",
    "get",
    "validate",
]
