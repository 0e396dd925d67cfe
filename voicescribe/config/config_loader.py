"""Configuration loader for VoiceScribe."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from voicescribe.config.validators import VoiceScribeConfig, validate_config
from voicescribe.utils.exceptions import ConfigurationError

CONFIG_ENV_VAR = "VOICESCRIBE_CONFIG"
DEFAULT_CONFIG_PATH = "config.yml"

# setup_logger reads this module, so the loader logs through the stdlib logger.
logger = logging.getLogger(__name__)


class ConfigLoader:
    """Loads and manages application configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize the configuration loader.

        Args:
            config_path: Path to the main configuration file. Defaults to
                ``$VOICESCRIBE_CONFIG`` or ``config.yml``.
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
        self.config_path = Path(config_path).expanduser()
        self.config: Dict[str, Any] = {}
        self.validated_config: Optional[VoiceScribeConfig] = None
        self.load()

    def load(self) -> None:
        """Load configuration from the YAML file.

        A missing file is not fatal: the schema defaults are used instead.
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    f"Config file {self.config_path} is not valid YAML: {e}"
                ) from e
            if not isinstance(loaded, dict):
                logger.error(
                    f"Config file {self.config_path} must contain a mapping, "
                    "using defaults"
                )
                loaded = {}
            self.config = loaded
        else:
            logger.warning(
                f"Config file not found: {self.config_path}, using defaults"
            )
            self.config = {}

        self._validate_config()

    def reload(self, config_path: Optional[str] = None) -> None:
        """Reload configuration, optionally from a different file.

        Args:
            config_path: New configuration path, or None to reuse the current one.
        """
        if config_path is not None:
            self.config_path = Path(config_path).expanduser()
        self.load()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-notation key.

        Values missing from the file fall back to the validated schema
        defaults before ``default`` is used.

        Args:
            key: Configuration key (e.g., "encoder.stop_timeout").
            default: Default value if key not found.

        Returns:
            Configuration value or default.
        """
        value = self._lookup(self.config, key)
        if value is not _MISSING:
            return value

        if self.validated_config is not None:
            schema_values = self.validated_config.model_dump(mode="json")
            value = self._lookup(schema_values, key)
            if value is not _MISSING:
                return value

        return default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., "recording.max_duration").
            value: Value to set.
        """
        keys = key.split(".")
        config_ref = self.config

        # Navigate to the parent of the target key
        for k in keys[:-1]:
            if k not in config_ref or not isinstance(config_ref[k], dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value
        self._validate_config()

    def get_all(self) -> Dict[str, Any]:
        """Get the entire configuration dictionary.

        Returns:
            Complete configuration dictionary.
        """
        return self.config.copy()

    @staticmethod
    def _lookup(values: Dict[str, Any], key: str) -> Any:
        value: Any = values
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return _MISSING
        return value

    def _validate_config(self) -> None:
        """Validate the loaded configuration using Pydantic schemas."""
        try:
            self.validated_config = validate_config(self.config)
        except ValueError as e:
            # Continue with unvalidated config but log the error
            logger.error(f"Configuration validation failed: {e}")
            self.validated_config = None


_MISSING = object()

# Global config instance
config = ConfigLoader()
