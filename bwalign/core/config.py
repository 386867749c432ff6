import logging
import os
from typing import Dict, Any, Optional, List

import yaml

from bwalign.core.errors import ConfigurationError

# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    "log_level": "INFO",
    "library": None,
    "scores": None,
    "clip": None,
    "unpaired": None,
    "no_multi": False,
    "paired_end": None,
}

# Required configuration parameters
REQUIRED_PARAMS: List[str] = ["reference"]

# Keys each mapping section must carry
SECTION_KEYS: Dict[str, List[str]] = {
    "scores": ["match", "mismatch", "gap_open", "gap_extend"],
    "clip": ["clip5", "clip3"],
    "paired_end": ["mean", "std_dev", "low", "high"],
}

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class Config:
    """
    Manages configuration settings for an alignment session.

    Loads settings from a YAML file and allows overrides passed in code.
    Validates the presence of required parameters and the shape of the
    scoring, clipping and paired-end sections.
    """
    def __init__(self):
        self._settings: Dict[str, Any] = DEFAULT_CONFIG.copy()

    def load(self, config_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> "Config":
        """
        Loads configuration from a file and explicit overrides.

        Args:
            config_file: Optional path to a YAML configuration file.
            overrides: Optional mapping applied on top of the file; keys
                whose value is None are ignored.
        """
        # 1. Load from config file if specified
        if config_file:
            if not os.path.exists(config_file):
                raise ConfigurationError(f"Config file not found: {config_file}")
            try:
                with open(config_file, 'r') as f:
                    file_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Error parsing config file {config_file}: {e}")
            except OSError as e:
                raise ConfigurationError(f"Error reading config file {config_file}: {e}")
            if file_config:
                if not isinstance(file_config, dict):
                    raise ConfigurationError(f"Config file {config_file} must contain a mapping")
                self._settings.update(file_config)

        # 2. Override with explicit values
        if overrides:
            self._settings.update({k: v for k, v in overrides.items() if v is not None})

        # 3. Validate
        self._validate_required()
        self._validate_sections()
        return self

    def _validate_required(self):
        """Checks if all required parameters are set."""
        missing = [param for param in REQUIRED_PARAMS if self._settings.get(param) is None]
        if missing:
            raise ConfigurationError(f"Missing required configuration parameters: {', '.join(missing)}")

        level = str(self._settings.get("log_level", "INFO")).upper()
        if level not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log_level: {level}")

    def _validate_sections(self):
        for section, keys in SECTION_KEYS.items():
            value = self._settings.get(section)
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigurationError(f"'{section}' must be a mapping with keys: {', '.join(keys)}")
            missing = [k for k in keys if k not in value]
            if missing:
                raise ConfigurationError(f"'{section}' is missing: {', '.join(missing)}")

        unpaired = self._settings.get("unpaired")
        if unpaired is not None and not isinstance(unpaired, int):
            raise ConfigurationError(f"'unpaired' must be an integer, got {unpaired!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieves a configuration value."""
        value = self._settings.get(key)
        return default if value is None else value

    def get_all(self) -> Dict[str, Any]:
        """Retrieves all configuration settings."""
        return self._settings.copy()
