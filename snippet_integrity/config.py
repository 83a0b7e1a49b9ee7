import json
import logging
import os
import os.path
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jsonschema

from .core.snippet import SnippetError
from .core.validator import ValidationOptions

logger = logging.getLogger(__name__)

extension_path = os.path.dirname(__file__)
schema_path = os.path.join(extension_path, "config-schema.json")

CONFIG_ENV_VAR = "SNIPPET_INTEGRITY_CONFIG"
DEFAULT_API_PREFIX = "/snippet_integrity"


class ConfigError(SnippetError):
    """Raised when a config file cannot be read or does not match the schema"""
    pass


def load_schema() -> Dict[str, Any]:
    with open(schema_path, "r") as schema_file:
        return json.load(schema_file)


@dataclass
class IntegrityConfig:
    """
    Settings for the validator and the HTTP surface.

    Example config file:
    {
        "profile": "thorough",
        "options": {"strict_snippet_existence": true},
        "duplicates": {"max_alternatives": 5},
        "api": {"prefix": "/snippet_integrity"}
    }
    """
    profile: str = "default"
    options: Dict[str, Any] = field(default_factory=dict)
    suggest_alternatives: bool = True
    max_alternatives: int = 3
    api_prefix: str = DEFAULT_API_PREFIX

    @classmethod
    def from_dict(cls, config_data: Optional[Dict[str, Any]]) -> 'IntegrityConfig':
        """
        Build a config from its JSON form, validated against config-schema.json.

        Raises:
            ConfigError: If the data does not match the schema
        """
        if not config_data:
            return cls()

        try:
            jsonschema.validate(config_data, load_schema())
        except jsonschema.ValidationError as e:
            logger.error(f"Config failed to validate against expected schema: {e.message}")
            raise ConfigError(f"Invalid configuration: {e.message}") from e

        duplicates = config_data.get("duplicates", {})
        api = config_data.get("api", {})

        return cls(
            profile=config_data.get("profile", "default"),
            options=dict(config_data.get("options", {})),
            suggest_alternatives=duplicates.get("suggest_alternatives", True),
            max_alternatives=duplicates.get("max_alternatives", 3),
            api_prefix=api.get("prefix", DEFAULT_API_PREFIX).rstrip("/") or DEFAULT_API_PREFIX,
        )

    def validation_options(self) -> ValidationOptions:
        """The profile's preset with per-field overrides applied"""
        return ValidationOptions.preset(self.profile).replace(**self.options)

    def duplicate_options(self) -> Dict[str, Any]:
        return {
            "suggest_alternatives": self.suggest_alternatives,
            "max_alternatives": self.max_alternatives,
        }

    def as_dict(self) -> Dict[str, Any]:
        return {
            "profile": self.profile,
            "options": dict(self.options),
            "duplicates": self.duplicate_options(),
            "api": {"prefix": self.api_prefix},
        }


def load_config(path: Optional[str] = None) -> IntegrityConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: Config file; defaults to $SNIPPET_INTEGRITY_CONFIG

    Returns:
        IntegrityConfig; built-in defaults when no file is configured

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        logger.debug("No config file configured, using defaults")
        return IntegrityConfig()

    if not os.path.exists(path):
        logger.error(f"Config file not found: {path}")
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r") as config_file:
            config_data = json.load(config_file)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read config file {path}: {e}")
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    logger.info(f"Loaded config from: {path}")
    return IntegrityConfig.from_dict(config_data)
