"""
Unit tests for configuration loading and schema validation.
"""

import json
from unittest.mock import patch

import pytest

from snippet_integrity.config import CONFIG_ENV_VAR, ConfigError, IntegrityConfig, load_config
from snippet_integrity.core.validator import DEFAULT_VALIDATION_OPTIONS, THOROUGH_VALIDATION_OPTIONS


class TestIntegrityConfig:
    """Test building configuration from data."""

    def test_defaults(self, default_config):
        assert default_config.profile == "default"
        assert default_config.api_prefix == "/snippet_integrity"
        assert default_config.validation_options() is DEFAULT_VALIDATION_OPTIONS
        assert default_config.duplicate_options() == {"suggest_alternatives": True, "max_alternatives": 3}

    def test_from_dict(self):
        """Test that every section is read."""
        config = IntegrityConfig.from_dict({
            "profile": "thorough",
            "options": {"strict_snippet_existence": True},
            "duplicates": {"max_alternatives": 5},
            "api": {"prefix": "/integrity/"},
        })

        options = config.validation_options()
        assert options.strict_snippet_existence is True
        assert options.max_validation_depth == THOROUGH_VALIDATION_OPTIONS.max_validation_depth
        assert config.max_alternatives == 5
        assert config.api_prefix == "/integrity"

    @pytest.mark.parametrize("data", [
        {"profile": "reckless"},
        {"options": {"max_validation_depth": -1}},
        {"options": {"max_validation_depth": 10000}},
        {"options": {"unknown_flag": True}},
        {"unexpected": 1},
        ["not", "an", "object"],
    ])
    def test_schema_violations(self, data):
        """Test that data outside the schema is refused."""
        with pytest.raises(ConfigError):
            IntegrityConfig.from_dict(data)

    def test_as_dict_round_trip(self):
        data = {
            "profile": "fast",
            "options": {"generate_warnings": True},
            "duplicates": {"suggest_alternatives": False, "max_alternatives": 2},
            "api": {"prefix": "/x"},
        }

        assert IntegrityConfig.from_dict(data).as_dict() == data


class TestLoadConfig:
    """Test loading configuration files."""

    def test_no_file_configured(self):
        with patch.dict("os.environ", {}, clear=True):
            config = load_config()

        assert config == IntegrityConfig()

    def test_load_from_path(self, temp_config_dir):
        path = temp_config_dir / "config.json"
        path.write_text(json.dumps({"profile": "fast"}))

        assert load_config(str(path)).profile == "fast"

    def test_load_from_environment(self, temp_config_dir):
        path = temp_config_dir / "config.json"
        path.write_text(json.dumps({"profile": "thorough"}))

        with patch.dict("os.environ", {CONFIG_ENV_VAR: str(path)}):
            assert load_config().profile == "thorough"

    def test_missing_file(self, temp_config_dir):
        with pytest.raises(ConfigError):
            load_config(str(temp_config_dir / "missing.json"))

    def test_malformed_json(self, temp_config_dir):
        path = temp_config_dir / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigError):
            load_config(str(path))
