"""
Unit tests for the configuration schema.
"""

import copy

import pytest

from baseserver.errors import ConfigError
from baseserver.schema import CONFIG_SCHEMA, SAMPLE_CONFIG, Field, validate_config


class TestSampleConfig:
    """The shipped sample must always validate."""

    def test_sample_is_valid(self):
        validate_config(SAMPLE_CONFIG)

    def test_sample_values(self):
        assert SAMPLE_CONFIG["webserver"]["http"]["port"] == 1901
        assert SAMPLE_CONFIG["webserver"]["https"]["port"] == 1900
        assert SAMPLE_CONFIG["webserver"]["https"]["enabled"] is False
        assert SAMPLE_CONFIG["express"]["views"]["engine"] == "ejs"

    def test_sample_file_matches(self):
        """config.sample.json in the repository root mirrors SAMPLE_CONFIG."""
        import json
        from pathlib import Path

        sample_file = Path(__file__).resolve().parents[2] / "config.sample.json"
        assert json.loads(sample_file.read_text()) == SAMPLE_CONFIG

    def test_empty_config_is_valid(self):
        validate_config({})


class TestValidation:
    """Tests for validate_config."""

    def test_unknown_key(self):
        with pytest.raises(ConfigError) as exc_info:
            validate_config({"express": {"cookies": True}})

        assert exc_info.value.problems == ["express.cookies: unknown key"]

    def test_boolean_is_not_a_number(self):
        with pytest.raises(ConfigError) as exc_info:
            validate_config({"webserver": {"http": {"port": True}}})

        assert "webserver.http.port" in exc_info.value.problems[0]

    def test_number_is_not_a_boolean(self):
        with pytest.raises(ConfigError):
            validate_config({"express": {"helmet": 1}})

    def test_allowed_values(self):
        validate_config({"express": {"views": {"engine": "ejs"}}})

        with pytest.raises(ConfigError) as exc_info:
            validate_config({"express": {"views": {"engine": "pug"}}})

        assert "'pug'" in exc_info.value.problems[0]

    def test_required_only_inside_present_section(self):
        """http.port is required once an http section exists."""
        validate_config({"webserver": {"host": "127.0.0.1"}})

        with pytest.raises(ConfigError) as exc_info:
            validate_config({"webserver": {"http": {}}})

        assert exc_info.value.problems == ["webserver.http.port: required field is missing"]

    def test_ciphers_string_or_list(self):
        validate_config({"webserver": {"https": {"ciphers": "A:B"}}})
        validate_config({"webserver": {"https": {"ciphers": ["A", "B"]}}})

        with pytest.raises(ConfigError):
            validate_config({"webserver": {"https": {"ciphers": ["A", 1]}}})

    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError) as exc_info:
            validate_config({"express": "yes"})

        assert "expected a section" in exc_info.value.problems[0]

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigError):
            validate_config(["not", "a", "dict"])

    def test_all_problems_collected(self):
        config = copy.deepcopy(SAMPLE_CONFIG)
        config["express"]["cookie"] = "yes"
        config["webserver"]["https"]["port"] = "1900"
        config["extra"] = {}

        with pytest.raises(ConfigError) as exc_info:
            validate_config(config)

        assert len(exc_info.value.problems) == 3
        assert "3 problems" in str(exc_info.value)

    def test_custom_schema(self):
        schema = {"name": Field("string", required=True)}

        validate_config({"name": "x"}, schema)
        with pytest.raises(ConfigError):
            validate_config({}, schema)

    def test_schema_covers_sample_sections(self):
        assert set(SAMPLE_CONFIG) <= set(CONFIG_SCHEMA)
