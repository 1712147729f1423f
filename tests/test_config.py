"""Tests for configuration handling."""

import pytest
import yaml

from oaskit.config import (
    CONFIG_FILENAME,
    BundleNamingStrategy,
    ExtensionFilter,
    LocalizeNamingStrategy,
    ProjectConfig,
    SanitizeOptions,
    get_config_path,
    load_config,
    load_sanitize_config,
)
from oaskit.errors import ConfigurationError


class TestSanitizeOptions:
    """Test the SanitizeOptions model."""

    def test_default_values(self):
        """Test that defaults remove everything."""
        options = SanitizeOptions()

        assert options.extension_patterns is None
        assert options.keep_unused_components is False
        assert options.keep_unknown_properties is False

    def test_camel_case_aliases(self):
        """Test that the YAML file's camelCase keys are accepted."""
        options = SanitizeOptions.model_validate(
            {
                "extensionPatterns": {"keep": ["x-speakeasy-*"], "remove": ["x-internal-*"]},
                "keepUnusedComponents": True,
                "keepUnknownProperties": True,
            }
        )

        assert options.extension_patterns == ExtensionFilter(keep=["x-speakeasy-*"], remove=["x-internal-*"])
        assert options.keep_unused_components is True
        assert options.keep_unknown_properties is True

    def test_field_names(self):
        """Test that snake_case names work as well."""
        options = SanitizeOptions(keep_unused_components=True)

        assert options.keep_unused_components is True


class TestGetConfigPath:
    """Test the get_config_path function."""

    def test_returns_correct_path(self, tmp_path):
        """Test that path is directory/.oaskit.yaml."""
        assert get_config_path(tmp_path) == tmp_path / CONFIG_FILENAME


class TestLoadConfig:
    """Test the load_config function."""

    def test_returns_defaults_when_no_file(self, tmp_path):
        """Test that a missing file gives default config."""
        config = load_config(tmp_path)

        assert config == ProjectConfig()
        assert config.bundle_naming == BundleNamingStrategy.COUNTER
        assert config.localize_naming == LocalizeNamingStrategy.PATH_BASED

    def test_loads_values(self, tmp_path):
        """Test loading naming strategies and sanitize options."""
        (tmp_path / CONFIG_FILENAME).write_text(
            yaml.dump(
                {
                    "bundle_naming": "filepath",
                    "localize_naming": "counter",
                    "sanitize": {"keepUnusedComponents": True},
                }
            )
        )

        config = load_config(tmp_path)

        assert config.bundle_naming == BundleNamingStrategy.FILE_PATH
        assert config.localize_naming == LocalizeNamingStrategy.COUNTER
        assert config.sanitize.keep_unused_components is True

    def test_empty_file(self, tmp_path):
        """Test that an empty file gives default config."""
        (tmp_path / CONFIG_FILENAME).write_text("")

        assert load_config(tmp_path) == ProjectConfig()

    def test_non_mapping_fails(self, tmp_path):
        """Test that a YAML list is rejected."""
        (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError):
            load_config(tmp_path)

    def test_invalid_yaml_fails(self, tmp_path):
        """Test that unparseable YAML is rejected."""
        (tmp_path / CONFIG_FILENAME).write_text("key: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_config(tmp_path)


class TestLoadSanitizeConfig:
    """Test the load_sanitize_config function."""

    def test_loads_file(self, tmp_path):
        """Test loading a sanitize config file."""
        path = tmp_path / "sanitize.yaml"
        path.write_text("extensionPatterns:\n  keep:\n    - x-speakeasy-*\nkeepUnknownProperties: true\n")

        options = load_sanitize_config(path)

        assert options.extension_patterns.keep == ["x-speakeasy-*"]
        assert options.extension_patterns.remove == []
        assert options.keep_unknown_properties is True

    def test_missing_file(self, tmp_path):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_sanitize_config(tmp_path / "missing.yaml")
