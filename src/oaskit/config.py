"""Configuration enums and models for oaskit."""

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from oaskit.errors import ConfigurationError

CONFIG_FILENAME = ".oaskit.yaml"


class FileFormat(Enum):
    """Enum representing the format of an OpenAPI specification file."""

    JSON = "json"
    YAML = "yaml"


class BundleNamingStrategy(Enum):
    """How bundled components are named when their simple names collide."""

    COUNTER = "counter"
    FILE_PATH = "filepath"


class LocalizeNamingStrategy(Enum):
    """How localized files are named when their basenames collide."""

    PATH_BASED = "path"
    COUNTER = "counter"


class ExtensionFilter(BaseModel):
    """Glob patterns selecting which ``x-`` extensions survive sanitization.

    With neither list set every extension is removed. ``keep`` acts as a
    whitelist, ``remove`` as a blacklist, and when both are set ``keep``
    wins for extensions matched by both.
    """

    keep: list[str] = Field(default_factory=list)
    remove: list[str] = Field(default_factory=list)


class SanitizeOptions(BaseModel):
    """Options for the sanitize operation."""

    model_config = ConfigDict(populate_by_name=True)

    extension_patterns: ExtensionFilter | None = Field(default=None, alias="extensionPatterns")
    keep_unused_components: bool = Field(default=False, alias="keepUnusedComponents")
    keep_unknown_properties: bool = Field(default=False, alias="keepUnknownProperties")


class ProjectConfig(BaseModel):
    """Per-project defaults, read from ``.oaskit.yaml``."""

    bundle_naming: BundleNamingStrategy = Field(default=BundleNamingStrategy.COUNTER)
    localize_naming: LocalizeNamingStrategy = Field(default=LocalizeNamingStrategy.PATH_BASED)
    sanitize: SanitizeOptions = Field(default_factory=SanitizeOptions)


def _read_yaml_mapping(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a mapping")
    return data


def load_sanitize_config(path: Path) -> SanitizeOptions:
    """
    Load sanitize options from a YAML file.

    Example file::

        extensionPatterns:
          keep: ["x-speakeasy-*"]
        keepUnusedComponents: true

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the file can't be parsed
    """
    if not path.exists():
        raise FileNotFoundError(f"Sanitize config not found: {path}")
    return SanitizeOptions.model_validate(_read_yaml_mapping(path))


def get_config_path(directory: Path) -> Path:
    """Get the path to the project config file in the given directory."""
    return directory / CONFIG_FILENAME


def load_config(directory: Path) -> ProjectConfig:
    """
    Load project defaults from .oaskit.yaml.
    Returns default config if the file doesn't exist.
    """
    config_path = get_config_path(directory)
    if not config_path.exists():
        return ProjectConfig()
    return ProjectConfig.model_validate(_read_yaml_mapping(config_path))
