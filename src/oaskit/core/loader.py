"""Module for loading OpenAPI specification files."""

from pathlib import Path
from typing import Any

import yaml

from oaskit.config import FileFormat


def detect_format(name: str, data: bytes | str | None = None) -> FileFormat:
    """
    Guess the format of a document from its name, falling back to its content.

    Args:
        name: File name, path or URL of the document
        data: Optional raw content used when the name has no known suffix

    Returns:
        FileFormat.JSON for ``.json`` names or content starting with ``{``,
        FileFormat.YAML otherwise
    """
    lowered = name.lower().split("?", 1)[0].split("#", 1)[0]
    if lowered.endswith(".json"):
        return FileFormat.JSON
    if lowered.endswith((".yaml", ".yml")):
        return FileFormat.YAML
    if data is not None:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        if text.lstrip().startswith("{"):
            return FileFormat.JSON
    return FileFormat.YAML


def parse_spec(data: bytes | str) -> Any:
    """
    Parse raw JSON or YAML content.

    JSON is a subset of YAML, so a single safe loader handles both.

    Raises:
        yaml.YAMLError: If parsing fails
    """
    return yaml.safe_load(data)


def load_spec(path: Path) -> tuple[dict, FileFormat]:
    """
    Load an OpenAPI specification from a JSON or YAML file.

    Args:
        path: Path to the OpenAPI specification file (.json, .yaml, or .yml)

    Returns:
        A tuple of (parsed_dict, FileFormat) where:
        - parsed_dict is the OpenAPI spec as a Python dictionary
        - FileFormat indicates whether it was JSON or YAML

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file extension is not .json, .yaml, or .yml,
                    or the document is not a mapping
        yaml.YAMLError: If parsing fails
    """
    if not path.exists():
        raise FileNotFoundError(f"OpenAPI file not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in (".json", ".yaml", ".yml"):
        raise ValueError(f"Unsupported file format: {suffix}. Expected .json, .yaml, or .yml")

    data = parse_spec(path.read_bytes())
    if not isinstance(data, dict):
        raise ValueError(f"OpenAPI document must be a mapping: {path}")

    return data, FileFormat.JSON if suffix == ".json" else FileFormat.YAML
