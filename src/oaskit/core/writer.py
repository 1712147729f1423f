"""Module for writing OpenAPI specification files."""

import json
from pathlib import Path
from typing import Any

import yaml

from oaskit.config import FileFormat


class NoAliasDumper(yaml.SafeDumper):
    """
    YAML dumper that disables alias/anchor generation.

    Bundled and optimized documents share dict objects between several
    locations; without this every shared node would become an anchor.
    """

    def ignore_aliases(self, data):
        """Always return True to disable alias generation."""
        return True


def dump_spec(data: Any, format: FileFormat) -> str:
    """
    Serialize a document to JSON or YAML text.

    Raises:
        ValueError: If an unsupported FileFormat is provided
    """
    if format == FileFormat.JSON:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    elif format == FileFormat.YAML:
        return yaml.dump(
            data,
            Dumper=NoAliasDumper,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False,
            indent=2,
        )

    else:
        raise ValueError(f"Unsupported file format: {format}")


def write_spec(data: dict, path: Path, format: FileFormat) -> None:
    """
    Write an OpenAPI specification to a JSON or YAML file.

    Args:
        data: The OpenAPI spec as a Python dictionary
        path: Path where the file should be written
        format: FileFormat indicating whether to write JSON or YAML

    Raises:
        ValueError: If an unsupported FileFormat is provided
        OSError: If writing to the file fails
    """
    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_spec(data, format))
