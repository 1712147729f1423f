"""Run one transformation over an OpenAPI file.

1. Load the OpenAPI specification from a file
2. Apply the transformation steps in sequence
3. Save the result to a file, or return it as text for stdout
"""

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from rich.console import Console

from oaskit.config import FileFormat
from oaskit.core.loader import load_spec
from oaskit.core.writer import dump_spec, write_spec

Step = tuple[str, Callable[[dict], Any]]


def output_format(output_path: Path | None, input_format: FileFormat) -> FileFormat:
    """Use the output file's extension when it has a known one, else the input's format."""
    if output_path is not None:
        suffix = output_path.suffix.lower()
        if suffix == ".json":
            return FileFormat.JSON
        if suffix in (".yaml", ".yml"):
            return FileFormat.YAML
    return input_format


def apply_steps(spec: dict, steps: Sequence[Step], console: Console | None = None) -> dict:
    """Apply each (label, fn) step to ``spec`` in order; steps mutate in place."""
    for label, step in steps:
        if console:
            console.print(f"  [dim]→ {label}[/dim]")
        step(spec)
    return spec


def process_spec(
    input_path: Path,
    output_path: Path | None,
    steps: Sequence[Step],
    console: Console | None = None,
) -> str | None:
    """
    Load an OpenAPI spec, apply ``steps``, and save or return the result.

    Args:
        input_path: Path to the input OpenAPI specification file (.json, .yaml, or .yml)
        output_path: Where to write the result; None returns it as text instead
        steps: (label, transformer) pairs, each taking the spec dict
        console: Optional Rich Console for progress output

    Returns:
        The serialized document when ``output_path`` is None, otherwise None

    Raises:
        FileNotFoundError: If the input file doesn't exist
        ValueError: If the input file has an unsupported extension
        yaml.YAMLError: If parsing fails
        OaskitError: If a transformation fails
        OSError: If writing to output_path fails
    """
    spec, file_format = load_spec(input_path)
    apply_steps(spec, steps, console)

    fmt = output_format(output_path, file_format)
    if output_path is None:
        return dump_spec(spec, fmt)
    write_spec(spec, output_path, fmt)
    return None
