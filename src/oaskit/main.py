"""Main CLI entry point for oaskit."""

import logging
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax

from oaskit.config import (
    BundleNamingStrategy,
    LocalizeNamingStrategy,
    SanitizeOptions,
    load_config,
    load_sanitize_config,
)
from oaskit.core.loader import load_spec
from oaskit.core.resolver import LocalFileSystem, ResolveOptions
from oaskit.core.writer import write_spec
from oaskit.errors import OaskitError
from oaskit.transformers.bundle import BundleOptions, bundle
from oaskit.transformers.clean import clean
from oaskit.transformers.inline import InlineOptions, inline
from oaskit.transformers.localize import LocalizeOptions, localize
from oaskit.transformers.manager import Step, process_spec
from oaskit.transformers.optimize import NameCallback, optimize
from oaskit.transformers.sanitize import sanitize
from oaskit.transformers.snip import OperationIdentifier, operations_to_remove, parse_operation, snip

app = typer.Typer(
    name="oaskit",
    help="Bundle, inline, localize, clean, optimize, sanitize and snip OpenAPI documents",
)
# stdout is reserved for documents
console = Console(stderr=True)

_FAILURES = (OaskitError, OSError, ValueError, yaml.YAMLError)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Transform OpenAPI documents."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def resolve_output(input_file: Path, output_file: Path | None, write: bool) -> Path | None:
    """
    Decide where a command's result goes.

    Returns:
        The output path, or None for stdout

    Raises:
        typer.BadParameter: If both an output file and --write are given
    """
    if write and output_file is not None:
        raise typer.BadParameter("use either an output file or --write, not both")
    if write:
        return input_file
    return output_file


def _run(input_file: Path, output_file: Path | None, write: bool, steps: list[Step], success: str) -> None:
    output_path = resolve_output(input_file, output_file, write)
    with console.status(f"[bold yellow]Processing {input_file.name}..."):
        try:
            text = process_spec(input_file, output_path, steps, console)
        except _FAILURES as e:
            console.print(f"[bold red]✗[/bold red] {e}")
            raise typer.Exit(1)

    if text is not None:
        typer.echo(text, nl=False)
    else:
        console.print(f"[bold green]✓[/bold green] {success}: {output_path}")


def _resolve_options(input_file: Path) -> ResolveOptions:
    return ResolveOptions(root_location=str(input_file.resolve()), virtual_fs=LocalFileSystem())


@app.command("bundle")
def bundle_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to bundle"),
    output_file: Path = typer.Argument(None, help="Output file (stdout if omitted)"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the input file in place"),
    naming: BundleNamingStrategy = typer.Option(
        None, "--naming", "-n", help="Naming strategy for conflicting components"
    ),
) -> None:
    """Inline external references into the document's components."""
    naming = naming or load_config(Path.cwd()).bundle_naming
    options = BundleOptions(resolve_options=_resolve_options(input_file), naming_strategy=naming)
    steps: list[Step] = [(f"bundle external references ({naming.value} naming)", lambda spec: bundle(spec, options))]
    _run(input_file, output_file, write, steps, "Bundled specification written to")


@app.command("localize")
def localize_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to localize"),
    target_dir: Path = typer.Argument(..., help="Directory receiving the document and its references"),
    naming: LocalizeNamingStrategy = typer.Option(
        None, "--naming", "-n", help="Naming strategy for conflicting file names"
    ),
) -> None:
    """Copy the document and every file it references into one directory."""
    naming = naming or load_config(Path.cwd()).localize_naming
    target_path = target_dir.resolve()

    with console.status("[bold yellow]Localizing external references..."):
        try:
            spec, file_format = load_spec(input_file)
            options = LocalizeOptions(
                resolve_options=_resolve_options(input_file),
                target_directory=str(target_path),
                virtual_fs=LocalFileSystem(),
                naming_strategy=naming,
            )
            localize(spec, options)
            output_path = target_path / input_file.name
            write_spec(spec, output_path, file_format)
        except _FAILURES as e:
            console.print(f"[bold red]✗[/bold red] Failed to localize: {e}")
            raise typer.Exit(1)

    console.print(f"[bold green]✓[/bold green] Localized specification written to: {output_path}")


@app.command("clean")
def clean_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to clean"),
    output_file: Path = typer.Argument(None, help="Output file (stdout if omitted)"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the input file in place"),
) -> None:
    """Remove unused components and tags."""
    _run(input_file, output_file, write, [("remove unused components", clean)], "Cleaned specification written to")


def prompt_for_name(suggested: str, content_hash: str, locations: list[str], schema: Any) -> str:
    """Interactive naming callback for optimize: show the schema, ask for a name."""
    console.print()
    console.print(f"[bold]Schema {content_hash}[/bold] is used in {len(locations)} places:")
    for location in locations:
        console.print(f"  [dim]{location}[/dim]")
    console.print(Syntax(yaml.safe_dump(schema, sort_keys=False), "yaml", theme="ansi_dark"))
    return typer.prompt("Component name", default=suggested, err=True)


@app.command("optimize")
def optimize_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to optimize"),
    output_file: Path = typer.Argument(None, help="Output file (stdout if omitted)"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the input file in place"),
    non_interactive: bool = typer.Option(
        False, "--non-interactive", help="Use suggested names instead of prompting"
    ),
) -> None:
    """Deduplicate identical inline schemas into shared components."""
    callback: NameCallback | None = None if non_interactive else prompt_for_name
    output_path = resolve_output(input_file, output_file, write)

    # prompts can't run under a spinner
    try:
        text = process_spec(
            input_file, output_path, [("deduplicate inline schemas", lambda spec: optimize(spec, callback))], console
        )
    except _FAILURES as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    if text is not None:
        typer.echo(text, nl=False)
    else:
        console.print(f"[bold green]✓[/bold green] Optimized specification written to: {output_path}")


@app.command("sanitize")
def sanitize_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to sanitize"),
    output_file: Path = typer.Argument(None, help="Output file (stdout if omitted)"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the input file in place"),
    config: Path = typer.Option(None, "--config", "-c", help="Sanitize config YAML file"),
) -> None:
    """Remove extensions, unknown properties and unused components."""
    try:
        options: SanitizeOptions = load_sanitize_config(config) if config else load_config(Path.cwd()).sanitize
    except _FAILURES as e:
        console.print(f"[bold red]✗[/bold red] Failed to load config: {e}")
        raise typer.Exit(1)

    warnings: list[str] = []

    def _sanitize(spec: dict) -> None:
        warnings.extend(sanitize(spec, options).warnings)

    _run(input_file, output_file, write, [("sanitize", _sanitize)], "Sanitized specification written to")
    for warning in warnings:
        console.print(f"[bold yellow]![/bold yellow] {warning}")

@app.command("inline")
def inline_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to inline"),
    output_file: Path = typer.Argument(None, help="Output file (stdout if omitted)"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the input file in place"),
    remove_unused: bool = typer.Option(
        False, "--remove-unused", help="Remove components left unused after inlining"
    ),
) -> None:
    """Replace every reference with the content it points at."""
    options = InlineOptions(resolve_options=_resolve_options(input_file), remove_unused_components=remove_unused)
    _run(
        input_file,
        output_file,
        write,
        [("inline references", lambda spec: inline(spec, options))],
        "Inlined specification written to",
    )


def _split(values: list[str] | None) -> list[str]:
    """Flatten repeated and comma-separated option values."""
    return [part.strip() for value in values or [] for part in value.split(",") if part.strip()]


@app.command("snip")
def snip_command(
    input_file: Path = typer.Argument(..., help="OpenAPI document to snip"),
    output_file: Path = typer.Argument(None, help="Output file (stdout if omitted)"),
    write: bool = typer.Option(False, "--write", "-w", help="Rewrite the input file in place"),
    operation_ids: list[str] = typer.Option(None, "--operation-id", help="operationId to remove"),
    operations: list[str] = typer.Option(None, "--operation", help="path:METHOD to remove"),
    keep_operation_ids: list[str] = typer.Option(None, "--keep-operation-id", help="operationId to keep"),
    keep_operations: list[str] = typer.Option(None, "--keep-operation", help="path:METHOD to keep"),
) -> None:
    """Remove operations, then the components and tags only they used."""
    try:
        remove = [OperationIdentifier(operation_id=i) for i in _split(operation_ids)]
        remove += [parse_operation(o) for o in _split(operations)]
        keep = [OperationIdentifier(operation_id=i) for i in _split(keep_operation_ids)]
        keep += [parse_operation(o) for o in _split(keep_operations)]
    except _FAILURES as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1)

    if remove and keep:
        raise typer.BadParameter("use either remove or keep options, not both")
    if not remove and not keep:
        raise typer.BadParameter("name at least one operation to remove or keep")

    removed: list[int] = []

    def _snip(spec: dict) -> None:
        removed.append(snip(spec, operations_to_remove(spec, keep) if keep else remove))

    _run(input_file, output_file, write, [("remove operations", _snip)], "Snipped specification written to")
    console.print(f"[bold green]✓[/bold green] Removed {sum(removed)} operation(s)")



if __name__ == "__main__":
    app()
