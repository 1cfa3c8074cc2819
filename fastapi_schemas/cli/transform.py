"""
Transform command for the fastapi-schemas CLI.

Runs the spec transformer over an OpenAPI / Swagger document file.
"""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.table import Table

from fastapi_schemas.cli.common import fail, log_console, read_document, write_document
from fastapi_schemas.errors import SchemaError
from fastapi_schemas.settings import schema_settings
from fastapi_schemas.transform import SpecTransformer, TransformOptions

__all__ = ["transform_command", "build_options"]


def build_options(
    options_file=None,  # type: Path|None
    rewrite=True,  # type: bool
    extract=True,  # type: bool
    merge=True,  # type: bool
    delete=True,  # type: bool
    keep=None,  # type: list[str]|None
    case=None,  # type: str|None
    remove_prefix=False,  # type: bool
):
    # type: (...) -> TransformOptions
    """
    Combine an options file with command line flags.

    Flags only ever narrow or extend the file: `--no-*` disables a stage, `--keep` adds protected schemas,
    `--case` / `--remove-prefix` set schema key naming.

    :raises ValidationError: If the options file contains unknown or invalid options
    """
    data = read_document(options_file) if options_file is not None else {}
    options = TransformOptions.model_validate(data).model_dump()
    if not rewrite:
        options["rewrite_schemas_absolute_refs"] = False
    if not extract:
        options["extract_schemas_properties"] = False
    if not merge:
        options["merge_refs"] = False
    if not delete:
        options["delete_unused_schemas"] = False
    if keep:
        options["keep_schemas"] = [*options["keep_schemas"], *keep]
    if case is not None:
        options["schema_keys"]["change_case"] = case
    if remove_prefix:
        options["schema_keys"]["remove_initial_schemas_prefix"] = True
    return TransformOptions.model_validate(options)


def _timings_table(timings):
    # type: (dict) -> Table
    table = Table(title="Stage timings")
    table.add_column("Stage")
    table.add_column("Seconds", justify="right")
    for stage, timing in timings.items():
        table.add_row(stage, f"{timing.delta:.4f}")
    return table


def transform_command(
    spec_path: Path = typer.Argument(..., help="OpenAPI or Swagger document (JSON or YAML)"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Output file (default: stdout)"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="Output format: json or yaml"),
    options_file: Path | None = typer.Option(None, "--options", help="TransformOptions file (JSON or YAML)"),
    rewrite: bool = typer.Option(True, "--rewrite/--no-rewrite", help="Rewrite schema-relative refs"),
    extract: bool = typer.Option(True, "--extract/--no-extract", help="Extract inline property schemas"),
    merge: bool = typer.Option(True, "--merge/--no-merge", help="Merge structurally equal schemas"),
    delete: bool = typer.Option(True, "--delete/--no-delete", help="Delete unreferenced schemas"),
    keep: list[str] | None = typer.Option(None, "--keep", "-k", help="Schema never deleted (repeatable)"),
    case: str | None = typer.Option(
        None, "--case", help="Case of extracted schema keys: preserve, camelCase, PascalCase, snake_case, param-case"
    ),
    remove_prefix: bool = typer.Option(False, "--remove-prefix", help="Drop parent prefix from extracted keys"),
    timings: bool = typer.Option(False, "--timings", help="Print per-stage timings"),
):
    # type: (...) -> None
    """
    Transform an OpenAPI / Swagger document.

    Rewrites schema-relative refs, extracts inline schemas, merges duplicates and deletes unused schemas.

    Example:
        fastapi-schemas transform openapi.json
        fastapi-schemas transform openapi.yaml --format yaml --out clean.yaml
        fastapi-schemas transform openapi.json --no-extract --keep Error
    """
    fmt = fmt or schema_settings.spec_format
    if fmt not in ("json", "yaml"):
        raise fail(f"Unsupported format '{fmt}', use json or yaml")

    spec = read_document(spec_path)
    try:
        options = build_options(options_file, rewrite, extract, merge, delete, keep, case, remove_prefix)
        result = SpecTransformer(spec).transform_with_timings(options)
    except ValidationError as e:
        raise fail(f"Invalid transform options: {e}")
    except SchemaError as e:
        raise fail(str(e))

    write_document(result.spec, out, fmt)
    if timings:
        log_console.print(_timings_table(result.timings))
