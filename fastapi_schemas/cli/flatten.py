"""
Flatten command for the fastapi-schemas CLI.

Splits one root JSON schema into independent named schemas.
"""

from pathlib import Path

import typer

from fastapi_schemas.cli.common import fail, read_document, write_document
from fastapi_schemas.errors import SchemaError
from fastapi_schemas.flatten import flatten
from fastapi_schemas.settings import schema_settings

__all__ = ["flatten_command"]


def flatten_command(
    schema_path: Path = typer.Argument(..., help="Root object schema (JSON or YAML)"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Output file (default: stdout)"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="Output format: json or yaml"),
    merge_refs: bool = typer.Option(False, "--merge-refs", help="Replace duplicated subtrees by refs"),
    components: bool = typer.Option(False, "--components", help="Write a components.schemas map instead of a list"),
):
    # type: (...) -> None
    """
    Flatten a root JSON schema into named schemas.

    Every root property becomes a schema with `$id` set to its key; nested refs are extracted until only
    whole-document refs remain.

    Example:
        fastapi-schemas flatten schema.json
        fastapi-schemas flatten schema.yaml --merge-refs --components --format yaml
    """
    fmt = fmt or schema_settings.spec_format
    if fmt not in ("json", "yaml"):
        raise fail(f"Unsupported format '{fmt}', use json or yaml")

    schema = read_document(schema_path)
    try:
        schemas = flatten(schema, merge_refs=merge_refs)
    except SchemaError as e:
        raise fail(str(e))

    doc = schemas.to_components() if components else schemas.schemas
    write_document(doc, out, fmt)
