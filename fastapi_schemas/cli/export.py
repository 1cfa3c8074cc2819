"""
Export command for the fastapi-schemas CLI.

Imports a FastAPI application and writes its OpenAPI document, optionally transformed.
"""

import importlib
import sys
from pathlib import Path

import typer
from pydantic import ValidationError

from fastapi_schemas.cli.common import fail, write_document
from fastapi_schemas.cli.transform import build_options
from fastapi_schemas.errors import SchemaError
from fastapi_schemas.settings import schema_settings
from fastapi_schemas.transform import SpecTransformer

__all__ = ["export_command", "import_app"]


def import_app(target):
    # type: (str) -> object
    """
    Import an application from a `module:attribute` string.

    :param target: Import string, e.g. `myapi.main:app`
    :return: The imported object
    :raises ValueError: If the string is malformed or the attribute is missing
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Import string '{target}' must be in format 'module:attribute'")
    module = importlib.import_module(module_name)
    obj = module
    for name in attr.split("."):
        if not hasattr(obj, name):
            raise ValueError(f"Attribute '{attr}' not found in module '{module_name}'")
        obj = getattr(obj, name)
    return obj


def export_command(
    target: str = typer.Argument(..., help="FastAPI application as module:attribute"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Output file (default: stdout)"),
    fmt: str | None = typer.Option(None, "--format", "-f", help="Output format: json or yaml"),
    transform: bool = typer.Option(True, "--transform/--no-transform", help="Transform the generated document"),
    options_file: Path | None = typer.Option(None, "--options", help="TransformOptions file (JSON or YAML)"),
    app_dir: Path = typer.Option(Path("."), "--app-dir", help="Directory added to sys.path for the import"),
):
    # type: (...) -> None
    """
    Export the OpenAPI document of a FastAPI application.

    Example:
        fastapi-schemas export myapi.main:app --out openapi.json
        fastapi-schemas export myapi.main:app --no-transform --format yaml
    """
    fmt = fmt or schema_settings.spec_format
    if fmt not in ("json", "yaml"):
        raise fail(f"Unsupported format '{fmt}', use json or yaml")

    app_dir = str(app_dir.resolve())
    if app_dir not in sys.path:
        sys.path.insert(0, app_dir)
    try:
        app = import_app(target)
    except (ImportError, ValueError) as e:
        raise fail(str(e))
    if not hasattr(app, "openapi"):
        raise fail(f"'{target}' is not a FastAPI application")

    spec = app.openapi()
    if transform:
        try:
            spec = SpecTransformer(spec).transform(build_options(options_file))
        except ValidationError as e:
            raise fail(f"Invalid transform options: {e}")
        except SchemaError as e:
            raise fail(str(e))
    write_document(spec, out, fmt)
