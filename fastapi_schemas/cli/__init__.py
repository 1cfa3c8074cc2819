"""
fastapi-schemas CLI.

Command-line interface for flattening JSON schemas and transforming OpenAPI documents.
"""

import typer

import fastapi_schemas
from fastapi_schemas.cli.common import console
from fastapi_schemas.cli.export import export_command
from fastapi_schemas.cli.flatten import flatten_command
from fastapi_schemas.cli.transform import transform_command

__all__ = ["app", "main"]


app = typer.Typer(
    name="fastapi-schemas",
    help="JSON-Schema flattening and OpenAPI transformation CLI",
    no_args_is_help=True,
)

# Register commands
app.command(name="transform")(transform_command)
app.command(name="flatten")(flatten_command)
app.command(name="export")(export_command)


@app.command()
def version():
    # type: () -> None
    """Show version information."""
    console.print(f"fastapi-schemas version {fastapi_schemas.__version__}")


def main():
    # type: () -> None
    """CLI entry point."""
    app()
