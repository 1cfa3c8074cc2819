"""
Shared utilities for the fastapi-schemas CLI.

Common functionality used across multiple CLI commands.
"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from fastapi_schemas.errors import SchemaError
from fastapi_schemas.serialize import Format, dumps_document, load_document


__all__ = ["console", "log_console", "read_document", "write_document", "fail"]


# Shared console instances for all CLI commands; logs go to stderr so documents can be piped
console = Console()
log_console = Console(stderr=True)


# Configure loguru to use rich's console for proper output coordination
logger.remove()  # Remove default handler
logger.add(
    RichHandler(
        console=log_console,
        rich_tracebacks=True,
        markup=True,
        show_time=False,  # Use custom time format
        show_level=False,  # Use custom level format
        show_path=False,  # Don't show file path on right
    ),
    format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {module}:{function}:{line} - {message}",
    level="INFO",
)


def fail(message):
    # type: (str) -> typer.Exit
    """Print an error and return the exit signal for the caller to raise."""
    log_console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
    return typer.Exit(code=1)


def read_document(path):
    # type: (Path) -> dict
    """
    Load a JSON or YAML input file.

    :param path: Input file (`.json` is parsed as JSON, anything else as YAML)
    :return: Parsed document
    :raises typer.Exit: If the file is missing or does not parse
    """
    if not path.exists():
        raise fail(f"File not found: {path}")
    try:
        return load_document(path)
    except SchemaError as e:
        raise fail(str(e))


def write_document(doc, out=None, fmt="json"):
    # type: (object, Path|None, Format) -> None
    """
    Write a document to a file, or to the console when no file is given.

    :param doc: Document to write
    :param out: Output file
    :param fmt: Output format
    """
    text = dumps_document(doc, fmt)
    if out is None:
        # Plain print keeps the output pipeable
        console.print(text, end="", markup=False, highlight=False, soft_wrap=True)
        return
    with open(out, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)
    logger.info(f"Wrote {fmt} document to {out}")
