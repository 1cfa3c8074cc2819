"""
JSON / YAML rendering of specification documents.

Used by the transformed-spec routes and by the CLI. YAML is the PyYAML safe dialect; JSON uses LF line
endings and keeps non-ASCII characters.
"""

import json
import typing
from pathlib import Path

import yaml

from fastapi_schemas.document import clone_document
from fastapi_schemas.errors import InvalidDocument

if typing.TYPE_CHECKING:
    from fastapi_schemas.document import Document  # noqa: F401


__all__ = ["Format", "detect_format", "loads_document", "load_document", "dumps_document"]


Format = typing.Literal["json", "yaml"]


def detect_format(path):
    # type: (str|Path) -> Format
    """Format implied by a file suffix; anything but `.json` is read as YAML."""
    return "json" if Path(path).suffix.lower() == ".json" else "yaml"


def loads_document(text, fmt="yaml"):
    # type: (str, Format) -> Document
    """
    Parse a JSON or YAML document.

    :param text: Serialized document
    :param fmt: Input format (JSON is also accepted by the YAML parser)
    :return: Parsed document
    :raises InvalidDocument: If the text does not parse into a JSON document
    """
    try:
        value = json.loads(text) if fmt == "json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise InvalidDocument(f"cannot parse {fmt} document: {e}") from e
    # YAML-only values (dates, integer keys) come back as JSON strings
    return clone_document(value)


def load_document(path):
    # type: (str|Path) -> Document
    """Read a JSON or YAML document from a file."""
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        return loads_document(f.read(), detect_format(path))


def dumps_document(doc, fmt="json"):
    # type: (Document, Format) -> str
    """
    Serialize a document.

    :param doc: Document to render
    :param fmt: Output format
    :return: JSON (2-space indent) or block-style YAML, keys in document order
    """
    if fmt == "yaml":
        return yaml.safe_dump(doc, sort_keys=False, allow_unicode=True)
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
